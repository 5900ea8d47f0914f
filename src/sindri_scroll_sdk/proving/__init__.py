"""
Vendor-neutral proving-service contract consumed by the Sindri adapter.
"""

from .types import (
    CircuitType,
    GetVkRequest,
    GetVkResponse,
    ProveRequest,
    ProveResponse,
    ProvingService,
    QueryTaskRequest,
    QueryTaskResponse,
    TaskStatus,
)

__all__ = [
    "CircuitType",
    "GetVkRequest",
    "GetVkResponse",
    "ProveRequest",
    "ProveResponse",
    "ProvingService",
    "QueryTaskRequest",
    "QueryTaskResponse",
    "TaskStatus",
]
