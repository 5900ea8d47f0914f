"""
Sindri cloud prover for the Scroll proving SDK.

Import :class:`CloudProver` together with :func:`load_config_from_env` for the
main developer-facing surface:

    config = load_config_from_env("config.json")
    async with CloudProver(config) as prover:
        response = await prover.get_vks(GetVkRequest([CircuitType.CHUNK], "v0.13.1"))
"""

from .adapters.api import CloudProver
from .config import CloudProverConfig, load_config, load_config_from_env
from .proving import (
    CircuitType,
    GetVkRequest,
    GetVkResponse,
    ProveRequest,
    ProveResponse,
    QueryTaskRequest,
    QueryTaskResponse,
    TaskStatus,
)

__all__ = [
    "CircuitType",
    "CloudProver",
    "CloudProverConfig",
    "GetVkRequest",
    "GetVkResponse",
    "ProveRequest",
    "ProveResponse",
    "QueryTaskRequest",
    "QueryTaskResponse",
    "TaskStatus",
    "load_config",
    "load_config_from_env",
]
