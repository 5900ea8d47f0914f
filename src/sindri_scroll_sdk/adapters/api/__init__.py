"""
HTTP client and adapter for the Sindri proving API.

The package exposes two layers:

* :class:`BaseAPIClient` wraps low-level HTTP calls with retry, compression and
  recursion-safe JSON decoding.
* :class:`CloudProver` implements the proving-service contract on top of it.
"""

from .base import BaseAPIClient
from .decoding import decode_json, encode_json
from .routes import CIRCUIT_VERSION, CircuitTarget, TaskTarget, UndefinedCircuitError, build_route
from .sindri import CloudProver, SindriTaskStatus, reformat_vk

__all__ = [
    "BaseAPIClient",
    "CIRCUIT_VERSION",
    "CircuitTarget",
    "CloudProver",
    "SindriTaskStatus",
    "TaskTarget",
    "UndefinedCircuitError",
    "build_route",
    "decode_json",
    "encode_json",
    "reformat_vk",
]
