"""
Adapters translating the proving-service contract onto remote backends.

Each adapter is responsible for a small, deterministic surface: request
translation, one HTTP call per step, and response translation. Task-level
scheduling stays with the SDK runtime that drives the adapter.
"""

from .base import ConfigError, DecodeError, InputError, KeyEncodingError, ProverError, TransportError

__all__ = [
    "ConfigError",
    "DecodeError",
    "InputError",
    "KeyEncodingError",
    "ProverError",
    "TransportError",
]
