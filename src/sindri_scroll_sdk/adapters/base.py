"""
Error hierarchy shared by the Sindri adapter layers.

Every failure the adapter knows how to report derives from :class:`ProverError`.
The translation layer catches this root type only and turns it into the
``error`` field of a contract response; anything else (for instance an
undefined circuit type reaching route construction) is a programming error and
propagates.
"""

from __future__ import annotations

from typing import Optional


class ProverError(RuntimeError):
    """Raised when an adapter call fails in a way that can be reported to the caller."""


class TransportError(ProverError):
    """Raised when an HTTP exchange fails: network error, timeout or unexpected status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodeError(ProverError):
    """Raised when a payload is not valid JSON or does not have the expected shape."""


class InputError(ProverError):
    """Raised when caller-supplied proof input cannot be reshaped for the backend."""


class KeyEncodingError(ProverError):
    """Raised when verification key material cannot be re-encoded."""


class ConfigError(ProverError):
    """Raised when adapter configuration is missing or invalid."""


__all__ = [
    "ConfigError",
    "DecodeError",
    "InputError",
    "KeyEncodingError",
    "ProverError",
    "TransportError",
]
