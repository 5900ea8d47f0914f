"""
Route construction for the Sindri REST API.

Sindri addresses two kinds of resources: circuits, named
``<vendor>/<kind>_prover:<version>``, and proofs, addressed by the ID the
backend assigned on submission. Every path is joined against a single API root
so switching hosts only touches configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Union
from urllib.parse import quote, urlencode, urljoin

from ...proving.types import CircuitType

API_PATH = "/api/v1/"
CIRCUIT_VENDOR = "scroll-tech"
# Protocol version implemented by this adapter; requests for any other version are rejected.
CIRCUIT_VERSION = "v0.13.1"

_CIRCUIT_NAMES = {
    CircuitType.CHUNK: "chunk_prover",
    CircuitType.BATCH: "batch_prover",
    CircuitType.BUNDLE: "bundle_prover",
}


class UndefinedCircuitError(AssertionError):
    """Raised when :attr:`CircuitType.UNDEFINED` reaches route construction."""


@dataclass(frozen=True, slots=True)
class CircuitTarget:
    circuit_type: CircuitType
    version: str = CIRCUIT_VERSION

    def path(self) -> str:
        name = _CIRCUIT_NAMES.get(self.circuit_type)
        if name is None:
            raise UndefinedCircuitError(f"circuit type {self.circuit_type!r} has no route")
        return f"circuit/{CIRCUIT_VENDOR}/{name}:{self.version}/"


@dataclass(frozen=True, slots=True)
class TaskTarget:
    task_id: str

    def path(self) -> str:
        # The task ID must stay a single opaque path segment.
        segment = quote(self.task_id, safe="")
        if segment in {".", ".."}:
            segment = segment.replace(".", "%2E")
        return f"proof/{segment}/"


Target = Union[CircuitTarget, TaskTarget]


def api_root(base_url: str) -> str:
    """Return the versioned API root for a Sindri host URL."""

    return urljoin(base_url, API_PATH)


def build_route(
    root: str,
    target: Target,
    method: str,
    query_params: Optional[Mapping[str, str]] = None,
) -> str:
    """
    Build the absolute URL for ``method`` on ``target``.

    ``query_params`` are appended as given; the backend accepts any order.
    """

    url = urljoin(urljoin(root, target.path()), method)
    if query_params:
        url = f"{url}?{urlencode(dict(query_params))}"
    return url


__all__ = [
    "API_PATH",
    "CIRCUIT_VENDOR",
    "CIRCUIT_VERSION",
    "CircuitTarget",
    "TaskTarget",
    "Target",
    "UndefinedCircuitError",
    "api_root",
    "build_route",
]
