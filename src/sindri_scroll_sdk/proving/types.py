"""
Vendor-neutral proving-service contract.

These records mirror the Scroll proving SDK interface: a coordinator-facing
runtime asks a :class:`ProvingService` for verification keys, submits proof
tasks and polls them. Implementations only produce and consume the records
below; they never extend them.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


class CircuitType(IntEnum):
    """Closed set of circuit kinds. ``UNDEFINED`` is a sentinel, never a proving target."""

    UNDEFINED = 0
    CHUNK = 1
    BATCH = 2
    BUNDLE = 3


class TaskStatus(str, Enum):
    """Lifecycle state of a proof task as seen by the coordinator."""

    QUEUED = "Queued"
    PROVING = "Proving"
    SUCCESS = "Success"
    FAILED = "Failed"


@dataclass(slots=True)
class GetVkRequest:
    circuit_types: List[CircuitType]
    circuit_version: str


@dataclass(slots=True)
class GetVkResponse:
    vks: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class ProveRequest:
    circuit_type: CircuitType
    circuit_version: str
    hard_fork_name: str
    input: str


@dataclass(slots=True)
class QueryTaskRequest:
    task_id: str


@dataclass(slots=True)
class _TaskResponse:
    """
    Shared shape of ``prove`` and ``query_task`` responses.

    Attributes
    ----------
    created_at, started_at, finished_at:
        Unix timestamps in seconds. ``None`` means the backend did not report
        the value; ``0.0`` in ``created_at`` marks a response built locally
        after a failure.
    proof:
        JSON-serialised proof payload as returned by the backend.
    vk:
        Verification key in standard padded base64.
    error:
        Human-readable failure description, either local or reported by the
        backend for the task itself.
    """

    task_id: str
    circuit_type: CircuitType
    circuit_version: str
    hard_fork_name: str
    status: TaskStatus
    created_at: Optional[float]
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    compute_time_sec: Optional[float] = None
    input: Optional[str] = None
    proof: Optional[str] = None
    vk: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["circuit_type"] = int(self.circuit_type)
        payload["status"] = self.status.value
        return payload


@dataclass(slots=True)
class ProveResponse(_TaskResponse):
    pass


@dataclass(slots=True)
class QueryTaskResponse(_TaskResponse):
    pass


@runtime_checkable
class ProvingService(Protocol):
    """Protocol implemented by every prover backend plugged into the SDK runtime."""

    def is_local(self) -> bool:
        """Whether proofs are computed on this machine."""

    async def get_vks(self, req: GetVkRequest) -> GetVkResponse:
        """Return verification keys for the requested circuits."""

    async def prove(self, req: ProveRequest) -> ProveResponse:
        """Submit a proof task."""

    async def query_task(self, req: QueryTaskRequest) -> QueryTaskResponse:
        """Report the current state of a proof task."""
