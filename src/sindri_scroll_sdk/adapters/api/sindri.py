"""
Sindri cloud prover implementing the Scroll proving-service contract.

Proving a circuit takes three steps against the Sindri REST API:

1. Fetch the verification key of each circuit (``circuit/.../detail``).
2. Submit a proof (``circuit/.../prove``).
3. Poll the proof task (``proof/<id>/detail``) until it is ready or failed.

Every operation returns a contract response. Failures the adapter can explain
(version mismatch, transport, decoding, re-encoding) end up in the response's
``error`` field instead of being raised.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, assert_never

import httpx

from ...config import CloudProverConfig
from ...proving.types import (
    CircuitType,
    GetVkRequest,
    GetVkResponse,
    ProveRequest,
    ProveResponse,
    QueryTaskRequest,
    QueryTaskResponse,
    TaskStatus,
)
from ..base import ConfigError, DecodeError, InputError, KeyEncodingError, ProverError
from .base import BaseAPIClient
from .decoding import decode_json, encode_json
from .routes import CIRCUIT_VERSION, CircuitTarget, TaskTarget, api_root, build_route

CIRCUIT_VERSION_MISMATCH = "circuit version mismatch"
QUERY_DETAIL_PARAMS = {
    "include_proof": "true",
    "include_public": "true",
    "include_verification_key": "true",
}

_URL_SAFE_NO_PAD = re.compile(r"[A-Za-z0-9_-]*")


class SindriTaskStatus(str, Enum):
    """Status vocabulary reported by Sindri for a proof."""

    QUEUED = "Queued"
    IN_PROGRESS = "In Progress"
    READY = "Ready"
    FAILED = "Failed"

    def to_task_status(self) -> TaskStatus:
        if self is SindriTaskStatus.QUEUED:
            return TaskStatus.QUEUED
        if self is SindriTaskStatus.IN_PROGRESS:
            return TaskStatus.PROVING
        if self is SindriTaskStatus.READY:
            return TaskStatus.SUCCESS
        if self is SindriTaskStatus.FAILED:
            return TaskStatus.FAILED
        assert_never(self)


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise DecodeError(f"Response field '{key}' is missing or not a string.")
    return value


def _optional_str(payload: Mapping[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is not None and not isinstance(value, str):
        raise DecodeError(f"Response field '{key}' is not a string.")
    return value


def _optional_number(payload: Mapping[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"Response field '{key}' is not a number.")
    return float(value)


def _extract_vk(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise DecodeError("Response field 'verification_key' is not an object.")
    return _require_str(value, "verification_key")


def _as_mapping(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise DecodeError("Unexpected payload from Sindri: expected a JSON object.")
    return payload


@dataclass(slots=True)
class SindriCircuitInfo:
    verification_key: str

    @classmethod
    def from_payload(cls, payload: Any) -> "SindriCircuitInfo":
        vk = _extract_vk(_as_mapping(payload).get("verification_key"))
        if vk is None:
            raise DecodeError("Circuit detail does not include a verification key.")
        return cls(verification_key=vk)


@dataclass(slots=True)
class SindriProofInfo:
    """Subset of Sindri's proof detail payload the adapter translates."""

    proof_id: str
    status: SindriTaskStatus
    date_created: str
    queue_time_sec: Optional[float] = None
    compute_time_sec: Optional[float] = None
    error: Optional[str] = None
    proof: Any = None
    verification_key: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "SindriProofInfo":
        data = _as_mapping(payload)
        raw_status = _require_str(data, "status")
        try:
            status = SindriTaskStatus(raw_status)
        except ValueError as exc:
            raise DecodeError(f"Unknown Sindri proof status: {raw_status!r}") from exc
        return cls(
            proof_id=_require_str(data, "proof_id"),
            status=status,
            date_created=_require_str(data, "date_created"),
            queue_time_sec=_optional_number(data, "queue_time_sec"),
            compute_time_sec=_optional_number(data, "compute_time_sec"),
            error=_optional_str(data, "error"),
            proof=data.get("proof"),
            verification_key=_extract_vk(data.get("verification_key")),
        )


def reformat_vk(vk: str) -> str:
    """Re-encode a URL-safe unpadded base64 key as standard padded base64."""

    if not _URL_SAFE_NO_PAD.fullmatch(vk):
        raise KeyEncodingError("Verification key is not URL-safe unpadded base64.")
    try:
        raw = base64.urlsafe_b64decode(vk + "=" * (-len(vk) % 4))
    except (binascii.Error, ValueError) as exc:
        raise KeyEncodingError(f"Failed to decode verification key: {exc}") from exc
    return base64.b64encode(raw).decode("ascii")


def _parse_timestamp(value: str) -> Optional[float]:
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def proving_timestamps(info: SindriProofInfo) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """
    Derive ``(created_at, started_at, finished_at)`` from a proof payload.

    Sindri reports the creation date plus queue and compute durations; a
    timestamp is only derived when everything it depends on is known.
    """

    created_at = _parse_timestamp(info.date_created)
    started_at = None
    if created_at is not None and info.queue_time_sec is not None:
        started_at = created_at + info.queue_time_sec
    finished_at = None
    if started_at is not None and info.compute_time_sec is not None:
        finished_at = started_at + info.compute_time_sec
    return created_at, started_at, finished_at


def reprocess_prove_input(req: ProveRequest) -> str:
    """
    Reshape caller input into what Sindri expects.

    Bundle tasks wrap the batch proofs in a ``batch_proofs`` field; Sindri takes
    the inner array directly. Other circuit kinds pass through unchanged.
    """

    if req.circuit_type != CircuitType.BUNDLE:
        return req.input
    try:
        task = decode_json(req.input)
    except DecodeError as exc:
        raise InputError(f"Invalid bundle proving task: {exc}") from exc
    if not isinstance(task, Mapping) or not isinstance(task.get("batch_proofs"), list):
        raise InputError("Invalid bundle proving task: 'batch_proofs' must be a list.")
    return encode_json(task["batch_proofs"])


def build_prove_error_response(req: ProveRequest, error: str) -> ProveResponse:
    return ProveResponse(
        task_id="",
        circuit_type=req.circuit_type,
        circuit_version=req.circuit_version,
        hard_fork_name=req.hard_fork_name,
        status=TaskStatus.FAILED,
        created_at=0.0,
        input=req.input,
        error=error,
    )


def _validated_api_root(base_url: str) -> str:
    try:
        url = httpx.URL(base_url)
    except httpx.InvalidURL as exc:
        raise ConfigError(f"Cannot parse cloud prover base_url {base_url!r}: {exc}") from exc
    if url.scheme not in {"http", "https"} or not url.host:
        raise ConfigError(f"Cloud prover base_url must be an absolute http(s) URL, got {base_url!r}.")
    return api_root(str(url))


class CloudProver(BaseAPIClient):
    """:class:`~sindri_scroll_sdk.proving.types.ProvingService` backed by the Sindri REST API."""

    def __init__(self, config: CloudProverConfig, *, http_client: Optional[httpx.AsyncClient] = None) -> None:
        root = _validated_api_root(config.base_url)
        super().__init__(
            api_key=config.api_key,
            timeout=config.connection_timeout_sec,
            retry_count=config.retry_count,
            retry_wait_time_sec=config.retry_wait_time_sec,
            http_client=http_client,
        )
        self.api_root = root

    async def __aenter__(self) -> "CloudProver":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def is_local(self) -> bool:
        return False

    async def get_vks(self, req: GetVkRequest) -> GetVkResponse:
        if req.circuit_version != CIRCUIT_VERSION:
            return GetVkResponse(vks=[], error=CIRCUIT_VERSION_MISMATCH)

        vks: list[str] = []
        for circuit_type in req.circuit_types:
            url = build_route(self.api_root, CircuitTarget(circuit_type), "detail")
            try:
                info = SindriCircuitInfo.from_payload(await self._get_json(url, label="detail"))
                vk = reformat_vk(info.verification_key)
            except ProverError as exc:
                self.logger.error("Failed to fetch verification key", extra={"circuit_type": int(circuit_type), "error": str(exc)})
                return GetVkResponse(vks=vks, error=str(exc))
            if vk not in vks:
                vks.append(vk)
        return GetVkResponse(vks=vks)

    async def prove(self, req: ProveRequest) -> ProveResponse:
        if req.circuit_version != CIRCUIT_VERSION:
            return build_prove_error_response(req, CIRCUIT_VERSION_MISMATCH)
        try:
            proof_input = reprocess_prove_input(req)
        except ProverError as exc:
            return build_prove_error_response(req, str(exc))

        url = build_route(self.api_root, CircuitTarget(req.circuit_type), "prove")
        try:
            payload = await self._post_json(
                url,
                json_body={"proof_input": proof_input, "perform_verify": True},
                label="prove",
            )
            info = SindriProofInfo.from_payload(payload)
        except ProverError as exc:
            self.logger.error("Failed to request proof", extra={"circuit_type": int(req.circuit_type), "error": str(exc)})
            return build_prove_error_response(req, f"Failed to request proof: {exc}")

        return ProveResponse(
            circuit_type=req.circuit_type,
            circuit_version=req.circuit_version,
            hard_fork_name=req.hard_fork_name,
            input=req.input,
            **self._task_fields(info),
        )

    async def query_task(self, req: QueryTaskRequest) -> QueryTaskResponse:
        url = build_route(self.api_root, TaskTarget(req.task_id), "detail", QUERY_DETAIL_PARAMS)
        try:
            info = SindriProofInfo.from_payload(await self._get_json(url, label="detail"))
        except ProverError as exc:
            self.logger.error("Failed to query proof", extra={"task_id": req.task_id, "error": str(exc)})
            # Status is unknown here; QUEUED keeps the caller polling instead of abandoning the task.
            return QueryTaskResponse(
                task_id=req.task_id,
                circuit_type=CircuitType.UNDEFINED,
                circuit_version="",
                hard_fork_name="",
                status=TaskStatus.QUEUED,
                created_at=0.0,
                error=f"Failed to query proof: {exc}",
            )

        return QueryTaskResponse(
            circuit_type=CircuitType.UNDEFINED,
            circuit_version="",
            hard_fork_name="",
            input=None,
            **self._task_fields(info),
        )

    def _task_fields(self, info: SindriProofInfo) -> Dict[str, Any]:
        created_at, started_at, finished_at = proving_timestamps(info)
        if created_at is None:
            self.logger.warning("Unparseable proof creation date", extra={"task_id": info.proof_id, "date_created": info.date_created})

        error = info.error
        vk = None
        if info.verification_key is not None:
            try:
                vk = reformat_vk(info.verification_key)
            except KeyEncodingError as exc:
                error = f"{error}; {exc}" if error else str(exc)

        return {
            "task_id": info.proof_id,
            "status": info.status.to_task_status(),
            "created_at": created_at,
            "started_at": started_at,
            "finished_at": finished_at,
            "compute_time_sec": info.compute_time_sec,
            "proof": encode_json(info.proof) if info.proof is not None else None,
            "vk": vk,
            "error": error,
        }


__all__ = [
    "CIRCUIT_VERSION_MISMATCH",
    "CloudProver",
    "QUERY_DETAIL_PARAMS",
    "SindriCircuitInfo",
    "SindriProofInfo",
    "SindriTaskStatus",
    "build_prove_error_response",
    "proving_timestamps",
    "reformat_vk",
    "reprocess_prove_input",
]
