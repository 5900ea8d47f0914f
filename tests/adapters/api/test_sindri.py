from __future__ import annotations

import base64
import json
from datetime import UTC, datetime

import httpx
import pytest
import zstandard
from conftest import SCROLL_VK, SINDRI_VK, StubBackend, proof_payload

from sindri_scroll_sdk.adapters.api.routes import UndefinedCircuitError
from sindri_scroll_sdk.adapters.api.sindri import (
    SindriProofInfo,
    SindriTaskStatus,
    proving_timestamps,
    reformat_vk,
    reprocess_prove_input,
)
from sindri_scroll_sdk.adapters.base import ConfigError, InputError, KeyEncodingError
from sindri_scroll_sdk.adapters.api import CloudProver
from sindri_scroll_sdk.config import CloudProverConfig
from sindri_scroll_sdk.proving.types import (
    CircuitType,
    GetVkRequest,
    ProveRequest,
    ProvingService,
    QueryTaskRequest,
    TaskStatus,
)

VERSION = "v0.13.1"
CREATED_AT = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC).timestamp()


def _vk_for(seed: bytes) -> str:
    return base64.urlsafe_b64encode(seed).rstrip(b"=").decode()


def _sent_json(request: httpx.Request) -> dict:
    return json.loads(zstandard.ZstdDecompressor().decompress(request.content))


# ---------------------------------------------------------------------- status / key helpers


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Queued", TaskStatus.QUEUED),
        ("In Progress", TaskStatus.PROVING),
        ("Ready", TaskStatus.SUCCESS),
        ("Failed", TaskStatus.FAILED),
    ],
)
def test_status_mapping(raw, expected):
    assert SindriTaskStatus(raw).to_task_status() is expected


def test_status_mapping_is_one_to_one():
    mapped = [status.to_task_status() for status in SindriTaskStatus]

    assert len(set(mapped)) == len(SindriTaskStatus) == len(TaskStatus)


def test_reformat_vk_recovers_original_bytes():
    reformatted = reformat_vk(SINDRI_VK)

    assert reformatted == SCROLL_VK
    assert base64.b64decode(reformatted) == base64.urlsafe_b64decode(SINDRI_VK + "=" * (-len(SINDRI_VK) % 4))


@pytest.mark.parametrize("value", ["not base64!", "a", "+/8", "AAAA=="])
def test_reformat_vk_rejects_invalid_input(value):
    with pytest.raises(KeyEncodingError):
        reformat_vk(value)


def test_proving_timestamps_derive_from_durations():
    info = SindriProofInfo.from_payload(proof_payload())

    assert proving_timestamps(info) == (CREATED_AT, CREATED_AT + 2.5, CREATED_AT + 42.5)


def test_proving_timestamps_keep_absent_values_absent():
    info = SindriProofInfo.from_payload(proof_payload(queue_time_sec=None, compute_time_sec=None))

    assert proving_timestamps(info) == (CREATED_AT, None, None)


def test_reprocess_prove_input_strips_bundle_envelope():
    batch_a = {"batch_hash": "0x01", "proof": [1, 2]}
    batch_b = {"batch_hash": "0x02", "proof": [3, 4]}
    request = ProveRequest(CircuitType.BUNDLE, VERSION, "darwinV2", json.dumps({"batch_proofs": [batch_a, batch_b]}))

    assert json.loads(reprocess_prove_input(request)) == [batch_a, batch_b]


def test_reprocess_prove_input_passes_other_kinds_through():
    request = ProveRequest(CircuitType.CHUNK, VERSION, "darwinV2", '{"block_traces": []}')

    assert reprocess_prove_input(request) == '{"block_traces": []}'


@pytest.mark.parametrize("payload", ["not json", "[]", '{"chunk_proofs": []}', '{"batch_proofs": {}}'])
def test_reprocess_prove_input_rejects_malformed_bundle(payload):
    with pytest.raises(InputError):
        reprocess_prove_input(ProveRequest(CircuitType.BUNDLE, VERSION, "darwinV2", payload))


def test_invalid_base_url_is_rejected_at_construction():
    with pytest.raises(ConfigError):
        CloudProver(CloudProverConfig(base_url="sindri.app"))


def test_prover_is_not_local(make_prover):
    assert make_prover(StubBackend()).is_local() is False


def test_prover_satisfies_proving_service(make_prover):
    service: ProvingService = make_prover(StubBackend())

    assert isinstance(service, ProvingService)


# ---------------------------------------------------------------------- get_vks


@pytest.mark.anyio
async def test_get_vks_version_mismatch_makes_no_calls(make_prover):
    backend = StubBackend()
    prover = make_prover(backend)

    response = await prover.get_vks(GetVkRequest([CircuitType.CHUNK, CircuitType.BATCH], "v0.12.0"))

    assert response.vks == []
    assert response.error == "circuit version mismatch"
    assert backend.calls == 0


@pytest.mark.anyio
async def test_get_vks_reencodes_and_deduplicates(make_prover):
    other_vk = _vk_for(b"\x00\x01bundle-key")
    backend = StubBackend(
        httpx.Response(200, json={"verification_key": {"verification_key": SINDRI_VK}}),
        httpx.Response(200, json={"verification_key": {"verification_key": SINDRI_VK}}),
        httpx.Response(200, json={"verification_key": {"verification_key": other_vk}}),
    )
    prover = make_prover(backend)

    response = await prover.get_vks(GetVkRequest([CircuitType.CHUNK, CircuitType.BATCH, CircuitType.BUNDLE], VERSION))

    assert response.error is None
    assert response.vks == [SCROLL_VK, base64.b64encode(b"\x00\x01bundle-key").decode()]
    paths = [request.url.path for request in backend.requests]
    assert paths == [
        "/api/v1/circuit/scroll-tech/chunk_prover:v0.13.1/detail",
        "/api/v1/circuit/scroll-tech/batch_prover:v0.13.1/detail",
        "/api/v1/circuit/scroll-tech/bundle_prover:v0.13.1/detail",
    ]
    assert all(request.method == "GET" for request in backend.requests)


@pytest.mark.anyio
async def test_get_vks_returns_partial_result_on_failure(make_prover):
    def route(request: httpx.Request) -> httpx.Response:
        if "batch_prover" in request.url.path:
            return httpx.Response(500)
        return httpx.Response(200, json={"verification_key": {"verification_key": SINDRI_VK}})

    backend = StubBackend(default=route)
    prover = make_prover(backend)

    response = await prover.get_vks(GetVkRequest([CircuitType.CHUNK, CircuitType.BATCH, CircuitType.BUNDLE], VERSION))

    assert response.vks == [SCROLL_VK]
    assert response.error
    assert not any("bundle_prover" in request.url.path for request in backend.requests)


@pytest.mark.anyio
async def test_get_vks_reports_reencoding_failure(make_prover):
    backend = StubBackend(httpx.Response(200, json={"verification_key": {"verification_key": "***"}}))
    prover = make_prover(backend)

    response = await prover.get_vks(GetVkRequest([CircuitType.CHUNK], VERSION))

    assert response.vks == []
    assert "base64" in response.error


@pytest.mark.anyio
async def test_get_vks_undefined_circuit_is_not_converted(make_prover):
    prover = make_prover(StubBackend())

    with pytest.raises(UndefinedCircuitError):
        await prover.get_vks(GetVkRequest([CircuitType.UNDEFINED], VERSION))


# ---------------------------------------------------------------------- prove


@pytest.mark.anyio
async def test_prove_submits_inner_batch_proofs_for_bundle(make_prover):
    batch_a = {"batch_hash": "0xaa", "proof": "AAA"}
    batch_b = {"batch_hash": "0xbb", "proof": "BBB"}
    backend = StubBackend(httpx.Response(201, json=proof_payload(status="Queued", proof=None, verification_key=None)))
    prover = make_prover(backend)
    task_input = json.dumps({"batch_proofs": [batch_a, batch_b]})

    response = await prover.prove(ProveRequest(CircuitType.BUNDLE, VERSION, "darwinV2", task_input))

    request = backend.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/api/v1/circuit/scroll-tech/bundle_prover:v0.13.1/prove"
    body = _sent_json(request)
    assert json.loads(body["proof_input"]) == [batch_a, batch_b]
    assert body["perform_verify"] is True
    assert response.task_id == "proof-123"
    assert response.status is TaskStatus.QUEUED
    assert response.input == task_input


@pytest.mark.anyio
async def test_prove_maps_success_response(make_prover):
    backend = StubBackend(httpx.Response(200, json=proof_payload()))
    prover = make_prover(backend)

    response = await prover.prove(ProveRequest(CircuitType.CHUNK, VERSION, "darwinV2", '{"block_traces": []}'))

    assert _sent_json(backend.requests[0])["proof_input"] == '{"block_traces": []}'
    assert response.task_id == "proof-123"
    assert response.circuit_type is CircuitType.CHUNK
    assert response.circuit_version == VERSION
    assert response.hard_fork_name == "darwinV2"
    assert response.status is TaskStatus.SUCCESS
    assert response.created_at == CREATED_AT
    assert response.started_at == CREATED_AT + 2.5
    assert response.finished_at == CREATED_AT + 42.5
    assert response.compute_time_sec == 40.0
    assert json.loads(response.proof) == {"proof": "0xabc", "instances": ["0x01"]}
    assert response.vk == SCROLL_VK
    assert response.error is None


@pytest.mark.anyio
async def test_prove_passes_backend_task_error_through(make_prover):
    backend = StubBackend(httpx.Response(200, json=proof_payload(status="Failed", error="witness generation failed", proof=None)))
    prover = make_prover(backend)

    response = await prover.prove(ProveRequest(CircuitType.BATCH, VERSION, "darwinV2", "{}"))

    assert response.status is TaskStatus.FAILED
    assert response.task_id == "proof-123"
    assert response.error == "witness generation failed"
    assert response.proof is None


@pytest.mark.anyio
async def test_prove_version_mismatch_returns_failure_response(make_prover):
    backend = StubBackend()
    prover = make_prover(backend)

    response = await prover.prove(ProveRequest(CircuitType.CHUNK, "v0.12.0", "darwin", "{}"))

    assert backend.calls == 0
    assert response.task_id == ""
    assert response.status is TaskStatus.FAILED
    assert response.circuit_version == "v0.12.0"
    assert response.created_at == 0.0
    assert response.started_at is None
    assert response.finished_at is None
    assert response.input == "{}"
    assert response.error == "circuit version mismatch"


@pytest.mark.anyio
async def test_prove_malformed_bundle_returns_failure_response(make_prover):
    backend = StubBackend()
    prover = make_prover(backend)

    response = await prover.prove(ProveRequest(CircuitType.BUNDLE, VERSION, "darwinV2", '{"chunk_proofs": []}'))

    assert backend.calls == 0
    assert response.status is TaskStatus.FAILED
    assert "batch_proofs" in response.error


@pytest.mark.anyio
async def test_prove_transport_failure_returns_failure_response(make_prover):
    backend = StubBackend(httpx.Response(401, json={"detail": "Unauthorized"}))
    prover = make_prover(backend)

    response = await prover.prove(ProveRequest(CircuitType.CHUNK, VERSION, "darwinV2", "{}"))

    assert response.task_id == ""
    assert response.status is TaskStatus.FAILED
    assert response.created_at == 0.0
    assert response.error.startswith("Failed to request proof:")
    assert "401" in response.error


@pytest.mark.anyio
async def test_prove_keeps_task_when_vk_cannot_be_reencoded(make_prover):
    backend = StubBackend(httpx.Response(200, json=proof_payload(verification_key={"verification_key": "***"})))
    prover = make_prover(backend)

    response = await prover.prove(ProveRequest(CircuitType.CHUNK, VERSION, "darwinV2", "{}"))

    assert response.task_id == "proof-123"
    assert response.vk is None
    assert "base64" in response.error


# ---------------------------------------------------------------------- query_task


@pytest.mark.anyio
async def test_query_task_requests_full_detail(make_prover):
    backend = StubBackend(httpx.Response(200, json=proof_payload(status="In Progress", proof=None, compute_time_sec=None)))
    prover = make_prover(backend)

    response = await prover.query_task(QueryTaskRequest("proof-123"))

    request = backend.requests[0]
    assert request.url.path == "/api/v1/proof/proof-123/detail"
    assert dict(request.url.params) == {
        "include_proof": "true",
        "include_public": "true",
        "include_verification_key": "true",
    }
    assert response.task_id == "proof-123"
    assert response.status is TaskStatus.PROVING
    assert response.circuit_type is CircuitType.UNDEFINED
    assert response.circuit_version == ""
    assert response.hard_fork_name == ""
    assert response.input is None
    assert response.started_at == CREATED_AT + 2.5
    assert response.finished_at is None
    assert response.vk == SCROLL_VK


@pytest.mark.anyio
async def test_query_task_failure_keeps_requested_id_and_defaults_to_queued(make_prover):
    backend = StubBackend(default=httpx.Response(500))
    prover = make_prover(backend)

    response = await prover.query_task(QueryTaskRequest("proof-999"))

    assert response.task_id == "proof-999"
    assert response.status is TaskStatus.QUEUED
    assert response.error.startswith("Failed to query proof:")
    assert response.circuit_type is CircuitType.UNDEFINED
    assert response.circuit_version == ""
    assert response.created_at == 0.0
    assert response.proof is None
    assert backend.calls == 3


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("task_id", "raw_path"),
    [
        ("x#y", b"/api/v1/proof/x%23y/detail"),
        ("../../circuit", b"/api/v1/proof/..%2F..%2Fcircuit/detail"),
        ("a\nb", b"/api/v1/proof/a%0Ab/detail"),
        ("abc\x00def", b"/api/v1/proof/abc%00def/detail"),
    ],
)
async def test_query_task_keeps_unusual_task_id_inside_proof_route(make_prover, task_id, raw_path):
    backend = StubBackend(httpx.Response(200, json=proof_payload(status="Queued")))
    prover = make_prover(backend)

    response = await prover.query_task(QueryTaskRequest(task_id))

    assert response.error is None
    assert backend.calls == 1
    assert backend.requests[0].url.raw_path.split(b"?")[0] == raw_path


@pytest.mark.anyio
async def test_query_task_unknown_status_is_reported(make_prover):
    backend = StubBackend(httpx.Response(200, json=proof_payload(status="Archived")))
    prover = make_prover(backend)

    response = await prover.query_task(QueryTaskRequest("proof-123"))

    assert response.status is TaskStatus.QUEUED
    assert "Archived" in response.error


@pytest.mark.anyio
async def test_query_task_decodes_deeply_nested_proof(make_prover):
    depth = 100_000
    nested = "[" * depth + "]" * depth
    body = json.dumps(proof_payload(proof=None))[:-1] + ', "public": ' + nested + "}"
    backend = StubBackend(httpx.Response(200, content=body.encode(), headers={"Content-Type": "application/json"}))
    prover = make_prover(backend)

    response = await prover.query_task(QueryTaskRequest("proof-123"))

    assert response.error is None
    assert response.status is TaskStatus.SUCCESS


@pytest.mark.anyio
async def test_concurrent_calls_share_one_prover(make_prover):
    import anyio

    def route(request: httpx.Request) -> httpx.Response:
        task_id = request.url.path.split("/")[4]
        return httpx.Response(200, json=proof_payload(proof_id=task_id, status="Queued"))

    prover = make_prover(StubBackend(default=route))
    results: dict[str, TaskStatus] = {}

    async def poll(task_id: str) -> None:
        response = await prover.query_task(QueryTaskRequest(task_id))
        results[response.task_id] = response.status

    async with anyio.create_task_group() as group:
        for index in range(5):
            group.start_soon(poll, f"task-{index}")

    assert results == {f"task-{index}": TaskStatus.QUEUED for index in range(5)}
