from __future__ import annotations

import json

import httpx
import pytest
from conftest import SCROLL_VK, SINDRI_VK, StubBackend, proof_payload
from typer.testing import CliRunner

from sindri_scroll_sdk.adapters.api import CloudProver
from sindri_scroll_sdk.cli import main as cli_main
from sindri_scroll_sdk.cli.main import app


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "base_url": "https://sindri.test",
                "api_key": "secret-token",
                "retry_count": 0,
                "retry_wait_time_sec": 0,
                "connection_timeout_sec": 5,
                "sdk_config": {"prover": {"circuit_types": [1], "circuit_version": "v0.13.1"}},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def backend(monkeypatch):
    stub = StubBackend()

    def build(config):
        return CloudProver(config, http_client=httpx.AsyncClient(transport=httpx.MockTransport(stub)))

    monkeypatch.setattr(cli_main, "_build_prover", build)
    return stub


def invoke(cli_runner: CliRunner, args: list[str]):
    return cli_runner.invoke(app, args)


def test_vks_uses_configured_circuits(cli_runner, config_path, backend):
    backend._default = httpx.Response(200, json={"verification_key": {"verification_key": SINDRI_VK}})

    result = invoke(cli_runner, ["--config", str(config_path), "vks"])

    assert result.exit_code == 0
    assert SCROLL_VK in result.stdout
    assert backend.calls == 1
    assert "chunk_prover" in backend.requests[0].url.path


def test_vks_version_mismatch_exits_non_zero(cli_runner, config_path, backend):
    result = invoke(cli_runner, ["--config", str(config_path), "vks", "--circuit-version", "v0.1.0"])

    assert result.exit_code == 1
    assert "circuit version mismatch" in result.stdout
    assert backend.calls == 0


def test_vks_rejects_unknown_circuit_type(cli_runner, config_path, backend):
    result = invoke(cli_runner, ["--config", str(config_path), "vks", "-t", "7"])

    assert result.exit_code != 0
    assert backend.calls == 0


def test_prove_reads_input_file(cli_runner, config_path, backend, tmp_path):
    backend._default = httpx.Response(201, json=proof_payload(status="Queued", proof=None))
    input_file = tmp_path / "task.json"
    input_file.write_text('{"block_traces": []}', encoding="utf-8")

    result = invoke(
        cli_runner,
        ["--config", str(config_path), "prove", "--circuit-type", "1", "--input-file", str(input_file), "--hard-fork-name", "darwinV2"],
    )

    assert result.exit_code == 0
    assert '"task_id": "proof-123"' in result.stdout
    assert '"status": "Queued"' in result.stdout


def test_query_failure_exits_non_zero(cli_runner, config_path, backend):
    backend._default = httpx.Response(503)

    result = invoke(cli_runner, ["--config", str(config_path), "query", "proof-42"])

    assert result.exit_code == 1
    assert '"task_id": "proof-42"' in result.stdout
    assert "Failed to query proof" in result.stdout


def test_missing_config_exits_with_usage_error(cli_runner, tmp_path, backend):
    result = invoke(cli_runner, ["--config", str(tmp_path / "absent.json"), "query", "proof-42"])

    assert result.exit_code == 2
    assert backend.calls == 0
