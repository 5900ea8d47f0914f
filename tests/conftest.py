from __future__ import annotations

import base64
from typing import Callable, Union

import httpx
import pytest
from typer.testing import CliRunner

from sindri_scroll_sdk.adapters.api import CloudProver
from sindri_scroll_sdk.config import CloudProverConfig

RAW_VK = b"\xfb\xff\xfe-scroll-chunk-vk"
# Wire form used by Sindri and the form handed back to the SDK runtime.
SINDRI_VK = base64.urlsafe_b64encode(RAW_VK).rstrip(b"=").decode()
SCROLL_VK = base64.b64encode(RAW_VK).decode()

Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class StubBackend:
    """Callable handler for :class:`httpx.MockTransport` that records every request."""

    def __init__(self, *replies: Reply, default: Reply | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self._replies = list(replies)
        self._default = default

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self._replies.pop(0) if self._replies else self._default
        if reply is None:
            raise AssertionError(f"unexpected request {request.method} {request.url}")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        return reply


def proof_payload(**overrides: object) -> dict:
    payload: dict = {
        "proof_id": "proof-123",
        "status": "Ready",
        "date_created": "2024-05-01T12:00:00Z",
        "queue_time_sec": 2.5,
        "compute_time_sec": 40.0,
        "error": None,
        "proof": {"proof": "0xabc", "instances": ["0x01"]},
        "verification_key": {"verification_key": SINDRI_VK},
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def prover_config() -> CloudProverConfig:
    return CloudProverConfig(
        base_url="https://sindri.test",
        api_key="secret-token",
        retry_count=2,
        retry_wait_time_sec=0,
        connection_timeout_sec=5,
    )


@pytest.fixture
def make_prover(prover_config: CloudProverConfig) -> Callable[[StubBackend], CloudProver]:
    def _make(backend: StubBackend, config: CloudProverConfig | None = None) -> CloudProver:
        client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
        return CloudProver(config or prover_config, http_client=client)

    return _make


@pytest.fixture()
def cli_runner() -> CliRunner:
    return CliRunner()
