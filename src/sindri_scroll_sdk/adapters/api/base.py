"""
Shared HTTP transport for the Sindri adapter.

The helper provides a thin asynchronous HTTPX wrapper with retry logic tuned
for a rate-limited backend: transient failures (network errors, timeouts,
408/429/5xx) are retried with a narrow backoff band, every request body is
zstd-compressed, responses are decompressed transparently, and each call
carries the bearer credential and a per-attempt timeout.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from logging import LoggerAdapter
from typing import Any, Mapping, MutableMapping, Optional

import anyio
import httpx
import zstandard
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, retry_if_result, stop_after_attempt, wait_exponential

from ...core.logging import get_logger
from ..base import TransportError
from .decoding import decode_json

DEFAULT_TIMEOUT = 60.0
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_WAIT_TIME_SEC = 5.0

RETRYABLE_STATUS_CODES = frozenset({408, 429})
SUCCESS_STATUS_RANGE = (200, 202)


def _is_transient_response(response: httpx.Response) -> bool:
    return response.status_code in RETRYABLE_STATUS_CODES or response.status_code >= 500


def _last_outcome(retry_state: RetryCallState) -> httpx.Response:
    # Hand back the final response, or re-raise the final exception, once attempts run out.
    return retry_state.outcome.result()


@dataclass(slots=True)
class BaseAPIClient:
    """
    Base asynchronous HTTP client with retry support.

    Parameters
    ----------
    api_key:
        Bearer credential attached to every request.
    timeout:
        Timeout in seconds for each individual attempt.
    retry_count:
        Maximum number of retries after the first attempt.
    retry_wait_time_sec:
        Upper backoff bound; the lower bound is half of it.
    http_client:
        Optional pre-built :class:`httpx.AsyncClient`. Tests pass one backed by
        :class:`httpx.MockTransport`.
    """

    api_key: str
    timeout: float = DEFAULT_TIMEOUT
    retry_count: int = DEFAULT_RETRY_COUNT
    retry_wait_time_sec: float = DEFAULT_RETRY_WAIT_TIME_SEC
    http_client: Optional[httpx.AsyncClient] = None
    logger: LoggerAdapter = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.logger = get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")
        if self.http_client is None:
            self.http_client = self._build_client()

    @staticmethod
    def _build_client() -> httpx.AsyncClient:
        return httpx.AsyncClient(follow_redirects=True)

    @property
    def min_wait(self) -> float:
        return self.retry_wait_time_sec / 2

    @property
    def max_wait(self) -> float:
        return self.retry_wait_time_sec

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError) | retry_if_result(_is_transient_response),
            wait=wait_exponential(multiplier=self.min_wait, min=self.min_wait, max=self.max_wait),
            stop=stop_after_attempt(self.retry_count + 1),
            retry_error_callback=_last_outcome,
            before_sleep=self._log_retry,
        )

    def _log_retry(self, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            reason = repr(outcome.exception())
        elif outcome is not None:
            reason = f"HTTP {outcome.result().status_code}"
        else:
            reason = None
        self.logger.warning(
            "Transient failure, retrying",
            extra={"attempt": retry_state.attempt_number, "error": reason},
        )

    async def _send_once(self, method: str, url: str, headers: Mapping[str, str], content: Optional[bytes]) -> httpx.Response:
        # httpx applies the timeout per phase and per read; the deadline caps the whole attempt.
        try:
            with anyio.fail_after(self.timeout):
                return await self.http_client.request(method, url, headers=headers, content=content, timeout=self.timeout)
        except TimeoutError as exc:
            raise httpx.TimeoutException(f"Attempt exceeded {self.timeout}s deadline") from exc

    async def send(self, method: str, url: str, *, body: Optional[bytes] = None) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Returns the final response whatever its status; raises
        :class:`TransportError` when no response could be obtained.
        """

        headers: MutableMapping[str, str] = {"Authorization": f"Bearer {self.api_key}"}
        content: Optional[bytes] = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            headers["Content-Encoding"] = "zstd"
            content = zstandard.ZstdCompressor().compress(body)

        self.logger.info("HTTP request", extra={"method": method, "url": url})
        try:
            return await self._retrying()(self._send_once, method, url, headers, content)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self.logger.error(
                "HTTP request failed after retries",
                extra={"method": method, "url": url, "error": repr(exc)},
            )
            raise TransportError(f"HTTP error while calling {method} {url}: {exc!r}") from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response, label: str) -> None:
        low, high = SUCCESS_STATUS_RANGE
        if not low <= response.status_code <= high:
            raise TransportError(
                f"{label}, status not ok: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

    async def _request_json(self, method: str, url: str, *, label: str, body: Optional[bytes] = None) -> Any:
        response = await self.send(method, url, body=body)
        self._raise_for_status(response, label)
        text = response.text
        self.logger.info("HTTP response received", extra={"url": url, "status_code": response.status_code})
        self.logger.debug("HTTP response body", extra={"url": url, "body": text})
        return decode_json(text)

    async def _get_json(self, url: str, *, label: str) -> Any:
        return await self._request_json("GET", url, label=label)

    async def _post_json(self, url: str, *, json_body: Mapping[str, Any], label: str) -> Any:
        body = json.dumps(json_body, separators=(",", ":")).encode("utf-8")
        return await self._request_json("POST", url, label=label, body=body)

    async def aclose(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
