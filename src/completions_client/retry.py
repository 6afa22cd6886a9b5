from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
import structlog

from .errors import APIConnectionError, APIConnectionTimeoutError, RequestTimeoutError, UpstreamProtocolError
from .metrics import completion_request_attempts_total, completion_retries_total
from .policy import EffectivePolicy

log = structlog.get_logger()

T = TypeVar("T")


def is_transient_status(status_code: int) -> bool:
    return status_code == 408 or 500 <= status_code <= 599


def backoff_seconds(attempt: int) -> float:
    # attempt: 0-based index of the attempt that just failed
    return float(2**attempt)


class Deadline:
    """One time budget shared by every suspension point of a call."""

    def __init__(self, timeout: float | None, *, clock: Callable[[], float] | None = None):
        self.timeout = timeout
        self._clock: Callable[[], float] = clock or time.monotonic
        self._expires_at = None if timeout is None else self._clock() + timeout

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - self._clock())

    async def run(self, awaitable: Awaitable[T], what: str = "Request") -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.remaining())
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(f"{what} exceeded its {self.timeout}s deadline.") from e


class RetryingExecutor:
    """
    Sends a request, retrying transient failures with 2**attempt second backoff.

    Transient: transport errors, 408 and 5xx. Everything else, 401 and 429
    included, is returned on the first attempt. When the budget is spent the
    last failing response is returned (or the transport error raised) so the
    caller can classify it.

    Known risk: POST /v1/complete is not idempotent. A 5xx may arrive after the
    service already did the work, so a retry can submit the same prompt twice.
    Pass max_retries=0 where that is unacceptable.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        sleeper: Callable[[float], Awaitable[None]] | None = None,
        logger: Any | None = None,
    ):
        self._client = client
        self._sleep: Callable[[float], Awaitable[None]] = sleeper or asyncio.sleep
        self._log = logger or log

    async def execute(
        self,
        request: httpx.Request,
        policy: EffectivePolicy,
        *,
        stream: bool = False,
        deadline: Deadline | None = None,
    ) -> httpx.Response:
        deadline = deadline or Deadline(policy.timeout)
        return await deadline.run(self._send_with_retries(request, policy, stream=stream), "Request")

    async def _send_with_retries(
        self, request: httpx.Request, policy: EffectivePolicy, *, stream: bool
    ) -> httpx.Response:
        attempt = 0
        while True:
            self._log.debug("completion_request_attempt", attempt=attempt, stream=stream)
            try:
                resp = await self._client.send(request, stream=stream)
            except httpx.TransportError as e:
                timed_out = isinstance(e, httpx.TimeoutException)
                completion_request_attempts_total.labels(outcome="timeout" if timed_out else "transport_error").inc()
                if attempt >= policy.max_retries:
                    self._log.warning(
                        "completion_request_transport_failed",
                        attempts=attempt + 1,
                        error=type(e).__name__,
                    )
                    if timed_out:
                        raise APIConnectionTimeoutError() from e
                    raise APIConnectionError() from e
                await self._backoff(attempt, reason="timeout" if timed_out else "transport_error")
                attempt += 1
                continue
            except httpx.DecodingError as e:
                completion_request_attempts_total.labels(outcome="decode_error").inc()
                self._log.warning("completion_response_decode_failed", attempts=attempt + 1, error=str(e))
                raise UpstreamProtocolError("Response body could not be decoded.") from e
            except httpx.RequestError as e:
                # e.g. TooManyRedirects; not retried.
                completion_request_attempts_total.labels(outcome="request_error").inc()
                self._log.warning("completion_request_error", attempts=attempt + 1, error=type(e).__name__)
                raise APIConnectionError(f"Request failed: {type(e).__name__}.") from e

            if not is_transient_status(resp.status_code):
                completion_request_attempts_total.labels(outcome="success" if resp.is_success else "client_error").inc()
                self._log.debug("completion_request_done", attempts=attempt + 1, status_code=resp.status_code)
                return resp

            completion_request_attempts_total.labels(outcome="server_error").inc()
            if attempt >= policy.max_retries:
                self._log.warning("completion_request_retries_exhausted", attempts=attempt + 1, status_code=resp.status_code)
                return resp
            # The failed attempt's body is never consumed.
            await resp.aclose()
            await self._backoff(attempt, reason=f"status_{resp.status_code}")
            attempt += 1

    async def _backoff(self, attempt: int, *, reason: str) -> None:
        delay = backoff_seconds(attempt)
        completion_retries_total.labels(reason=reason).inc()
        self._log.warning("completion_retry_scheduled", attempt=attempt, delay_seconds=delay, reason=reason)
        await self._sleep(delay)
