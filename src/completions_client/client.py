from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from .classify import raise_for_status
from .config import ClientOptions, RequestOptions
from .errors import ConfigurationError, UpstreamProtocolError
from .metrics import completion_request_latency_seconds, completion_requests_total
from .models import CompletionRequest, CompletionRequestBase, CompletionResult, StreamingCompletionRequest, TokenUsage
from .policy import ClientDefaults, EffectivePolicy, compose_policy
from .retry import Deadline, RetryingExecutor
from .streaming import CompletionStream, UsageTracker
from .tokenizer import TiktokenTokenizer, Tokenizer

log = structlog.get_logger()

COMPLETIONS_ENDPOINT = "/v1/complete"
HTTPX_DEFAULT_HEADERS = ("accept", "user-agent")


class CompletionClient:
    """
    Async client for the text completion endpoint.

    Buffered calls return one CompletionResult. Streaming calls return a
    CompletionStream once response headers have arrived and the status has
    been checked; the body is decoded lazily as the caller iterates.
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        tokenizer: Tokenizer | None = None,
        sleeper: Callable[[float], Awaitable[None]] | None = None,
        logger: Any | None = None,
    ):
        if options is None:
            try:
                options = ClientOptions.from_env()
            except ValidationError as e:
                raise ConfigurationError(str(e)) from e
        self.options = options
        self._defaults = ClientDefaults.from_options(options)
        self._owns_client = client is None
        # httpx bounds each connect/read/write; the policy deadline bounds the whole call.
        self._client = client or httpx.AsyncClient(timeout=options.timeout, http2=options.http2)
        self._url = options.base_url.rstrip("/") + COMPLETIONS_ENDPOINT
        self._tokenizer = tokenizer
        self._log = logger or log
        self._executor = RetryingExecutor(self._client, sleeper=sleeper, logger=self._log)

    @classmethod
    def from_options(cls, **kwargs: Any) -> "CompletionClient":
        """Build options from keyword arguments, reporting bad values as ConfigurationError."""
        try:
            options = ClientOptions(**kwargs)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e
        return cls(options)

    @property
    def tokenizer(self) -> Tokenizer:
        if self._tokenizer is None:
            self._tokenizer = TiktokenTokenizer()
        return self._tokenizer

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "CompletionClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def policy_for(self, options: RequestOptions | None = None) -> EffectivePolicy:
        return compose_policy(self._defaults, options)

    def _build_request(self, params: CompletionRequestBase, policy: EffectivePolicy) -> httpx.Request:
        if params.metadata is None or not params.metadata.user_id:
            params = params.with_user_id(str(uuid.uuid4()))
        headers = policy.http_headers()
        request = self._client.build_request(
            "POST",
            self._url,
            json=params.to_payload(),
            headers=headers,
            timeout=policy.timeout,
        )
        # httpx fills these from its own client defaults; a header removed by policy stays removed.
        for name in HTTPX_DEFAULT_HEADERS:
            if name not in headers:
                request.headers.pop(name, None)
        return request

    async def _send(
        self,
        params: CompletionRequestBase,
        options: RequestOptions | None,
        *,
        stream: bool,
        deadline: Deadline | None = None,
    ) -> httpx.Response:
        policy = self.policy_for(options)
        request = self._build_request(params, policy)
        self._log.info(
            "completion_request_start",
            model=params.model.value,
            stream=stream,
            timeout_seconds=policy.timeout,
            max_retries=policy.max_retries,
        )
        deadline = deadline or Deadline(policy.timeout)
        kind = "stream" if stream else "buffered"
        with completion_request_latency_seconds.labels(kind=kind).time():
            return await self._executor.execute(request, policy, stream=stream, deadline=deadline)

    async def complete_raw(
        self, params: CompletionRequest, options: RequestOptions | None = None
    ) -> httpx.Response:
        """Buffered response as received, status not checked."""
        return await self._send(params, options, stream=False)

    async def complete(self, params: CompletionRequest, options: RequestOptions | None = None) -> CompletionResult:
        return await self._complete(params, options, with_usage=False)

    async def complete_with_usage(
        self, params: CompletionRequest, options: RequestOptions | None = None
    ) -> CompletionResult:
        return await self._complete(params, options, with_usage=True)

    async def _complete(
        self, params: CompletionRequest, options: RequestOptions | None, *, with_usage: bool
    ) -> CompletionResult:
        start = time.monotonic()
        try:
            resp = await self._send(params, options, stream=False)
            await raise_for_status(resp)
            try:
                result = CompletionResult.model_validate_json(resp.content)
            except ValidationError as e:
                raise UpstreamProtocolError("Unexpected completion response body.") from e
            if with_usage:
                result = result.model_copy(
                    update={
                        "usage": TokenUsage(
                            prompt_tokens=self.tokenizer.count_tokens(params.prompt),
                            completion_tokens=self.tokenizer.count_tokens(result.completion),
                        )
                    }
                )
        except (Exception, asyncio.CancelledError) as e:
            completion_requests_total.labels(kind="buffered", status="error").inc()
            self._log.warning("completion_error", kind="buffered", error=type(e).__name__)
            raise

        completion_requests_total.labels(kind="buffered", status="success").inc()
        self._log.info(
            "completion_ok",
            model=result.model,
            stop_reason=result.stop_reason.value if result.stop_reason else None,
            latency_seconds=round(time.monotonic() - start, 3),
        )
        return result

    async def stream_raw(
        self, params: StreamingCompletionRequest, options: RequestOptions | None = None
    ) -> httpx.Response:
        """Streaming response with its body still open, status not checked. The caller must close it."""
        return await self._send(params, options, stream=True)

    async def stream(
        self, params: StreamingCompletionRequest, options: RequestOptions | None = None
    ) -> CompletionStream:
        return await self._stream(params, options, with_usage=False)

    async def stream_with_usage(
        self, params: StreamingCompletionRequest, options: RequestOptions | None = None
    ) -> CompletionStream:
        return await self._stream(params, options, with_usage=True)

    async def _stream(
        self, params: StreamingCompletionRequest, options: RequestOptions | None, *, with_usage: bool
    ) -> CompletionStream:
        deadline = Deadline(self.policy_for(options).timeout)
        # Prompt tokens are counted before the response body is opened.
        usage = UsageTracker(self.tokenizer, params.prompt) if with_usage else None
        try:
            resp = await self._send(params, options, stream=True, deadline=deadline)
            await deadline.run(raise_for_status(resp), "Error body read")
        except (Exception, asyncio.CancelledError) as e:
            completion_requests_total.labels(kind="stream", status="error").inc()
            self._log.warning("completion_error", kind="stream", error=type(e).__name__)
            raise
        completion_requests_total.labels(kind="stream", status="opened").inc()
        return CompletionStream(resp, deadline=deadline, usage=usage, logger=self._log)
