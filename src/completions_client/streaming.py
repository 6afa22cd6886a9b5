from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable, Iterator
from dataclasses import dataclass
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from .errors import APIConnectionError, ClientError, StreamDecodeError
from .lines import AsyncLineReader, LineReader
from .metrics import completion_stream_events_total
from .models import CompletionResult, TokenUsage
from .retry import Deadline
from .sse import SseDecoder
from .tokenizer import Tokenizer

log = structlog.get_logger()


def parse_completion(data: str) -> CompletionResult:
    try:
        return CompletionResult.model_validate_json(data)
    except ValidationError as e:
        raise StreamDecodeError(f"Failed to decode completion chunk: {data[:200]!r}") from e


class UsageTracker:
    """Counts prompt tokens once and completion tokens per chunk, keeping a running total."""

    def __init__(self, tokenizer: Tokenizer, prompt: str):
        self._tokenizer = tokenizer
        self.prompt_tokens = tokenizer.count_tokens(prompt)
        self.completion_tokens = 0

    def attach(self, result: CompletionResult) -> CompletionResult:
        if not result.completion:
            return result
        chunk_tokens = self._tokenizer.count_tokens(result.completion)
        self.completion_tokens += chunk_tokens
        usage = TokenUsage(prompt_tokens=self.prompt_tokens, completion_tokens=chunk_tokens)
        return result.model_copy(update={"usage": usage})


@dataclass(frozen=True)
class StreamFailure:
    """Terminal error of a stream, delivered as a value by CompletionStream.outcomes()."""

    error: ClientError


class CompletionStream:
    """
    Forward-only, single-use async sequence of completion chunks.

    Owns the streaming response. The body is closed exactly once: when the
    server sends ``[DONE]`` or ends the body, on a decode or transport error,
    on cancellation, or when the consumer calls ``aclose()`` (or leaves an
    ``async with`` block) before draining it.
    """

    def __init__(
        self,
        response: httpx.Response,
        *,
        deadline: Deadline | None = None,
        usage: UsageTracker | None = None,
        logger: Any | None = None,
    ):
        self.response = response
        self.usage = usage
        self.error: ClientError | None = None
        self.chunks = 0
        self._deadline = deadline
        self._log = logger or log
        self._released = False
        self._finished = False
        self._decoder = SseDecoder(AsyncLineReader(response.aiter_bytes(), aclose=self._release))
        self._events = self._decoder.aevents()

    @property
    def state(self):
        return self._decoder.state

    @property
    def closed(self) -> bool:
        return self._released

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        await self.response.aclose()
        completion_stream_events_total.labels(event="closed").inc()
        self._log.debug("completion_stream_closed", chunks=self.chunks, state=self._decoder.state.value)

    async def _next_event(self):
        if self._deadline is None:
            return await anext(self._events)
        return await self._deadline.run(anext(self._events), "Stream read")

    def __aiter__(self) -> "CompletionStream":
        return self

    async def __anext__(self) -> CompletionResult:
        if self._finished:
            raise StopAsyncIteration
        try:
            event = await self._next_event()
            result = parse_completion(event.value)
        except StopAsyncIteration:
            self._finished = True
            completion_stream_events_total.labels(event="completed").inc()
            raise
        except httpx.DecodingError as e:
            await self._fail(StreamDecodeError("Stream body could not be decoded."))
            raise self.error from e
        except (httpx.RequestError, httpx.StreamError) as e:
            await self._fail(APIConnectionError(f"Connection lost while reading the stream: {type(e).__name__}."))
            raise self.error from e
        except ClientError as e:
            await self._fail(e)
            raise
        except BaseException:
            self._finished = True
            await self.aclose()
            raise

        if self.usage is not None:
            result = self.usage.attach(result)
        self.chunks += 1
        completion_stream_events_total.labels(event="chunk").inc()
        return result

    async def _fail(self, error: ClientError) -> None:
        self._finished = True
        self.error = error
        completion_stream_events_total.labels(event="failed").inc()
        self._log.warning("completion_stream_failed", chunks=self.chunks, error=type(error).__name__)
        await self.aclose()

    async def outcomes(self) -> AsyncIterator[CompletionResult | StreamFailure]:
        """Yield results, then at most one StreamFailure instead of raising it."""
        try:
            async for result in self:
                yield result
        except ClientError as e:
            yield StreamFailure(e)

    async def text(self) -> str:
        return "".join([result.completion async for result in self])

    async def aclose(self) -> None:
        self._finished = True
        await self._events.aclose()
        await self._release()

    async def __aenter__(self) -> "CompletionStream":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def iter_completions(
    chunks: Iterable[bytes | str],
    *,
    close: Callable[[], None] | None = None,
    usage: UsageTracker | None = None,
) -> Iterator[CompletionResult]:
    """Blocking counterpart of CompletionStream over an iterable of body chunks."""
    events = SseDecoder(LineReader(chunks, close=close)).events()
    try:
        for event in events:
            result = parse_completion(event.value)
            yield usage.attach(result) if usage is not None else result
    finally:
        events.close()
