import asyncio

import httpx
import pytest

from completions_client.errors import RequestTimeoutError, StreamDecodeError
from completions_client.models import StopReason
from completions_client.retry import Deadline
from completions_client.sse import SseDecoderState
from completions_client.streaming import (
    CompletionStream,
    StreamFailure,
    UsageTracker,
    iter_completions,
)


class CountingStream(httpx.AsyncByteStream):
    def __init__(self, chunks, *, hang_after: bool = False):
        self.chunks = chunks
        self.hang_after = hang_after
        self.closes = 0

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        if self.hang_after:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closes += 1


class WordTokenizer:
    def count_tokens(self, text):
        return len(text.split()) if text else 0


def _response(body: CountingStream) -> httpx.Response:
    return httpx.Response(
        200,
        headers={"content-type": "text/event-stream"},
        stream=body,
        request=httpx.Request("POST", "https://example.test/v1/complete"),
    )


@pytest.mark.asyncio
async def test_single_chunk_then_done():
    body = CountingStream([b'data: {"completion":"Hi"}\n\n', b"data: [DONE]\n\n"])
    stream = CompletionStream(_response(body))
    results = [r async for r in stream]
    assert [r.completion for r in results] == ["Hi"]
    assert stream.error is None
    assert stream.state is SseDecoderState.END_OF_STREAM
    assert body.closes == 1


@pytest.mark.asyncio
async def test_chunks_arrive_in_order_with_event_lines():
    body = CountingStream(
        [
            b'event: completion\ndata: {"completion":" Hello","stop_reason":null,"model":"claude-2"}\n\n',
            b"event: ping\n\n",
            b'event: completion\ndata: {"completion":" world","stop_reason":"stop_sequence","stop":"\\n\\nHuman:"}\n\n',
            b"data: [DONE]\n\n",
        ]
    )
    stream = CompletionStream(_response(body))
    results = [r async for r in stream]
    assert "".join(r.completion for r in results) == " Hello world"
    assert results[-1].stop_reason is StopReason.STOP_SEQUENCE
    assert results[-1].stop == "\n\nHuman:"
    assert body.closes == 1


@pytest.mark.asyncio
async def test_malformed_json_terminates_and_keeps_earlier_results():
    body = CountingStream([b'data: {"completion":"a"}\n\n', b"data: {not json\n\n", b'data: {"completion":"b"}\n\n'])
    stream = CompletionStream(_response(body))
    got = []
    with pytest.raises(StreamDecodeError):
        async for r in stream:
            got.append(r)
    assert [r.completion for r in got] == ["a"]
    assert isinstance(stream.error, StreamDecodeError)
    assert body.closes == 1
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


@pytest.mark.asyncio
async def test_unexpected_field_terminates_stream():
    body = CountingStream([b"foo: bar\n\n"])
    stream = CompletionStream(_response(body))
    with pytest.raises(StreamDecodeError):
        await stream.__anext__()
    assert stream.state is SseDecoderState.ERRORED
    assert body.closes == 1


@pytest.mark.asyncio
async def test_outcomes_reports_failure_as_value():
    body = CountingStream([b'data: {"completion":"a"}\n\n', b"data: oops\n\n"])
    stream = CompletionStream(_response(body))
    outcomes = [o async for o in stream.outcomes()]
    assert outcomes[0].completion == "a"
    assert isinstance(outcomes[1], StreamFailure)
    assert isinstance(outcomes[1].error, StreamDecodeError)
    assert len(outcomes) == 2
    assert body.closes == 1


@pytest.mark.asyncio
async def test_abandoning_stream_closes_body_once():
    body = CountingStream([b'data: {"completion":"a"}\n\n', b'data: {"completion":"b"}\n\n', b"data: [DONE]\n\n"])
    async with CompletionStream(_response(body)) as stream:
        first = await stream.__anext__()
        assert first.completion == "a"
    await stream.aclose()
    assert stream.closed
    assert body.closes == 1


@pytest.mark.asyncio
async def test_cancelling_consumer_closes_body_once_and_raises_cancelled():
    body = CountingStream([b'data: {"completion":"a"}\n\n'], hang_after=True)
    stream = CompletionStream(_response(body))
    got = []
    first_seen = asyncio.Event()

    async def consume():
        async for r in stream:
            got.append(r)
            first_seen.set()

    task = asyncio.create_task(consume())
    await first_seen.wait()
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert [r.completion for r in got] == ["a"]
    assert body.closes == 1
    assert stream.closed


@pytest.mark.asyncio
async def test_deadline_applies_to_line_reads():
    body = CountingStream([b'data: {"completion":"a"}\n\n'], hang_after=True)
    stream = CompletionStream(_response(body), deadline=Deadline(0.05))
    assert (await stream.__anext__()).completion == "a"
    with pytest.raises(RequestTimeoutError):
        await stream.__anext__()
    assert isinstance(stream.error, RequestTimeoutError)
    assert body.closes == 1


@pytest.mark.asyncio
async def test_usage_tracking_counts_prompt_once_and_each_chunk():
    body = CountingStream(
        [
            b'data: {"completion":" one two"}\n\n',
            b'data: {"completion":""}\n\n',
            b'data: {"completion":" three"}\n\n',
            b"data: [DONE]\n\n",
        ]
    )
    usage = UsageTracker(WordTokenizer(), "a b c")
    stream = CompletionStream(_response(body), usage=usage)
    results = [r async for r in stream]

    assert results[0].usage.prompt_tokens == 3
    assert results[0].usage.completion_tokens == 2
    assert results[1].usage is None
    assert results[2].usage.completion_tokens == 1
    assert usage.completion_tokens == 3


@pytest.mark.asyncio
async def test_text_joins_chunks():
    body = CountingStream([b'data: {"completion":"he"}\n\ndata: {"completion":"llo"}\n\n', b"data: [DONE]\n\n"])
    assert await CompletionStream(_response(body)).text() == "hello"


def test_iter_completions_blocking_mode():
    closes = {"n": 0}

    def close() -> None:
        closes["n"] += 1

    chunks = [b'data: {"completion":"Hi"}\n', b"\ndata: [DONE]\n\n"]
    results = list(iter_completions(chunks, close=close))
    assert [r.completion for r in results] == ["Hi"]
    assert closes["n"] == 1


def test_iter_completions_raises_on_bad_json_after_yielding():
    chunks = [b'data: {"completion":"Hi"}\n\ndata: nope\n\n']
    it = iter_completions(chunks)
    assert next(it).completion == "Hi"
    with pytest.raises(StreamDecodeError):
        next(it)
