"""
Server-sent event decoding for single-field events.

See https://html.spec.whatwg.org/multipage/server-sent-events.html#parsing-an-event-stream

Only one ``data`` field per event is accepted. Comment lines and ``event``
lines are skipped, any other field name is a fatal decode error, and a
``data: [DONE]`` payload ends the stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from enum import Enum

import structlog

from .errors import StreamDecodeError
from .lines import AsyncLineReader, LineReader

log = structlog.get_logger()

DONE_SENTINEL = "[DONE]"
DATA_FIELD = "data"
IGNORED_FIELDS = frozenset({"", "event"})


class SseDecoderState(str, Enum):
    AWAITING_LINE = "awaiting_line"
    HAVE_CANDIDATE_LINE = "have_candidate_line"
    END_OF_STREAM = "end_of_stream"
    ERRORED = "errored"


_TERMINAL = (SseDecoderState.END_OF_STREAM, SseDecoderState.ERRORED)


@dataclass(frozen=True)
class SseEvent:
    field: str
    value: str


def parse_line(line: str) -> SseEvent:
    name, colon, value = line.partition(":")
    if not colon:
        return SseEvent(field=line, value="")
    if value.startswith(" "):
        value = value[1:]
    return SseEvent(field=name, value=value)


class SseDecoder:
    """Turns lines into data events; closes the line reader exactly once when it terminates."""

    def __init__(self, reader: LineReader | AsyncLineReader):
        self._reader = reader
        self._frame_has_data = False
        self.state = SseDecoderState.AWAITING_LINE

    @property
    def done(self) -> bool:
        return self.state in _TERMINAL

    def _fail(self, message: str) -> None:
        self.state = SseDecoderState.ERRORED
        log.warning("sse_decode_error", reason=message)
        raise StreamDecodeError(message)

    def _step(self, line: str | None) -> SseEvent | None:
        if line is None:
            self.state = SseDecoderState.END_OF_STREAM
            return None
        self.state = SseDecoderState.HAVE_CANDIDATE_LINE
        if not line:
            # Frame delimiter.
            self._frame_has_data = False
            self.state = SseDecoderState.AWAITING_LINE
            return None

        event = parse_line(line)
        if event.field in IGNORED_FIELDS:
            self.state = SseDecoderState.AWAITING_LINE
            return None
        if event.field != DATA_FIELD:
            self._fail(f"Unexpected SSE field {event.field!r}.")
        if self._frame_has_data:
            self._fail("Multi-field SSE events are not supported.")
        self._frame_has_data = True

        if event.value == DONE_SENTINEL:
            self.state = SseDecoderState.END_OF_STREAM
            return None
        self.state = SseDecoderState.AWAITING_LINE
        return event

    def _mark_errored(self) -> None:
        if not self.done:
            self.state = SseDecoderState.ERRORED

    def events(self) -> Iterator[SseEvent]:
        if not isinstance(self._reader, LineReader):
            raise TypeError("events() needs a blocking LineReader; use aevents() for async sources.")
        try:
            while not self.done:
                event = self._step(self._reader.read_line())
                if event is not None:
                    yield event
        except GeneratorExit:
            raise
        except BaseException:
            self._mark_errored()
            raise
        finally:
            self._reader.close()

    async def aevents(self) -> AsyncIterator[SseEvent]:
        if not isinstance(self._reader, AsyncLineReader):
            raise TypeError("aevents() needs an AsyncLineReader; use events() for blocking sources.")
        try:
            while not self.done:
                event = self._step(await self._reader.aread_line())
                if event is not None:
                    yield event
        except GeneratorExit:
            raise
        except BaseException:
            self._mark_errored()
            raise
        finally:
            await self._reader.aclose()
