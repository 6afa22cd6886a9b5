"""
Line framing for response bodies.

Lines end at ``\\n``, ``\\r\\n`` or ``\\r``. A ``\\r`` that ends a chunk is held
back until the next chunk shows whether a ``\\n`` follows it. Bytes are decoded
incrementally, so a multi-byte character split across chunks is kept intact.
"""

from __future__ import annotations

import codecs
import re
from collections import deque
from collections.abc import AsyncIterable, Awaitable, Callable, Iterable, Iterator

_LINE_END = re.compile(r"\r\n|\r|\n")


class _LineSplitter:
    def __init__(self, encoding: str = "utf-8"):
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._lines: deque[str] = deque()

    def feed(self, chunk: bytes | str) -> None:
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._split(text, final=False)

    def finish(self) -> None:
        self._split(self._decoder.decode(b"", final=True), final=True)

    def has_line(self) -> bool:
        return bool(self._lines)

    def pop(self) -> str:
        return self._lines.popleft()

    def _split(self, text: str, *, final: bool) -> None:
        buf = self._buffer + text
        start = 0
        for match in _LINE_END.finditer(buf):
            if match.group() == "\r" and match.end() == len(buf) and not final:
                break
            self._lines.append(buf[start : match.start()])
            start = match.end()
        self._buffer = buf[start:]
        if final and self._buffer:
            self._lines.append(self._buffer)
            self._buffer = ""


class LineReader:
    """Blocking reader over an iterable of byte (or text) chunks."""

    def __init__(
        self,
        chunks: Iterable[bytes | str],
        *,
        close: Callable[[], None] | None = None,
        encoding: str = "utf-8",
    ):
        self._chunks = iter(chunks)
        self._close = close
        self._splitter = _LineSplitter(encoding)
        self._exhausted = False
        self.closed = False

    def read_line(self) -> str | None:
        """Next line without its terminator, or None once the source is exhausted."""
        while not self._splitter.has_line():
            if self._exhausted:
                return None
            chunk = next(self._chunks, None)
            if chunk is None:
                self._exhausted = True
                self._splitter.finish()
            else:
                self._splitter.feed(chunk)
        return self._splitter.pop()

    def __iter__(self) -> Iterator[str]:
        while (line := self.read_line()) is not None:
            yield line

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        close_chunks = getattr(self._chunks, "close", None)
        if callable(close_chunks):
            close_chunks()
        if self._close is not None:
            self._close()


class AsyncLineReader:
    """Suspending reader over an async iterable of chunks, e.g. ``httpx.Response.aiter_bytes()``."""

    def __init__(
        self,
        chunks: AsyncIterable[bytes | str],
        *,
        aclose: Callable[[], Awaitable[None]] | None = None,
        encoding: str = "utf-8",
    ):
        self._chunks = aiter(chunks)
        self._aclose = aclose
        self._splitter = _LineSplitter(encoding)
        self._exhausted = False
        self.closed = False

    async def aread_line(self) -> str | None:
        while not self._splitter.has_line():
            if self._exhausted:
                return None
            try:
                chunk = await anext(self._chunks)
            except StopAsyncIteration:
                self._exhausted = True
                self._splitter.finish()
            else:
                self._splitter.feed(chunk)
        return self._splitter.pop()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        aclose_chunks = getattr(self._chunks, "aclose", None)
        if callable(aclose_chunks):
            await aclose_chunks()
        if self._aclose is not None:
            await self._aclose()
