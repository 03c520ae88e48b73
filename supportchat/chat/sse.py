"""Server-Sent-Events framing for chat deltas.

Wire format: UTF-8 text, one record per delta, records separated by a blank
line, each record ``data: {"text": "..."}``. CRLF line endings are read as
LF. There is no end-of-stream record; the stream ends when the connection
closes.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

RECORD_SEPARATOR = "\n\n"
DATA_MARKER = "data: "


@dataclass(frozen=True)
class TextDelta:
    text: str


def encode_record(text: str) -> bytes:
    payload = json.dumps({"text": text}, ensure_ascii=False)
    return f"{DATA_MARKER}{payload}{RECORD_SEPARATOR}".encode("utf-8")


def _parse_record(record: str) -> Optional[TextDelta]:
    if not record.startswith(DATA_MARKER):
        return None
    try:
        obj = json.loads(record[len(DATA_MARKER):])
    except json.JSONDecodeError:
        logger.debug("Skipping malformed SSE record: %r", record[:80])
        return None
    text = obj.get("text") if isinstance(obj, dict) else None
    return TextDelta(text=text if isinstance(text, str) else "")


class SSEDecoder:
    """Incremental record decoder.

    Push bytes in with feed(), get back the deltas completed by that read.
    Bytes of a multi-byte character split across reads are held by the
    incremental UTF-8 decoder until the rest arrives; a partial trailing
    record stays in the buffer. flush() ends the stream.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._closed = False

    def feed(self, chunk: bytes) -> list[TextDelta]:
        if self._closed:
            raise RuntimeError("Decoder already flushed; start a new stream")
        self._append(self._utf8.decode(chunk))
        return self._drain()

    def flush(self) -> list[TextDelta]:
        if self._closed:
            return []
        self._closed = True
        self._append(self._utf8.decode(b"", final=True))
        deltas = self._drain()
        if self._buffer:
            tail = _parse_record(self._buffer)
            self._buffer = ""
            if tail is not None:
                deltas.append(tail)
        return deltas

    def _append(self, text: str) -> None:
        # A CRLF pair may straddle two reads
        self._buffer = (self._buffer + text).replace("\r\n", "\n")

    def _drain(self) -> list[TextDelta]:
        deltas: list[TextDelta] = []
        while True:
            idx = self._buffer.find(RECORD_SEPARATOR)
            if idx == -1:
                return deltas
            record = self._buffer[:idx]
            self._buffer = self._buffer[idx + len(RECORD_SEPARATOR):]
            delta = _parse_record(record)
            if delta is not None:
                deltas.append(delta)


def decode(chunks: Iterable[bytes]) -> Iterator[TextDelta]:
    decoder = SSEDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    yield from decoder.flush()


class DeltaStream:
    """Pull-based delta stream over an async byte source.

    next_delta() returns the next TextDelta, or None once the source is
    exhausted. Not restartable.
    """

    def __init__(self, chunks: AsyncIterable[bytes]) -> None:
        self._source = chunks.__aiter__()
        self._decoder = SSEDecoder()
        self._pending: list[TextDelta] = []
        self._done = False

    async def next_delta(self) -> Optional[TextDelta]:
        while not self._pending:
            if self._done:
                return None
            try:
                chunk = await self._source.__anext__()
            except StopAsyncIteration:
                self._done = True
                self._pending.extend(self._decoder.flush())
            else:
                self._pending.extend(self._decoder.feed(chunk))
        return self._pending.pop(0)

    async def aclose(self) -> None:
        self._done = True
        self._pending.clear()
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()

    def __aiter__(self) -> AsyncIterator[TextDelta]:
        return self

    async def __anext__(self) -> TextDelta:
        delta = await self.next_delta()
        if delta is None:
            raise StopAsyncIteration
        return delta
