"""Incremental decoder for the ``data: <json>`` chat stream.

Network chunks do not line up with protocol lines: a chunk can end in the
middle of a line, a JSON token or a multi-byte UTF-8 character. The
decoder buffers the unterminated tail of each chunk and only ever parses
complete lines, so the decoded event sequence does not depend on how the
transport split the body.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import TYPE_CHECKING

from src.streaming.events import parse_event

if TYPE_CHECKING:
    from collections.abc import AsyncIterable, AsyncIterator

    from src.streaming.events import StreamEvent

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "


class SSEDecoder:
    """Line-buffering decoder for one stream.

    Not restartable: create a fresh decoder per response.

    Usage::

        decoder = SSEDecoder()
        for chunk in chunks:
            for event in decoder.feed(chunk):
                handle(event)
        decoder.close()
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._bytes = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._closed = False
        self.skipped_lines = 0

    def feed(self, chunk: str | bytes) -> list[StreamEvent]:
        """Add a chunk and return the events completed by it."""
        if self._closed:
            raise RuntimeError("SSEDecoder is closed; create a new decoder per stream")

        text = self._bytes.decode(chunk) if isinstance(chunk, bytes) else chunk
        self._buffer += text

        *lines, self._buffer = self._buffer.split("\n")

        events: list[StreamEvent] = []
        for line in lines:
            event = self._decode_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def close(self) -> None:
        """End the stream; a trailing partial line is discarded."""
        if self._buffer:
            logger.debug("Discarding %d bytes of unterminated stream data", len(self._buffer))
        self._buffer = ""
        self._closed = True

    def _decode_line(self, line: str) -> StreamEvent | None:
        if not line.startswith(DATA_PREFIX):
            return None

        raw = line[len(DATA_PREFIX) :]
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            # One bad frame must not abort an otherwise good stream
            self.skipped_lines += 1
            logger.debug("Skipping malformed stream line: %s", raw[:200])
            return None

        return parse_event(payload)


async def decode_events(chunks: AsyncIterable[str | bytes]) -> AsyncIterator[StreamEvent]:
    """Lazily decode an async chunk stream into stream events.

    Args:
        chunks: Text or byte chunks as delivered by the transport
            (e.g. ``response.aiter_text()``).

    Yields:
        Stream events in arrival order. Ends when ``chunks`` is exhausted.
    """
    decoder = SSEDecoder()
    try:
        async for chunk in chunks:
            for event in decoder.feed(chunk):
                yield event
    finally:
        decoder.close()


__all__ = ["DATA_PREFIX", "SSEDecoder", "decode_events"]
