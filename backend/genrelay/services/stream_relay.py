"""Streaming relay: upstream chat-completion SSE → raw UTF-8 text deltas.

The upstream sends ``data: {json}`` lines terminated by ``data: [DONE]``.
Only ``choices[0].delta.content`` is forwarded, as soon as each complete line
arrives, so the edge can start delivering bytes long before the generation
finishes. Nothing is buffered beyond the current partial line.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterator

import httpx

from genrelay.models.generation import StreamChunk
from genrelay.services.errors import StreamParseAnomaly

logger = logging.getLogger(__name__)

_DATA_PREFIX = "data: "
_DONE_SENTINEL = "data: [DONE]"


def parse_sse_line(line: str) -> str | None:
    """Extract the text delta from one complete SSE line.

    Returns None for lines that carry no text (blank, sentinel, comments,
    empty deltas).

    Raises:
        StreamParseAnomaly: the data payload is not a chat-completion chunk.
    """
    trimmed = line.strip()
    if not trimmed or trimmed == _DONE_SENTINEL:
        return None
    if not trimmed.startswith(_DATA_PREFIX):
        return None

    try:
        event = json.loads(trimmed[len(_DATA_PREFIX):])
        content = event["choices"][0].get("delta", {}).get("content")
    except (json.JSONDecodeError, KeyError, IndexError, TypeError, AttributeError) as e:
        raise StreamParseAnomaly(f"Unparseable SSE line: {trimmed[:120]!r}") from e

    return content or None


class SSEDeltaDecoder:
    """Incremental line splitter that survives arbitrary read boundaries."""

    def __init__(self) -> None:
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self.dropped_lines = 0

    def feed_bytes(self, data: bytes) -> list[StreamChunk]:
        return self.feed(self._utf8.decode(data))

    def feed(self, text: str) -> list[StreamChunk]:
        self._buffer += text
        lines = self._buffer.split("\n")
        # Last fragment may be an incomplete line
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> list[StreamChunk]:
        """Drain whatever is left once the upstream has finished."""
        tail = self._buffer + self._utf8.decode(b"", final=True)
        self._buffer = ""
        return self._parse_lines([tail])

    def _parse_lines(self, lines: list[str]) -> list[StreamChunk]:
        chunks: list[StreamChunk] = []
        for line in lines:
            try:
                text = parse_sse_line(line)
            except StreamParseAnomaly as e:
                self.dropped_lines += 1
                logger.debug("Dropping SSE line: %s", e)
                continue
            if text:
                chunks.append(StreamChunk(text=text))
        return chunks


async def iter_stream_chunks(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[StreamChunk]:
    """Yield text chunks in upstream order. Upstream errors propagate."""
    decoder = SSEDeltaDecoder()
    emitted = 0
    async for raw in byte_stream:
        for chunk in decoder.feed_bytes(raw):
            emitted += 1
            yield chunk
    for chunk in decoder.flush():
        emitted += 1
        yield chunk
    logger.debug("SSE relay finished: %d chunks, %d dropped lines", emitted, decoder.dropped_lines)


async def relay_text_deltas(byte_stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Raw UTF-8 byte stream of deltas, no framing."""
    async for chunk in iter_stream_chunks(byte_stream):
        yield chunk.encode()


async def relay_response(response: httpx.Response) -> AsyncIterator[bytes]:
    """Relay an open streamed httpx response, releasing it when done or failed."""
    try:
        async for data in relay_text_deltas(response.aiter_bytes()):
            yield data
    except Exception:
        logger.exception("Upstream stream failed mid-relay")
        raise
    finally:
        await response.aclose()
