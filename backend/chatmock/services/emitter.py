"""SSE record framing and the sinks records are written to.

Both delivery modes use the same framing: one ``data: <json>\\n\\n`` record per
fragment, with ``{"done": true}`` last. A streaming sink receives records one
at a time and is closed explicitly; an atomic sink receives the whole
rendered body once.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from starlette.types import Send

from ..schemas.chat import ReplyFragment

logger = logging.getLogger(__name__)

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Content-Type": SSE_MEDIA_TYPE,
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


class SinkClosed(Exception):
    """The receiving side went away before the terminal record."""


@runtime_checkable
class StreamSink(Protocol):
    async def write(self, data: bytes) -> None: ...

    async def close(self) -> None: ...


@runtime_checkable
class AtomicSink(Protocol):
    async def send(self, body: bytes) -> None: ...


def encode_record(fragment: ReplyFragment) -> bytes:
    payload = {"done": True} if fragment.is_terminal else {"content": fragment.text}
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


async def emit(fragments: AsyncIterator[ReplyFragment], sink) -> int:
    """Write every fragment to ``sink``; returns the number of records delivered."""
    count = 0
    try:
        if isinstance(sink, AtomicSink):
            records = []
            async for fragment in fragments:
                record = encode_record(fragment)
                logger.debug("[emit] record %d: %r", len(records), record)
                records.append(record)
            await sink.send(b"".join(records))
            count = len(records)
        else:
            async for fragment in fragments:
                record = encode_record(fragment)
                logger.debug("[emit] record %d: %r", count, record)
                await sink.write(record)
                count += 1
            await sink.close()
    except (SinkClosed, OSError) as e:
        logger.info("[emit] Sink closed after %d records (%s)", count, str(e) or type(e).__name__)
    except asyncio.CancelledError:
        logger.info("[emit] Cancelled after %d records", count)
        raise
    finally:
        aclose = getattr(fragments, "aclose", None)
        if aclose is not None:
            await aclose()
    return count


class ASGISink:
    """Socket-backed sink writing body chunks through an ASGI ``send``."""

    def __init__(self, send: Send):
        self._send = send

    async def write(self, data: bytes) -> None:
        await self._send({"type": "http.response.body", "body": data, "more_body": True})

    async def close(self) -> None:
        await self._send({"type": "http.response.body", "body": b"", "more_body": False})


class ChannelSink:
    """In-process sink; a reader iterates the records as they are written."""

    def __init__(self):
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._detached = False

    async def write(self, data: bytes) -> None:
        if self._detached:
            raise SinkClosed("reader detached")
        await self._queue.put(data)

    async def close(self) -> None:
        self.close_nowait()

    def close_nowait(self) -> None:
        self._queue.put_nowait(None)

    def detach(self) -> None:
        self._detached = True

    async def __aiter__(self):
        while True:
            item = await self._queue.get()
            if item is None:
                return
            yield item


class BufferSink:
    """Atomic sink holding the fully rendered body."""

    def __init__(self):
        self.body: Optional[bytes] = None

    async def send(self, body: bytes) -> None:
        self.body = body
