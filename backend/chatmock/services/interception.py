"""In-process interception of chat calls made through httpx.

``InterceptionTransport`` wraps the transport an ``httpx.AsyncClient`` would
otherwise use. Calls to the chat path are answered by the engine; everything
else goes to the wrapped transport untouched. Register it explicitly:

    client = httpx.AsyncClient(transport=InterceptionTransport.wrap(inner))

Wrapping an interceptor again re-layers onto the original transport rather
than nesting, so a call is never handled twice.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from .attachments import AttachmentPolicy, AttachmentRejected
from .emitter import SSE_HEADERS, BufferSink, ChannelSink, emit
from .engine import DEFAULT_CHAT_PATH, ChatEngine, TransportAdapter
from .scheduler import INTERCEPTION_WARMUP

logger = logging.getLogger(__name__)


class EngineByteStream(httpx.AsyncByteStream):
    """Response body fed by an emitting task; closing the response cancels it."""

    def __init__(self, fragments):
        self._fragments = fragments
        self._task: Optional[asyncio.Task] = None

    async def __aiter__(self):
        sink = ChannelSink()
        self._task = asyncio.create_task(emit(self._fragments, sink))
        self._task.add_done_callback(lambda _: sink.close_nowait())
        try:
            async for chunk in sink:
                yield chunk
            await self._task
        finally:
            sink.detach()
            await self.aclose()

    async def aclose(self) -> None:
        if self._task is None:
            await self._fragments.aclose()
            return
        if not self._task.done():
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)


class InterceptionTransport(TransportAdapter, httpx.AsyncBaseTransport):
    def __init__(
        self,
        inner: Optional[httpx.AsyncBaseTransport] = None,
        engine: Optional[ChatEngine] = None,
        chat_path: str = DEFAULT_CHAT_PATH,
        policy: Optional[AttachmentPolicy] = None,
    ):
        if isinstance(inner, InterceptionTransport):
            engine = engine or inner.engine
            inner = inner.inner
        super().__init__(engine or ChatEngine(warmup=INTERCEPTION_WARMUP), chat_path, policy)
        self.inner = inner if inner is not None else httpx.AsyncHTTPTransport()

    @classmethod
    def wrap(
        cls,
        inner: Optional[httpx.AsyncBaseTransport] = None,
        engine: Optional[ChatEngine] = None,
        **kwargs: Any,
    ) -> "InterceptionTransport":
        if isinstance(inner, InterceptionTransport):
            logger.info("[intercept] Interceptor already installed; re-layering over its inner transport")
        return cls(inner, engine, **kwargs)

    def rejection_body(self, exc: AttachmentRejected) -> Dict[str, Any]:
        return {"error": exc.message}

    def failure_body(self, exc: Exception) -> Dict[str, Any]:
        return {"error": "Demo API simulation error"}

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if not self.targets_chat(request.url.path):
            return await self.inner.handle_async_request(request)

        logger.info("[intercept] Intercepting %s %s", request.method, request.url)
        try:
            body = await request.aread()
            call = await self.run(body, request.headers.get("content-type"))
            if call.request.streaming:
                return httpx.Response(200, headers=SSE_HEADERS, stream=EngineByteStream(call.fragments))
            sink = BufferSink()
            await emit(call.fragments, sink)
            return httpx.Response(200, headers=SSE_HEADERS, content=sink.body)
        except AttachmentRejected as e:
            logger.warning("[intercept] Rejected attachment: %s", e.message)
            return httpx.Response(e.status_code, json=self.rejection_body(e))
        except Exception as e:
            logger.exception("[intercept] Mock API error")
            return httpx.Response(500, json=self.failure_body(e))

    async def aclose(self) -> None:
        await self.inner.aclose()


def intercepting_client(
    inner: Optional[httpx.AsyncBaseTransport] = None,
    engine: Optional[ChatEngine] = None,
    **client_kwargs: Any,
) -> httpx.AsyncClient:
    client_kwargs.setdefault("base_url", "http://localhost")
    return httpx.AsyncClient(transport=InterceptionTransport.wrap(inner, engine), **client_kwargs)


async def probe(client: httpx.AsyncClient, url: str = DEFAULT_CHAT_PATH) -> httpx.Response:
    """Send a sample streaming chat call and return the (read) response."""
    response = await client.post(
        url,
        json={"messages": [{"role": "user", "content": "test"}], "stream": True},
    )
    logger.info("[intercept] Probe response status=%s bytes=%d", response.status_code, len(response.content))
    return response
