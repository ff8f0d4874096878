"""Chat HTTP router.

``POST /api/chat`` accepts either
  - JSON: {"messages": [{"role", "content"}, ...], "stream": bool}
  - multipart form-data: a ``messages`` field (JSON array text), an optional
    ``stream`` field and file fields named ``file_<n>``
and always answers with SSE records (``data: {"content": ...}`` then
``data: {"done": true}``). Streaming replies are paced word by word; a client
disconnect cancels the pending delay.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.types import Send

from ..config import get_settings
from ..schemas.chat import ReplyFragment
from ..services.attachments import AttachmentPolicy, AttachmentRejected, AttachmentStore
from ..services.emitter import SSE_HEADERS, SSE_MEDIA_TYPE, ASGISink, BufferSink, emit
from ..services.engine import DEFAULT_CHAT_PATH, ChatEngine, TransportAdapter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


class EventStreamResponse(StreamingResponse):
    """Streaming response whose body is written by the emitter straight to the socket."""

    def __init__(self, fragments: AsyncIterator[ReplyFragment], status_code: int = 200):
        super().__init__(fragments, status_code=status_code, headers=SSE_HEADERS, media_type=SSE_MEDIA_TYPE)
        self.fragments = fragments

    async def stream_response(self, send: Send) -> None:
        await send({"type": "http.response.start", "status": self.status_code, "headers": self.raw_headers})
        await emit(self.fragments, ASGISink(send))


class ListenerAdapter(TransportAdapter):
    def __init__(
        self,
        engine: Optional[ChatEngine] = None,
        chat_path: str = DEFAULT_CHAT_PATH,
        policy: Optional[AttachmentPolicy] = None,
        store: Optional[AttachmentStore] = None,
    ):
        super().__init__(engine, chat_path, policy)
        self.store = store

    def rejection_body(self, exc: AttachmentRejected) -> Dict[str, Any]:
        return {"error": exc.error, "message": exc.message}

    def failure_body(self, exc: Exception) -> Dict[str, Any]:
        return {"error": "Internal server error", "message": str(exc)}

    async def handle(self, request: Request) -> Response:
        logger.info("[chat] Received chat request content-type=%s", request.headers.get("content-type"))
        try:
            body = await request.body()
            call = await self.run(body, request.headers.get("content-type"), self.store)
            if call.request.streaming:
                return EventStreamResponse(call.fragments)
            sink = BufferSink()
            await emit(call.fragments, sink)
            return Response(sink.body, headers=SSE_HEADERS)
        except AttachmentRejected as e:
            logger.warning("[chat] Rejected attachment: %s", e.message)
            return JSONResponse(status_code=e.status_code, content=self.rejection_body(e))
        except Exception as e:
            logger.exception("[chat] Chat API error")
            return JSONResponse(status_code=500, content=self.failure_body(e))


@lru_cache(maxsize=1)
def get_listener() -> ListenerAdapter:
    settings = get_settings()
    return ListenerAdapter(
        engine=ChatEngine.from_settings(settings),
        policy=AttachmentPolicy.from_settings(settings),
        store=AttachmentStore.from_settings(settings),
    )


@router.post("")
async def chat_post(request: Request, listener: ListenerAdapter = Depends(get_listener)):
    return await listener.handle(request)
