"""Turn a raw chat call (JSON body, multipart or urlencoded form) into a ChatRequest.

Normalization never fails the request: unparseable bodies and malformed
``messages`` degrade to the empty request so a reply can still be produced.
The one exception is an attachment rejected by the upload policy.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncGenerator, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError
from starlette.datastructures import FormData, Headers, UploadFile
from starlette.formparsers import FormParser, MultiPartParser

from ..schemas.chat import AttachmentRef, ChatMessage, ChatRequest
from .attachments import AttachmentPolicy, AttachmentStore, measured_size

logger = logging.getLogger(__name__)

ATTACHMENT_FIELD_PREFIX = "file_"

MULTIPART = "multipart/form-data"
URLENCODED = "application/x-www-form-urlencoded"

_MESSAGES = TypeAdapter(List[ChatMessage])


def wants_stream(value: Any) -> bool:
    return value is True or value == "true"


def coerce_messages(raw: Any) -> Tuple[ChatMessage, ...]:
    if raw is None:
        return ()
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("[normalize] messages field is not valid JSON; using empty history")
            return ()
    try:
        return tuple(_MESSAGES.validate_python(raw))
    except ValidationError as e:
        logger.warning("[normalize] Malformed messages (%d errors); using empty history", e.error_count())
        return ()


def normalize_json(raw_body: bytes) -> ChatRequest:
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        logger.warning("[normalize] Failed to parse request body as JSON")
        return ChatRequest()
    if not isinstance(payload, dict):
        logger.warning("[normalize] JSON body is %s, expected object", type(payload).__name__)
        return ChatRequest()
    return ChatRequest(
        messages=coerce_messages(payload.get("messages")),
        streaming=wants_stream(payload.get("stream")),
    )


async def _single_chunk(raw_body: bytes) -> AsyncGenerator[bytes, None]:
    yield raw_body


async def parse_form(raw_body: bytes, content_type: str) -> FormData:
    headers = Headers({"content-type": content_type})
    if content_type.lower().startswith(MULTIPART):
        return await MultiPartParser(headers, _single_chunk(raw_body)).parse()
    return await FormParser(headers, _single_chunk(raw_body)).parse()


def attachment_uploads(form: FormData) -> List[Tuple[str, UploadFile]]:
    return [
        (key, value)
        for key, value in form.multi_items()
        if key.startswith(ATTACHMENT_FIELD_PREFIX) and isinstance(value, UploadFile)
    ]


async def normalize_form(
    form: FormData,
    policy: Optional[AttachmentPolicy] = None,
    store: Optional[AttachmentStore] = None,
) -> ChatRequest:
    uploads = attachment_uploads(form)
    files = [upload for _, upload in uploads]
    if policy is not None:
        policy.check(files)
    if store is not None:
        await store.stage(files)
    attachments = tuple(
        AttachmentRef(
            file_name=upload.filename or key,
            mime_type=upload.content_type or "application/octet-stream",
            size_bytes=measured_size(upload),
        )
        for key, upload in uploads
    )
    messages_field = form.get("messages")
    return ChatRequest(
        messages=coerce_messages(messages_field) if isinstance(messages_field, str) else (),
        attachments=attachments,
        streaming=wants_stream(form.get("stream")),
    )


async def normalize(
    raw_body: bytes,
    content_type: Optional[str],
    policy: Optional[AttachmentPolicy] = None,
    store: Optional[AttachmentStore] = None,
) -> ChatRequest:
    """Build the canonical request for a raw body and its declared content type."""
    if (content_type or "").lower().startswith((MULTIPART, URLENCODED)):
        try:
            form = await parse_form(raw_body, content_type or "")
        except Exception as e:
            logger.warning("[normalize] Failed to parse form body: %s", e)
            return ChatRequest()
        try:
            return await normalize_form(form, policy, store)
        finally:
            await form.close()
    return normalize_json(raw_body)
