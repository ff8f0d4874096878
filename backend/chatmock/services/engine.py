"""Chat engine and the transport adapter contract.

A transport adapter receives a raw chat call, asks the engine for a reply
and a fragment sequence, and turns that into a protocol-conformant response.
The in-process interceptor and the network listener are the two variants.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional, Tuple

from ..config import Settings
from ..schemas.chat import ChatRequest, ReplyFragment
from .attachments import AttachmentPolicy, AttachmentRejected, AttachmentStore
from .normalizer import normalize
from .scheduler import INTERCEPTION_PACING, PacingWindow, Sleep, schedule
from .selector import ResponseSelector

logger = logging.getLogger(__name__)

DEFAULT_CHAT_PATH = "/api/chat"


class ChatEngine:
    """Select a reply for a request and produce its paced fragment sequence.

    ``rng`` and ``sleep`` are the only sources of randomness and time, so a
    seeded ``random.Random`` and a fake sleep make the engine deterministic.
    ``warmup`` is an optional delay awaited once before replying; with
    ``warmup_streaming`` false it only applies to non-streaming replies.
    """

    def __init__(
        self,
        selector: Optional[ResponseSelector] = None,
        pacing: PacingWindow = INTERCEPTION_PACING,
        rng: Optional[random.Random] = None,
        sleep: Sleep = asyncio.sleep,
        warmup: Optional[PacingWindow] = None,
        warmup_streaming: bool = True,
    ):
        self.rng = rng or random.Random()
        self.selector = selector or ResponseSelector(rng=self.rng)
        self.pacing = pacing
        self.sleep = sleep
        self.warmup = warmup
        self.warmup_streaming = warmup_streaming

    @classmethod
    def from_settings(cls, settings: Settings, sleep: Sleep = asyncio.sleep) -> "ChatEngine":
        warmup = None
        if settings.response_delay_max > 0:
            warmup = PacingWindow(settings.response_delay_min, settings.response_delay_max)
        return cls(
            pacing=PacingWindow(settings.stream_delay_min, settings.stream_delay_max),
            rng=random.Random(settings.random_seed),
            sleep=sleep,
            warmup=warmup,
            warmup_streaming=False,
        )

    async def warm_up(self, request: ChatRequest) -> None:
        if self.warmup is None:
            return
        if request.streaming and not self.warmup_streaming:
            return
        await self.sleep(self.warmup.draw(self.rng))

    def prepare(self, request: ChatRequest) -> Tuple[str, AsyncIterator[ReplyFragment]]:
        reply = self.selector.select(request)
        return reply, schedule(reply, request.streaming, self.pacing, self.rng, self.sleep)


@dataclass
class EngineCall:
    request: ChatRequest
    reply: str
    fragments: AsyncIterator[ReplyFragment]


class TransportAdapter(abc.ABC):
    """Intercept-or-serve a chat call and drive the engine."""

    def __init__(
        self,
        engine: Optional[ChatEngine] = None,
        chat_path: str = DEFAULT_CHAT_PATH,
        policy: Optional[AttachmentPolicy] = None,
    ):
        self.engine = engine or ChatEngine()
        self.chat_path = chat_path.rstrip("/")
        self.policy = policy or AttachmentPolicy()

    def targets_chat(self, path: str) -> bool:
        return path.rstrip("/").endswith(self.chat_path)

    async def run(
        self,
        raw_body: bytes,
        content_type: Optional[str],
        store: Optional[AttachmentStore] = None,
    ) -> EngineCall:
        request = await normalize(raw_body, content_type, self.policy, store)
        logger.info(
            "[chat] Processing %d messages, streaming=%s, attachments=%s",
            len(request.messages),
            request.streaming,
            [a.file_name for a in request.attachments],
        )
        await self.engine.warm_up(request)
        reply, fragments = self.engine.prepare(request)
        return EngineCall(request, reply, fragments)

    @abc.abstractmethod
    def rejection_body(self, exc: AttachmentRejected) -> Dict[str, Any]:
        """JSON body for a 4xx attachment rejection."""

    @abc.abstractmethod
    def failure_body(self, exc: Exception) -> Dict[str, Any]:
        """JSON body for a 500 internal failure."""
