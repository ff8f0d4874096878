"""Split a reply into fragments and pace their delivery."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from ..schemas.chat import TERMINAL_FRAGMENT, ReplyFragment

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class PacingWindow:
    """Uniform delay range in seconds."""
    low: float
    high: float

    def __post_init__(self):
        if self.low < 0 or self.high < self.low:
            raise ValueError(f"Invalid pacing window [{self.low}, {self.high}]")

    def draw(self, rng: random.Random) -> float:
        return rng.uniform(self.low, self.high)


INTERCEPTION_PACING = PacingWindow(0.05, 0.15)
# Simulated network latency before an intercepted call is answered
INTERCEPTION_WARMUP = PacingWindow(0.3, 0.8)


def split_words(reply_text: str) -> List[str]:
    """Space-separated tokens, each keeping a trailing space except the last.

    Joining the result gives back ``reply_text`` exactly.
    """
    words = reply_text.split(" ")
    return [w + " " for w in words[:-1]] + [words[-1]]


async def schedule(
    reply_text: str,
    streaming: bool,
    pacing: PacingWindow = INTERCEPTION_PACING,
    rng: Optional[random.Random] = None,
    sleep: Sleep = asyncio.sleep,
) -> AsyncIterator[ReplyFragment]:
    if not streaming:
        yield ReplyFragment(text=reply_text)
        yield TERMINAL_FRAGMENT
        return

    rng = rng or random.Random()
    for i, word in enumerate(split_words(reply_text)):
        if i:
            await sleep(pacing.draw(rng))
        yield ReplyFragment(text=word)
    await sleep(pacing.draw(rng))
    yield TERMINAL_FRAGMENT
