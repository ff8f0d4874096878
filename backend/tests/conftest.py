import json
import os
import random
import tempfile

# Must be set before chatmock.config is imported anywhere (settings are cached)
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="chatmock-uploads-"))
os.environ["STREAM_DELAY_MIN"] = "0"
os.environ["STREAM_DELAY_MAX"] = "0"
os.environ["RESPONSE_DELAY_MIN"] = "0"
os.environ["RESPONSE_DELAY_MAX"] = "0"
os.environ["RANDOM_SEED"] = "7"

import httpx  # noqa: E402
import pytest  # noqa: E402

from chatmock.services.engine import ChatEngine  # noqa: E402


class RecordingSleep:
    """Stand-in for asyncio.sleep that returns at once and remembers each delay."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


def multipart_body(data=None, files=None):
    """Encode a multipart form the way an httpx client would send it."""
    request = httpx.Request("POST", "http://localhost/api/chat", data=data, files=files)
    return request.read(), request.headers["content-type"]


def chat_json(content, stream=False):
    return {"messages": [{"role": "user", "content": content}], "stream": stream}


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


@pytest.fixture
def engine(fake_sleep):
    return ChatEngine(rng=random.Random(1234), sleep=fake_sleep)


def decode_records(body):
    """Parse an SSE body back into its JSON records, in order."""
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    return [json.loads(block[len("data: "):]) for block in body.split("\n\n") if block.startswith("data: ")]
