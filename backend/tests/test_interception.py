import asyncio
import json
import random
import time

import httpx
import pytest

from chatmock.services.engine import ChatEngine
from chatmock.services.interception import InterceptionTransport, intercepting_client, probe
from chatmock.services.scheduler import PacingWindow
from chatmock.services.selector import CODE, DEFAULT_CORPUS, INTEGRATION_TEXT, MARKDOWN_TEXT, ResponseSelector
from conftest import chat_json, decode_records


def echo_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(
        201,
        headers={"X-Echo-Method": request.method, "Content-Type": "application/octet-stream"},
        content=request.method.encode() + b"|" + request.headers.get("x-token", "").encode() + b"|" + request.content,
    )


@pytest.fixture
def upstream():
    return httpx.MockTransport(echo_handler)


def run(coro):
    return asyncio.run(coro)


async def post_chat(engine, upstream, **kwargs):
    async with intercepting_client(upstream, engine) as client:
        return await client.post("/api/chat", **kwargs)


def test_non_streaming_reply_is_two_records(engine, upstream):
    resp = run(post_chat(engine, upstream, json=chat_json("show me some code")))
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "text/event-stream"
    assert resp.headers["cache-control"] == "no-cache"
    records = decode_records(resp.content)
    assert len(records) == 2
    assert records[0]["content"] in DEFAULT_CORPUS[CODE]
    assert records[1] == {"done": True}


def test_streaming_reply_round_trips(engine, upstream, fake_sleep):
    resp = run(post_chat(engine, upstream, json=chat_json("how does it work?", stream=True)))
    records = decode_records(resp.content)
    k = len(INTEGRATION_TEXT.split(" "))
    assert len(records) == k + 1
    assert records[-1] == {"done": True}
    assert [r for r in records if "done" in r] == [{"done": True}]
    assert "".join(r["content"] for r in records[:-1]) == INTEGRATION_TEXT
    assert len(fake_sleep.delays) == k


def test_concurrent_streams_stay_separate(upstream):
    engine = ChatEngine(pacing=PacingWindow(0, 0.002), rng=random.Random(5))

    async def scenario():
        async with intercepting_client(upstream, engine) as client:
            return await asyncio.gather(
                client.post("/api/chat", json=chat_json("markdown", stream=True)),
                client.post("/api/chat", json=chat_json("how does it work?", stream=True)),
            )

    for resp, expected in zip(run(scenario()), (MARKDOWN_TEXT, INTEGRATION_TEXT)):
        records = decode_records(resp.content)
        assert records[-1] == {"done": True}
        assert [r for r in records if "done" in r] == [{"done": True}]
        assert "".join(r["content"] for r in records[:-1]) == expected


def test_streaming_body_arrives_incrementally(engine, upstream):
    async def scenario():
        chunks = []
        async with intercepting_client(upstream, engine) as client:
            async with client.stream("POST", "/api/chat", json=chat_json("markdown", stream=True)) as resp:
                async for chunk in resp.aiter_raw():
                    chunks.append(chunk)
        return chunks

    chunks = run(scenario())
    assert len(chunks) > 2
    assert all(c.startswith(b"data: ") and c.endswith(b"\n\n") for c in chunks)
    assert chunks[-1] == b'data: {"done": true}\n\n'


def test_closing_stream_early_cancels_pending_delay(upstream):
    slow = ChatEngine(pacing=PacingWindow(30, 30), rng=random.Random(1))

    async def scenario():
        async with intercepting_client(upstream, slow) as client:
            async with client.stream("POST", "/api/chat", json=chat_json("markdown", stream=True)) as resp:
                async for chunk in resp.aiter_raw():
                    return chunk

    started = time.monotonic()
    first = run(asyncio.wait_for(scenario(), timeout=5))
    assert first.startswith(b'data: {"content": "Here\'s ')
    assert time.monotonic() - started < 5


def test_file_upload_is_acknowledged(engine, upstream):
    resp = run(post_chat(
        engine,
        upstream,
        data={"messages": json.dumps([{"role": "user", "content": "here's the file"}])},
        files={"file_0": ("report.pdf", b"%PDF", "application/pdf")},
    ))
    records = decode_records(resp.content)
    assert records[0]["content"].startswith("I can see you've uploaded: **report.pdf**")
    assert records[-1] == {"done": True}


def test_disallowed_upload_is_a_client_error(engine, upstream):
    resp = run(post_chat(
        engine,
        upstream,
        data={"messages": "[]"},
        files={"file_0": ("tool.exe", b"MZ", "application/x-msdownload")},
    ))
    assert resp.status_code == 400
    assert resp.json() == {"error": "File type application/x-msdownload not allowed"}


def test_engine_failure_is_a_500(upstream):
    class BrokenSelector(ResponseSelector):
        def select(self, request):
            raise RuntimeError("corpus exploded")

    resp = run(post_chat(ChatEngine(selector=BrokenSelector()), upstream, json=chat_json("hi")))
    assert resp.status_code == 500
    assert resp.json() == {"error": "Demo API simulation error"}


def test_malformed_body_still_gets_a_reply(engine, upstream):
    resp = run(post_chat(engine, upstream, content=b"{oops", headers={"Content-Type": "application/json"}))
    assert resp.status_code == 200
    assert decode_records(resp.content)[-1] == {"done": True}


def test_other_paths_pass_through_unchanged(engine, upstream):
    async def scenario():
        kwargs = dict(content=b"payload", headers={"X-Token": "abc"})
        async with intercepting_client(upstream, engine) as client:
            intercepted = await client.put("/api/users", **kwargs)
        async with httpx.AsyncClient(transport=upstream, base_url="http://localhost") as client:
            direct = await client.put("/api/users", **kwargs)
        return intercepted, direct

    intercepted, direct = run(scenario())
    assert intercepted.status_code == direct.status_code == 201
    assert intercepted.headers == direct.headers
    assert intercepted.content == direct.content == b"PUT|abc|payload"


def test_similar_path_is_not_intercepted(engine, upstream):
    resp = run(post_chat_path(engine, upstream, "/api/chatter"))
    assert resp.status_code == 201


async def post_chat_path(engine, upstream, path):
    async with intercepting_client(upstream, engine) as client:
        return await client.post(path, content=b"x")


def test_wrapping_twice_does_not_double_intercept(engine, upstream):
    once = InterceptionTransport.wrap(upstream, engine)
    twice = InterceptionTransport.wrap(once, engine)
    assert twice.inner is upstream

    async def scenario():
        async with httpx.AsyncClient(transport=twice, base_url="http://localhost") as client:
            return await client.post("/api/chat", json=chat_json("markdown"))

    records = decode_records(run(scenario()).content)
    assert len(records) == 2
    assert [r for r in records if "done" in r] == [{"done": True}]


def test_full_url_is_matched(engine, upstream):
    async def scenario():
        async with httpx.AsyncClient(transport=InterceptionTransport.wrap(upstream, engine)) as client:
            return await client.post("https://demo.example.com/api/chat", json=chat_json("hello"))

    assert run(scenario()).status_code == 200


def test_probe_sends_a_streaming_test_call(engine, upstream):
    async def scenario():
        async with intercepting_client(upstream, engine) as client:
            return await probe(client)

    resp = run(scenario())
    assert resp.status_code == 200
    assert decode_records(resp.content)[-1] == {"done": True}
