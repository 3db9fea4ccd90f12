from __future__ import annotations

import httpx
import pytest

from yaaiig_client.channels.sse import HttpEventStream, SSEDecoder, ServerSentEvent


def _feed(decoder: SSEDecoder, text: str) -> list[ServerSentEvent]:
    events = []
    for line in text.split("\n"):
        event = decoder.feed(line)
        if event is not None:
            events.append(event)
    return events


def test_decoder_named_events_and_multiline_data() -> None:
    text = ": keepalive\nevent: progress\ndata: {\"a\":\ndata: 1}\nid: 4\n\ndata: plain\n\n"
    events = _feed(SSEDecoder(), text)
    assert events == [
        ServerSentEvent(event="progress", data='{"a":\n1}', id="4"),
        ServerSentEvent(event="message", data="plain", id="4"),
    ]


def test_decoder_ignores_blank_dispatch_without_data() -> None:
    assert _feed(SSEDecoder(), "\n\nretry: 100\n\n") == []


@pytest.mark.asyncio
async def test_http_event_stream_reads_events() -> None:
    body = b"event: progress\ndata: {\"progress\": {\"percentage\": 5}}\n\nevent: complete\ndata: {}\n\n"
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://test") as client:
        stream = HttpEventStream(client, "/progress/t1")
        events = [event async for event in stream.events()]
    assert [event.event for event in events] == ["progress", "complete"]
    assert seen[0].url.path == "/progress/t1"
    assert seen[0].headers["Accept"] == "text/event-stream"
    assert not stream.closed


@pytest.mark.asyncio
async def test_http_event_stream_raises_on_error_status() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="missing"))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        stream = HttpEventStream(client, "/progress/t1")
        with pytest.raises(httpx.HTTPStatusError):
            [event async for event in stream.events()]


@pytest.mark.asyncio
async def test_closed_stream_yields_nothing() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        stream = HttpEventStream(client, "/progress/t1")
        stream.close()
        assert stream.closed
        assert [event async for event in stream.events()] == []
