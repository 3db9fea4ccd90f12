"""Server-sent events over httpx."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Protocol

import httpx

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerSentEvent:
    event: str = "message"
    data: str = ""
    id: str | None = None


class EventStream(Protocol):
    @property
    def closed(self) -> bool:
        ...

    def events(self) -> AsyncIterator[ServerSentEvent]:
        ...

    def close(self) -> None:
        ...


class SSEDecoder:
    """Incremental text/event-stream decoder, fed one line at a time."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._last_id: str | None = None

    def feed(self, line: str) -> ServerSentEvent | None:
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self._last_id = value
        # "retry" and unknown fields are ignored.
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data and not self._event:
            return None
        event = ServerSentEvent(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self._last_id,
        )
        self._event = ""
        self._data = []
        return event


class HttpEventStream:
    """One long-lived GET against an SSE endpoint.

    `closed` is only set by `close()`, so an end-of-stream that nobody asked
    for stays distinguishable from the residual close after a terminal event.
    """

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self._url = url
        self._response: httpx.Response | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        if self._closed:
            return
        request = self._client.build_request("GET", self._url, headers={"Accept": "text/event-stream"})
        self._response = await self._client.send(request, stream=True)
        try:
            self._response.raise_for_status()
            decoder = SSEDecoder()
            async for line in self._response.aiter_lines():
                if self._closed:
                    return
                event = decoder.feed(line)
                if event is not None:
                    yield event
        finally:
            await self._response.aclose()

    def close(self) -> None:
        # The reading task owns the response and releases it on its way out.
        self._closed = True


def http_stream_factory(client: httpx.AsyncClient, path_template: str = "/progress/{task_id}"):
    def factory(task_id: str) -> HttpEventStream:
        return HttpEventStream(client, path_template.format(task_id=task_id))

    return factory
