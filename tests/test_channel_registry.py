from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator

import pytest

from yaaiig_client.channels.messages import ProgressUpdate, TaskCompleted, TaskFailed
from yaaiig_client.channels.registry import TaskCallbacks, TaskChannelRegistry
from yaaiig_client.channels.sse import ServerSentEvent

_END = object()


class FakeStream:
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.close_calls = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: str, payload: object) -> None:
        data = payload if isinstance(payload, str) else json.dumps(payload)
        self._queue.put_nowait(ServerSentEvent(event=event, data=data))

    def fail(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    def finish(self) -> None:
        self._queue.put_nowait(_END)

    def close(self) -> None:
        self.close_calls += 1
        self._closed = True

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class StreamFactory:
    def __init__(self) -> None:
        self.streams: dict[str, FakeStream] = {}

    def __call__(self, task_id: str) -> FakeStream:
        stream = FakeStream(task_id)
        self.streams[task_id] = stream
        return stream


class Recorder:
    def __init__(self) -> None:
        self.progress: list[ProgressUpdate] = []
        self.completed: list[TaskCompleted] = []
        self.errors: list[TaskFailed] = []

    def callbacks(self) -> TaskCallbacks:
        return TaskCallbacks(
            on_progress=self.progress.append,
            on_complete=self.completed.append,
            on_error=self.errors.append,
        )


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_messages_routed_in_order_and_complete_tears_down() -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    recorder = Recorder()
    assert registry.subscribe("t1", recorder.callbacks())
    stream = factory.streams["t1"]
    stream.push("progress", {"progress": {"percentage": 10}})
    stream.push("progress", {"progress": {"percentage": 50, "currentStep": "Sampling"}})
    stream.push("complete", {"result": {"uid": "abc"}})
    stream.push("progress", {"progress": {"percentage": 99}})
    await _settle()
    assert [update.percentage for update in recorder.progress] == [10.0, 50.0]
    assert recorder.completed[0].uid == "abc"
    assert recorder.errors == []
    assert not registry.is_subscribed("t1")
    assert registry.active_count() == 0
    assert stream.closed
    registry.unsubscribe("t1")
    assert stream.close_calls == 1
    await registry.drain()


@pytest.mark.asyncio
async def test_duplicate_subscribe_keeps_original_callbacks(caplog: pytest.LogCaptureFixture) -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    first, second = Recorder(), Recorder()
    assert registry.subscribe("t1", first.callbacks())
    assert not registry.subscribe("t1", second.callbacks())
    assert "Already subscribed" in caplog.text
    assert registry.active_count() == 1
    factory.streams["t1"].push("error-event", {"error": {"message": "boom"}})
    await _settle()
    assert [error.message for error in first.errors] == ["boom"]
    assert second.errors == []
    await registry.drain()


@pytest.mark.asyncio
async def test_malformed_payload_yields_single_error() -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    recorder = Recorder()
    registry.subscribe("t1", recorder.callbacks())
    stream = factory.streams["t1"]
    stream.push("progress", "{not json")
    stream.push("complete", {"result": {"uid": "x"}})
    await _settle()
    assert len(recorder.errors) == 1
    assert recorder.errors[0].message == "malformed payload"
    assert recorder.completed == []
    assert not registry.is_subscribed("t1")
    await registry.drain()


@pytest.mark.asyncio
async def test_unexpected_end_is_connection_error() -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    recorder = Recorder()
    registry.subscribe("t1", recorder.callbacks())
    factory.streams["t1"].fail(ConnectionResetError("reset by peer"))
    await _settle()
    assert [error.message for error in recorder.errors] == ["Connection error"]
    assert recorder.errors[0].synthesized
    assert "reset by peer" in recorder.errors[0].details
    assert registry.active_count() == 0
    await registry.drain()


@pytest.mark.asyncio
async def test_residual_close_after_unsubscribe_is_silent() -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    recorder = Recorder()
    registry.subscribe("t1", recorder.callbacks())
    stream = factory.streams["t1"]
    registry.unsubscribe("t1")
    stream.finish()
    await registry.drain()
    assert stream.closed
    assert recorder.errors == []
    assert recorder.completed == []


@pytest.mark.asyncio
async def test_unknown_unsubscribe_is_noop(caplog: pytest.LogCaptureFixture) -> None:
    registry = TaskChannelRegistry(StreamFactory())
    registry.unsubscribe("missing")
    assert "No active subscription" in caplog.text


@pytest.mark.asyncio
async def test_callback_exception_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    recorder = Recorder()

    def explode(update: ProgressUpdate) -> None:
        raise RuntimeError("presenter broke")

    callbacks = recorder.callbacks()
    callbacks.on_progress = explode
    registry.subscribe("t1", callbacks)
    stream = factory.streams["t1"]
    stream.push("progress", {"progress": {"percentage": 1}})
    stream.push("complete", {"result": {"uid": "u"}})
    await _settle()
    assert "Callback failed" in caplog.text
    assert len(recorder.completed) == 1
    await registry.drain()


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited() -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    done: list[str] = []

    async def on_complete(message: TaskCompleted) -> None:
        await asyncio.sleep(0)
        done.append(message.uid)

    registry.subscribe("t1", TaskCallbacks(on_complete=on_complete))
    factory.streams["t1"].push("complete", {"result": {"uid": "late"}})
    await _settle()
    await registry.drain()
    assert done == ["late"]


@pytest.mark.asyncio
async def test_inactivity_timeout_reports_request_timeout() -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory, timeout_s=0.05)
    recorder = Recorder()
    registry.subscribe("t1", recorder.callbacks())
    factory.streams["t1"].push("progress", {"progress": {"percentage": 5}})
    await asyncio.sleep(0.2)
    assert [error.message for error in recorder.errors] == ["Request timeout"]
    assert not registry.is_subscribed("t1")
    await registry.drain()


@pytest.mark.asyncio
async def test_unsubscribe_all_and_dispose() -> None:
    factory = StreamFactory()
    registry = TaskChannelRegistry(factory)
    registry.subscribe("a", Recorder().callbacks())
    registry.subscribe("b", Recorder().callbacks())
    assert registry.active_count() == 2
    registry.dispose()
    assert registry.active_count() == 0
    assert all(stream.closed for stream in factory.streams.values())
    await registry.drain()
    with pytest.raises(RuntimeError):
        registry.subscribe("c", Recorder().callbacks())
