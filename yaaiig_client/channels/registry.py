"""Per-task progress channels.

The registry owns at most one open stream per task id. Messages for a task are
handled in receipt order by a single reader task; `complete` and `error-event`
are terminal and tear the channel down right after their callback returns.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, Callable

from .messages import ChannelMessage, ProgressUpdate, TaskCompleted, TaskFailed, decode_message
from .sse import EventStream, ServerSentEvent

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 120.0

StreamFactory = Callable[[str], EventStream]


@dataclass
class TaskCallbacks:
    on_progress: Callable[[ProgressUpdate], Any] | None = None
    on_complete: Callable[[TaskCompleted], Any] | None = None
    on_error: Callable[[TaskFailed], Any] | None = None


@dataclass
class _Connection:
    stream: EventStream
    callbacks: TaskCallbacks
    reader: asyncio.Task | None = None
    timeout: asyncio.TimerHandle | None = field(default=None, repr=False)


class TaskChannelRegistry:
    def __init__(self, stream_factory: StreamFactory, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> None:
        self._stream_factory = stream_factory
        self._timeout_s = timeout_s
        self._connections: dict[str, _Connection] = {}
        self._readers: set[asyncio.Task] = set()
        self._pending: set[asyncio.Task] = set()
        self._disposed = False

    def subscribe(self, task_id: str, callbacks: TaskCallbacks) -> bool:
        if self._disposed:
            raise RuntimeError("TaskChannelRegistry has been disposed")
        if task_id in self._connections:
            logger.warning("Already subscribed to task %s", task_id)
            return False
        if not isinstance(callbacks, TaskCallbacks):
            logger.error("Callbacks are required to subscribe to task %s", task_id)
            return False
        loop = asyncio.get_running_loop()
        conn = _Connection(stream=self._stream_factory(task_id), callbacks=callbacks)
        self._connections[task_id] = conn
        conn.reader = loop.create_task(self._read(task_id, conn), name=f"channel-{task_id}")
        self._readers.add(conn.reader)
        conn.reader.add_done_callback(self._readers.discard)
        self._start_timeout(task_id, conn)
        logger.debug("Subscribed to task %s", task_id)
        return True

    def unsubscribe(self, task_id: str) -> None:
        conn = self._connections.get(task_id)
        if conn is None:
            logger.warning("No active subscription for task %s", task_id)
            return
        self._teardown(task_id, conn)

    def unsubscribe_all(self) -> None:
        for task_id in list(self._connections):
            self.unsubscribe(task_id)

    def is_subscribed(self, task_id: str) -> bool:
        return task_id in self._connections

    def active_count(self) -> int:
        return len(self._connections)

    def dispose(self) -> None:
        self.unsubscribe_all()
        self._disposed = True

    async def drain(self) -> None:
        """Wait for readers and any callback coroutines still running."""
        while True:
            running = [task for task in (*self._readers, *self._pending) if not task.done()]
            if not running:
                return
            await asyncio.gather(*running, return_exceptions=True)

    async def _read(self, task_id: str, conn: _Connection) -> None:
        error: BaseException | None = None
        try:
            async with aclosing(conn.stream.events()) as events:
                async for event in events:
                    if self._connections.get(task_id) is not conn:
                        return
                    self._handle_event(task_id, conn, event)
                    if self._connections.get(task_id) is not conn:
                        return
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = exc
        self._handle_stream_end(task_id, conn, error)

    def _handle_event(self, task_id: str, conn: _Connection, event: ServerSentEvent) -> None:
        self._clear_timeout(conn)
        message = decode_message(event.event, event.data)
        if message is None:
            logger.warning("Unknown message type %r for task %s", event.event, task_id)
            self._start_timeout(task_id, conn)
            return
        if isinstance(message, TaskFailed) and message.synthesized:
            logger.error("Malformed payload for task %s: %s", task_id, message.details)
        self._deliver(task_id, conn, message)
        if message.terminal:
            if self._connections.get(task_id) is conn:
                self._teardown(task_id, conn)
            return
        if self._connections.get(task_id) is conn:
            self._start_timeout(task_id, conn)

    def _handle_stream_end(self, task_id: str, conn: _Connection, error: BaseException | None) -> None:
        if self._connections.get(task_id) is not conn:
            return
        if conn.stream.closed:
            logger.info("Connection closed for task %s", task_id)
            self._cleanup(task_id, conn)
            return
        logger.error("Connection error for task %s: %s", task_id, error or "stream ended before a result")
        self._deliver(
            task_id,
            conn,
            TaskFailed(
                message="Connection error",
                details=str(error) if error else "Lost connection to server",
                synthesized=True,
                status=0,
            ),
        )
        if self._connections.get(task_id) is conn:
            self._teardown(task_id, conn)

    def _deliver(self, task_id: str, conn: _Connection, message: ChannelMessage) -> None:
        if isinstance(message, ProgressUpdate):
            callback = conn.callbacks.on_progress
        elif isinstance(message, TaskCompleted):
            callback = conn.callbacks.on_complete
        else:
            callback = conn.callbacks.on_error
        if callback is None:
            return
        try:
            result = callback(message)
        except Exception:
            logger.exception("Callback failed for task %s", task_id)
            return
        if inspect.isawaitable(result):
            pending = asyncio.ensure_future(result)
            self._pending.add(pending)
            pending.add_done_callback(self._callback_finished)

    def _callback_finished(self, pending: asyncio.Future) -> None:
        self._pending.discard(pending)
        if pending.cancelled():
            return
        exc = pending.exception()
        if exc is not None:
            logger.error("Callback coroutine failed: %s", exc, exc_info=exc)

    def _teardown(self, task_id: str, conn: _Connection) -> None:
        conn.stream.close()
        self._cleanup(task_id, conn)
        reader = conn.reader
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()

    def _cleanup(self, task_id: str, conn: _Connection) -> None:
        self._clear_timeout(conn)
        if self._connections.get(task_id) is conn:
            del self._connections[task_id]

    def _start_timeout(self, task_id: str, conn: _Connection) -> None:
        loop = asyncio.get_running_loop()
        conn.timeout = loop.call_later(self._timeout_s, self._on_timeout, task_id, conn)

    def _clear_timeout(self, conn: _Connection) -> None:
        if conn.timeout is not None:
            conn.timeout.cancel()
            conn.timeout = None

    def _on_timeout(self, task_id: str, conn: _Connection) -> None:
        conn.timeout = None
        if self._connections.get(task_id) is not conn:
            return
        logger.warning("Timeout reached for task %s", task_id)
        self._deliver(
            task_id,
            conn,
            TaskFailed(
                message="Request timeout",
                details="No response from server within the expected time",
                synthesized=True,
                status=408,
            ),
        )
        if self._connections.get(task_id) is conn:
            self._teardown(task_id, conn)
