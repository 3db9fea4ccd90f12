"""Per-task progress state machine.

Driven only by channel callbacks. The lifecycle is
starting -> in_progress -> completed|failed -> hidden; once a terminal state is
reached further progress is ignored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Protocol

from ..channels.messages import ProgressUpdate, TaskCompleted, TaskFailed
from ..channels.registry import TaskCallbacks
from .steps import counter_prefix, step_label
from .title import PageTitle

logger = logging.getLogger(__name__)

STARTING_MESSAGE = "Starting generation..."
COMPLETE_MESSAGE = "Complete!"
FAILED_MESSAGE = "Generation failed"
COMPLETE_HIDE_S = 2.0
ERROR_HIDE_S = 5.0


class PresenterStatus(str, Enum):
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    HIDDEN = "hidden"


@dataclass(frozen=True)
class PresenterState:
    status: PresenterStatus = PresenterStatus.STARTING
    percentage: float = 0.0
    message: str = STARTING_MESSAGE
    counter: str = ""

    @property
    def display_message(self) -> str:
        return f"{self.counter}{self.message}"

    @property
    def terminal(self) -> bool:
        return self.status in {PresenterStatus.COMPLETED, PresenterStatus.FAILED, PresenterStatus.HIDDEN}

    @property
    def visible(self) -> bool:
        return self.status is not PresenterStatus.HIDDEN


class TimerHandle(Protocol):
    def cancel(self) -> Any:
        ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


class ProgressPresenter:
    def __init__(
        self,
        task_id: str,
        *,
        title: PageTitle | None = None,
        on_complete: Callable[[TaskCompleted], Any] | None = None,
        on_error: Callable[[TaskFailed], Any] | None = None,
        on_change: Callable[[str, PresenterState], None] | None = None,
        on_hidden: Callable[[str], None] | None = None,
        complete_hide_s: float = COMPLETE_HIDE_S,
        error_hide_s: float = ERROR_HIDE_S,
        scheduler: Scheduler = loop_scheduler,
    ) -> None:
        self.task_id = task_id
        self._title = title
        self._on_complete = on_complete
        self._on_error = on_error
        self._on_change = on_change
        self._on_hidden = on_hidden
        self._complete_hide_s = complete_hide_s
        self._error_hide_s = error_hide_s
        self._scheduler = scheduler
        self._hide_timer: TimerHandle | None = None
        self._state = PresenterState()
        self._publish()

    @property
    def state(self) -> PresenterState:
        return self._state

    def callbacks(self) -> TaskCallbacks:
        return TaskCallbacks(
            on_progress=self.handle_progress,
            on_complete=self.handle_complete,
            on_error=self.handle_error,
        )

    def handle_progress(self, update: ProgressUpdate) -> None:
        if self._state.terminal:
            logger.debug("Ignoring progress for finished task %s", self.task_id)
            return
        percentage = self._state.percentage if update.percentage is None else update.percentage
        self._state = PresenterState(
            status=PresenterStatus.IN_PROGRESS,
            percentage=percentage,
            message=step_label(update),
            counter=counter_prefix(update),
        )
        self._publish()

    def handle_complete(self, message: TaskCompleted) -> None:
        if self._state.terminal:
            return
        self._state = PresenterState(status=PresenterStatus.COMPLETED, percentage=100.0, message=COMPLETE_MESSAGE)
        self._publish()
        self._schedule_hide(self._complete_hide_s)
        if self._on_complete is not None:
            self._on_complete(message)

    def handle_error(self, message: TaskFailed) -> None:
        if self._state.terminal:
            return
        self._state = PresenterState(
            status=PresenterStatus.FAILED,
            percentage=0.0,
            message=message.message or FAILED_MESSAGE,
        )
        self._publish()
        self._schedule_hide(self._error_hide_s)
        if self._on_error is not None:
            self._on_error(message)

    def dismiss(self) -> None:
        self._cancel_hide()
        if self._state.status is PresenterStatus.HIDDEN:
            return
        self._state = replace(self._state, status=PresenterStatus.HIDDEN)
        self._publish()
        if self._on_hidden is not None:
            self._on_hidden(self.task_id)

    def _schedule_hide(self, delay: float) -> None:
        self._cancel_hide()
        self._hide_timer = self._scheduler(delay, self._auto_hide)

    def _auto_hide(self) -> None:
        self._hide_timer = None
        self.dismiss()

    def _cancel_hide(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.cancel()
            self._hide_timer = None

    def _publish(self) -> None:
        if self._title is not None:
            if self._state.terminal:
                self._title.reset()
            else:
                self._title.update(self._state.display_message)
        if self._on_change is not None:
            self._on_change(self.task_id, self._state)
