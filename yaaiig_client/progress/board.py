"""Concurrent progress presenters keyed by task id."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator

from ..channels.messages import TaskCompleted, TaskFailed
from .presenter import (
    COMPLETE_HIDE_S,
    ERROR_HIDE_S,
    PresenterState,
    ProgressPresenter,
    Scheduler,
    loop_scheduler,
)
from .title import PageTitle

logger = logging.getLogger(__name__)

Renderer = Callable[[str, PresenterState], None]


class ProgressBoard:
    def __init__(
        self,
        *,
        title: PageTitle | None = None,
        renderer: Renderer | None = None,
        complete_hide_s: float = COMPLETE_HIDE_S,
        error_hide_s: float = ERROR_HIDE_S,
        scheduler: Scheduler = loop_scheduler,
    ) -> None:
        self.title = title
        self._renderer = renderer
        self._complete_hide_s = complete_hide_s
        self._error_hide_s = error_hide_s
        self._scheduler = scheduler
        self._presenters: dict[str, ProgressPresenter] = {}

    def show(
        self,
        task_id: str,
        *,
        on_complete: Callable[[TaskCompleted], Any] | None = None,
        on_error: Callable[[TaskFailed], Any] | None = None,
    ) -> ProgressPresenter:
        previous = self._presenters.get(task_id)
        if previous is not None:
            logger.debug("Replacing presenter for task %s", task_id)
            previous.dismiss()
        presenter = ProgressPresenter(
            task_id,
            on_complete=on_complete,
            on_error=on_error,
            on_change=self._changed,
            on_hidden=self._forget,
            complete_hide_s=self._complete_hide_s,
            error_hide_s=self._error_hide_s,
            scheduler=self._scheduler,
        )
        self._presenters[task_id] = presenter
        return presenter

    def hide(self, task_id: str) -> None:
        presenter = self._presenters.get(task_id)
        if presenter is not None:
            presenter.dismiss()

    def clear(self) -> None:
        for presenter in list(self._presenters.values()):
            presenter.dismiss()
        self._presenters.clear()
        if self.title is not None:
            self.title.reset()

    def get(self, task_id: str) -> ProgressPresenter | None:
        return self._presenters.get(task_id)

    def __len__(self) -> int:
        return len(self._presenters)

    def __iter__(self) -> Iterator[ProgressPresenter]:
        return iter(list(self._presenters.values()))

    def _changed(self, task_id: str, state: PresenterState) -> None:
        if self.title is not None:
            self._retitle(task_id, state)
        if self._renderer is not None:
            self._renderer(task_id, state)

    def _retitle(self, task_id: str, state: PresenterState) -> None:
        """The title follows the newest running task and resets only when none is left."""
        if not state.terminal:
            self.title.update(state.display_message)
            return
        running = [
            presenter
            for presenter in self._presenters.values()
            if presenter.task_id != task_id and not presenter.state.terminal
        ]
        if running:
            self.title.update(running[-1].state.display_message)
        else:
            self.title.reset()

    def _forget(self, task_id: str) -> None:
        presenter = self._presenters.get(task_id)
        if presenter is not None and not presenter.state.visible:
            del self._presenters[task_id]
