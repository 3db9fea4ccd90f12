from __future__ import annotations

from typing import Callable

from yaaiig_client.channels.messages import ProgressUpdate, TaskCompleted, TaskFailed
from yaaiig_client.progress.presenter import PresenterStatus, ProgressPresenter
from yaaiig_client.progress.steps import step_label
from yaaiig_client.progress.title import PageTitle


class FakeTimer:
    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.callback()


class FakeScheduler:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer


def _presenter(**kwargs) -> tuple[ProgressPresenter, FakeScheduler, list[str]]:
    scheduler = FakeScheduler()
    titles: list[str] = []
    title = PageTitle("YAAIIG", titles.append)
    presenter = ProgressPresenter("t1", title=title, scheduler=scheduler, **kwargs)
    return presenter, scheduler, titles


def test_mount_state_and_title() -> None:
    presenter, _, titles = _presenter()
    assert presenter.state.status is PresenterStatus.STARTING
    assert presenter.state.percentage == 0
    assert presenter.state.message == "Starting generation..."
    assert titles == ["Starting generation... - YAAIIG"]


def test_progress_labels_and_counter_prefix() -> None:
    presenter, _, titles = _presenter()
    presenter.handle_progress(ProgressUpdate(percentage=25, node="KSampler", current_value=5, max_value=20))
    state = presenter.state
    assert state.status is PresenterStatus.IN_PROGRESS
    assert state.percentage == 25
    assert state.message == "Generating latent data..."
    assert state.display_message == "(5/20) Generating latent data..."
    assert titles[-1] == "(5/20) Generating latent data... - YAAIIG"
    presenter.handle_progress(ProgressUpdate(current_step="Upscaling", node="VAEDecode"))
    assert presenter.state.percentage == 25
    assert presenter.state.display_message == "Decoding data..."
    presenter.handle_progress(ProgressUpdate(current_step="Upscaling"))
    assert presenter.state.display_message == "Upscaling"


def test_step_label_fallbacks() -> None:
    assert step_label(ProgressUpdate(node="VAEDecode")) == "Decoding data..."
    assert step_label(ProgressUpdate(node="SomethingCustom")) == "Processing..."
    assert step_label(ProgressUpdate()) == "Processing..."


def test_node_lookup_wins_over_step_text() -> None:
    assert step_label(ProgressUpdate(node="KSampler", current_step="Sampling")) == "Generating latent data..."
    assert step_label(ProgressUpdate(node="SomeCustomNode", current_step="custom text")) == "Processing..."
    assert step_label(ProgressUpdate(current_step="custom text")) == "custom text"


def test_complete_schedules_hide_and_calls_back_once() -> None:
    completed: list[TaskCompleted] = []
    presenter, scheduler, titles = _presenter(on_complete=completed.append)
    message = TaskCompleted(result={"uid": "abc"})
    presenter.handle_complete(message)
    presenter.handle_complete(message)
    assert completed == [message]
    assert presenter.state.status is PresenterStatus.COMPLETED
    assert presenter.state.percentage == 100
    assert presenter.state.message == "Complete!"
    assert titles[-1] == "YAAIIG"
    assert [timer.delay for timer in scheduler.timers] == [2.0]
    scheduler.timers[0].fire()
    assert presenter.state.status is PresenterStatus.HIDDEN


def test_error_uses_payload_message_and_longer_hide() -> None:
    errors: list[TaskFailed] = []
    presenter, scheduler, _ = _presenter(on_error=errors.append)
    presenter.handle_error(TaskFailed(message="Out of memory"))
    assert presenter.state.status is PresenterStatus.FAILED
    assert presenter.state.percentage == 0
    assert presenter.state.message == "Out of memory"
    assert len(errors) == 1
    assert [timer.delay for timer in scheduler.timers] == [5.0]


def test_progress_after_terminal_is_ignored() -> None:
    presenter, _, _ = _presenter()
    presenter.handle_complete(TaskCompleted())
    presenter.handle_progress(ProgressUpdate(percentage=10))
    presenter.handle_error(TaskFailed(message="late"))
    assert presenter.state.status is PresenterStatus.COMPLETED
    assert presenter.state.percentage == 100


def test_dismiss_cancels_pending_hide() -> None:
    hidden: list[str] = []
    presenter, scheduler, titles = _presenter(on_hidden=hidden.append)
    presenter.handle_error(TaskFailed(message="x"))
    presenter.dismiss()
    assert scheduler.timers[0].cancelled
    assert presenter.state.status is PresenterStatus.HIDDEN
    assert hidden == ["t1"]
    presenter.dismiss()
    assert hidden == ["t1"]
    assert titles[-1] == "YAAIIG"
