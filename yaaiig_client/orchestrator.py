"""Submission and reconciliation of generation tasks.

Each role (generate, regenerate, upload) runs at most one task at a time and
roles are independent of each other. A submission goes through validation,
media resolution, orientation detection, request assembly and submit; the
returned task id is then observed through the channel registry and the
finished media record is merged back into history.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Protocol, Sequence

from .assembly import ResolvedMedia, multipart_body, request_fields
from .channels.messages import MALFORMED_PAYLOAD, ProgressUpdate, TaskCompleted, TaskFailed
from .channels.registry import TaskCallbacks, TaskChannelRegistry
from .config import ClientConfig
from .errors import (
    ClientError,
    MediaResolveError,
    ServerReportedError,
    StreamProtocolError,
    SubmissionError,
    TransportError,
    ValidationError,
)
from .forms import FormState
from .history import HistoryEntry, HistoryList
from .media.imaging import classify_orientation, content_type, file_extension, image_dimensions
from .media.slots import LocalFile, MEDIA_KINDS, MediaSlotModel, RemoteReference
from .progress.board import ProgressBoard
from .progress.presenter import ProgressPresenter
from .runs.events import EventWriter
from .workflows import Workflow

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


class Role(str, Enum):
    GENERATE = "generate"
    REGENERATE = "regenerate"
    UPLOAD = "upload"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Task:
    id: str
    role: Role
    status: TaskStatus = TaskStatus.PENDING
    percentage: float = 0.0
    message: str = ""
    entry: HistoryEntry | None = None
    error: ClientError | None = None
    _finished: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def done(self) -> bool:
        return self._finished.is_set()

    async def wait(self) -> HistoryEntry | None:
        """Block until the task finishes; re-raise its error if it failed."""
        await self._finished.wait()
        if self.error is not None:
            raise self.error
        return self.entry

    def _finish(self, status: TaskStatus, *, entry: HistoryEntry | None = None, error: ClientError | None = None) -> None:
        if self.done:
            return
        self.status = status
        self.entry = entry
        self.error = error
        if status is TaskStatus.COMPLETED:
            self.percentage = 100.0
        self._finished.set()


class BackendApi(Protocol):
    async def get_json(self, path: str) -> Any:
        ...

    async def post_json(self, path: str, payload: Mapping[str, Any], *, timeout: float | None = None) -> Any:
        ...

    async def post_multipart(
        self,
        path: str,
        data: Mapping[str, str],
        files: Sequence[tuple[str, tuple[str, bytes, str]]],
        *,
        timeout: float | None = None,
    ) -> Any:
        ...

    async def fetch_bytes(self, url: str) -> bytes:
        ...


def _log_notice(level: str, message: str) -> None:
    if level == "error":
        logger.error(message)
    else:
        logger.info(message)


class GenerationOrchestrator:
    def __init__(
        self,
        api: BackendApi,
        registry: TaskChannelRegistry,
        *,
        board: ProgressBoard | None = None,
        slots: MediaSlotModel | None = None,
        form: FormState | None = None,
        history: HistoryList | None = None,
        config: ClientConfig | None = None,
        events: EventWriter | None = None,
        notify: Notifier = _log_notice,
        decode_dimensions: Callable[[bytes], tuple[int, int]] = image_dimensions,
    ) -> None:
        self.api = api
        self.registry = registry
        self.config = config or ClientConfig()
        self.board = board or ProgressBoard(
            complete_hide_s=self.config.complete_hide_s,
            error_hide_s=self.config.error_hide_s,
        )
        self.slots = slots or MediaSlotModel()
        self.form = form or FormState()
        self.history = history or HistoryList()
        self.events = events
        self._notify = notify
        self._decode_dimensions = decode_dimensions
        self.workflow: Workflow | None = None
        self.current_result: HistoryEntry | None = None
        self.tasks: dict[Role, Task] = {}
        self._submitting: set[Role] = set()

    def select_workflow(self, workflow: Workflow | None) -> None:
        """Switch workflows: slots are resized and emptied, extra fields re-seeded."""
        self.workflow = workflow
        if workflow is None:
            self.slots.reset(0, 0)
        else:
            self.slots.reset(workflow.required_image_slots, workflow.required_audio_slots)
        self.form.apply_workflow(workflow)

    def is_busy(self, role: Role) -> bool:
        if role in self._submitting:
            return True
        task = self.tasks.get(role)
        return task is not None and not task.done

    def validation_error(self) -> str | None:
        workflow = self.workflow
        if workflow is None:
            return "Please select a workflow"
        if not workflow.prompt_optional and not self.form.prompt.strip():
            return "Please enter a prompt"
        if workflow.name_required and not self.form.name.strip():
            return "Please enter a name"
        images = self.slots.filled_count("image")
        if images < workflow.required_image_slots:
            return f"More images needed: {images} of {workflow.required_image_slots} provided"
        audios = self.slots.filled_count("audio")
        if audios < workflow.required_audio_slots:
            return f"More audio files needed: {audios} of {workflow.required_audio_slots} provided"
        if workflow.detects_orientation and not self.slots.images.has_local():
            return "Please select a local image to detect orientation"
        return None

    def validate(self) -> Workflow:
        message = self.validation_error()
        if message is not None:
            raise ValidationError(message)
        assert self.workflow is not None
        return self.workflow

    async def generate(self) -> Task:
        self._ensure_idle(Role.GENERATE)
        workflow = self.validate()
        self._submitting.add(Role.GENERATE)
        try:
            seed = self.form.next_seed()
            media = await self._resolve_media()
            orientation = await self._resolve_orientation(workflow)
            fields = request_fields(
                workflow,
                prompt=self.form.prompt.strip(),
                seed=seed,
                orientation=orientation,
                name=self.form.name,
                extra=self.form.extra_fields(),
            )
            if media:
                data, files = multipart_body(fields, media)
                payload = await self.api.post_multipart(
                    "/generate", data, files, timeout=self.config.submit_timeout_s
                )
            else:
                payload = await self.api.post_json("/generate", fields, timeout=self.config.submit_timeout_s)
            task_id = _task_id(payload)
        except ClientError as exc:
            self._emit("submit_failed", role=Role.GENERATE.value, error=str(exc))
            raise
        finally:
            self._submitting.discard(Role.GENERATE)
        self._emit(
            "task_submitted",
            role=Role.GENERATE.value,
            task_id=task_id,
            workflow=workflow.name,
            seed=seed,
            orientation=orientation,
            multipart=bool(media),
        )
        return self._observe(Role.GENERATE, task_id, self._apply_generated)

    async def regenerate(self, uid: str, fields: Sequence[str]) -> Task:
        self._ensure_idle(Role.REGENERATE)
        uid = str(uid).strip()
        if not uid:
            raise ValidationError("Please select an item to regenerate")
        field_list = [str(item).strip() for item in fields if str(item).strip()]
        if not field_list:
            raise ValidationError("Please select at least one field to regenerate")
        self._submitting.add(Role.REGENERATE)
        try:
            payload = await self.api.post_json(
                "/regenerate",
                {"uid": uid, "fields": field_list},
                timeout=self.config.submit_timeout_s,
            )
            task_id = _task_id(payload)
        except ClientError as exc:
            self._emit("submit_failed", role=Role.REGENERATE.value, error=str(exc))
            raise
        finally:
            self._submitting.discard(Role.REGENERATE)
        self._emit("task_submitted", role=Role.REGENERATE.value, task_id=task_id, uid=uid, fields=field_list)
        return self._observe(Role.REGENERATE, task_id, self._apply_regenerated)

    async def upload(self, kind: str, data: bytes, filename: str | None = None, *, name: str | None = None) -> Task:
        self._ensure_idle(Role.UPLOAD)
        if kind not in MEDIA_KINDS:
            raise ValidationError(f"Unsupported upload type: {kind}")
        if not data:
            raise ValidationError(f"No {kind} file provided")
        filename = filename or f"{kind}.{file_extension(kind, data)}"
        form_data = {"name": name.strip()} if name and name.strip() else {}
        self._submitting.add(Role.UPLOAD)
        try:
            payload = await self.api.post_multipart(
                f"/upload/{kind}",
                form_data,
                [(kind, (filename, data, content_type(filename)))],
                timeout=self.config.submit_timeout_s,
            )
            task_id = _task_id(payload)
        except ClientError as exc:
            self._emit("submit_failed", role=Role.UPLOAD.value, error=str(exc))
            raise
        finally:
            self._submitting.discard(Role.UPLOAD)
        self._emit("task_submitted", role=Role.UPLOAD.value, task_id=task_id, kind=kind, filename=filename)
        return self._observe(Role.UPLOAD, task_id, self._apply_generated)

    def stop(self, role: Role) -> None:
        """Stop observing a role's task. The backend job keeps running."""
        task = self.tasks.get(role)
        if task is None or task.done:
            return
        if self.registry.is_subscribed(task.id):
            self.registry.unsubscribe(task.id)
        self.board.hide(task.id)
        task._finish(TaskStatus.FAILED, error=ClientError("Stopped observing task"))
        self._emit("task_stopped", role=role.value, task_id=task.id)

    def dispose(self) -> None:
        for role in list(self.tasks):
            self.stop(role)
        self.board.clear()
        self.slots.dispose()

    def _ensure_idle(self, role: Role) -> None:
        if self.is_busy(role):
            raise ValidationError(f"A {role.value} task is already in progress")

    async def _resolve_media(self) -> list[ResolvedMedia]:
        occupied: list[tuple[str, int, LocalFile | RemoteReference]] = []
        for kind in MEDIA_KINDS:
            for index, slot in self.slots.slots(kind).occupied():
                occupied.append((kind, index, slot))
        if not occupied:
            return []
        results = await asyncio.gather(
            *(self._slot_bytes(kind, index, slot) for kind, index, slot in occupied),
            return_exceptions=True,
        )
        media: list[ResolvedMedia] = []
        for (kind, index, slot), result in zip(occupied, results):
            if isinstance(result, BaseException):
                raise result
            media.append(ResolvedMedia(kind=kind, index=index, data=result, slot=slot))
        return media

    async def _slot_bytes(self, kind: str, index: int, slot: LocalFile | RemoteReference) -> bytes:
        if isinstance(slot, LocalFile):
            return slot.data
        try:
            data = await self.api.fetch_bytes(slot.url)
        except ClientError as exc:
            raise MediaResolveError(kind, index, exc) from exc
        if not data:
            raise MediaResolveError(kind, index, "empty response")
        return data

    async def _resolve_orientation(self, workflow: Workflow) -> str:
        if not workflow.detects_orientation:
            return workflow.orientation
        for index, slot in self.slots.images.occupied():
            if not isinstance(slot, LocalFile):
                continue
            try:
                width, height = await asyncio.to_thread(self._decode_dimensions, slot.data)
            except (OSError, ValueError) as exc:
                raise MediaResolveError("image", index, exc) from exc
            orientation = classify_orientation(width, height)
            logger.debug("Detected %s orientation (%dx%d)", orientation, width, height)
            return orientation
        raise ValidationError("Please select a local image to detect orientation")

    def _observe(self, role: Role, task_id: str, apply: Callable[[HistoryEntry], None]) -> Task:
        task = Task(id=task_id, role=role)
        self.tasks[role] = task
        presenter = self.board.show(task_id)
        callbacks = TaskCallbacks(
            on_progress=lambda update: self._on_progress(task, presenter, update),
            on_complete=lambda message: self._on_complete(task, presenter, message, apply),
            on_error=lambda message: self._on_error(task, presenter, message),
        )
        if not self.registry.subscribe(task_id, callbacks):
            self.board.hide(task_id)
            task._finish(TaskStatus.FAILED, error=SubmissionError(f"Task {task_id} is already being observed"))
        return task

    def _on_progress(self, task: Task, presenter: ProgressPresenter, update: ProgressUpdate) -> None:
        presenter.handle_progress(update)
        task.status = TaskStatus.IN_PROGRESS
        task.percentage = presenter.state.percentage
        task.message = presenter.state.display_message

    async def _on_complete(
        self,
        task: Task,
        presenter: ProgressPresenter,
        message: TaskCompleted,
        apply: Callable[[HistoryEntry], None],
    ) -> None:
        presenter.handle_complete(message)
        task.message = presenter.state.message
        try:
            entry = await self._completed_entry(message)
        except ClientError as exc:
            logger.error("Failed to load result for task %s: %s", task.id, exc)
            self._notify("error", f"Failed to load generated result: {exc.user_message}")
            self._emit("task_failed", role=task.role.value, task_id=task.id, error=str(exc))
            task._finish(TaskStatus.FAILED, error=exc)
            return
        apply(entry)
        time_taken = message.result.get("timeTaken")
        if time_taken:
            self._notify("info", f"{task.role.value.capitalize()} completed in {time_taken}s")
        else:
            self._notify("info", f"Generated: {entry.name or entry.uid}")
        self._emit("task_completed", role=task.role.value, task_id=task.id, uid=entry.uid)
        task._finish(TaskStatus.COMPLETED, entry=entry)

    def _on_error(self, task: Task, presenter: ProgressPresenter, message: TaskFailed) -> None:
        presenter.handle_error(message)
        task.message = presenter.state.message
        error = _task_error(message)
        self._notify("error", message.message)
        self._emit(
            "task_failed",
            role=task.role.value,
            task_id=task.id,
            error=message.message,
            details=message.details,
        )
        task._finish(TaskStatus.FAILED, error=error)

    async def _completed_entry(self, message: TaskCompleted) -> HistoryEntry:
        if message.media_data and message.media_data.get("uid") is not None:
            return _entry_from(message.media_data)
        uid = message.uid
        if uid is None:
            raise ClientError("Completed task did not report a media uid")
        return _entry_from(await self.api.get_json(f"/media-data/{uid}"))

    def _apply_generated(self, entry: HistoryEntry) -> None:
        self.history.merge_head(entry)
        self.current_result = entry

    def _apply_regenerated(self, entry: HistoryEntry) -> None:
        self.history.replace(entry)
        if self.current_result is None or self.current_result.uid == entry.uid:
            self.current_result = entry

    def _emit(self, event_type: str, **payload: Any) -> None:
        if self.events is not None:
            self.events.emit(event_type, **payload)


def _task_id(payload: Any) -> str:
    task_id = payload.get("taskId") if isinstance(payload, Mapping) else None
    if task_id is None or not str(task_id).strip():
        raise SubmissionError("Server did not return a taskId")
    return str(task_id)


def _entry_from(payload: Any) -> HistoryEntry:
    if not isinstance(payload, Mapping):
        raise ClientError("Media record response was not an object")
    try:
        return HistoryEntry.from_payload(payload)
    except ValueError as exc:
        raise ClientError(str(exc)) from exc


def _task_error(message: TaskFailed) -> ClientError:
    if not message.synthesized:
        return ServerReportedError(message.message, message.details)
    if message.message == MALFORMED_PAYLOAD:
        return StreamProtocolError(message.message)
    return TransportError(message.message, status=message.status or 0)
