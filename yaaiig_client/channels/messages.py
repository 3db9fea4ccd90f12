"""Progress-channel message variants, decoded once at the channel boundary."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from ..errors import StreamProtocolError

PROGRESS_EVENT = "progress"
COMPLETE_EVENT = "complete"
ERROR_EVENT = "error-event"
CHANNEL_EVENTS = (PROGRESS_EVENT, COMPLETE_EVENT, ERROR_EVENT)

MALFORMED_PAYLOAD = "malformed payload"


@dataclass(frozen=True)
class ProgressUpdate:
    percentage: float | None = None
    node: str | None = None
    current_step: str | None = None
    current_value: int = 0
    max_value: int = 0
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    terminal = False


@dataclass(frozen=True)
class TaskCompleted:
    result: Mapping[str, Any] = field(default_factory=dict)
    media_data: Mapping[str, Any] | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    terminal = True

    @property
    def uid(self) -> str | None:
        for source in (self.result, self.media_data or {}):
            value = source.get("uid")
            if value is not None and str(value).strip():
                return str(value)
        return None


@dataclass(frozen=True)
class TaskFailed:
    message: str
    details: Any = None
    synthesized: bool = False
    status: int | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    terminal = True


ChannelMessage = Union[ProgressUpdate, TaskCompleted, TaskFailed]


def decode_message(event: str, data: str) -> ChannelMessage | None:
    """Decode one named SSE event. Unknown event names return None."""
    if event not in CHANNEL_EVENTS:
        return None
    try:
        payload = parse_payload(data)
    except StreamProtocolError as exc:
        return TaskFailed(message=MALFORMED_PAYLOAD, details=str(exc), synthesized=True)
    if event == PROGRESS_EVENT:
        return _decode_progress(payload)
    if event == COMPLETE_EVENT:
        return _decode_complete(payload)
    return _decode_error(payload)


def parse_payload(data: str) -> Mapping[str, Any]:
    try:
        payload = json.loads(data)
    except (TypeError, ValueError) as exc:
        raise StreamProtocolError(f"payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise StreamProtocolError(f"payload must be a JSON object, got {type(payload).__name__}")
    return payload


def _decode_progress(payload: Mapping[str, Any]) -> ProgressUpdate:
    progress = payload.get("progress")
    if not isinstance(progress, Mapping):
        return ProgressUpdate(raw=payload)
    return ProgressUpdate(
        percentage=_number(progress.get("percentage")),
        node=_text(progress.get("node")),
        current_step=_text(progress.get("currentStep")),
        current_value=_int(progress.get("currentValue")),
        max_value=_int(progress.get("maxValue")),
        raw=payload,
    )


def _decode_complete(payload: Mapping[str, Any]) -> TaskCompleted:
    result = payload.get("result")
    media_data = payload.get("mediaData")
    return TaskCompleted(
        result=dict(result) if isinstance(result, Mapping) else {},
        media_data=dict(media_data) if isinstance(media_data, Mapping) else None,
        raw=payload,
    )


def _decode_error(payload: Mapping[str, Any]) -> TaskFailed:
    error = payload.get("error")
    message = None
    details = None
    if isinstance(error, Mapping):
        message = _text(error.get("message"))
        details = error.get("details")
    elif isinstance(error, str):
        message = error.strip() or None
    return TaskFailed(message=message or "Generation failed", details=details, raw=payload)


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0.0, min(100.0, float(value)))


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None
