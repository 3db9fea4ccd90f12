"""Workflow schema and catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol

logger = logging.getLogger(__name__)

WORKFLOW_KINDS = ("image", "video", "audio", "inpaint")
ORIENTATIONS = ("portrait", "landscape")
DEFAULT_ORIENTATION = "portrait"


@dataclass(frozen=True)
class ExtraField:
    id: str
    default: Any = None
    type: str | None = None
    label: str | None = None


@dataclass(frozen=True)
class Workflow:
    name: str
    kind: str = "image"
    prompt_optional: bool = False
    name_required: bool = False
    required_image_slots: int = 0
    required_audio_slots: int = 0
    orientation_policy: str = "fixed"
    orientation: str = DEFAULT_ORIENTATION
    extra_fields: tuple[ExtraField, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Workflow name is required")
        if self.kind not in WORKFLOW_KINDS:
            raise ValueError(f"Unknown workflow kind: {self.kind}")
        if self.required_image_slots < 0 or self.required_audio_slots < 0:
            raise ValueError("Required slot counts must be >= 0")
        if self.orientation_policy not in {"fixed", "detect"}:
            raise ValueError(f"Unknown orientation policy: {self.orientation_policy}")

    @property
    def detects_orientation(self) -> bool:
        return self.orientation_policy == "detect"

    def defaults(self) -> dict[str, Any]:
        return {item.id: item.default for item in self.extra_fields}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Workflow":
        options = payload.get("options")
        if not isinstance(options, Mapping):
            options = {}
        kind = str(payload.get("type") or payload.get("kind") or "image").strip().lower()
        if kind not in WORKFLOW_KINDS:
            kind = "image"
        raw_orientation = payload.get("orientation", options.get("orientation"))
        policy, orientation = _resolve_orientation(raw_orientation, kind)
        raw_extras = payload.get("extraInputs")
        if raw_extras is None:
            raw_extras = options.get("extraInputs")
        return cls(
            name=str(payload.get("name") or "").strip(),
            kind=kind,
            prompt_optional=bool(payload.get("optionalPrompt", options.get("optionalPrompt", False))),
            name_required=bool(payload.get("nameRequired", options.get("nameRequired", False))),
            required_image_slots=_count(options.get("inputImages", payload.get("inputImages"))),
            required_audio_slots=_count(options.get("inputAudios", payload.get("inputAudios"))),
            orientation_policy=policy,
            orientation=orientation,
            extra_fields=tuple(_parse_extra_fields(raw_extras)),
        )


def _resolve_orientation(value: Any, kind: str) -> tuple[str, str]:
    text = str(value or "").strip().lower()
    if text == "detect":
        return "detect", DEFAULT_ORIENTATION
    if text in ORIENTATIONS:
        return "fixed", text
    if not text and kind == "inpaint":
        return "detect", DEFAULT_ORIENTATION
    return "fixed", DEFAULT_ORIENTATION


def _count(value: Any) -> int:
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


def _parse_extra_fields(raw: Any) -> list[ExtraField]:
    if not isinstance(raw, list):
        return []
    fields: list[ExtraField] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        field_id = str(item.get("id") or "").strip()
        if not field_id:
            continue
        fields.append(
            ExtraField(
                id=field_id,
                default=item.get("default"),
                type=item.get("type"),
                label=item.get("label"),
            )
        )
    return fields


class WorkflowSource(Protocol):
    async def get_json(self, path: str) -> Any:
        ...


class WorkflowCatalog:
    """Cached list of server-declared workflows with an explicit lifecycle."""

    def __init__(self, source: WorkflowSource, path: str = "/workflows") -> None:
        self._source = source
        self._path = path
        self._workflows: dict[str, Workflow] = {}
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def init(self) -> list[Workflow]:
        payload = await self._source.get_json(self._path)
        if isinstance(payload, Mapping):
            payload = payload.get("workflows", [])
        self._workflows = {workflow.name: workflow for workflow in parse_workflows(payload)}
        self._loaded = True
        logger.debug("Loaded %d workflows", len(self._workflows))
        return self.list()

    def dispose(self) -> None:
        self._workflows = {}
        self._loaded = False

    def get(self, name: str) -> Workflow | None:
        return self._workflows.get(name)

    def list(self) -> list[Workflow]:
        return list(self._workflows.values())


def parse_workflows(payload: Iterable[Any] | None) -> list[Workflow]:
    workflows: list[Workflow] = []
    for item in payload or []:
        if not isinstance(item, Mapping):
            continue
        try:
            workflows.append(Workflow.from_payload(item))
        except ValueError as exc:
            logger.warning("Skipping invalid workflow %r: %s", item.get("name"), exc)
    return workflows
