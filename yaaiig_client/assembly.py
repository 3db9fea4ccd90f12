"""Outgoing request assembly for generate submissions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .media.imaging import content_type, file_extension
from .media.slots import LocalFile, RemoteReference
from .utils import stringify_field
from .workflows import Workflow

SLOT_FIELDS = ("description", "prompt", "summary", "tags", "name", "uid")


@dataclass(frozen=True)
class ResolvedMedia:
    kind: str
    index: int
    data: bytes
    slot: LocalFile | RemoteReference

    @property
    def part_name(self) -> str:
        return f"{self.kind}_{self.index}"

    @property
    def filename(self) -> str:
        return f"{self.part_name}.{file_extension(self.kind, self.data, self.slot.format)}"


def slot_field_names(kind: str) -> tuple[str, ...]:
    return SLOT_FIELDS + (f"{kind}Format",)


def request_fields(
    workflow: Workflow,
    *,
    prompt: str,
    seed: int,
    orientation: str,
    name: str = "",
    extra: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for key, value in (extra or {}).items():
        if value is not None:
            fields[key] = value
    fields.update(
        {
            "workflow": workflow.name,
            "prompt": prompt,
            "description": prompt,
            "seed": seed,
            "orientation": orientation,
        }
    )
    if name.strip():
        fields["name"] = name.strip()
    return fields


def multipart_body(
    fields: Mapping[str, Any],
    media: list[ResolvedMedia],
) -> tuple[dict[str, str], list[tuple[str, tuple[str, bytes, str]]]]:
    """Split a submission into text parts and one binary part per occupied slot."""
    data: dict[str, str] = {}
    for key, value in fields.items():
        text = stringify_field(value)
        if text is not None:
            data[key] = text
    files: list[tuple[str, tuple[str, bytes, str]]] = []
    for item in media:
        filename = item.filename
        files.append((item.part_name, (filename, item.data, content_type(filename))))
        for field_name in slot_field_names(item.kind):
            text = stringify_field(item.slot.field_value(field_name))
            if text is not None:
                data[f"{item.part_name}_{field_name}"] = text
    return data, files
