"""Fixed-capacity input media slots."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, Mapping, Union

logger = logging.getLogger(__name__)

MEDIA_KINDS = ("image", "audio")


class PreviewHandle:
    """Ephemeral preview file backing a locally attached slot.

    The handle belongs to exactly one slot. It is released when that slot is
    replaced or cleared, and a second release is reported instead of ignored.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.released = False

    @property
    def url(self) -> str:
        return self.path.as_uri()

    def release(self) -> None:
        if self.released:
            logger.warning("Preview handle %s released twice", self.path)
            return
        self.released = True
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


class PreviewAllocator:
    def __init__(self, root: Path | None = None) -> None:
        self.root = root
        self.allocated = 0

    def allocate(self, data: bytes, suffix: str = "") -> PreviewHandle:
        if self.root is not None:
            self.root.mkdir(parents=True, exist_ok=True)
        fd, raw_path = tempfile.mkstemp(prefix="preview-", suffix=suffix, dir=self.root)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        self.allocated += 1
        return PreviewHandle(Path(raw_path))


@dataclass(frozen=True)
class EmptySlot:
    def field_value(self, name: str) -> Any:
        return None


@dataclass(frozen=True)
class LocalFile:
    data: bytes
    preview: PreviewHandle
    name: str | None = None
    uid: str | None = None
    format: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def field_value(self, name: str) -> Any:
        if self.metadata.get(name) is not None:
            return self.metadata[name]
        return _top_level_field(self, name)


@dataclass(frozen=True)
class RemoteReference:
    url: str
    name: str | None = None
    uid: str | None = None
    format: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def field_value(self, name: str) -> Any:
        if self.metadata.get(name) is not None:
            return self.metadata[name]
        return _top_level_field(self, name)


MediaSlot = Union[EmptySlot, LocalFile, RemoteReference]

EMPTY = EmptySlot()


def _top_level_field(slot: LocalFile | RemoteReference, name: str) -> Any:
    if name.endswith("Format"):
        return slot.format
    if name in {"name", "uid"}:
        return getattr(slot, name)
    return None


class SlotArray:
    """Ordered slots for one media kind, sized to the active workflow."""

    def __init__(self, kind: str, capacity: int, allocator: PreviewAllocator) -> None:
        if kind not in MEDIA_KINDS:
            raise ValueError(f"Unknown media kind: {kind}")
        self.kind = kind
        self._allocator = allocator
        self._slots: list[MediaSlot] = [EMPTY] * max(0, int(capacity))

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __getitem__(self, index: int) -> MediaSlot:
        return self._slots[self._check_index(index)]

    def __iter__(self) -> Iterator[MediaSlot]:
        return iter(list(self._slots))

    def set_local(
        self,
        index: int,
        data: bytes,
        *,
        name: str | None = None,
        uid: str | None = None,
        format: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> LocalFile:
        index = self._check_index(index)
        if not data:
            raise ValueError(f"{self.kind} slot {index} needs non-empty data")
        suffix = f".{format}" if format else ""
        preview = self._allocator.allocate(bytes(data), suffix=suffix)
        self._release(index)
        slot = LocalFile(
            data=bytes(data),
            preview=preview,
            name=name,
            uid=uid,
            format=format,
            metadata=dict(metadata or {}),
        )
        self._slots[index] = slot
        return slot

    def set_remote(
        self,
        index: int,
        url: str,
        metadata: Mapping[str, Any] | None = None,
        *,
        name: str | None = None,
        uid: str | None = None,
        format: str | None = None,
    ) -> RemoteReference:
        index = self._check_index(index)
        if not url:
            raise ValueError(f"{self.kind} slot {index} needs a url")
        self._release(index)
        slot = RemoteReference(
            url=url,
            name=name,
            uid=uid,
            format=format,
            metadata=dict(metadata or {}),
        )
        self._slots[index] = slot
        return slot

    def clear(self, index: int) -> None:
        index = self._check_index(index)
        self._release(index)
        self._slots[index] = EMPTY

    def filled_count(self) -> int:
        return sum(1 for slot in self._slots if not isinstance(slot, EmptySlot))

    def occupied(self) -> list[tuple[int, LocalFile | RemoteReference]]:
        return [(idx, slot) for idx, slot in enumerate(self._slots) if not isinstance(slot, EmptySlot)]

    def has_local(self) -> bool:
        return any(isinstance(slot, LocalFile) for slot in self._slots)

    def first_local(self) -> LocalFile | None:
        for slot in self._slots:
            if isinstance(slot, LocalFile):
                return slot
        return None

    def release_all(self) -> None:
        for index in range(len(self._slots)):
            self._release(index)
            self._slots[index] = EMPTY

    def _release(self, index: int) -> None:
        current = self._slots[index]
        if isinstance(current, LocalFile):
            current.preview.release()

    def _check_index(self, index: int) -> int:
        if not isinstance(index, int) or isinstance(index, bool):
            raise TypeError(f"{self.kind} slot index must be an int, got {type(index).__name__}")
        if index < 0 or index >= len(self._slots):
            raise IndexError(f"{self.kind} slot index {index} out of range [0, {len(self._slots)})")
        return index


class MediaSlotModel:
    def __init__(self, image_capacity: int = 0, audio_capacity: int = 0, allocator: PreviewAllocator | None = None) -> None:
        self.allocator = allocator or PreviewAllocator()
        self.images = SlotArray("image", image_capacity, self.allocator)
        self.audios = SlotArray("audio", audio_capacity, self.allocator)

    def slots(self, kind: str) -> SlotArray:
        if kind == "image":
            return self.images
        if kind == "audio":
            return self.audios
        raise ValueError(f"Unknown media kind: {kind}")

    def filled_count(self, kind: str) -> int:
        return self.slots(kind).filled_count()

    def any_occupied(self) -> bool:
        return self.images.filled_count() > 0 or self.audios.filled_count() > 0

    def reset(self, image_capacity: int, audio_capacity: int) -> None:
        self.dispose()
        self.images = SlotArray("image", image_capacity, self.allocator)
        self.audios = SlotArray("audio", audio_capacity, self.allocator)

    def dispose(self) -> None:
        self.images.release_all()
        self.audios.release_all()
