"""Durable media records and the ordered, de-duplicated history list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

_KNOWN_KEYS = {"uid", "imageUrl", "audioUrl", "videoUrl", "seed", "prompt", "name"}


@dataclass(frozen=True)
class HistoryEntry:
    uid: str
    image_url: str | None = None
    audio_url: str | None = None
    video_url: str | None = None
    seed: int | None = None
    prompt: str | None = None
    name: str | None = None
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def media_url(self) -> str | None:
        return self.video_url or self.audio_url or self.image_url

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "HistoryEntry":
        uid = payload.get("uid")
        if uid is None or not str(uid).strip():
            raise ValueError("media record has no uid")
        seed = payload.get("seed")
        try:
            seed = int(seed) if seed is not None and seed != "" else None
        except (TypeError, ValueError):
            seed = None
        return cls(
            uid=str(uid).strip(),
            image_url=payload.get("imageUrl") or payload.get("image_url"),
            audio_url=payload.get("audioUrl") or payload.get("audio_url"),
            video_url=payload.get("videoUrl") or payload.get("video_url"),
            seed=seed,
            prompt=payload.get("prompt"),
            name=payload.get("name"),
            fields={key: value for key, value in payload.items() if key not in _KNOWN_KEYS},
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.fields)
        payload["uid"] = self.uid
        for key, value in (
            ("imageUrl", self.image_url),
            ("audioUrl", self.audio_url),
            ("videoUrl", self.video_url),
            ("seed", self.seed),
            ("prompt", self.prompt),
            ("name", self.name),
        ):
            if value is not None:
                payload[key] = value
        return payload


class HistoryList:
    """Newest-first list of entries; a uid appears at most once."""

    def __init__(self, entries: Iterable[HistoryEntry] = ()) -> None:
        self._entries: list[HistoryEntry] = []
        self.load(entries)

    def load(self, entries: Iterable[HistoryEntry]) -> None:
        self._entries = []
        seen: set[str] = set()
        for entry in entries:
            if entry.uid in seen:
                continue
            seen.add(entry.uid)
            self._entries.append(entry)

    def merge_head(self, entry: HistoryEntry) -> None:
        self._entries = [entry] + [item for item in self._entries if item.uid != entry.uid]

    def replace(self, entry: HistoryEntry) -> bool:
        """Swap an existing entry in place. Unknown uids go to the head; returns False then."""
        for index, item in enumerate(self._entries):
            if item.uid == entry.uid:
                self._entries[index] = entry
                return True
        self.merge_head(entry)
        return False

    def get(self, uid: str) -> HistoryEntry | None:
        for entry in self._entries:
            if entry.uid == uid:
                return entry
        return None

    def uids(self) -> list[str]:
        return [entry.uid for entry in self._entries]

    def head(self) -> HistoryEntry | None:
        return self._entries[0] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries))
