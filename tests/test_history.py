from __future__ import annotations

import pytest

from yaaiig_client.history import HistoryEntry, HistoryList


def _entry(uid: str, **fields) -> HistoryEntry:
    return HistoryEntry.from_payload({"uid": uid, **fields})


def test_from_payload_maps_wire_keys() -> None:
    entry = HistoryEntry.from_payload(
        {
            "uid": 12,
            "imageUrl": "/media/a.png",
            "seed": "42",
            "prompt": "a cat",
            "name": "Cat",
            "tags": "cat, pet",
        }
    )
    assert entry.uid == "12"
    assert entry.image_url == "/media/a.png"
    assert entry.seed == 42
    assert entry.fields == {"tags": "cat, pet"}
    assert entry.media_url == "/media/a.png"
    assert entry.to_payload()["imageUrl"] == "/media/a.png"


def test_from_payload_requires_uid() -> None:
    with pytest.raises(ValueError):
        HistoryEntry.from_payload({"imageUrl": "/media/a.png"})


def test_merge_head_deduplicates() -> None:
    history = HistoryList([_entry("x"), _entry("abc"), _entry("y")])
    history.merge_head(_entry("abc", name="fresh"))
    assert history.uids() == ["abc", "x", "y"]
    assert history.head().name == "fresh"
    assert history.uids().count("abc") == 1


def test_replace_keeps_position() -> None:
    history = HistoryList([_entry("a"), _entry("b"), _entry("c")])
    assert history.replace(_entry("b", prompt="new"))
    assert history.uids() == ["a", "b", "c"]
    assert history.get("b").prompt == "new"
    assert not history.replace(_entry("d"))
    assert history.uids() == ["d", "a", "b", "c"]


def test_load_drops_duplicate_uids() -> None:
    history = HistoryList()
    history.load([_entry("a"), _entry("a"), _entry("b")])
    assert history.uids() == ["a", "b"]
    assert len(history) == 2
