from __future__ import annotations

import json

import pytest

from yaaiig_client.channels.messages import (
    MALFORMED_PAYLOAD,
    ProgressUpdate,
    TaskCompleted,
    TaskFailed,
    decode_message,
    parse_payload,
)
from yaaiig_client.errors import StreamProtocolError


def test_progress_payload() -> None:
    data = json.dumps(
        {"progress": {"percentage": 140, "node": "KSampler", "currentValue": 3, "maxValue": 20}}
    )
    message = decode_message("progress", data)
    assert isinstance(message, ProgressUpdate)
    assert message.percentage == 100.0
    assert message.node == "KSampler"
    assert message.current_step is None
    assert (message.current_value, message.max_value) == (3, 20)
    assert not message.terminal


def test_complete_uid_from_result_or_media_data() -> None:
    message = decode_message("complete", json.dumps({"result": {"uid": 7}}))
    assert isinstance(message, TaskCompleted)
    assert message.terminal
    assert message.uid == "7"
    regenerated = decode_message("complete", json.dumps({"mediaData": {"uid": "abc", "name": "n"}}))
    assert regenerated.uid == "abc"
    assert regenerated.media_data == {"uid": "abc", "name": "n"}


def test_error_event_message_and_fallback() -> None:
    message = decode_message("error-event", json.dumps({"error": {"message": "CUDA OOM", "details": "x"}}))
    assert isinstance(message, TaskFailed)
    assert message.message == "CUDA OOM"
    assert message.details == "x"
    assert not message.synthesized
    assert decode_message("error-event", "{}").message == "Generation failed"


@pytest.mark.parametrize("data", ["not json", "[1, 2]", ""])
def test_malformed_payload_becomes_terminal_failure(data: str) -> None:
    message = decode_message("progress", data)
    assert isinstance(message, TaskFailed)
    assert message.terminal
    assert message.synthesized
    assert message.message == MALFORMED_PAYLOAD


def test_unknown_event_is_ignored() -> None:
    assert decode_message("heartbeat", "{}") is None


def test_parse_payload_raises_protocol_error() -> None:
    with pytest.raises(StreamProtocolError):
        parse_payload("{")
