from __future__ import annotations

import os
from pathlib import Path

import pytest

from yaaiig_client.config import ClientConfig
from yaaiig_client.errors import TransportError, describe_status
from yaaiig_client.utils import load_dotenv, stringify_field


def test_config_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("YAAIIG_BASE_URL", "http://gpu-box:3000/")
    monkeypatch.setenv("YAAIIG_CHANNEL_TIMEOUT", "30")
    monkeypatch.setenv("YAAIIG_SUBMIT_RETRIES", "not-a-number")
    monkeypatch.setenv("YAAIIG_EVENTS", str(tmp_path / "events.jsonl"))
    monkeypatch.setenv("YAAIIG_TERMINAL_TITLE", "off")
    monkeypatch.delenv("YAAIIG_TITLE", raising=False)
    config = ClientConfig.from_env()
    assert config.base_url == "http://gpu-box:3000"
    assert config.channel_timeout_s == 30.0
    assert config.submit_retries == 1
    assert config.events_path == tmp_path / "events.jsonl"
    assert config.default_title == "YAAIIG"
    assert config.terminal_title is False


def test_load_dotenv_does_not_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text("YAAIIG_TITLE='Studio'\nexport YAAIIG_BASE_URL=http://x\n# comment\n", encoding="utf-8")
    monkeypatch.setenv("YAAIIG_BASE_URL", "http://keep")
    monkeypatch.delenv("YAAIIG_TITLE", raising=False)
    assert load_dotenv(env_path)
    assert os.environ["YAAIIG_TITLE"] == "Studio"
    assert os.environ["YAAIIG_BASE_URL"] == "http://keep"


def test_status_messages() -> None:
    assert "Invalid generation parameters" in describe_status(400)
    assert "timed out" in describe_status(504)
    assert "busy" in describe_status(429)
    assert "Server error" in describe_status(502)
    assert "Unable to connect" in describe_status(0)
    assert TransportError("teapot", status=418).user_message == "teapot"


def test_stringify_field() -> None:
    assert stringify_field(["a", "b"]) == "a,b"
    assert stringify_field(True) == "true"
    assert stringify_field(3) == "3"
    assert stringify_field(None) is None
