"""Client configuration resolved from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .utils import getenv_flag, getenv_float, getenv_int

DEFAULT_BASE_URL = "http://localhost:3000"
DEFAULT_TITLE = "YAAIIG"


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    request_timeout_s: float = 30.0
    submit_timeout_s: float = 10.0
    submit_retries: int = 1
    fetch_retries: int = 2
    retry_delay_s: float = 1.0
    retry_delay_multiplier: float = 2.0
    channel_timeout_s: float = 120.0
    complete_hide_s: float = 2.0
    error_hide_s: float = 5.0
    events_path: Path | None = None
    preview_dir: Path | None = None
    default_title: str = DEFAULT_TITLE
    terminal_title: bool = True

    @classmethod
    def from_env(cls) -> "ClientConfig":
        events = os.getenv("YAAIIG_EVENTS")
        preview_dir = os.getenv("YAAIIG_PREVIEW_DIR")
        return cls(
            base_url=(os.getenv("YAAIIG_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
            request_timeout_s=getenv_float("YAAIIG_REQUEST_TIMEOUT", 30.0),
            submit_retries=max(0, getenv_int("YAAIIG_SUBMIT_RETRIES", 1)),
            fetch_retries=max(0, getenv_int("YAAIIG_FETCH_RETRIES", 2)),
            retry_delay_s=max(0.0, getenv_float("YAAIIG_RETRY_DELAY", 1.0)),
            channel_timeout_s=max(1.0, getenv_float("YAAIIG_CHANNEL_TIMEOUT", 120.0)),
            events_path=Path(events) if events else None,
            preview_dir=Path(preview_dir) if preview_dir else None,
            default_title=os.getenv("YAAIIG_TITLE") or DEFAULT_TITLE,
            terminal_title=getenv_flag("YAAIIG_TERMINAL_TITLE", True),
        )
