"""Terminal banner for task progress."""

from __future__ import annotations

import shutil
import sys
import time
from typing import TextIO

from .presenter import PresenterState, PresenterStatus

_BOLD = "\x1b[1m"
_GREY = "\x1b[38;2;150;157;165m"
_RED = "\x1b[31m"
_RESET = "\x1b[0m"
_ERASE_TO_EOL = "\x1b[K"

BAR_WIDTH = 24


def banner_line(state: PresenterState, bar_width: int = BAR_WIDTH) -> str:
    percent = int(round(max(0.0, min(100.0, state.percentage))))
    filled = percent * bar_width // 100
    bar = "█" * filled + "░" * (bar_width - filled)
    return f"• {state.display_message} {bar} {percent:3d}%"


def elapsed_text(seconds: float) -> str:
    """`42s`, `3m 05s` or `1h 02m 07s`."""
    hours, rest = divmod(int(max(0, seconds)), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def finished_line(label: str, seconds: float, width: int) -> str:
    text = f" {label} in {elapsed_text(seconds)} "
    if width <= len(text) + 2:
        return text.strip()
    return text.center(width, "─")


class BannerRenderer:
    """Redraws one banner line per task; a tty gets in-place updates."""

    def __init__(self, stream: TextIO | None = None, width: int | None = None) -> None:
        self.stream = stream or sys.stdout
        self.width = width
        self._tty = bool(getattr(self.stream, "isatty", lambda: False)())
        self._started: dict[str, float] = {}
        self._last: dict[str, str] = {}

    def __call__(self, task_id: str, state: PresenterState) -> None:
        self.render(task_id, state)

    def render(self, task_id: str, state: PresenterState) -> None:
        origin = self._started.setdefault(task_id, time.monotonic())
        if state.status is PresenterStatus.HIDDEN:
            self._started.pop(task_id, None)
            self._last.pop(task_id, None)
            return
        if state.status is PresenterStatus.COMPLETED:
            line = finished_line("Generated", time.monotonic() - origin, self._columns())
            self._redraw(f"{_GREY}{line}{_RESET}", final=True)
            return
        if state.status is PresenterStatus.FAILED:
            self._redraw(f"{_RED}✗ {state.display_message}{_RESET}", final=True)
            return
        line = banner_line(state)
        if line == self._last.get(task_id):
            return
        self._last[task_id] = line
        self._redraw(f"{_BOLD}{line}{_RESET}", final=False)

    def _redraw(self, text: str, *, final: bool) -> None:
        # Pipes get one line per state; a tty overwrites until the task settles.
        if self._tty:
            text = f"\r{text}{_ERASE_TO_EOL}"
        if final or not self._tty:
            text += "\n"
        self.stream.write(text)
        self.stream.flush()

    def _columns(self) -> int:
        if self.width:
            return self.width
        return shutil.get_terminal_size(fallback=(100, 20)).columns
