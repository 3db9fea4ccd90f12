"""Window-title annotator mirrored from the active progress message."""

from __future__ import annotations

import sys
from typing import Callable, TextIO

TitleSink = Callable[[str], None]


def terminal_title_sink(stream: TextIO | None = None) -> TitleSink:
    """Write titles with the xterm OSC 0 sequence; silent when not a tty."""
    target = stream or sys.stdout
    enabled = bool(getattr(target, "isatty", lambda: False)())

    def write(title: str) -> None:
        if not enabled:
            return
        target.write(f"\x1b]0;{title}\x07")
        target.flush()

    return write


class PageTitle:
    def __init__(self, default_title: str, sink: TitleSink | None = None) -> None:
        self.default_title = default_title
        self._sink = sink
        self._current = default_title

    @property
    def current(self) -> str:
        return self._current

    def update(self, message: str | None) -> None:
        if not message:
            self.reset()
            return
        self._set(f"{message} - {self.default_title}")

    def reset(self) -> None:
        self._set(self.default_title)

    def _set(self, title: str) -> None:
        if title == self._current:
            return
        self._current = title
        if self._sink is not None:
            self._sink(title)
