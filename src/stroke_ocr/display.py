"""
Text sinks for status messages and per-box results.
"""

from __future__ import annotations

from typing import List


class Display:
    """Human readable output target."""

    def set_status(self, text: str) -> None:
        """Replace everything shown with ``text``."""
        raise NotImplementedError

    def append(self, text: str) -> None:
        """Add one line below what is already shown."""
        raise NotImplementedError


class BufferDisplay(Display):
    """Keeps the shown lines in memory."""

    def __init__(self) -> None:
        self.lines: List[str] = []

    def set_status(self, text: str) -> None:
        self.lines = [text]

    def append(self, text: str) -> None:
        self.lines.append(text)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


class ConsoleDisplay(Display):
    def set_status(self, text: str) -> None:
        print(text)

    def append(self, text: str) -> None:
        print(text)
