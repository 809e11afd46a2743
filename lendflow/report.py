"""Plain-text run report."""

from __future__ import annotations

import json
from typing import Any, List

from .constants import REPORT_RULE


class Report:
    """Accumulates the human-readable log of a run.

    The format is meant for people reading a failed run, not for parsing.
    """

    def __init__(self) -> None:
        self.lines: List[str] = []

    def add(self, *lines: str) -> None:
        self.lines.extend(lines)

    def section(self, title: str, *lines: str) -> None:
        """Add a ruled section header followed by ``lines`` and a blank line."""
        self.add(REPORT_RULE, title, REPORT_RULE, *lines, "")

    def dump(self, label: str, payload: Any) -> None:
        self.add(label, json.dumps(payload, indent=2, default=str), "")

    def text(self) -> str:
        return "\n".join(self.lines)

    def __len__(self) -> int:
        return len(self.lines)
