"""User-facing notices. Fire and forget; never raises into the caller."""

from __future__ import annotations

from typing import List, Tuple

_SEVERITY_ICONS = {
    "info": "ℹ️",
    "success": "✅",
    "warning": "⚠️",
    "error": "❌",
}


class ConsoleNotifier:
    def __init__(self):
        self.history: List[Tuple[str, str]] = []

    def notify(self, message: str, severity: str = "info") -> None:
        icon = _SEVERITY_ICONS.get(severity, "ℹ️")
        self.history.append((severity, message))
        if len(self.history) > 50:
            self.history.pop(0)
        print(f"{icon} {message}")
