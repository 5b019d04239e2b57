"""Failure kinds raised or reported by the relay."""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    severity = "error"

    def __init__(self, message: str, *, severity: Optional[str] = None):
        super().__init__(message)
        if severity:
            self.severity = severity


class ResolutionAbsent(RelayError):
    """No selector for a role matched a live element."""

    def __init__(self, role: str, site: str = ""):
        where = f" on {site}" if site else ""
        super().__init__(f"No element found for role '{role}'{where}")
        self.role = role
        self.site = site


class InsertionFailed(RelayError):
    pass


class DispatchTimedOut(RelayError):
    pass


class DispatchAborted(RelayError):
    pass


class QueueCapacityExceeded(RelayError):
    severity = "warning"

    def __init__(self, capacity: int):
        super().__init__(f"Queue is full ({capacity} items max)")
        self.capacity = capacity


class HandlerNotFound(RelayError):
    def __init__(self, site: str):
        super().__init__(f"No send handler registered for site '{site}'")
        self.site = site
