"""Watchdog that re-injects the button root when the host page throws it away.

Chat front-ends re-render their composer on navigation, model switches and
sometimes for no visible reason. The monitor samples the affordance on a short
adaptive cadence and only recovers after the root has been missing for
consecutive checks, so a transient re-render does not cause a second copy.
"""

from __future__ import annotations

import os
from typing import Callable, Optional

from timers import TimerHandle, TimerLoop

REQUIRED_ABSENCES = 2
MAX_ITERATIONS = 30
PRESENT_INTERVAL = 0.1
ABSENT_INTERVAL = 0.05
HEARTBEAT_EVERY = 10

MONITOR_DEBUG = os.environ.get("RELAY_DEBUG", "").strip().lower() in {"1", "true", "yes", "debug"}

_ACTIVE_MONITOR: Optional["ResiliencyMonitor"] = None


def active_monitor() -> Optional["ResiliencyMonitor"]:
    return _ACTIVE_MONITOR


class ResiliencyMonitor:
    def __init__(
        self,
        loop: TimerLoop,
        is_present: Callable[[], bool],
        recover: Callable[[], None],
        *,
        required_absences: int = REQUIRED_ABSENCES,
        max_iterations: int = MAX_ITERATIONS,
        present_interval: float = PRESENT_INTERVAL,
        absent_interval: float = ABSENT_INTERVAL,
        name: str = "affordance",
    ):
        self.loop = loop
        self.is_present = is_present
        self.recover = recover
        self.required_absences = required_absences
        self.max_iterations = max_iterations
        self.present_interval = present_interval
        self.absent_interval = absent_interval
        self.name = name

        self.consecutive_absences = 0
        self.total_iterations = 0
        self.recoveries = 0
        self._timer: Optional[TimerHandle] = None

    @property
    def is_active(self) -> bool:
        return self._timer is not None and not self._timer.cancelled

    def start(self) -> None:
        """Cancel whatever check is pending anywhere, reset counters and tick now."""
        global _ACTIVE_MONITOR
        if _ACTIVE_MONITOR is not None and _ACTIVE_MONITOR is not self:
            _ACTIVE_MONITOR.stop()
        self._cancel_timer()
        _ACTIVE_MONITOR = self
        self.consecutive_absences = 0
        self.total_iterations = 0
        print(f"🛡️ Resiliency monitor started for {self.name}")
        self._tick()

    def stop(self) -> None:
        global _ACTIVE_MONITOR
        self._cancel_timer()
        if _ACTIVE_MONITOR is self:
            _ACTIVE_MONITOR = None

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _probe(self) -> bool:
        try:
            return bool(self.is_present())
        except Exception as exc:
            print(f"  • Presence check failed, treating {self.name} as missing: {exc}")
            return False

    def _tick(self) -> None:
        self._timer = None
        self.total_iterations += 1
        present = self._probe()

        if present:
            self.consecutive_absences = 0
        else:
            self.consecutive_absences += 1

        if self.consecutive_absences >= self.required_absences:
            print(f"♻️ {self.name} missing for {self.consecutive_absences} checks, re-injecting.")
            self._recover()
            return

        if self.total_iterations >= self.max_iterations:
            if present:
                print(f"✅ {self.name} stable after {self.total_iterations} checks, monitor stopping.")
                self.stop()
            else:
                print(f"♻️ {self.name} missing at final check, re-injecting.")
                self._recover()
            return

        if present and MONITOR_DEBUG and self.total_iterations % HEARTBEAT_EVERY == 0:
            print(f"  • {self.name} present ({self.total_iterations}/{self.max_iterations})")

        interval = self.present_interval if present else self.absent_interval
        self._timer = self.loop.call_later(interval, self._tick)

    def _recover(self) -> None:
        self.stop()
        self.recoveries += 1
        try:
            self.recover()
        except Exception as exc:
            print(f"❌ Re-injecting {self.name} failed: {exc}")
