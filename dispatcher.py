"""Pressing a site's submit control once it is safe to do so.

Chat surfaces often swap the send button for a "stop generating" button while a
reply streams in, render it disabled until the editor has content, or mount it
a beat after the text lands. ``DispatchProtocol`` polls through those states on
a bounded budget and clicks exactly once.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from errors import DispatchAborted, DispatchTimedOut
from sites.profiles import ROLE_STOP, ROLE_SUBMIT, ControlState, SiteProfile

POLL_INTERVAL = 0.1
MAX_ATTEMPTS = 50
DISPATCH_TIMEOUT = 5.0
SETTLE_DELAY = 0.2

DISPATCH_DEBUG = os.environ.get("RELAY_DEBUG", "").strip().lower() in {"1", "true", "yes", "debug"}


class DispatchState(Enum):
    LOCATING = "locating"
    WAITING = "waiting"
    READY = "ready"
    CLICKING = "clicking"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"


TERMINAL_STATES = {DispatchState.CONFIRMED, DispatchState.TIMED_OUT, DispatchState.ABORTED}


@dataclass
class DispatchOutcome:
    state: DispatchState
    attempts: int
    elapsed: float
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.state is DispatchState.CONFIRMED

    def raise_for_state(self) -> None:
        if self.state is DispatchState.TIMED_OUT:
            raise DispatchTimedOut(self.reason or "Submit control never became ready")
        if self.state is DispatchState.ABORTED:
            raise DispatchAborted(self.reason or "Submit control was never found")


class DispatchProtocol:
    def __init__(
        self,
        resolver,
        profile: SiteProfile,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: Optional[float] = None,
        max_attempts: Optional[int] = None,
        timeout: float = DISPATCH_TIMEOUT,
        settle_delay: float = SETTLE_DELAY,
        pre_click_check: Optional[Callable[[], bool]] = None,
    ):
        self.resolver = resolver
        self.profile = profile
        self.clock = clock
        self.sleep = sleep
        self.poll_interval = poll_interval or profile.dispatch_poll_interval or POLL_INTERVAL
        self.max_attempts = max_attempts or profile.dispatch_max_attempts or MAX_ATTEMPTS
        self.timeout = timeout
        self.settle_delay = settle_delay
        self.pre_click_check = pre_click_check

        self.state = DispatchState.LOCATING
        self.attempts = 0
        self.deadline = 0.0
        self._started = 0.0
        self._located = False
        self._control = None
        self._reason = ""

    def run(self) -> DispatchOutcome:
        self.state = DispatchState.LOCATING
        self.attempts = 0
        self._started = self.clock()
        self.deadline = self._started + self.timeout
        self._located = False
        self._control = None
        self._reason = ""

        while self.state not in TERMINAL_STATES:
            if self.state in (DispatchState.LOCATING, DispatchState.WAITING):
                self._poll()
            elif self.state is DispatchState.READY:
                self._settle()
            elif self.state is DispatchState.CLICKING:
                self._click()

        outcome = DispatchOutcome(
            state=self.state,
            attempts=self.attempts,
            elapsed=self.clock() - self._started,
            reason=self._reason,
        )
        self._control = None
        if outcome.ok:
            print(f"✅ Submitted on {self.profile.site} after {outcome.attempts} checks ({outcome.elapsed:.1f}s)")
        else:
            print(f"⚠️ Dispatch {outcome.state.value} on {self.profile.site}: {outcome.reason}")
        return outcome

    def _transition(self, state: DispatchState, reason: str = "") -> None:
        if DISPATCH_DEBUG and state is not self.state:
            print(f"  • dispatch {self.state.value} → {state.value} {reason}".rstrip())
        self.state = state
        if reason:
            self._reason = reason

    def _budget_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts or self.clock() >= self.deadline

    def _observe(self) -> Tuple[Optional[object], Optional[ControlState]]:
        """Resolve the submit control afresh and classify it. ``(None, None)`` means absent."""
        control = self.resolver.resolve(ROLE_SUBMIT)
        if control is not None:
            try:
                return control, self.profile.classify_control(control, self.profile)
            except Exception as exc:
                if DISPATCH_DEBUG:
                    print(f"  • Submit control went stale while classifying: {exc}")
                return None, None
        if self.profile.stop_controls and self.resolver.resolve(ROLE_STOP) is not None:
            return None, ControlState.BUSY
        return None, None

    def _give_up(self) -> None:
        if self._located:
            self._transition(DispatchState.TIMED_OUT, f"submit control not ready after {self.attempts} checks")
        else:
            self._transition(DispatchState.ABORTED, f"submit control not found after {self.attempts} checks")

    def _poll(self) -> None:
        self.attempts += 1
        control, status = self._observe()
        if status is ControlState.READY:
            self._located = True
            self._control = control
            self._transition(DispatchState.READY)
            return

        if status is not None:
            self._located = True
            self._transition(DispatchState.WAITING, f"control is {status.value}")
        elif self._located:
            self._transition(DispatchState.WAITING, "control disappeared")

        if self._budget_exhausted():
            self._give_up()
            return
        self.sleep(self.poll_interval)

    def _settle(self) -> None:
        if self.settle_delay > 0:
            self.sleep(self.settle_delay)
        control, status = self._observe()
        if status is ControlState.READY and self._pre_click_ok():
            self._control = control
            self._transition(DispatchState.CLICKING)
            return
        self._control = None
        self._transition(DispatchState.WAITING, "control changed while settling")
        if self._budget_exhausted():
            self._give_up()

    def _pre_click_ok(self) -> bool:
        if self.pre_click_check is None:
            return True
        try:
            return bool(self.pre_click_check())
        except Exception as exc:
            print(f"  • Pre-click check failed: {exc}")
            return False

    def _click(self) -> None:
        control = self._control
        self._control = None
        try:
            control.click(timeout=1000)
        except Exception as exc:
            try:
                control.dispatch_event("click")
            except Exception as fallback_exc:
                self._transition(DispatchState.WAITING, f"click failed: {exc}; {fallback_exc}")
                if self._budget_exhausted():
                    self._give_up()
                else:
                    self.sleep(self.poll_interval)
                return
        self._transition(DispatchState.CONFIRMED, "click issued")
