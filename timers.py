"""Single-threaded timer loop.

Every scheduled piece of work in the relay (monitor ticks, queue pacing,
container polling, navigation debounce) goes through one ``TimerLoop``. The loop
is pumped by a sleeper; in the browser that sleeper is ``page.wait_for_timeout``
so Playwright keeps delivering page events while timers wait.
"""

from __future__ import annotations

import heapq
import itertools
import time
from typing import Any, Callable, List, Optional, Tuple


class TimerHandle:
    """Cancellable reference to one scheduled callback."""

    __slots__ = ("when", "callback", "args", "cancelled", "_seq")

    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: Tuple[Any, ...]):
        self.when = when
        self._seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: "TimerHandle") -> bool:
        return (self.when, self._seq) < (other.when, other._seq)

    def __repr__(self) -> str:
        name = getattr(self.callback, "__name__", repr(self.callback))
        state = "cancelled" if self.cancelled else "pending"
        return f"<TimerHandle {name} at {self.when:.3f} {state}>"


class TimerLoop:
    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], None] = time.sleep,
    ):
        self._clock = clock
        self._sleeper = sleeper
        self._heap: List[TimerHandle] = []
        self._seq = itertools.count()
        self._stopped = False

    def now(self) -> float:
        return self._clock()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._sleeper(seconds)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(self._clock() + max(0.0, delay), next(self._seq), callback, args)
        heapq.heappush(self._heap, handle)
        return handle

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        return self.call_later(0.0, callback, *args)

    def pending(self) -> int:
        return sum(1 for handle in self._heap if not handle.cancelled)

    def next_deadline(self) -> Optional[float]:
        self._drop_cancelled()
        return self._heap[0].when if self._heap else None

    def stop(self) -> None:
        self._stopped = True

    def run_once(self) -> int:
        """Run every callback that is due right now. Returns how many ran."""
        ran = 0
        now = self._clock()
        self._drop_cancelled()
        while self._heap and self._heap[0].when <= now:
            handle = heapq.heappop(self._heap)
            if handle.cancelled:
                continue
            handle.cancelled = True
            ran += 1
            try:
                handle.callback(*handle.args)
            except Exception as exc:
                name = getattr(handle.callback, "__name__", repr(handle.callback))
                print(f"  • Timer callback {name} failed: {exc}")
            self._drop_cancelled()
        return ran

    def run(
        self,
        until: Optional[Callable[[], bool]] = None,
        timeout: Optional[float] = None,
        tick: float = 0.05,
    ) -> None:
        """Pump the loop until ``until()`` is true, ``timeout`` elapses or ``stop()`` is called.

        With neither ``until`` nor ``timeout`` the loop returns once nothing is
        pending, otherwise it keeps idling in ``tick`` sized sleeps so page
        events still get delivered.
        """
        self._stopped = False
        deadline = self._clock() + timeout if timeout is not None else None
        while not self._stopped:
            self.run_once()
            if until is not None and until():
                return
            now = self._clock()
            if deadline is not None and now >= deadline:
                return
            next_due = self.next_deadline()
            if next_due is None and until is None and deadline is None:
                return
            wait = tick
            if next_due is not None:
                wait = min(wait, max(0.0, next_due - now))
            if deadline is not None:
                wait = min(wait, max(0.0, deadline - now))
            if wait > 0:
                self._sleeper(wait)

    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)
