"""Paced queue of prompts sent one after another.

Items go out strictly in order with a configurable delay between them; the
first item goes out as soon as the queue is started. Only one timer is ever
pending and nothing is pending while the queue is paused.
"""

from __future__ import annotations

import itertools
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from errors import HandlerNotFound, QueueCapacityExceeded
from settings_store import PromptButton, QueueDelay
from sites.handlers import SendEvent
from timers import TimerHandle, TimerLoop

QUEUE_MAX_SIZE = 10
MIN_DELAY_UNITS = 2

_QUEUE_IDS = itertools.count(1)


@dataclass
class QueueItem:
    text: str
    icon: str = ""
    config: Optional[PromptButton] = None
    queue_id: int = field(default_factory=lambda: next(_QUEUE_IDS))

    @classmethod
    def from_button(cls, button: PromptButton) -> "QueueItem":
        return cls(text=button.text, icon=button.icon, config=button)


@dataclass
class SchedulerState:
    queue: List[QueueItem] = field(default_factory=list)
    running: bool = False
    pending_timer: Optional[TimerHandle] = None
    delay_started: Optional[float] = None
    delay_seconds: float = 0.0


def compute_delay(config: QueueDelay, rng: random.Random = random) -> float:
    """Seconds to wait before the next item, honouring the two-unit minimum and randomization."""
    if config.unit == "sec":
        base = max(MIN_DELAY_UNITS, int(config.seconds)) * 1.0
    else:
        base = max(MIN_DELAY_UNITS, int(config.minutes)) * 60.0
    if config.randomize_enabled and config.randomize_percent > 0:
        spread = base * max(0, config.randomize_percent) / 100.0
        return base + rng.uniform(0.0, spread)
    return base


def format_delay(seconds: float) -> str:
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes, rest = divmod(seconds, 60)
    return f"{minutes}m {rest:02d}s" if rest else f"{minutes}m"


class ConsoleQueueView:
    """Prints queue state; stands in for the on-page queue panel."""

    def render(self, items: List[QueueItem]) -> None:
        labels = ", ".join(item.icon or item.text[:16] for item in items) or "empty"
        print(f"  • Queue ({len(items)}/{QUEUE_MAX_SIZE}): {labels}")

    def update_controls(self, running: bool, size: int) -> None:
        state = "running" if running else "paused" if size else "idle"
        print(f"  • Queue {state}")

    def show_progress(self, delay_seconds: float) -> None:
        print(f"⏳ Next queued prompt in {format_delay(delay_seconds)}")

    def hide_progress(self) -> None:
        return None

    def flash_capacity(self) -> None:
        print(f"⚠️ Queue full ({QUEUE_MAX_SIZE} items max)")


class DispatchScheduler:
    def __init__(
        self,
        loop: TimerLoop,
        registry,
        active_site: Callable[[], str],
        *,
        settings=None,
        notifier=None,
        view=None,
        rng: Optional[random.Random] = None,
        max_size: int = QUEUE_MAX_SIZE,
    ):
        self.loop = loop
        self.registry = registry
        self.active_site = active_site
        self.settings = settings
        self.notifier = notifier
        self.view = view or ConsoleQueueView()
        self.rng = rng or random.Random()
        self.max_size = max_size
        self.state = SchedulerState()

    @property
    def queue(self) -> List[QueueItem]:
        return self.state.queue

    @property
    def running(self) -> bool:
        return self.state.running

    def _notify(self, message: str, severity: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(message, severity)

    def _refresh(self) -> None:
        self.view.render(list(self.state.queue))
        self.view.update_controls(self.state.running, len(self.state.queue))

    def enqueue(self, item: QueueItem) -> bool:
        if len(self.state.queue) >= self.max_size:
            error = QueueCapacityExceeded(self.max_size)
            self.view.flash_capacity()
            self._notify(str(error), error.severity)
            return False
        self.state.queue.append(item)
        self._refresh()
        return True

    def dequeue(self, index: int) -> Optional[QueueItem]:
        if index < 0 or index >= len(self.state.queue):
            return None
        item = self.state.queue.pop(index)
        self._refresh()
        return item

    def start(self) -> None:
        if self.state.running or not self.state.queue:
            return
        self.state.running = True
        self._refresh()
        self.process_next()

    def pause(self) -> None:
        self.state.running = False
        self._cancel_timer()
        self.view.hide_progress()
        self._refresh()

    def reset(self) -> None:
        self.pause()
        self.state.queue.clear()
        self._refresh()

    def skip(self) -> None:
        """Send the head right away instead of waiting out the current delay."""
        if not self.state.running or not self.state.queue:
            return
        self._cancel_timer()
        self.view.hide_progress()
        self.process_next()

    def progress(self) -> float:
        if self.state.pending_timer is None or self.state.delay_started is None or self.state.delay_seconds <= 0:
            return 0.0
        elapsed = self.loop.now() - self.state.delay_started
        return max(0.0, min(1.0, elapsed / self.state.delay_seconds))

    def _cancel_timer(self) -> None:
        if self.state.pending_timer is not None:
            self.state.pending_timer.cancel()
            self.state.pending_timer = None
        self.state.delay_started = None
        self.state.delay_seconds = 0.0

    def _delay_config(self) -> QueueDelay:
        if self.settings is None:
            return QueueDelay()
        try:
            return self.settings.get_queue_delay_config()
        except Exception as exc:
            print(f"  • Queue delay settings unavailable, using defaults: {exc}")
            return QueueDelay()

    def process_next(self) -> None:
        self.state.pending_timer = None
        self.state.delay_started = None
        if not self.state.running:
            return
        if not self.state.queue:
            self.pause()
            return

        item = self.state.queue.pop(0)
        self._refresh()
        site = self.active_site()
        try:
            handler = self.registry.lookup(site)
        except HandlerNotFound as exc:
            self._notify(str(exc), exc.severity)
            self.reset()
            return

        event = SendEvent(from_queue=True, auto_send=True)
        try:
            outcome = handler.send(event, item.text, True)
        except Exception as exc:
            self._notify(f"Queued prompt failed on {site}: {exc}", "error")
            self.reset()
            return
        if outcome is not None and not getattr(outcome, "ok", True):
            self._notify(f"Queue stopped: prompt could not be sent on {site}.", "error")
            self.reset()
            return

        if not self.state.running:
            return
        if not self.state.queue:
            print("✅ Queue finished.")
            self.pause()
            return

        delay = compute_delay(self._delay_config(), self.rng)
        self.state.delay_started = self.loop.now()
        self.state.delay_seconds = delay
        self.state.pending_timer = self.loop.call_later(delay, self.process_next)
        self.view.show_progress(delay)
