import random
from types import SimpleNamespace

import pytest

from queue_engine import QUEUE_MAX_SIZE, DispatchScheduler, QueueItem, compute_delay
from settings_store import QueueDelay
from sites.registry import HandlerRegistry


class RecordingHandler:
    def __init__(self, clock, ok=True):
        self.clock = clock
        self.ok = ok
        self.sends = []

    def send(self, event, text, force_auto_send=False):
        self.sends.append((self.clock.now, text, event, force_auto_send))
        return SimpleNamespace(ok=self.ok)


class RecordingView:
    def __init__(self):
        self.rendered = []
        self.progress = []
        self.hidden = 0
        self.flashes = 0
        self.controls = []

    def render(self, items):
        self.rendered.append([item.text for item in items])

    def update_controls(self, running, size):
        self.controls.append((running, size))

    def show_progress(self, delay_seconds):
        self.progress.append(delay_seconds)

    def hide_progress(self):
        self.hidden += 1

    def flash_capacity(self):
        self.flashes += 1


class StubSettings:
    def __init__(self, delay):
        self.delay = delay

    def get_queue_delay_config(self):
        return self.delay


@pytest.fixture
def handler(clock):
    return RecordingHandler(clock)


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture
def scheduler(loop, handler, view, notifier):
    registry = HandlerRegistry()
    registry.bind("Test", handler)
    return DispatchScheduler(
        loop,
        registry,
        lambda: "Test",
        settings=StubSettings(QueueDelay(unit="sec", seconds=2)),
        notifier=notifier,
        view=view,
    )


class TestEnqueue:
    def test_capacity_is_enforced(self, scheduler, view, notifier):
        for index in range(QUEUE_MAX_SIZE):
            assert scheduler.enqueue(QueueItem(text=f"prompt {index}")) is True

        assert scheduler.enqueue(QueueItem(text="one too many")) is False
        assert len(scheduler.queue) == QUEUE_MAX_SIZE
        assert view.flashes == 1
        assert notifier.severities() == ["warning"]

    def test_dequeue_in_bounds_only(self, scheduler):
        scheduler.enqueue(QueueItem(text="a"))
        scheduler.enqueue(QueueItem(text="b"))

        assert scheduler.dequeue(5) is None
        assert scheduler.dequeue(-1) is None
        assert scheduler.dequeue(0).text == "a"
        assert [item.text for item in scheduler.queue] == ["b"]

    def test_dequeue_every_item_returns_to_idle(self, scheduler, view, loop):
        for text in ("a", "b", "c"):
            scheduler.enqueue(QueueItem(text=text))

        removed = [scheduler.dequeue(0).text for _ in range(3)]

        assert removed == ["a", "b", "c"]
        assert scheduler.queue == []
        assert scheduler.dequeue(0) is None
        assert view.rendered[-1] == []
        assert view.controls[-1] == (False, 0)
        assert scheduler.running is False
        assert loop.pending() == 0


class TestProcessing:
    def test_items_sent_in_order_with_delay(self, scheduler, handler, loop, view):
        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))

        scheduler.start()
        loop.run()

        assert [text for _, text, _, _ in handler.sends] == ["A", "B"]
        first_at, second_at = handler.sends[0][0], handler.sends[1][0]
        assert first_at == 0.0
        assert second_at - first_at >= 2.0
        assert scheduler.running is False
        assert scheduler.queue == []
        assert scheduler.state.pending_timer is None
        assert view.hidden >= 1
        assert loop.pending() == 0

    def test_queue_sends_force_auto_send(self, scheduler, handler, loop):
        scheduler.enqueue(QueueItem(text="A"))

        scheduler.start()

        _, _, event, force = handler.sends[0]
        assert force is True
        assert event.from_queue is True

    def test_start_is_noop_when_empty_or_running(self, scheduler, handler):
        scheduler.start()
        assert scheduler.running is False

        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))
        scheduler.start()
        scheduler.start()

        assert len(handler.sends) == 1

    def test_pause_cancels_pending_send(self, scheduler, handler, loop):
        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))
        scheduler.start()

        scheduler.pause()
        loop.run(timeout=10)

        assert len(handler.sends) == 1
        assert scheduler.state.pending_timer is None
        assert [item.text for item in scheduler.queue] == ["B"]

    def test_resume_sends_head_immediately(self, scheduler, handler, loop, clock):
        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))
        scheduler.start()
        clock.advance(1.0)
        scheduler.pause()

        scheduler.start()

        assert [text for _, text, _, _ in handler.sends] == ["A", "B"]
        assert handler.sends[1][0] == 1.0

    def test_resume_after_removing_head_uses_fresh_delay(self, scheduler, handler, loop, clock, view):
        for text in ("A", "B", "C", "D"):
            scheduler.enqueue(QueueItem(text=text))
        scheduler.start()
        clock.advance(1.5)
        scheduler.pause()
        scheduler.dequeue(0)

        scheduler.start()
        loop.run()

        assert [text for _, text, _, _ in handler.sends] == ["A", "C", "D"]
        # full delay after C, not the 0.5s left on the paused timer
        assert [at for at, _, _, _ in handler.sends] == pytest.approx([0.0, 1.5, 3.5])
        assert view.progress[-1] == 2.0
        assert scheduler.running is False

    def test_reset_clears_everything(self, scheduler, loop):
        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))
        scheduler.start()

        scheduler.reset()

        assert scheduler.queue == []
        assert scheduler.running is False
        assert loop.pending() == 0

    def test_skip_sends_next_without_waiting(self, scheduler, handler, clock):
        for text in ("A", "B", "C"):
            scheduler.enqueue(QueueItem(text=text))
        scheduler.start()

        scheduler.skip()

        assert [text for _, text, _, _ in handler.sends] == ["A", "B"]
        assert handler.sends[1][0] == 0.0
        assert scheduler.state.pending_timer is not None

    def test_progress_reports_fraction_of_delay(self, scheduler, clock):
        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))
        scheduler.start()

        clock.advance(1.0)

        assert scheduler.progress() == pytest.approx(0.5)

    def test_missing_handler_resets_queue(self, loop, view, notifier):
        scheduler = DispatchScheduler(loop, HandlerRegistry(), lambda: "Nowhere", notifier=notifier, view=view)
        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))

        scheduler.start()

        assert scheduler.queue == []
        assert scheduler.running is False
        assert notifier.severities() == ["error"]

    def test_failed_send_aborts_queue(self, scheduler, handler, loop, notifier):
        handler.ok = False
        scheduler.enqueue(QueueItem(text="A"))
        scheduler.enqueue(QueueItem(text="B"))

        scheduler.start()
        loop.run(timeout=10)

        assert len(handler.sends) == 1
        assert scheduler.queue == []
        assert scheduler.running is False
        assert "error" in notifier.severities()


class TestComputeDelay:
    def test_seconds_respect_minimum(self):
        assert compute_delay(QueueDelay(unit="sec", seconds=0)) == 2.0
        assert compute_delay(QueueDelay(unit="sec", seconds=45)) == 45.0

    def test_minutes(self):
        assert compute_delay(QueueDelay(unit="min", minutes=3)) == 180.0
        assert compute_delay(QueueDelay(unit="min", minutes=1)) == 120.0

    def test_randomized_offset_bounded(self):
        config = QueueDelay(unit="sec", seconds=100, randomize_enabled=True, randomize_percent=5)
        rng = random.Random(7)

        samples = [compute_delay(config, rng) for _ in range(50)]

        assert all(100.0 <= sample <= 105.0 for sample in samples)
        assert len(set(samples)) > 1
