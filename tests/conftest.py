"""Browser-free fakes shared by the test suite."""

from typing import Any, Callable, Dict, List, Optional

import pytest
from playwright.sync_api import Error as PlaywrightError

import resiliency
from insertion import EditorKind
from sites.profiles import SiteProfile
from timers import TimerLoop


class ManualClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeElement:
    def __init__(
        self,
        attrs: Optional[Dict[str, str]] = None,
        text: str = "",
        visible: bool = True,
        enabled: bool = True,
        inside_affordance: bool = False,
        click_error: Optional[Exception] = None,
        evaluate_return: Any = None,
        on_evaluate: Optional[Callable[[str, Any], Any]] = None,
    ):
        self.attrs = dict(attrs or {})
        self.text = text
        self.visible = visible
        self.enabled = enabled
        self.inside_affordance = inside_affordance
        self.click_error = click_error
        self.evaluate_return = evaluate_return
        self.on_evaluate = on_evaluate
        self.clicks = 0
        self.dispatched: List[str] = []
        self.evaluated: List[tuple] = []

    def get_attribute(self, name: str) -> Optional[str]:
        return self.attrs.get(name)

    def inner_text(self) -> str:
        return self.text

    def is_visible(self) -> bool:
        return self.visible

    def is_enabled(self) -> bool:
        return self.enabled

    def evaluate(self, expression: str, arg: Any = None) -> Any:
        if "closest" in expression and isinstance(arg, str):
            return self.inside_affordance
        self.evaluated.append((expression, arg))
        if self.on_evaluate is not None:
            return self.on_evaluate(expression, arg)
        return self.evaluate_return

    def click(self, timeout: Optional[float] = None) -> None:
        if self.click_error is not None:
            raise self.click_error
        self.clicks += 1

    def dispatch_event(self, event_type: str) -> None:
        self.dispatched.append(event_type)


class FakePage:
    """Maps selectors to element lists; values may be callables or exceptions."""

    def __init__(self, dom: Optional[Dict[str, Any]] = None, url: str = "https://example.test/"):
        self.dom: Dict[str, Any] = dict(dom or {})
        self.url = url
        self.queries: List[str] = []
        self.bindings: Dict[str, Callable] = {}
        self.listeners: Dict[str, List[Callable]] = {}

    def query_selector_all(self, selector: str) -> List[FakeElement]:
        self.queries.append(selector)
        value = self.dom.get(selector, [])
        if isinstance(value, Exception):
            raise value
        if callable(value):
            value = value()
        return list(value or [])

    def query_selector(self, selector: str) -> Optional[FakeElement]:
        matches = self.query_selector_all(selector)
        return matches[0] if matches else None

    def expose_binding(self, name: str, callback: Callable) -> None:
        if name in self.bindings:
            raise PlaywrightError(f'Function "{name}" has been already registered')
        self.bindings[name] = callback

    def on(self, event: str, callback: Callable) -> None:
        self.listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Callable) -> None:
        self.listeners.get(event, []).remove(callback)


class FakeEditor:
    """Stands in for ``EditorHandle``; keeps the editor's text in memory."""

    def __init__(
        self,
        kind: EditorKind = EditorKind.STRUCTURED,
        text: str = "",
        placeholder: bool = False,
        drop_keystrokes: int = 0,
        fail_appends: int = 0,
    ):
        self._kind = kind
        self.text = text
        self.placeholder = placeholder
        self.drop_keystrokes = drop_keystrokes
        self.fail_appends = fail_appends
        self.keystrokes: List[str] = []
        self.typed: List[str] = []
        self.replacements: List[str] = []

    def kind(self) -> EditorKind:
        return self._kind

    def read_text(self) -> str:
        return self.text

    def has_placeholder(self, markers) -> bool:
        return self.placeholder and bool(markers)

    def clear_placeholder(self) -> None:
        self.placeholder = False
        self.text = ""

    def replace_text(self, text: str) -> None:
        self.replacements.append(text)
        self.placeholder = False
        self.text = text

    def append_text(self, text: str) -> None:
        if self.fail_appends > 0:
            self.fail_appends -= 1
            self.text += text[: len(text) // 2]
            raise RuntimeError("editor rejected the insert")
        self.text += text

    def move_caret_to_end(self) -> None:
        return None

    def type_keystroke(self, char: str) -> None:
        self.keystrokes.append(char)
        if self.drop_keystrokes > 0:
            self.drop_keystrokes -= 1
            return
        self.text += char

    def type_sequence(self, text: str) -> None:
        self.typed.append(text)
        self.text += text


class RecordingNotifier:
    def __init__(self):
        self.messages: List[tuple] = []

    def notify(self, message: str, severity: str = "info") -> None:
        self.messages.append((severity, message))

    def severities(self) -> List[str]:
        return [severity for severity, _ in self.messages]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def loop(clock):
    return TimerLoop(clock=clock, sleeper=clock.advance)


@pytest.fixture
def profile():
    return SiteProfile(
        site="Test",
        hostnames=("example.test",),
        containers=("div.composer",),
        editors=("div.editor",),
        submit_controls=("button.send",),
        stop_controls=("button.stop",),
        placeholder_markers=("p.placeholder",),
    )


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture(autouse=True)
def _stop_active_monitor():
    yield
    monitor = resiliency.active_monitor()
    if monitor is not None:
        monitor.stop()
