"""Writing prompt text into a chat editor.

Editors come in two shapes: plain ``textarea``/``input`` controls that expose a
value, and structured ``contenteditable`` editors (ProseMirror, Quill, Lexical)
that keep their own model of the document and only notice changes that arrive
as input events. ``EditorHandle`` hides the DOM work behind a handful of named
operations; the strategies below only talk to that handle, which keeps them
testable without a browser.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from errors import InsertionFailed
from sites.profiles import SiteProfile

LARGE_PROMPT_THRESHOLD = 200
SHORT_PROMPT_LENGTH = 20
FINAL_KEYSTROKE_PAUSE = 0.1
VERIFY_PAUSE = 0.1
KEYSTROKE_DELAY_MS = 10


class EditorKind(Enum):
    PLAIN_VALUE = "plain_value"
    STRUCTURED = "structured"


_KIND_JS = """
(el) => (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') ? 'plain_value' : 'structured'
"""

_READ_TEXT_JS = """
(el) => (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') ? el.value : (el.innerText || '')
"""

_HAS_PLACEHOLDER_JS = """
(el, markers) => markers.some((marker) => {
    try { return el.matches(marker) || !!el.querySelector(marker); } catch (e) { return false; }
})
"""

_CLEAR_PLACEHOLDER_JS = """
(el) => { el.innerHTML = '<p><br></p>'; }
"""

_SET_VALUE_JS = """
(el, value) => {
    if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') {
        const proto = el.tagName === 'TEXTAREA' ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
        const descriptor = Object.getOwnPropertyDescriptor(proto, 'value');
        if (descriptor && descriptor.set) {
            descriptor.set.call(el, value);
        } else {
            el.value = value;
        }
        el.dispatchEvent(new Event('input', { bubbles: true }));
        el.dispatchEvent(new Event('change', { bubbles: true }));
    } else {
        el.innerText = value;
        el.dispatchEvent(new Event('input', { bubbles: true }));
    }
}
"""

_APPEND_STRUCTURED_JS = """
(el, text) => {
    el.focus();
    const range = document.createRange();
    range.selectNodeContents(el);
    range.collapse(false);
    const selection = window.getSelection();
    selection.removeAllRanges();
    selection.addRange(range);
    let inserted = false;
    try {
        inserted = document.execCommand('insertText', false, text);
    } catch (e) {
        inserted = false;
    }
    if (!inserted) {
        const current = selection.rangeCount > 0 ? selection.getRangeAt(0) : null;
        const node = document.createTextNode(text);
        if (current) {
            current.insertNode(node);
            current.setStartAfter(node);
            current.collapse(true);
        } else {
            el.appendChild(node);
        }
    }
    el.dispatchEvent(new Event('input', { bubbles: true }));
}
"""

_CARET_TO_END_JS = """
(el) => {
    el.focus();
    if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') {
        const length = el.value.length;
        el.setSelectionRange(length, length);
        return;
    }
    const range = document.createRange();
    range.selectNodeContents(el);
    range.collapse(false);
    const selection = window.getSelection();
    selection.removeAllRanges();
    selection.addRange(range);
}
"""


class EditorHandle:
    """Named editor operations over a Playwright element handle."""

    def __init__(self, element, page):
        self.element = element
        self.page = page
        self._kind: Optional[EditorKind] = None

    def kind(self) -> EditorKind:
        if self._kind is None:
            self._kind = EditorKind(self.element.evaluate(_KIND_JS))
        return self._kind

    def read_text(self) -> str:
        return self.element.evaluate(_READ_TEXT_JS) or ""

    def has_placeholder(self, markers) -> bool:
        if not markers or self.kind() is EditorKind.PLAIN_VALUE:
            return False
        return bool(self.element.evaluate(_HAS_PLACEHOLDER_JS, list(markers)))

    def clear_placeholder(self) -> None:
        self.element.evaluate(_CLEAR_PLACEHOLDER_JS)

    def replace_text(self, text: str) -> None:
        self.element.evaluate(_SET_VALUE_JS, text)

    def append_text(self, text: str) -> None:
        if self.kind() is EditorKind.PLAIN_VALUE:
            self.replace_text(self.read_text() + text)
        else:
            self.element.evaluate(_APPEND_STRUCTURED_JS, text)

    def move_caret_to_end(self) -> None:
        self.element.evaluate(_CARET_TO_END_JS)

    def type_keystroke(self, char: str) -> None:
        """Press one key through the page keyboard so the editor sees a real keydown/input/keyup."""
        self.move_caret_to_end()
        if char == "\n":
            # a bare Enter would submit on every supported site
            self.page.keyboard.press("Shift+Enter")
        else:
            self.page.keyboard.type(char)

    def type_sequence(self, text: str, delay_ms: int = KEYSTROKE_DELAY_MS) -> None:
        self.move_caret_to_end()
        lines = text.split("\n")
        for index, line in enumerate(lines):
            if line:
                self.page.keyboard.type(line, delay=delay_ms)
            if index < len(lines) - 1:
                self.page.keyboard.press("Shift+Enter")


@dataclass
class InsertionResult:
    strategy: str
    text: str
    verified: bool = True


def _ends_with(current: str, char: str) -> bool:
    if current.endswith(char):
        return True
    # structured editors report a trailing newline for the closing paragraph
    return char != "\n" and current.rstrip("\n").endswith(char)


class InsertionStrategy:
    name = "base"

    def __init__(self, sleep: Callable[[float], None] = time.sleep):
        self.sleep = sleep

    def prepare(self, editor, profile: SiteProfile) -> None:
        if editor.has_placeholder(profile.placeholder_markers):
            editor.clear_placeholder()

    def write(self, editor, text: str, baseline: str) -> bool:
        raise NotImplementedError

    def insert(self, editor, text: str, baseline: str, profile: SiteProfile) -> InsertionResult:
        attempts = 0
        while True:
            attempts += 1
            try:
                self.prepare(editor, profile)
                verified = self.write(editor, text, baseline)
                return InsertionResult(strategy=self.name, text=text, verified=verified)
            except Exception as exc:
                try:
                    editor.replace_text(baseline)
                except Exception as reset_exc:
                    raise InsertionFailed(f"Could not restore editor content: {reset_exc}") from exc
                if attempts >= 2:
                    raise InsertionFailed(f"{self.name} insertion failed: {exc}") from exc
                print(f"  • {self.name} insertion failed ({exc}); editor restored, retrying.")


class PlainValueInsertion(InsertionStrategy):
    name = "plain_value"

    def prepare(self, editor, profile: SiteProfile) -> None:
        return None

    def write(self, editor, text: str, baseline: str) -> bool:
        target = baseline + text
        editor.replace_text(target)
        editor.move_caret_to_end()
        return editor.read_text() == target


class BulkInsertion(InsertionStrategy):
    name = "bulk"

    def write(self, editor, text: str, baseline: str) -> bool:
        editor.append_text(text)
        editor.move_caret_to_end()
        return True


class _FinalKeystrokeMixin:
    def finish_with_keystroke(self, editor, head: str, last: str, baseline: str) -> bool:
        editor.type_keystroke(last)
        self.sleep(VERIFY_PAUSE)
        if _ends_with(editor.read_text(), last):
            return True
        print(f"  • Final keystroke {last!r} did not stick; retyping once.")
        editor.replace_text(baseline + head)
        editor.type_keystroke(last)
        self.sleep(VERIFY_PAUSE)
        verified = _ends_with(editor.read_text(), last)
        if not verified:
            print(f"⚠️ Final character {last!r} still missing after retry.")
        return verified


class BulkWithFinalKeystroke(_FinalKeystrokeMixin, InsertionStrategy):
    name = "bulk_final_keystroke"

    def write(self, editor, text: str, baseline: str) -> bool:
        head, last = text[:-1], text[-1]
        if head:
            editor.append_text(head)
        if len(text) < SHORT_PROMPT_LENGTH:
            self.sleep(FINAL_KEYSTROKE_PAUSE)
        return self.finish_with_keystroke(editor, head, last, baseline)


class KeyByKeyInsertion(_FinalKeystrokeMixin, InsertionStrategy):
    name = "key_by_key"

    def write(self, editor, text: str, baseline: str) -> bool:
        head, last = text[:-1], text[-1]
        if head:
            editor.type_sequence(head)
        return self.finish_with_keystroke(editor, head, last, baseline)


def choose_strategy(
    kind: EditorKind,
    text: str,
    profile: SiteProfile,
    *,
    editor_empty: bool,
    auto_submit: bool,
    sleep: Callable[[float], None] = time.sleep,
) -> InsertionStrategy:
    if profile.simulate_typing:
        if len(text) > LARGE_PROMPT_THRESHOLD:
            return BulkWithFinalKeystroke(sleep)
        if editor_empty and auto_submit:
            return KeyByKeyInsertion(sleep)
        return BulkWithFinalKeystroke(sleep)
    if kind is EditorKind.PLAIN_VALUE:
        return PlainValueInsertion(sleep)
    return BulkInsertion(sleep)


def insert_text(
    editor,
    text: str,
    profile: SiteProfile,
    *,
    auto_submit: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> InsertionResult:
    """Insert ``text`` after whatever the editor already holds.

    ``editor`` is an ``EditorHandle`` (or anything exposing the same
    operations). Raises ``InsertionFailed`` when there is no editor or when the
    write failed twice; the editor is restored to its prior content between
    attempts so retries never duplicate text.
    """
    if editor is None:
        raise InsertionFailed(f"No editor available on {profile.site}")
    if not text:
        return InsertionResult(strategy="noop", text=text)

    try:
        kind = editor.kind()
        placeholder = editor.has_placeholder(profile.placeholder_markers)
        baseline = "" if placeholder else editor.read_text()
    except Exception as exc:
        raise InsertionFailed(f"Editor on {profile.site} is not readable: {exc}") from exc
    if kind is EditorKind.STRUCTURED:
        baseline = baseline.rstrip("\n") if baseline.strip() else ""

    strategy = choose_strategy(
        kind,
        text,
        profile,
        editor_empty=not baseline.strip(),
        auto_submit=auto_submit,
        sleep=sleep,
    )
    print(f"  • Inserting {len(text)} chars on {profile.site} via {strategy.name}")
    return strategy.insert(editor, text, baseline, profile)
