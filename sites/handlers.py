"""Per-site send handler: insert the prompt, then (maybe) press submit."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from dispatcher import DispatchOutcome, DispatchProtocol, DispatchState
from errors import InsertionFailed
from insertion import EditorHandle, InsertionResult, insert_text
from resolver import TargetResolver
from sites.profiles import ROLE_EDITOR, ROLE_STOP, ROLE_SUBMIT, SiteProfile


@dataclass
class SendEvent:
    """What the caller knows about the press that triggered a send."""

    shift_key: bool = False
    from_queue: bool = False
    auto_send: bool = True


@dataclass
class DispatchRequest:
    text: str
    auto_submit: bool
    origin: str = "button"


@dataclass
class SendOutcome:
    request: DispatchRequest
    inserted: bool
    dispatch: Optional[DispatchOutcome] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        if not self.inserted:
            return False
        if self.request.auto_submit:
            return self.dispatch is not None and self.dispatch.ok
        return True


class SiteHandler:
    def __init__(
        self,
        page,
        profile: SiteProfile,
        *,
        settings=None,
        notifier=None,
        resolver: Optional[TargetResolver] = None,
        detector=None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.page = page
        self.profile = profile
        self.settings = settings
        self.notifier = notifier
        self.resolver = resolver or TargetResolver(page, profile, settings)
        self.detector = detector
        self.clock = clock
        self.sleep = sleep
        self._in_flight = False

    @property
    def site(self) -> str:
        return self.profile.site

    def _notify(self, message: str, severity: str) -> None:
        if self.notifier is not None:
            self.notifier.notify(message, severity)

    def _find(self, role: str):
        element = self.resolver.resolve(role)
        if element is None and self.detector is not None:
            element = self.detector.recover(role)
        return element

    def _editor(self) -> Optional[EditorHandle]:
        element = self._find(ROLE_EDITOR)
        return EditorHandle(element, self.page) if element is not None else None

    def _editor_has_text(self) -> bool:
        editor = self._editor()
        return editor is not None and bool(editor.read_text().strip())

    def insert(self, text: str, *, auto_submit: bool = False) -> InsertionResult:
        return insert_text(self._editor(), text, self.profile, auto_submit=auto_submit, sleep=self.sleep)

    def dispatch(self) -> DispatchOutcome:
        if self.detector is not None and self.resolver.resolve(ROLE_SUBMIT) is None:
            # stop control showing: the site is generating
            if self.resolver.resolve(ROLE_STOP) is None:
                self.detector.recover(ROLE_SUBMIT)
        pre_click = self._editor_has_text if self.profile.require_editor_text else None
        protocol = DispatchProtocol(
            self.resolver,
            self.profile,
            clock=self.clock,
            sleep=self.sleep,
            pre_click_check=pre_click,
        )
        return protocol.run()

    def resolve_auto_submit(self, event: SendEvent, force_auto_send: bool) -> bool:
        if force_auto_send:
            return True
        if self.settings is not None:
            try:
                if not self.settings.get_auto_send_enabled():
                    return False
            except Exception as exc:
                print(f"  • Auto-send setting unavailable, assuming enabled: {exc}")
        # shift inverts the button's own auto-send flag for this press
        return event.auto_send != event.shift_key

    def send(self, event: SendEvent, text: str, force_auto_send: bool = False) -> SendOutcome:
        request = DispatchRequest(
            text=text,
            auto_submit=self.resolve_auto_submit(event, force_auto_send),
            origin="queue" if event.from_queue else "button",
        )
        if self._in_flight:
            message = f"A prompt is already being sent on {self.site}; ignoring this one."
            self._notify(message, "warning")
            return SendOutcome(request=request, inserted=False, error=message)

        self._in_flight = True
        try:
            return self._send(request)
        finally:
            self._in_flight = False

    def _send(self, request: DispatchRequest) -> SendOutcome:
        print(f"📨 Sending {len(request.text)} chars on {self.site} (origin={request.origin}, auto={request.auto_submit})")
        try:
            self.insert(request.text, auto_submit=request.auto_submit)
        except InsertionFailed as exc:
            self._notify(f"Could not insert the prompt: {exc}", exc.severity)
            return SendOutcome(request=request, inserted=False, error=str(exc))

        if not request.auto_submit:
            return SendOutcome(request=request, inserted=True)

        if self.profile.pre_dispatch_delay > 0:
            self.sleep(self.profile.pre_dispatch_delay)
        outcome = self.dispatch()
        if not outcome.ok:
            if outcome.state is DispatchState.ABORTED:
                message = f"Send button not found on {self.site}."
            else:
                message = f"Send button on {self.site} never became ready."
            self._notify(message, "error")
            return SendOutcome(request=request, inserted=True, dispatch=outcome, error=outcome.reason)
        return SendOutcome(request=request, inserted=True, dispatch=outcome)
