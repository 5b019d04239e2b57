"""Injecting the prompt button root into the chat page.

The buttons live in the page, the send logic lives here. Each button calls a
Playwright binding; the binding callback only schedules work on the timer loop,
so presses are handled one at a time between other timer callbacks.
"""

from __future__ import annotations

from typing import Callable, List, Optional

from resiliency import ResiliencyMonitor
from settings_store import PromptButton
from sites.profiles import ROLE_CONTAINER
from timers import TimerHandle, TimerLoop

BINDING_NAME = "__relayPromptClick"
CONTAINER_POLL_INTERVAL = 0.1
CONTAINER_MAX_ATTEMPTS = 50
NAVIGATION_DEBOUNCE = 1.0

_RENDER_JS = """
(container, args) => {
    const existing = document.getElementById(args.rootId);
    if (existing) existing.remove();
    const root = document.createElement('div');
    root.id = args.rootId;
    root.style.cssText = 'display:flex;flex-wrap:wrap;gap:6px;margin:6px 0;';
    args.buttons.forEach((button, index) => {
        const el = document.createElement('button');
        el.type = 'button';
        el.className = 'relay-prompt-button';
        el.textContent = button.icon || button.text.slice(0, 12);
        const shortcut = args.shortcuts && index < 10 ? `Alt+${(index + 1) % 10}: ` : '';
        el.title = shortcut + button.text;
        el.addEventListener('click', (event) => {
            event.preventDefault();
            event.stopPropagation();
            window[args.bindingName](index, !!event.shiftKey, 'button');
        });
        root.appendChild(el);
    });
    container.appendChild(root);
    if (args.shortcuts && !window.__relayShortcutsInstalled) {
        window.__relayShortcutsInstalled = true;
        window.addEventListener('keydown', (event) => {
            if (!event.altKey || !/^Digit[0-9]$/.test(event.code)) return;
            const digit = Number(event.code.slice(5));
            const index = digit === 0 ? 9 : digit - 1;
            const current = document.getElementById(args.rootId);
            if (!current || index >= current.children.length) return;
            event.preventDefault();
            window[args.bindingName](index, !!event.shiftKey, 'shortcut');
        }, true);
    }
    return root.children.length;
}
"""


class AffordanceInjector:
    def __init__(
        self,
        page,
        resolver,
        loop: TimerLoop,
        *,
        buttons_provider: Callable[[], List[PromptButton]],
        on_press: Callable[[int, bool, str], None],
        shortcuts_enabled: Callable[[], bool] = lambda: True,
        poll_interval: float = CONTAINER_POLL_INTERVAL,
        max_attempts: int = CONTAINER_MAX_ATTEMPTS,
    ):
        self.page = page
        self.resolver = resolver
        self.loop = loop
        self.buttons_provider = buttons_provider
        self.on_press = on_press
        self.shortcuts_enabled = shortcuts_enabled
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.root_id = resolver.profile.affordance_id
        self.monitor = ResiliencyMonitor(loop, self.exists, self._recover, name=self.root_id)
        self.injections = 0
        self._exposed = False
        self._wait: Optional[TimerHandle] = None
        self._attempts = 0

    def expose(self) -> None:
        if self._exposed:
            return
        self.page.expose_binding(BINDING_NAME, self._on_binding)
        self._exposed = True

    def _on_binding(self, source, index, shift=False, origin="button") -> None:
        self.loop.call_soon(self.on_press, int(index), bool(shift), str(origin))

    def exists(self) -> bool:
        try:
            return self.page.query_selector(f'[id="{self.root_id}"]') is not None
        except Exception:
            return False

    def inject(self, enable_resiliency: bool = True) -> None:
        """Wait for the site's container, render the button root into it, optionally arm the monitor."""
        self._cancel_wait()
        self._attempts = 0
        self._poll_container(enable_resiliency)

    def stop(self) -> None:
        self._cancel_wait()
        self.monitor.stop()

    def _cancel_wait(self) -> None:
        if self._wait is not None:
            self._wait.cancel()
            self._wait = None

    def _poll_container(self, enable_resiliency: bool) -> None:
        self._wait = None
        self._attempts += 1
        container = self.resolver.resolve(ROLE_CONTAINER)
        if container is not None:
            if self._render(container) and enable_resiliency:
                self.monitor.start()
            return
        if self._attempts >= self.max_attempts:
            print(f"❌ No button container found on {self.resolver.site} after {self._attempts} checks.")
            return
        self._wait = self.loop.call_later(self.poll_interval, self._poll_container, enable_resiliency)

    def _render(self, container) -> bool:
        buttons = self.buttons_provider()
        args = {
            "rootId": self.root_id,
            "bindingName": BINDING_NAME,
            "shortcuts": bool(self.shortcuts_enabled()),
            "buttons": [{"text": button.text, "icon": button.icon} for button in buttons],
        }
        try:
            count = container.evaluate(_RENDER_JS, args)
        except Exception as exc:
            print(f"❌ Rendering prompt buttons failed: {exc}")
            return False
        self.injections += 1
        print(f"🧩 Injected {count} prompt buttons into {self.resolver.site} (#{self.root_id})")
        return True

    def _recover(self) -> None:
        self.inject(enable_resiliency=False)


class NavigationWatcher:
    """Re-run injection after the single-page app changes its URL, debounced."""

    def __init__(
        self,
        page,
        loop: TimerLoop,
        on_change: Callable[[str], None],
        debounce: float = NAVIGATION_DEBOUNCE,
    ):
        self.page = page
        self.loop = loop
        self.on_change = on_change
        self.debounce = debounce
        self.last_url = ""
        self._pending: Optional[TimerHandle] = None

    def start(self) -> None:
        self.last_url = self.page.url
        self.page.on("framenavigated", self._on_frame_navigated)

    def stop(self) -> None:
        self.page.remove_listener("framenavigated", self._on_frame_navigated)
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _on_frame_navigated(self, frame) -> None:
        if frame.parent_frame is not None:
            return
        url = frame.url
        if url == self.last_url:
            return
        self.last_url = url
        if self._pending is not None:
            self._pending.cancel()
        self._pending = self.loop.call_later(self.debounce, self._fire, url)

    def _fire(self, url: str) -> None:
        self._pending = None
        print(f"🧭 Navigation detected: {url}")
        self.on_change(url)
