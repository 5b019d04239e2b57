# main.py
import argparse
import os
from typing import List, Optional

from dotenv import load_dotenv
from playwright.sync_api import Error as PlaywrightError

from affordance import AffordanceInjector, NavigationWatcher
from browser._profile_launch import launch_persistent, resolve_headless_preference, resolve_profile_dir, shutdown
from notifier import ConsoleNotifier
from queue_engine import DispatchScheduler, QueueItem
from resolver import TargetResolver
from selector_detector import SelectorAutoDetector
from settings_store import PromptButton, SettingsStore
from sites import HandlerRegistry, get_profile, identify_site
from sites.handlers import SendEvent, SiteHandler
from sites.profiles import UNKNOWN_SITE
from timers import TimerLoop

DEFAULT_START_URL = "https://chatgpt.com/"


class RelaySession:
    """Everything that runs against one chat page: buttons, watchdog, sender and queue."""

    def __init__(self, page, site: str, *, settings: SettingsStore, notifier, loop: TimerLoop):
        self.page = page
        self.site = site
        self.settings = settings
        self.notifier = notifier
        self.loop = loop

        profile = get_profile(site)
        self.resolver = TargetResolver(page, profile, settings)
        self.detector = SelectorAutoDetector(page, profile, settings)
        self.handler = SiteHandler(
            page,
            profile,
            settings=settings,
            notifier=notifier,
            resolver=self.resolver,
            detector=self.detector,
            clock=loop.now,
            sleep=loop.sleep,
        )
        self.registry = HandlerRegistry()
        self.registry.bind(site, self.handler)
        self.scheduler = DispatchScheduler(
            loop,
            self.registry,
            lambda: self.site,
            settings=settings,
            notifier=notifier,
        )
        self.injector = AffordanceInjector(
            page,
            self.resolver,
            loop,
            buttons_provider=settings.get_buttons,
            on_press=self.on_press,
            shortcuts_enabled=settings.get_shortcuts_enabled,
        )
        self.navigation = NavigationWatcher(page, loop, self.on_navigation)

    def start(self) -> None:
        self.injector.expose()
        self.injector.inject(enable_resiliency=True)
        self.navigation.start()

    def stop(self) -> None:
        self.scheduler.pause()
        self.injector.stop()
        try:
            self.navigation.stop()
        except Exception as exc:
            print(f"  • Failed to detach navigation listener: {exc}")

    def on_press(self, index: int, shift: bool, origin: str) -> None:
        buttons = self.settings.get_buttons()
        if index < 0 or index >= len(buttons):
            print(f"  • Ignoring press for unknown button #{index}")
            return
        button = buttons[index]
        if self.settings.get_queue_mode_enabled():
            self.scheduler.enqueue(QueueItem.from_button(button))
            return
        print(f"👆 {origin} press: {button.icon or button.text[:20]}")
        self.handler.send(SendEvent(shift_key=shift, auto_send=button.auto_send), button.text)

    def on_navigation(self, url: str) -> None:
        site = identify_site(url)
        if site not in (UNKNOWN_SITE, self.site):
            print(f"  • Navigated to {site}; restart the relay there to switch profiles.")
            return
        self.injector.inject(enable_resiliency=True)

    def queue_prompts(self, prompts: List[str]) -> None:
        for text in prompts:
            if not self.scheduler.enqueue(QueueItem.from_button(PromptButton(text=text))):
                break
        self.scheduler.start()


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inject one-click prompt buttons into a chat site.")
    parser.add_argument("url", nargs="?", default=os.environ.get("RELAY_START_URL", DEFAULT_START_URL))
    parser.add_argument("--site", help="Site profile to use when the URL is not recognised.")
    parser.add_argument("--profile-dir", help="Chromium profile directory to reuse.")
    parser.add_argument("--headless", action="store_true")
    parser.add_argument("--queue", action="append", default=[], metavar="PROMPT", help="Queue a prompt (repeatable).")
    parser.add_argument("--run-for", type=float, default=None, metavar="SECONDS")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    load_dotenv()
    args = _parse_args(argv)

    site = identify_site(args.url)
    if site == UNKNOWN_SITE and args.site:
        site = args.site
    print(f"🎯 Target: {args.url} ({site})")

    headless = resolve_headless_preference(args.headless)
    profile_dir = resolve_profile_dir(site, args.profile_dir)

    playwright = None
    context = None
    session = None
    try:
        playwright, context, page = launch_persistent(args.url, profile_dir, headless=headless)

        loop = TimerLoop(sleeper=lambda seconds: page.wait_for_timeout(seconds * 1000))
        session = RelaySession(page, site, settings=SettingsStore(), notifier=ConsoleNotifier(), loop=loop)
        session.start()
        if args.queue:
            session.queue_prompts(args.queue)

        print("🚀 Relay running. Press Ctrl+C to stop.")
        loop.run(until=lambda: page.is_closed(), timeout=args.run_for)
    except KeyboardInterrupt:
        print("\n👋 Stopping relay.")
    except PlaywrightError as exc:
        print(f"❌ Browser session ended: {exc}")
    finally:
        if session is not None:
            session.stop()
        shutdown(playwright, context)
    print("✅ Relay stopped.")


if __name__ == "__main__":
    main()
