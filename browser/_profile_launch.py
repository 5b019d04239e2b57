"""Utilities for launching Playwright with persistent per-site profiles.

Chat sites need a logged-in session, so every run reuses a Chromium profile
directory per site. ``launch_persistent`` hands back the Playwright driver and
context alongside the page; pass both to ``shutdown`` when the relay exits.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional, Tuple
from urllib.parse import urlparse

from playwright.sync_api import BrowserContext, Page, Playwright, sync_playwright
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PWTimeoutError

PROFILES_ROOT = Path("profiles")
DEFAULT_ACTION_TIMEOUT_MS = 10000
SETTLE_TIMEOUT_MS = 10000


def _site_env_suffix(site: str) -> str:
    suffix = re.sub(r"[^A-Z0-9]+", "_", site.upper()).strip("_")
    return suffix or "DEFAULT"


def _slugify_identifier(value: str, fallback: str = "profile") -> str:
    tokens = re.findall(r"[a-z0-9]+", value.lower())
    slug = "_".join(tokens).strip("_")
    return slug[:60] if slug else fallback


def resolve_headless_preference(requested: bool) -> bool:
    env_value = os.environ.get("RELAY_HEADLESS")
    if env_value is not None:
        normalized = env_value.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
        print(f"  • Unrecognized RELAY_HEADLESS value '{env_value}', using {'headless' if requested else 'visible'} browser.")
    return requested


def resolve_profile_dir(site: str, explicit: Optional[str] = None) -> str:
    """Pick the profile directory for ``site``.

    Precedence: explicit argument, ``RELAY_PROFILE_DIR_<SITE>``,
    ``RELAY_PROFILE_DIR``, then ``<root>/<site slug>`` where root is
    ``RELAY_PROFILE_ROOT`` or ``./profiles``. Relative paths land under root.
    """
    root_override = os.environ.get("RELAY_PROFILE_ROOT")
    base_root = Path(root_override).expanduser() if root_override else PROFILES_ROOT

    env_specific = os.environ.get(f"RELAY_PROFILE_DIR_{_site_env_suffix(site)}")
    env_global = os.environ.get("RELAY_PROFILE_DIR")
    candidate = (
        (explicit or "").strip()
        or (env_specific or "").strip()
        or (env_global or "").strip()
        or _slugify_identifier(site)
    )

    candidate_path = Path(candidate).expanduser()
    target = candidate_path if candidate_path.is_absolute() else base_root / candidate_path
    if env_specific and not explicit:
        print(f"🔐 Using custom profile directory for {site}: {target}")
    elif env_global and not explicit:
        print(f"🔐 Using shared profile directory override: {target}")
    return str(target)


def _pick_page(context: BrowserContext, start_url: Optional[str]) -> Page:
    """Prefer a restored tab already on the chat host, then any tab, then a new one."""
    target_host = urlparse(start_url or "").hostname
    pages = list(context.pages)
    if target_host:
        for page in pages:
            if urlparse(page.url or "").hostname == target_host:
                return page
    return pages[0] if pages else context.new_page()


def _settle(page: Page, start_url: Optional[str]) -> None:
    if start_url and urlparse(page.url or "").hostname != urlparse(start_url).hostname:
        try:
            page.goto(start_url, wait_until="domcontentloaded")
        except PlaywrightError as exc:
            print(f"  • Initial navigation to {start_url} failed: {exc}")
            return
    try:
        page.wait_for_load_state("networkidle", timeout=SETTLE_TIMEOUT_MS)
    except PWTimeoutError:
        # chat sites keep sockets open; networkidle often never arrives
        pass


def launch_persistent(
    start_url: Optional[str],
    profile_dir: str,
    *,
    headless: bool = False,
) -> Tuple[Playwright, BrowserContext, Page]:
    """Open the site's Chromium profile and return a settled page on ``start_url``.

    A restored tab that is already on the chat host is reused as is, so a
    half-written draft or an open conversation survives a relay restart.
    """
    profile_path = Path(profile_dir)
    profile_path.mkdir(parents=True, exist_ok=True)

    playwright = sync_playwright().start()
    try:
        context = playwright.chromium.launch_persistent_context(str(profile_path), headless=headless)
    except PlaywrightError:
        playwright.stop()
        raise
    context.set_default_timeout(DEFAULT_ACTION_TIMEOUT_MS)

    page = _pick_page(context, start_url)
    page.bring_to_front()
    _settle(page, start_url)
    return playwright, context, page


def shutdown(playwright: Optional[Playwright], context: Optional[BrowserContext]) -> None:
    """Release what ``launch_persistent`` opened; the window may already be closed by the user."""
    try:
        if context:
            context.close()
    except PlaywrightError as exc:
        print(f"  • Browser context already gone: {exc}")
    finally:
        if playwright:
            playwright.stop()
