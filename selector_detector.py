"""Recovering editor and submit selectors when every configured selector misses.

Sites ship new markup without warning. When the resolver comes back empty for
the editor or the submit control, the detector looks for a plausible element
with DOM heuristics (and, when enabled, by asking an LLM to read a DOM
snippet), derives a unique CSS selector for it and saves that selector as a
site override so the next resolution finds it directly.
"""

from __future__ import annotations

import json
import os
import re
import textwrap
from typing import Callable, List, Optional

from openai import OpenAI

from sites.profiles import ROLE_EDITOR, ROLE_SUBMIT, SiteProfile

LLM_MODEL = os.environ.get("RELAY_LLM_MODEL", "gpt-4o-mini")
DOM_SNIPPET_LIMIT = 12000

_LLM_PROMPT_TEMPLATE = textwrap.dedent(
    """
    You read DOM fragments from the chat site {site} and propose CSS selectors.

    Find {described}.
    Return a JSON array (max 5) of CSS selectors, most specific first.
    Prefer stable attributes (data-testid, aria-label, id) over generated class names.

    DOM SNIPPET (truncated):
    """
).strip() + "\n{dom_snapshot}"

_client: Optional[OpenAI] = None


def _openai_client() -> OpenAI:
    global _client
    if _client is None:
        _client = OpenAI()
    return _client


def _llm_enabled_from_env() -> bool:
    flag = os.environ.get("RELAY_LLM_SELECTORS", "").strip().lower() in {"1", "true", "yes", "on"}
    return flag and bool(os.environ.get("OPENAI_API_KEY"))


# lowest visible textarea/contenteditable on the page, as a unique selector
_DETECT_EDITOR_JS = """
(rootId) => {
    const candidates = [
        ...document.querySelectorAll('textarea'),
        ...document.querySelectorAll('div[contenteditable="true"]'),
    ].filter((el) => {
        if (rootId && el.closest(`[id="${rootId}"]`)) return false;
        const rect = el.getBoundingClientRect();
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0'
            && rect.width > 10 && rect.height > 10;
    });
    if (!candidates.length) return null;
    candidates.sort((a, b) => b.getBoundingClientRect().top - a.getBoundingClientRect().top);
    return window.__relayDeriveSelector ? window.__relayDeriveSelector(candidates[0]) : null;
}
"""

_DERIVE_SELECTOR_JS = """
(element) => {
    const ATTRIBUTES = ['data-testid', 'data-test', 'data-qa', 'aria-label', 'id', 'name', 'placeholder'];
    const CLASS_LIMIT = 3;
    const PATH_DEPTH_LIMIT = 4;
    const escape = (value) => (window.CSS && CSS.escape) ? CSS.escape(value) : String(value).replace(/"/g, '\\\\"');
    const unique = (selector) => {
        try { return document.querySelectorAll(selector).length === 1; } catch (e) { return false; }
    };
    const derive = (el) => {
        if (!el || !el.tagName) return null;
        const tag = el.tagName.toLowerCase();
        for (const attr of ATTRIBUTES) {
            const value = el.getAttribute(attr);
            if (!value) continue;
            const candidate = attr === 'id' ? `#${escape(value)}` : `${tag}[${attr}="${escape(value)}"]`;
            if (unique(candidate)) return candidate;
        }
        const classes = Array.from(el.classList || [])
            .filter((cls) => cls.length > 1 && !/^relay[-_]/i.test(cls))
            .slice(0, CLASS_LIMIT);
        if (classes.length) {
            const candidate = `${tag}.${classes.map(escape).join('.')}`;
            if (unique(candidate)) return candidate;
        }
        const segments = [];
        let node = el;
        let depth = 0;
        while (node && node.tagName && node.parentElement && depth < PATH_DEPTH_LIMIT) {
            const siblings = Array.from(node.parentElement.children).filter((c) => c.tagName === node.tagName);
            segments.unshift(`${node.tagName.toLowerCase()}:nth-of-type(${siblings.indexOf(node) + 1})`);
            const candidate = segments.join(' > ');
            if (unique(candidate)) return candidate;
            node = node.parentElement;
            depth += 1;
        }
        return null;
    };
    window.__relayDeriveSelector = derive;
    return derive(element);
}
"""

_DOM_SNIPPET_JS = """
(limit) => {
    const parts = [];
    for (const node of document.querySelectorAll('form, footer, [contenteditable="true"], textarea')) {
        const host = node.closest('form, footer') || node.parentElement || node;
        const html = host.outerHTML;
        if (!parts.includes(html)) parts.push(html);
        if (parts.join('\\n').length > limit) break;
    }
    return parts.join('\\n').slice(0, limit);
}
"""


def _extract_json_array(text: str) -> List[str]:
    """
    Pull the first JSON array from a model response. Returns [] on failure.
    """
    text = text.strip()
    start = text.find("[")
    end = text.rfind("]")
    if start != -1 and end != -1 and end > start:
        snippet = text[start : end + 1]
        try:
            data = json.loads(snippet)
            if isinstance(data, list):
                return data
        except Exception:
            return []
    return []


def _make_submit_locators() -> List[tuple]:
    """Return a prioritized list of locator builders for a send/submit control."""
    send_pattern = re.compile(r"\b(send|submit)\b", re.IGNORECASE)

    def labelled_button(page):
        return page.get_by_role("button", name=send_pattern)

    def submit_type(page):
        return page.locator("form button[type='submit']")

    def send_testid(page):
        return page.locator("[data-testid*='send' i]")

    def titled_button(page):
        return page.locator("button[title*='send' i], button[title*='submit' i]")

    options: List[tuple] = []
    seen: set[str] = set()

    def add(desc: str, builder: Callable) -> None:
        if desc in seen:
            return
        seen.add(desc)
        options.append((desc, builder))

    add("role=button[send|submit]", labelled_button)
    add("form button[type=submit]", submit_type)
    add("[data-testid*=send]", send_testid)
    add("button[title~=send|submit]", titled_button)
    return options


class SelectorAutoDetector:
    def __init__(self, page, profile: SiteProfile, settings, *, use_llm: Optional[bool] = None):
        self.page = page
        self.profile = profile
        self.settings = settings
        self.use_llm = _llm_enabled_from_env() if use_llm is None else use_llm

    def recover(self, role: str):
        """Find an element for ``role`` without the configured selectors and remember how."""
        if role not in (ROLE_EDITOR, ROLE_SUBMIT):
            return None
        print(f"🔎 Selectors for {role} missed on {self.profile.site}, trying auto-detection...")
        self._install_selector_builder()

        selector = self._heuristic_selector(role)
        if not selector and self.use_llm:
            selector = self._llm_selector(role)
        if not selector:
            print(f"  • Auto-detection found no {role} on {self.profile.site}")
            return None

        try:
            element = self.page.query_selector(selector)
        except Exception as exc:
            print(f"  • Detected selector {selector!r} is unusable: {exc}")
            return None
        if element is None:
            return None
        print(f"🧭 Auto-detected {role} on {self.profile.site}: {selector}")
        try:
            self.settings.save_site_selector_overrides(self.profile.site, role, [selector])
        except Exception as exc:
            print(f"  • Could not persist detected selector: {exc}")
        return element

    def _install_selector_builder(self) -> None:
        try:
            self.page.evaluate(_DERIVE_SELECTOR_JS, None)
        except Exception as exc:
            print(f"  • Selector builder install failed: {exc}")

    def _heuristic_selector(self, role: str) -> Optional[str]:
        if role == ROLE_EDITOR:
            try:
                return self.page.evaluate(_DETECT_EDITOR_JS, self.profile.affordance_id) or None
            except Exception as exc:
                print(f"  • Editor heuristics failed: {exc}")
                return None

        for desc, builder in _make_submit_locators():
            try:
                locator = builder(self.page)
                if locator.count() == 0:
                    continue
                target = locator.last
                if not target.is_visible():
                    continue
                handle = target.element_handle(timeout=1000)
                if handle is None:
                    continue
                selector = handle.evaluate(_DERIVE_SELECTOR_JS)
                if selector:
                    print(f"  • Submit control matched via {desc}")
                    return selector
            except Exception as exc:
                print(f"  • {desc} failed: {exc}")
        return None

    def _llm_selector(self, role: str) -> Optional[str]:
        try:
            dom_snapshot = self.page.evaluate(_DOM_SNIPPET_JS, DOM_SNIPPET_LIMIT) or ""
        except Exception as exc:
            print(f"  • DOM snapshot for selector recovery failed: {exc}")
            return None
        if not dom_snapshot:
            return None

        described = "the message input editor" if role == ROLE_EDITOR else "the button that sends the message"
        prompt = _LLM_PROMPT_TEMPLATE.format(site=self.profile.site, described=described, dom_snapshot=dom_snapshot)

        try:
            response = _openai_client().chat.completions.create(
                model=LLM_MODEL,
                messages=[
                    {"role": "system", "content": "Propose CSS selectors. Respond with JSON array only."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.1,
            )
            raw = response.choices[0].message.content or "[]"
        except Exception as exc:
            print(f"  • LLM selector recovery failed: {exc}")
            return None

        for candidate in _extract_json_array(raw):
            if not isinstance(candidate, str) or not candidate.strip():
                continue
            try:
                if self.page.query_selector(candidate.strip()) is not None:
                    print(f"🧠 LLM proposed {role} selector: {candidate.strip()}")
                    return candidate.strip()
            except Exception:
                continue
        return None
