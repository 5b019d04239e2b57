"""Target resolution: turn a named role into a live element on the page."""

from __future__ import annotations

from typing import Optional, Tuple

from playwright.sync_api import Error as PlaywrightError

from errors import ResolutionAbsent
from sites.profiles import SiteProfile

# true when the node sits inside the relay's own injected button root
_INSIDE_AFFORDANCE_JS = "(node, rootId) => !!(node.closest && node.closest(`[id=\"${rootId}\"]`))"


class TargetResolver:
    def __init__(self, page, profile: SiteProfile, settings=None):
        self.page = page
        self.profile = profile
        self.settings = settings

    @property
    def site(self) -> str:
        return self.profile.site

    def selectors_for(self, role: str) -> Tuple[str, ...]:
        """Override list for the role if one is configured, else the compiled-in list."""
        profile = self.profile
        if self.settings is not None:
            try:
                overrides = self.settings.get_site_selector_overrides(profile.site)
            except Exception as exc:
                print(f"  • Selector overrides unavailable for {profile.site}: {exc}")
                overrides = None
            profile = profile.with_overrides(overrides)
        return profile.selectors_for(role)

    def resolve(self, role: str):
        selectors = self.selectors_for(role)
        if not selectors:
            return None

        fallback = None
        for selector in selectors:
            try:
                matches = self.page.query_selector_all(selector)
            except PlaywrightError as exc:
                print(f"  • Skipping selector {selector!r} for {role}: {exc}")
                continue
            for element in matches:
                if self._inside_affordance(element):
                    continue
                if self._is_visible(element):
                    return element
                if fallback is None:
                    fallback = element
        return fallback

    def require(self, role: str):
        element = self.resolve(role)
        if element is None:
            raise ResolutionAbsent(role, self.profile.site)
        return element

    def exists(self, role: str) -> bool:
        return self.resolve(role) is not None

    def _inside_affordance(self, element) -> bool:
        try:
            return bool(element.evaluate(_INSIDE_AFFORDANCE_JS, self.profile.affordance_id))
        except Exception:
            return False

    @staticmethod
    def _is_visible(element) -> bool:
        try:
            return bool(element.is_visible())
        except Exception:
            return False
