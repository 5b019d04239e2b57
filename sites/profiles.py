"""Per-site selector profiles for the supported chat surfaces."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple
from urllib.parse import urlparse

ROLE_CONTAINER = "container"
ROLE_EDITOR = "editor"
ROLE_SUBMIT = "submit_control"
ROLE_STOP = "stop_control"

ROLES = (ROLE_CONTAINER, ROLE_EDITOR, ROLE_SUBMIT, ROLE_STOP)

UNKNOWN_SITE = "Unknown"


class ControlState(Enum):
    READY = "ready"
    BUSY = "busy"
    DISABLED = "disabled"


def classify_by_label(element, profile: "SiteProfile") -> ControlState:
    """Classify a submit control from its accessible label, test id and text.

    A control whose label mentions one of the profile's busy markers (``stop``
    on every supported site) is showing the "stop generating" face of the send
    button. Disabled controls report DISABLED, anything else is READY.
    """
    haystack = []
    for attribute in ("aria-label", "data-testid"):
        value = element.get_attribute(attribute)
        if value:
            haystack.append(value)
    try:
        text = element.inner_text()
    except Exception:
        text = ""
    if text:
        haystack.append(text)
    combined = " ".join(haystack).lower()
    if any(marker in combined for marker in profile.busy_markers):
        return ControlState.BUSY

    if element.get_attribute("disabled") is not None:
        return ControlState.DISABLED
    if (element.get_attribute("aria-disabled") or "").lower() == "true":
        return ControlState.DISABLED
    try:
        if not element.is_enabled():
            return ControlState.DISABLED
    except Exception:
        pass
    return ControlState.READY


@dataclass(frozen=True)
class SiteProfile:
    site: str
    hostnames: Tuple[str, ...]
    containers: Tuple[str, ...]
    editors: Tuple[str, ...]
    submit_controls: Tuple[str, ...]
    stop_controls: Tuple[str, ...] = ()
    affordance_id: str = ""
    placeholder_markers: Tuple[str, ...] = ()
    simulate_typing: bool = False
    busy_markers: Tuple[str, ...] = ("stop",)
    dispatch_poll_interval: Optional[float] = None
    dispatch_max_attempts: Optional[int] = None
    pre_dispatch_delay: float = 0.0
    require_editor_text: bool = False
    classify_control: Callable[[Any, "SiteProfile"], ControlState] = field(
        default=classify_by_label, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if not self.affordance_id:
            object.__setattr__(self, "affordance_id", f"{self.site.lower()}-custom-buttons-container")

    def selectors_for(self, role: str) -> Tuple[str, ...]:
        if role == ROLE_CONTAINER:
            return self.containers
        if role == ROLE_EDITOR:
            return self.editors
        if role == ROLE_SUBMIT:
            return self.submit_controls
        if role == ROLE_STOP:
            return self.stop_controls
        raise KeyError(f"Unknown role '{role}'")

    def with_overrides(self, overrides: Optional[Dict[str, Sequence[str]]]) -> "SiteProfile":
        """Return a new profile where each overridden role list replaces the default one."""
        if not overrides:
            return self
        changes: Dict[str, Tuple[str, ...]] = {}
        for role, attr in (
            (ROLE_CONTAINER, "containers"),
            (ROLE_EDITOR, "editors"),
            (ROLE_SUBMIT, "submit_controls"),
            (ROLE_STOP, "stop_controls"),
        ):
            selectors = overrides.get(role)
            if selectors:
                changes[attr] = tuple(str(selector) for selector in selectors if str(selector).strip())
        if not changes:
            return self
        return replace(self, **changes)

    def matches_host(self, hostname: str) -> bool:
        hostname = (hostname or "").lower()
        return any(host in hostname for host in self.hostnames)


PROSEMIRROR_PLACEHOLDERS = ("p.placeholder", "p.is-empty", "p.is-editor-empty")

DEFAULT_PROFILES: Dict[str, SiteProfile] = {
    profile.site: profile
    for profile in (
        SiteProfile(
            site="ChatGPT",
            hostnames=("chat.openai.com", "chatgpt.com"),
            containers=("div.flex.w-full.flex-col:has(textarea)",),
            editors=("div.ProseMirror#prompt-textarea", "div.ProseMirror"),
            submit_controls=(
                'button[data-testid="send-button"]',
                "button.send-button-class",
                'button[type="submit"]',
            ),
            stop_controls=('button[data-testid="stop-button"]', 'button[aria-label*="Stop"]'),
            placeholder_markers=PROSEMIRROR_PLACEHOLDERS,
            pre_dispatch_delay=0.5,
        ),
        SiteProfile(
            site="Claude",
            hostnames=("claude.ai",),
            containers=(
                "div.flex.flex-col.bg-bg-000.rounded-2xl",
                "div.flex.flex-col.bg-bg-000.gap-1\\.5",
            ),
            editors=('div.ProseMirror[contenteditable="true"]',),
            submit_controls=('button[aria-label="Send Message"]', 'button[aria-label="Send message"]'),
            stop_controls=('button[aria-label="Stop Response"]', 'button[aria-label*="Stop"]'),
            placeholder_markers=PROSEMIRROR_PLACEHOLDERS,
        ),
        SiteProfile(
            site="Copilot",
            hostnames=("copilot.microsoft.com", "github.com", "copilot"),
            containers=("div.shadow-composer-input",),
            editors=(
                "div.shadow-composer-input textarea#userInput",
                'textarea#userInput[placeholder="Message Copilot"]',
            ),
            submit_controls=(
                'button.rounded-submitButton[title="Submit message"]',
                'button[type="button"][title="Submit message"]',
            ),
            stop_controls=('button[title="Stop responding"]', 'button[aria-label*="Stop"]'),
            require_editor_text=True,
        ),
        SiteProfile(
            site="DeepSeek",
            hostnames=("chat.deepseek.com",),
            containers=("div.dd442025", '[class*="editorContainer"]'),
            editors=("textarea#chat-input", "div.b13855df", '[contenteditable="true"]'),
            submit_controls=(
                'div.bf38813a [role="button"]',
                "button:has(svg)",
                '[aria-label*="Send"]',
                '[data-testid="send-button"]',
            ),
            stop_controls=('[aria-label*="Stop"]',),
            dispatch_poll_interval=0.3,
            dispatch_max_attempts=15,
        ),
        SiteProfile(
            site="AIStudio",
            hostnames=("aistudio.google.com",),
            containers=("section.chunk-editor-main", "footer", "ms-chunk-editor-menu"),
            editors=(
                'ms-autosize-textarea textarea[aria-label="User text input"]',
                'textarea.textarea.gmat-body-medium[aria-label="Type something"]',
            ),
            submit_controls=(
                "button.run-button",
                'button[aria-label="Run"]',
                'run-button button[type="submit"]',
            ),
        ),
        SiteProfile(
            site="Gemini",
            hostnames=("gemini.google.com",),
            containers=("input-area-v2", "div.input-area-container", "input-container"),
            editors=('rich-textarea .ql-editor[contenteditable="true"]', "div.ql-editor"),
            submit_controls=(
                'button[aria-label="Send message"]',
                "button.send-button",
                'button[mattooltip="Send message"]',
            ),
            stop_controls=('button[aria-label="Stop response"]', "button.send-button.stop"),
            placeholder_markers=(".ql-blank",),
        ),
        SiteProfile(
            site="Grok",
            hostnames=("grok.com",),
            containers=(
                "form.bottom-0.w-full.text-base.flex.flex-col.gap-2.items-center.justify-center.relative.z-10",
            ),
            editors=(
                "textarea.w-full.bg-transparent.focus\\:outline-none.text-primary",
                'textarea[aria-label="Ask Grok anything"]',
                'div.ProseMirror[contenteditable="true"]',
            ),
            submit_controls=(
                'form button[type="submit"].group',
                'button[type="submit"][aria-label="Submit"]',
            ),
            stop_controls=('button[aria-label="Stop model response"]',),
            simulate_typing=True,
            pre_dispatch_delay=0.1,
            require_editor_text=True,
        ),
    )
}


def identify_site(url: str) -> str:
    hostname = urlparse(url or "").hostname or ""
    for profile in DEFAULT_PROFILES.values():
        if profile.matches_host(hostname):
            return profile.site
    return UNKNOWN_SITE


def get_profile(site: str) -> SiteProfile:
    profile = DEFAULT_PROFILES.get(site)
    if profile is None:
        # unknown sites start empty and rely on overrides or auto-detection
        return SiteProfile(site=site, hostnames=(), containers=(), editors=(), submit_controls=())
    return profile
