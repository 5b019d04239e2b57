"""JSON-backed settings with environment overrides.

The file is re-read whenever its modification time changes, so selector
overrides saved by the auto-detector (or edited by hand while a session is
running) take effect on the next resolution.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from sites.profiles import ROLES, get_profile

SETTINGS_PATH = Path(os.environ.get("RELAY_SETTINGS_PATH", "relay_settings.json"))

DEFAULT_DELAY_SECONDS = 300
DEFAULT_DELAY_MINUTES = 5
DEFAULT_RANDOMIZE_PERCENT = 5

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class PromptButton:
    text: str
    icon: str = ""
    auto_send: bool = True

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "PromptButton":
        return cls(
            text=str(raw.get("text", "")),
            icon=str(raw.get("icon", "")),
            auto_send=bool(raw.get("auto_send", True)),
        )


@dataclass
class QueueDelay:
    unit: str = "min"
    seconds: int = DEFAULT_DELAY_SECONDS
    minutes: int = DEFAULT_DELAY_MINUTES
    randomize_enabled: bool = False
    randomize_percent: int = DEFAULT_RANDOMIZE_PERCENT


DEFAULT_BUTTONS = [
    PromptButton(text="Please continue.", icon="▶️", auto_send=True),
    PromptButton(text="Summarize the conversation so far in five bullet points.", icon="📝", auto_send=True),
    PromptButton(text="Explain that again, more simply.", icon="💡", auto_send=False),
]


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    print(f"  • Unrecognized {name} value '{value}', ignoring.")
    return None


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError:
        print(f"  • Unrecognized {name} value '{value}', ignoring.")
        return None


class SettingsStore:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path is not None else SETTINGS_PATH
        self._cache: Dict[str, Any] = {}
        self._cache_mtime: Optional[float] = None

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            self._cache = {}
            self._cache_mtime = None
            return self._cache
        try:
            mtime = self.path.stat().st_mtime
            if self._cache_mtime == mtime:
                return self._cache
            raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {}
            if not isinstance(data, dict):
                raise ValueError("settings root must be a JSON object")
            self._cache = data
            self._cache_mtime = mtime
        except Exception as exc:
            print(f"  • Failed to read {self.path}: {exc}")
            self._cache = {}
            self._cache_mtime = None
        return self._cache

    def _save(self, data: Dict[str, Any]) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(data, indent=2, ensure_ascii=False)
            self.path.write_text(payload, encoding="utf-8")
        except Exception as exc:
            print(f"  • Failed to write {self.path}: {exc}")
            return False
        self._cache = data
        try:
            self._cache_mtime = self.path.stat().st_mtime
        except OSError:
            self._cache_mtime = None
        return True

    def get_site_selector_overrides(self, site: str) -> Dict[str, List[str]]:
        custom = self._load().get("custom_selectors") or {}
        site_overrides = custom.get(site) if isinstance(custom, dict) else None
        if not isinstance(site_overrides, dict):
            return {}
        cleaned: Dict[str, List[str]] = {}
        for role in ROLES:
            selectors = site_overrides.get(role)
            if isinstance(selectors, list):
                values = [str(item) for item in selectors if isinstance(item, str) and item.strip()]
                if values:
                    cleaned[role] = values
        return cleaned

    def save_site_selector_overrides(self, site: str, role: str, selectors: Sequence[str]) -> bool:
        """Put ``selectors`` in front of the saved list, or the built-in list when nothing is saved yet."""
        if role not in ROLES:
            raise KeyError(f"Unknown role '{role}'")
        data = dict(self._load())
        custom = dict(data.get("custom_selectors") or {})
        site_overrides = dict(custom.get(site) or {})
        current = site_overrides.get(role) or list(get_profile(site).selectors_for(role))
        existing = [item for item in current if item not in selectors]
        site_overrides[role] = list(selectors) + existing
        custom[site] = site_overrides
        data["custom_selectors"] = custom
        saved = self._save(data)
        if saved:
            print(f"💾 Saved {role} selectors for {site}: {list(selectors)}")
        return saved

    def reset_site_selector_overrides(self, site: str) -> bool:
        data = dict(self._load())
        custom = dict(data.get("custom_selectors") or {})
        if site not in custom:
            return True
        custom.pop(site)
        data["custom_selectors"] = custom
        return self._save(data)

    def get_queue_delay_config(self) -> QueueDelay:
        raw = self._load().get("queue_delay") or {}
        delay = QueueDelay()
        if isinstance(raw, dict):
            unit = str(raw.get("unit", delay.unit)).lower()
            delay.unit = unit if unit in {"sec", "min"} else delay.unit
            try:
                delay.seconds = int(raw.get("seconds", delay.seconds))
                delay.minutes = int(raw.get("minutes", delay.minutes))
                delay.randomize_percent = int(raw.get("randomize_percent", delay.randomize_percent))
            except (TypeError, ValueError) as exc:
                print(f"  • Invalid queue delay settings ({exc}); using defaults.")
                delay = QueueDelay()
            delay.randomize_enabled = bool(raw.get("randomize_enabled", delay.randomize_enabled))

        env_seconds = _env_int("RELAY_QUEUE_DELAY_SECONDS")
        if env_seconds is not None:
            delay.unit = "sec"
            delay.seconds = env_seconds
        env_randomize = _env_flag("RELAY_QUEUE_RANDOMIZE")
        if env_randomize is not None:
            delay.randomize_enabled = env_randomize
        return delay

    def get_auto_send_enabled(self) -> bool:
        env_value = _env_flag("RELAY_AUTO_SEND")
        if env_value is not None:
            return env_value
        return bool(self._load().get("global_auto_send", True))

    def get_queue_mode_enabled(self) -> bool:
        env_value = _env_flag("RELAY_QUEUE_MODE")
        if env_value is not None:
            return env_value
        return bool(self._load().get("queue_mode", False))

    def get_shortcuts_enabled(self) -> bool:
        return bool(self._load().get("enable_shortcuts", True))

    def get_buttons(self) -> List[PromptButton]:
        raw = self._load().get("buttons")
        if not isinstance(raw, list) or not raw:
            return list(DEFAULT_BUTTONS)
        buttons = [PromptButton.from_dict(item) for item in raw if isinstance(item, dict)]
        return [button for button in buttons if button.text] or list(DEFAULT_BUTTONS)
