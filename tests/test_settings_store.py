"""Tests for the JSON settings store."""

import json
import os

import pytest

from conftest import FakePage
from resolver import TargetResolver
from settings_store import DEFAULT_BUTTONS, SettingsStore
from sites.profiles import ROLE_EDITOR, ROLE_SUBMIT, get_profile


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("RELAY_AUTO_SEND", "RELAY_QUEUE_MODE", "RELAY_QUEUE_DELAY_SECONDS", "RELAY_QUEUE_RANDOMIZE"):
        monkeypatch.delenv(name, raising=False)


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")


def test_missing_file_uses_defaults(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")

    assert store.get_auto_send_enabled() is True
    assert store.get_queue_mode_enabled() is False
    assert store.get_buttons() == DEFAULT_BUTTONS
    assert store.get_site_selector_overrides("ChatGPT") == {}
    delay = store.get_queue_delay_config()
    assert (delay.unit, delay.minutes, delay.randomize_enabled) == ("min", 5, False)


def test_corrupt_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    store = SettingsStore(path)

    assert store.get_auto_send_enabled() is True
    assert store.get_site_selector_overrides("Claude") == {}


def test_reads_buttons_and_delay(tmp_path):
    path = tmp_path / "settings.json"
    _write(
        path,
        {
            "global_auto_send": False,
            "buttons": [{"text": "Go on", "icon": "▶️", "auto_send": False}, {"icon": "no text"}],
            "queue_delay": {"unit": "sec", "seconds": 30, "randomize_enabled": True, "randomize_percent": 10},
        },
    )

    store = SettingsStore(path)

    assert store.get_auto_send_enabled() is False
    buttons = store.get_buttons()
    assert [(b.text, b.icon, b.auto_send) for b in buttons] == [("Go on", "▶️", False)]
    delay = store.get_queue_delay_config()
    assert (delay.unit, delay.seconds, delay.randomize_enabled, delay.randomize_percent) == ("sec", 30, True, 10)


def test_saved_overrides_are_prepended_and_deduplicated(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")

    assert store.save_site_selector_overrides("Example", ROLE_EDITOR, ["div.old"]) is True
    assert store.save_site_selector_overrides("Example", ROLE_EDITOR, ["div.new", "div.old"]) is True

    overrides = store.get_site_selector_overrides("Example")
    assert overrides == {ROLE_EDITOR: ["div.new", "div.old"]}
    assert store.get_site_selector_overrides("ChatGPT") == {}

    reloaded = SettingsStore(tmp_path / "settings.json")
    assert reloaded.get_site_selector_overrides("Example") == overrides


def test_first_saved_override_keeps_built_in_selectors(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    built_in = list(get_profile("ChatGPT").submit_controls)

    store.save_site_selector_overrides("ChatGPT", ROLE_SUBMIT, ["button.detected"])

    assert store.get_site_selector_overrides("ChatGPT") == {ROLE_SUBMIT: ["button.detected"] + built_in}
    resolver = TargetResolver(FakePage(), get_profile("ChatGPT"), store)
    assert resolver.selectors_for(ROLE_SUBMIT) == ("button.detected", *built_in)


def test_detected_selector_already_built_in_moves_to_front(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")

    store.save_site_selector_overrides("ChatGPT", ROLE_SUBMIT, ['button[type="submit"]'])

    saved = store.get_site_selector_overrides("ChatGPT")[ROLE_SUBMIT]
    assert saved[0] == 'button[type="submit"]'
    assert len(saved) == len(set(saved)) == len(get_profile("ChatGPT").submit_controls)


def test_reset_overrides(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")
    store.save_site_selector_overrides("Grok", ROLE_SUBMIT, ["button.go"])

    assert store.reset_site_selector_overrides("Grok") is True
    assert store.get_site_selector_overrides("Grok") == {}


def test_unknown_role_rejected(tmp_path):
    store = SettingsStore(tmp_path / "settings.json")

    with pytest.raises(KeyError):
        store.save_site_selector_overrides("Grok", "toolbar", ["div"])


def test_file_changes_are_picked_up(tmp_path):
    path = tmp_path / "settings.json"
    _write(path, {"queue_mode": False})
    store = SettingsStore(path)
    assert store.get_queue_mode_enabled() is False

    _write(path, {"queue_mode": True})
    stat = path.stat()
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))

    assert store.get_queue_mode_enabled() is True


def test_environment_overrides(tmp_path, monkeypatch):
    path = tmp_path / "settings.json"
    _write(path, {"global_auto_send": True, "queue_delay": {"unit": "min", "minutes": 10}})
    monkeypatch.setenv("RELAY_AUTO_SEND", "off")
    monkeypatch.setenv("RELAY_QUEUE_DELAY_SECONDS", "45")
    monkeypatch.setenv("RELAY_QUEUE_MODE", "yes")

    store = SettingsStore(path)

    assert store.get_auto_send_enabled() is False
    assert store.get_queue_mode_enabled() is True
    delay = store.get_queue_delay_config()
    assert (delay.unit, delay.seconds) == ("sec", 45)
