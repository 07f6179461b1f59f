import importlib
import sys

import pytest

STRONG_KEY = "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"


def reload_config_module():
    config_module = sys.modules.get("app.config")
    if config_module:
        config_module.get_settings.cache_clear()
        sys.modules.pop("app.config", None)
    return importlib.import_module("app.config")


def test_missing_secret_key_fails_closed(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="secret_key|SECRET_KEY"):
        config_module.get_settings()


def test_weak_secret_key_fails_closed(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "changeme-in-production")

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()

    with pytest.raises(Exception, match="secret_key|SECRET_KEY"):
        config_module.get_settings()


def test_strong_secret_key_passes(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_KEY)

    config_module = reload_config_module()
    config_module.get_settings.cache_clear()
    settings = config_module.get_settings()

    assert settings.secret_key
    assert settings.alert_mode == "phases"
    assert settings.phase_entry_window_seconds == 120.0
    assert settings.pre_entry_lead_seconds == 60.0


def test_unknown_alert_mode_fails(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_KEY)
    monkeypatch.setenv("ALERT_MODE", "whenever")

    config_module = reload_config_module()

    with pytest.raises(Exception, match="ALERT_MODE"):
        config_module.get_settings()


def test_legacy_alert_mode_is_accepted(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_KEY)
    monkeypatch.setenv("ALERT_MODE", "legacy")

    config_module = reload_config_module()

    assert config_module.get_settings().alert_mode == "legacy"


@pytest.mark.parametrize("interval", ["0", "-5", "61"])
def test_poll_interval_must_fit_entry_window(monkeypatch, interval):
    monkeypatch.setenv("SECRET_KEY", STRONG_KEY)
    monkeypatch.setenv("ALERT_POLL_INTERVAL_SECONDS", interval)

    config_module = reload_config_module()

    with pytest.raises(Exception, match="ALERT_POLL_INTERVAL_SECONDS"):
        config_module.get_settings()


def test_poll_interval_scales_with_entry_window(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", STRONG_KEY)
    monkeypatch.setenv("PHASE_ENTRY_WINDOW_SECONDS", "300")
    monkeypatch.setenv("ALERT_POLL_INTERVAL_SECONDS", "120")

    config_module = reload_config_module()

    assert config_module.get_settings().alert_poll_interval_seconds == 120.0
