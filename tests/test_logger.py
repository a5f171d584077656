import logging

from app.utils.logger import get_logger


def test_level_defaults_to_settings(monkeypatch, settings):
    monkeypatch.setattr(settings, "log_level", "debug")
    assert get_logger("fusion_bridge.tests.settings_level").level == logging.DEBUG


def test_explicit_level_wins(monkeypatch, settings):
    monkeypatch.setattr(settings, "log_level", "DEBUG")
    assert get_logger("fusion_bridge.tests.explicit_level", "warning").level == logging.WARNING


def test_handler_is_added_once():
    first = get_logger("fusion_bridge.tests.single_handler")
    second = get_logger("fusion_bridge.tests.single_handler")
    assert first is second
    assert len(second.handlers) == 1
