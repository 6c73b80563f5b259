from __future__ import annotations

import logging

import pytest

from musterroll import config


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("debug", "DEBUG"),
        (" warning ", "WARNING"),
        ("LOUD", "INFO"),
        ("", "INFO"),
        (None, "INFO"),
    ],
)
def test_log_level_from_environment(monkeypatch, raw, expected):
    if raw is None:
        monkeypatch.delenv("LOG_LEVEL", raising=False)
    else:
        monkeypatch.setenv("LOG_LEVEL", raw)

    assert config.load_settings().log_level == expected


def test_configure_logging_ignores_unknown_level(monkeypatch):
    seen = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: seen.update(kwargs))

    config.configure_logging("LOUD")
    assert seen["level"] == config.settings.log_level

    config.configure_logging("error")
    assert seen["level"] == "ERROR"


def test_numeric_settings_fall_back_on_garbage(monkeypatch):
    monkeypatch.setenv("API_TIMEOUT_SECONDS", "soon")

    assert config.load_settings().api_timeout_seconds == 20
