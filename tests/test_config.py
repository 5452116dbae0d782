"""Tests for settings defaults, environment overrides and validation."""

import pytest
from pydantic import ValidationError

from throttle.core.config import AppSettings, LogSettings, Settings


def test_app_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("APP_RATE_LIMIT_REQUESTS", "APP_RATE_LIMIT_WINDOW_MS"):
        monkeypatch.delenv(name, raising=False)

    cfg = AppSettings()

    assert cfg.rate_limit_enabled is True
    assert cfg.rate_limit_requests == 60
    assert cfg.rate_limit_window_ms == 60_000
    assert cfg.rate_limit_idle_windows == 2
    assert cfg.rate_limit_sweep_interval_ms == 60_000


def test_app_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_RATE_LIMIT_REQUESTS", "5")
    monkeypatch.setenv("APP_RATE_LIMIT_WINDOW_MS", "2500")
    monkeypatch.setenv("APP_RATE_LIMIT_ENABLED", "false")

    cfg = AppSettings()

    assert cfg.rate_limit_requests == 5
    assert cfg.rate_limit_window_ms == 2500
    assert cfg.rate_limit_enabled is False


@pytest.mark.parametrize(
    "field",
    [
        "rate_limit_requests",
        "rate_limit_window_ms",
        "rate_limit_max_buckets",
        "rate_limit_idle_windows",
    ],
)
def test_non_positive_rate_limit_values_rejected(field: str) -> None:
    with pytest.raises(ValidationError):
        AppSettings(**{field: 0})


def test_log_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_FORMAT", "plain")
    monkeypatch.setenv("LOG_REQUEST_ID_HEADER", "X-Correlation-ID")

    cfg = LogSettings()

    assert cfg.format == "plain"
    assert cfg.request_id_header == "X-Correlation-ID"


def test_settings_compose_groups() -> None:
    cfg = Settings()

    assert isinstance(cfg.app, AppSettings)
    assert isinstance(cfg.log, LogSettings)
