from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from gluco_tool.config import Settings


def test_settings_read_prefixed_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GLUCO_GEMINI_MODEL", "gemini-test")
    monkeypatch.setenv("GLUCO_LOG_FORMAT", "json")
    monkeypatch.delenv("GLUCO_GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("GEMINI_API_KEY", "k-123")
    settings = Settings()
    assert settings.gemini_model == "gemini-test"
    assert settings.log_format == "json"
    assert settings.gemini_api_key == "k-123"


def test_local_tz_configured_zone() -> None:
    zone = Settings(timezone="America/Argentina/Buenos_Aires").local_tz()
    assert zone.utcoffset(datetime(2025, 1, 1)) == timedelta(hours=-3)


def test_local_tz_unknown_zone_raises() -> None:
    with pytest.raises(ValueError):
        Settings(timezone="Mars/Olympus").local_tz()
