from __future__ import annotations

from pathlib import Path

from customsfees.settings import FeeSettings, normalize_display_mode


def test_defaults(monkeypatch):
    for name in (
        "CUSTOMS_FEES_DATA_ROOT",
        "CUSTOMS_FEES_DISPLAY_MODE",
        "CUSTOMS_FEES_DEFAULT_ORIGIN",
        "CUSTOMS_FEES_CACHE_BACKEND",
        "CUSTOMS_FEES_CACHE_TTL",
        "REDIS_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    settings = FeeSettings.from_env()
    assert settings == FeeSettings()
    assert settings.rules_path == Path(".") / "data" / "rules.json"


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("CUSTOMS_FEES_DATA_ROOT", str(tmp_path))
    monkeypatch.setenv("CUSTOMS_FEES_DISPLAY_MODE", "Breakdown")
    monkeypatch.setenv("CUSTOMS_FEES_DEFAULT_ORIGIN", " cn ")
    monkeypatch.setenv("CUSTOMS_FEES_CACHE_BACKEND", "REDIS")
    monkeypatch.setenv("CUSTOMS_FEES_CACHE_TTL", "30")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    settings = FeeSettings.from_env()
    assert settings.rules_path == tmp_path / "data" / "rules.json"
    assert settings.display_mode == "breakdown"
    assert settings.default_origin == "CN"
    assert settings.cache_backend == "redis"
    assert settings.cache_ttl == 30
    assert settings.redis_url == "redis://cache:6379/2"


def test_invalid_values_fall_back(monkeypatch, caplog):
    monkeypatch.setenv("CUSTOMS_FEES_DISPLAY_MODE", "itemised")
    monkeypatch.setenv("CUSTOMS_FEES_CACHE_BACKEND", "memcached")
    monkeypatch.setenv("CUSTOMS_FEES_CACHE_TTL", "soon")
    with caplog.at_level("WARNING"):
        settings = FeeSettings.from_env()
    assert settings.display_mode == "single"
    assert settings.cache_backend == "memory"
    assert settings.cache_ttl == 300
    assert "itemised" in caplog.text


def test_normalize_display_mode():
    assert normalize_display_mode(None) == "single"
    assert normalize_display_mode(" BREAKDOWN ") == "breakdown"
