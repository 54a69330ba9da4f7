"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

from homestock.config import get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("HOMESTOCK_PROCESSING_TIMEOUT", raising=False)
    get_settings.cache_clear()
    settings = get_settings()

    assert settings.default_unit == "piece"
    assert settings.processing_timeout_seconds == 300
    assert settings.reconcile_sweep_enabled is False
    assert settings.invite_code_ttl_days == 30
    assert settings.expiring_soon_days == 7


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("HOMESTOCK_DATABASE_PATH", str(tmp_path / "other.db"))
    monkeypatch.setenv("HOMESTOCK_PROCESSING_TIMEOUT", "42")
    monkeypatch.setenv("HOMESTOCK_SWEEP_ENABLED", "yes")
    monkeypatch.setenv("HOMESTOCK_SWEEP_BATCH_SIZE", "not-a-number")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.database_path == Path(tmp_path / "other.db")
    assert settings.processing_timeout_seconds == 42
    assert settings.reconcile_sweep_enabled is True
    assert settings.reconcile_sweep_batch_size == 50


def test_env_file_fallback(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("HOMESTOCK_DEFAULT_UNIT=each\n# comment\n", encoding="utf-8")
    monkeypatch.delenv("HOMESTOCK_DEFAULT_UNIT", raising=False)
    get_settings.cache_clear()

    assert get_settings().default_unit == "each"
