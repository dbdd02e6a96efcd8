from __future__ import annotations

import pytest

from fieldextract.config import AppConfig, get_config, parse_bool


def test_defaults_without_environment():
    cfg = AppConfig()

    assert cfg.offline_mode is True
    assert cfg.batch_size == 5
    assert cfg.max_retries == 3
    assert cfg.poll_interval_seconds == 3.0
    assert cfg.max_wait_seconds == 300.0
    assert cfg.max_files_per_request == 100
    assert cfg.allowed_origins == ["*"]
    assert cfg.enable_metrics is True
    cfg.validate_required()


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("BATCH_SIZE", "3")
    monkeypatch.setenv("INTER_BATCH_DELAY_SECONDS", "1.5")
    monkeypatch.setenv("ALLOWED_ORIGINS", "https://a.example, https://b.example ,")
    monkeypatch.setenv("ENABLE_METRICS", "off")

    cfg = get_config()

    assert cfg.offline_mode is False
    assert cfg.batch_size == 3
    assert cfg.rate_limit_delay_seconds == 1.5
    assert cfg.allowed_origins == ["https://a.example", "https://b.example"]
    assert cfg.enable_metrics is False
    assert "openai_api_key" not in cfg.summary()


def test_blank_api_key_means_offline(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "  ")
    assert AppConfig().offline_mode is True


def test_invalid_batch_size_rejected(monkeypatch):
    monkeypatch.setenv("BATCH_SIZE", "0")
    with pytest.raises(ValueError):
        AppConfig()


def test_inconsistent_delays_fail_validation(monkeypatch):
    monkeypatch.setenv("INITIAL_DELAY_SECONDS", "10")
    monkeypatch.setenv("MAX_DELAY_SECONDS", "5")
    with pytest.raises(RuntimeError, match="MAX_DELAY_SECONDS"):
        AppConfig().validate_required()


def test_parse_bool():
    assert parse_bool("Yes") is True
    assert parse_bool("0") is False
    assert parse_bool(None) is False
