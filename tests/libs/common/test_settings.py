"""Tests for settings loading from PEPPER_* environment variables."""

import pytest
from pydantic import ValidationError

from libs.common.settings import Settings, get_settings


def test_defaults_under_test_env():
    settings = get_settings()

    assert settings.is_test
    assert not settings.is_production
    assert settings.cache_backend == "memory"
    assert settings.max_memory_summary_chars == 100_000
    assert settings.short_history_max == 8
    assert settings.cache_history_limit == 20
    assert settings.cache_reload_limit == 60
    assert settings.recent_threads_max == 10


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def test_completion_key_accepts_legacy_name(monkeypatch):
    monkeypatch.setenv("DEEPSEEK_API_KEY", "sk-legacy")

    assert Settings().completion_api_key == "sk-legacy"


def test_prefixed_completion_key(monkeypatch):
    monkeypatch.setenv("PEPPER_COMPLETION_API_KEY", "sk-pepper")

    assert Settings().completion_api_key == "sk-pepper"


def test_cors_origins_parsed_from_string():
    settings = Settings(cors_origins="https://a.example, https://b.example")

    assert settings.cors_origins == ["https://a.example", "https://b.example"]


def test_history_limits_must_be_positive(monkeypatch):
    monkeypatch.setenv("PEPPER_CACHE_HISTORY_LIMIT", "0")

    with pytest.raises(ValidationError):
        Settings()
