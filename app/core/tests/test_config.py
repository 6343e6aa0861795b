"""Tests for application configuration."""

import pytest
from pydantic import ValidationError

from app.core.config import Settings, get_settings


def test_settings_has_defaults():
    """Settings should have sensible defaults."""
    settings = Settings()

    assert settings.app_name == "SaaS Analytics"
    assert settings.app_env == "development"
    assert settings.log_format == "json"
    assert settings.api_port == 8123


def test_analytics_defaults():
    """Analytics bounds and cache defaults."""
    settings = Settings()

    assert settings.analytics_default_timeframe == 6
    assert settings.analytics_max_timeframe == 12
    assert settings.analytics_default_trend_days == 30
    assert settings.analytics_max_trend_days == 365
    assert settings.analytics_top_categories_limit == 5
    assert settings.analytics_cache_backend == "memory"
    assert settings.analytics_cache_ttl_seconds == 600


def test_settings_environment_properties():
    """is_* properties follow app_env."""
    assert Settings(app_env="development").is_development is True
    assert Settings(app_env="testing").is_testing is True
    production = Settings(app_env="production")
    assert production.is_production is True
    assert production.is_development is False


def test_get_settings_returns_singleton():
    """get_settings should return cached singleton."""
    assert get_settings() is get_settings()


def test_settings_from_environment(monkeypatch):
    """Settings should load from environment variables."""
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("ANALYTICS_CACHE_BACKEND", "none")
    monkeypatch.setenv("ANALYTICS_FETCH_TIMEOUT_SECONDS", "2.5")

    settings = Settings()

    assert settings.app_name == "TestApp"
    assert settings.analytics_cache_backend == "none"
    assert settings.analytics_fetch_timeout_seconds == 2.5


@pytest.mark.parametrize("timeout", [0, -1.0])
def test_fetch_timeout_must_be_positive(timeout):
    """Non-positive fetch timeouts are rejected."""
    with pytest.raises(ValidationError, match="analytics_fetch_timeout_seconds"):
        Settings(analytics_fetch_timeout_seconds=timeout)


def test_unknown_cache_backend_rejected():
    """Cache backend is a closed set."""
    with pytest.raises(ValidationError):
        Settings(analytics_cache_backend="memcached")  # type: ignore[arg-type]
