"""Tests for recordfabric.config."""

from unittest.mock import AsyncMock

from recordfabric.config import JSONAPI_MEDIA_TYPE, ClientSettings, get_settings


def test_defaults():
    settings = ClientSettings(_env_file=None)

    assert settings.base_url == ""
    assert settings.default_headers == {"content-type": JSONAPI_MEDIA_TYPE}
    assert settings.max_retries == 0
    assert settings.enable_caching is True
    assert settings.cache_ttl_seconds is None
    assert settings.store_fetch is None
    assert settings.pre_request_hooks == []


def test_environment_variables(monkeypatch):
    monkeypatch.setenv("RECORDFABRIC_BASE_URL", "https://env.test")
    monkeypatch.setenv("RECORDFABRIC_MAX_RETRIES", "3")
    monkeypatch.setenv("RECORDFABRIC_ENABLE_CACHING", "false")
    monkeypatch.setenv("RECORDFABRIC_DEFAULT_HEADERS", '{"x-api-key": "secret"}')

    settings = ClientSettings(_env_file=None)

    assert settings.base_url == "https://env.test"
    assert settings.max_retries == 3
    assert settings.enable_caching is False
    assert settings.default_headers == {"x-api-key": "secret"}


def test_store_fetch_accepts_a_callable():
    strategy = AsyncMock()
    settings = ClientSettings(_env_file=None, store_fetch=strategy)
    assert settings.store_fetch is strategy


def test_get_settings_is_cached_and_resettable(monkeypatch):
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("RECORDFABRIC_BASE_URL", "https://reloaded.test")
    get_settings.cache_clear()

    reloaded = get_settings()
    assert reloaded is not first
    assert reloaded.base_url == "https://reloaded.test"
