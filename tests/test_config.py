"""Tests for environment-driven settings."""
from __future__ import annotations

import pytest

from campus_exchange.core.config import (
    DEFAULT_GEOLOCATION_URL,
    DEFAULT_STORAGE_PATH,
    _str_to_bool,
    load_settings,
)
from campus_exchange.core.exceptions import ConfigurationException


@pytest.mark.usefixtures("_campus_env")
class TestLoadSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.delenv("CAMPUS_STORAGE_PATH")

        settings = load_settings()

        assert settings.api_url == "https://api.campus.test"
        assert settings.storage_path == DEFAULT_STORAGE_PATH
        assert settings.redis_url is None
        assert settings.request_timeout is None
        assert settings.query_stale_time is None
        assert settings.geolocation.enabled is True
        assert settings.geolocation.url == DEFAULT_GEOLOCATION_URL
        assert settings.geolocation.default_country == "US"
        assert settings.log_level == "INFO"

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/3")
        monkeypatch.setenv("CAMPUS_REQUEST_TIMEOUT", "12.5")
        monkeypatch.setenv("CAMPUS_QUERY_STALE_TIME", "60")
        monkeypatch.setenv("CAMPUS_GEOLOCATION_ENABLED", "false")
        monkeypatch.setenv("CAMPUS_DEFAULT_COUNTRY", "fr")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        settings = load_settings()

        assert settings.storage_path == tmp_path / "storage.json"
        assert settings.redis_url == "redis://localhost:6379/3"
        assert settings.request_timeout == 12.5
        assert settings.query_stale_time == 60.0
        assert settings.geolocation.enabled is False
        assert settings.geolocation.default_country == "FR"
        assert settings.log_level == "DEBUG"

    def test_missing_api_url(self, monkeypatch):
        monkeypatch.delenv("CAMPUS_API_URL")

        with pytest.raises(ConfigurationException, match="CAMPUS_API_URL"):
            load_settings()

    def test_api_url_must_be_http(self, monkeypatch):
        monkeypatch.setenv("CAMPUS_API_URL", "ftp://campus.test")

        with pytest.raises(ConfigurationException):
            load_settings()

    @pytest.mark.parametrize("value", ["soon", "0", "-5"])
    def test_bad_timeout(self, monkeypatch, value):
        monkeypatch.setenv("CAMPUS_REQUEST_TIMEOUT", value)

        with pytest.raises(ConfigurationException, match="CAMPUS_REQUEST_TIMEOUT"):
            load_settings()


@pytest.mark.parametrize(
    "value, default, expected",
    [
        ("true", False, True),
        ("YES", False, True),
        ("0", True, False),
        ("", True, True),
        (None, False, False),
    ],
)
def test_str_to_bool(value, default, expected):
    assert _str_to_bool(value, default) is expected
