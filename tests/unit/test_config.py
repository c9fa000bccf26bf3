# =============================================================================
# tests/unit/test_config.py
# Unit Tests for offline configuration
# =============================================================================

import pytest

from fulltech_core import config as config_module
from fulltech_core.config import OfflineConfig, load_config
from fulltech_core.errors import ConfigurationError


@pytest.fixture(autouse=True)
def no_secrets(monkeypatch):
    monkeypatch.setattr(config_module, "_load_secrets", lambda: {})


class TestOfflineConfig:
    """Test derived values"""

    def test_cache_names_follow_version(self):
        """Cache names include the cache version"""
        config = OfflineConfig(cache_version="v2")

        assert config.static_cache == "fulltech-static-v2"
        assert config.dynamic_cache == "fulltech-dynamic-v2"
        assert config.image_cache == "fulltech-images-v2"
        assert config.legacy_cache == "fulltech-v2"

    def test_default_retention_windows(self):
        """Default retention is 24 hours for images and 7 days otherwise"""
        config = OfflineConfig()

        assert config.retention_seconds == 7 * 24 * 3600
        assert config.image_freshness_seconds == 24 * 3600

    def test_absolute_url(self):
        """Relative URLs resolve against the base URL"""
        config = OfflineConfig(base_url="https://shop.example.com/")

        assert config.absolute_url("/api/products") == "https://shop.example.com/api/products"
        assert config.absolute_url("https://cdn.example.com/a.png") == "https://cdn.example.com/a.png"
        assert config.absolute_url("data:image/png;base64,AA") == "data:image/png;base64,AA"


class TestLoadConfig:
    """Test resolution from secrets, environment and defaults"""

    def test_defaults(self, monkeypatch):
        """Defaults apply when nothing is configured"""
        monkeypatch.delenv("FULLTECH_MAX_RETRIES", raising=False)

        config = load_config()

        assert config.max_retries == 3
        assert config.cache_version == "v1.0.1"

    def test_environment_overrides_defaults(self, monkeypatch):
        """Environment variables override defaults"""
        monkeypatch.setenv("FULLTECH_MAX_RETRIES", "5")
        monkeypatch.setenv("FULLTECH_CRITICAL_RESOURCES", "/, /static/app.css")

        config = load_config()

        assert config.max_retries == 5
        assert config.critical_resources == ["/", "/static/app.css"]

    def test_secrets_win_over_environment(self, monkeypatch):
        """Streamlit secrets take priority over the environment"""
        monkeypatch.setenv("FULLTECH_BASE_URL", "http://env.example.com")
        monkeypatch.setattr(
            config_module, "_load_secrets", lambda: {"base_url": "https://secrets.example.com"}
        )

        assert load_config().base_url == "https://secrets.example.com"

    def test_overrides_win(self, monkeypatch):
        """Explicit overrides take priority over everything"""
        monkeypatch.setenv("FULLTECH_MAX_RETRIES", "5")

        assert load_config({"max_retries": 1}).max_retries == 1

    def test_invalid_number_raises(self, monkeypatch):
        """Non-numeric values should fail with ConfigurationError"""
        monkeypatch.setenv("FULLTECH_IMAGE_TIMEOUT", "ten")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config()

        assert exc_info.value.details["config_key"] == "image_timeout"

    def test_invalid_base_url_raises(self):
        """Base URL without a scheme should fail"""
        with pytest.raises(ConfigurationError):
            load_config({"base_url": "ftp://example.com"})

    def test_zero_retries_rejected(self):
        """A retry ceiling of zero should be rejected"""
        with pytest.raises(ConfigurationError):
            load_config({"max_retries": 0})
