# =============================================================================
# fulltech_core/config.py
# Configuration for the offline cache & sync layer
# =============================================================================
"""
Offline configuration.

Values are resolved in this order:
1. ``st.secrets["offline"]`` (``.streamlit/secrets.toml``)
2. ``FULLTECH_*`` environment variables
3. Built-in defaults

Expected secrets.toml format:
    [offline]
    base_url = "https://fulltech.example.com"
    cache_db_path = "local_data/fulltech_cache.db"
    sw_db_path = "local_data/fulltech_sw.db"
    cache_version = "v1.0.1"
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import streamlit as st

from fulltech_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "local_data"

DEFAULT_CRITICAL_RESOURCES = [
    "/",
    "/static/css/index.css",
    "/static/js/index.js",
    "https://fonts.googleapis.com/css2?family=Inter:wght@300;400;500;600;700&display=swap",
    "https://cdnjs.cloudflare.com/ajax/libs/font-awesome/6.0.0/css/all.min.css",
]

ENV_PREFIX = "FULLTECH_"


@dataclass(frozen=True)
class OfflineConfig:
    """Settings shared by the cache manager, sync layer and fetch router."""
    base_url: str = "http://localhost:5000"
    cache_db_path: str = str(DEFAULT_DATA_DIR / "fulltech_cache.db")
    sw_db_path: str = str(DEFAULT_DATA_DIR / "fulltech_sw.db")
    cache_version: str = "v1.0.1"
    critical_resources: List[str] = field(
        default_factory=lambda: list(DEFAULT_CRITICAL_RESOURCES)
    )
    retention_days: float = 7
    image_freshness_hours: float = 24
    max_retries: int = 3
    image_timeout: float = 10
    check_interval_online: float = 30
    check_interval_offline: float = 10
    connection_timeout: float = 5
    sync_lease_seconds: float = 60

    @property
    def static_cache(self) -> str:
        return f"fulltech-static-{self.cache_version}"

    @property
    def dynamic_cache(self) -> str:
        return f"fulltech-dynamic-{self.cache_version}"

    @property
    def image_cache(self) -> str:
        return f"fulltech-images-{self.cache_version}"

    @property
    def legacy_cache(self) -> str:
        return f"fulltech-{self.cache_version}"

    @property
    def retention_seconds(self) -> float:
        return self.retention_days * 24 * 60 * 60

    @property
    def image_freshness_seconds(self) -> float:
        return self.image_freshness_hours * 60 * 60

    def absolute_url(self, path_or_url: str) -> str:
        """Resolve a site-relative path against ``base_url``."""
        if path_or_url.startswith(("http://", "https://", "data:")):
            return path_or_url
        return self.base_url.rstrip("/") + "/" + path_or_url.lstrip("/")


def _coerce(name: str, raw: Any, default: Any) -> Any:
    """Convert a raw secrets/env value to the type of the default."""
    try:
        if isinstance(default, bool):
            return str(raw).lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, list):
            if isinstance(raw, str):
                return [item.strip() for item in raw.split(",") if item.strip()]
            return list(raw)
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value for '{name}': {raw!r}",
            config_key=name,
            expected_type=type(default).__name__,
        ) from e


def _load_secrets() -> Dict[str, Any]:
    """Read the [offline] table from Streamlit secrets, if configured."""
    try:
        if hasattr(st, "secrets") and "offline" in st.secrets:
            return dict(st.secrets["offline"])
    except Exception:
        # No secrets.toml - fall back to environment and defaults
        logger.debug("No Streamlit secrets available for offline config")
    return {}


def load_config(overrides: Optional[Dict[str, Any]] = None) -> OfflineConfig:
    """
    Build an OfflineConfig from secrets, environment and defaults.

    Args:
        overrides: Explicit values that win over every other source

    Returns:
        Validated OfflineConfig
    """
    config = OfflineConfig()
    secrets = _load_secrets()
    values: Dict[str, Any] = {}

    for f in fields(OfflineConfig):
        default = getattr(config, f.name)
        env_value = os.getenv(ENV_PREFIX + f.name.upper())
        if f.name in secrets:
            values[f.name] = _coerce(f.name, secrets[f.name], default)
        elif env_value is not None:
            values[f.name] = _coerce(f.name, env_value, default)

    if overrides:
        values.update(overrides)

    config = replace(config, **values)
    _validate(config)
    return config


def _validate(config: OfflineConfig) -> None:
    if config.max_retries < 1:
        raise ConfigurationError("max_retries must be at least 1", config_key="max_retries")
    if config.image_timeout <= 0:
        raise ConfigurationError("image_timeout must be positive", config_key="image_timeout")
    if not config.base_url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"base_url must be an http(s) URL, got {config.base_url!r}",
            config_key="base_url",
        )
