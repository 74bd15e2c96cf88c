"""
Configuration management for the quote feed service.

Settings come from the YAML config file first, then environment
variables (including a local .env) override individual values.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import os

import yaml
from dotenv import load_dotenv

from quotefeed.cache.policy import DEFAULT_TTL_CATALOG, DEFAULT_TTL_OVERLAY, DEFAULT_TTL_POOL

load_dotenv()


def _project_root() -> Path:
    """Return project root (parent of quotefeed package)."""
    return Path(__file__).resolve().parent.parent.parent


DEFAULT_CONFIG_PATH = _project_root() / "config" / "default.yaml"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class FeedConfig:
    """Configuration for the feed service."""

    # Storage
    database_url: str = "sqlite+aiosqlite:///./quotefeed.db"
    cache_backend: str = "memory"               # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"

    # Cache TTLs (seconds)
    catalog_ttl_seconds: int = DEFAULT_TTL_CATALOG   # categories rarely change
    pool_ttl_seconds: int = DEFAULT_TTL_POOL         # merged + shuffled content pools
    overlay_ttl_seconds: int = DEFAULT_TTL_OVERLAY   # per-user liked/saved sets

    # Share one rebuild between concurrent misses on the same key
    coalesce_rebuilds: bool = False

    # Pagination
    default_limit: int = 20
    max_limit: int = 100

    # Downstream HTTP caching
    anonymous_cache_control: str = "public, max-age=60, stale-while-revalidate=120"
    authenticated_cache_control: str = "private, max-age=30, stale-while-revalidate=60"
    categories_cache_control: str = "private, max-age=300"

    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, config_path: Optional[Path] = None) -> "FeedConfig":
        """Load configuration from YAML file."""
        path = config_path or DEFAULT_CONFIG_PATH
        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        storage_config = data.get('storage', {})
        cache_config = data.get('cache', {})
        ttl_config = cache_config.get('ttl', {})
        feed_config = data.get('feed', {})
        http_config = data.get('http', {})

        defaults = cls()
        return cls(
            database_url=storage_config.get('database_url', defaults.database_url),
            cache_backend=cache_config.get('backend', defaults.cache_backend),
            redis_url=cache_config.get('redis_url', defaults.redis_url),
            catalog_ttl_seconds=ttl_config.get('catalog', defaults.catalog_ttl_seconds),
            pool_ttl_seconds=ttl_config.get('pool', defaults.pool_ttl_seconds),
            overlay_ttl_seconds=ttl_config.get('overlay', defaults.overlay_ttl_seconds),
            coalesce_rebuilds=cache_config.get('coalesce_rebuilds', defaults.coalesce_rebuilds),
            default_limit=feed_config.get('default_limit', defaults.default_limit),
            max_limit=feed_config.get('max_limit', defaults.max_limit),
            anonymous_cache_control=http_config.get('anonymous_cache_control', defaults.anonymous_cache_control),
            authenticated_cache_control=http_config.get('authenticated_cache_control', defaults.authenticated_cache_control),
            categories_cache_control=http_config.get('categories_cache_control', defaults.categories_cache_control),
            log_level=data.get('log_level', defaults.log_level),
        )

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "FeedConfig":
        """Load YAML settings, then apply environment overrides."""
        config = cls.from_yaml(config_path)

        config.database_url = os.getenv("DATABASE_URL") or config.database_url
        config.cache_backend = os.getenv("CACHE_BACKEND", config.cache_backend).lower()
        config.redis_url = os.getenv("REDIS_URL") or config.redis_url
        config.catalog_ttl_seconds = int(os.getenv("CACHE_TTL_CATALOG", config.catalog_ttl_seconds))
        config.pool_ttl_seconds = int(os.getenv("CACHE_TTL_POOL", config.pool_ttl_seconds))
        config.overlay_ttl_seconds = int(os.getenv("CACHE_TTL_OVERLAY", config.overlay_ttl_seconds))
        config.coalesce_rebuilds = _env_bool("CACHE_COALESCE_REBUILDS", config.coalesce_rebuilds)
        config.log_level = os.getenv("LOG_LEVEL", config.log_level).upper()
        return config


# Global config instance
_config: Optional[FeedConfig] = None


def get_config() -> FeedConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = FeedConfig.load()
    return _config


def set_config(config: FeedConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
