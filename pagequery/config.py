"""
Configuration for pagequery.

Settings come from the `pagequery:` section of config.yaml, with
environment variables overriding individual values:

    PAGEQUERY_BASE_URL       backend API base URL
    PAGEQUERY_CACHE_ENABLED  1/true/yes/on to enable the cache
    PAGEQUERY_CACHE_DIR      directory holding cache databases
    PAGEQUERY_LOG_DIR        directory for JSON Lines logs
"""

import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional, Union

import yaml

from .cache import FileCacheStore
from .client import HttpResourceClient

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config.yaml"

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class CacheConfig:
    enabled: bool = True
    db_name: str = "pagequery-cache"
    dir: str = "data/cache"


@dataclass
class LoggingConfig:
    console: bool = True
    file: bool = True
    dir: Optional[str] = None


@dataclass
class QueryConfig:
    """Settings for the orchestrator, its cache and its client."""
    base_url: str = "http://localhost:8010/api"
    timeout_seconds: Optional[float] = None
    headers: dict[str, str] = field(default_factory=dict)
    cache: CacheConfig = field(default_factory=CacheConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "QueryConfig":
        cache = data.get("cache") or {}
        logging_config = data.get("logging") or {}
        defaults = cls()
        return cls(
            base_url=data.get("base_url", defaults.base_url),
            timeout_seconds=data.get("timeout_seconds"),
            headers=dict(data.get("headers") or {}),
            cache=CacheConfig(
                enabled=bool(cache.get("enabled", defaults.cache.enabled)),
                db_name=cache.get("db_name", defaults.cache.db_name),
                dir=cache.get("dir", defaults.cache.dir),
            ),
            logging=LoggingConfig(
                console=bool(logging_config.get("console", defaults.logging.console)),
                file=bool(logging_config.get("file", defaults.logging.file)),
                dir=logging_config.get("dir"),
            ),
        )

    def apply_env(self, environ: Optional[dict] = None) -> "QueryConfig":
        """Override values from PAGEQUERY_* environment variables."""
        env = os.environ if environ is None else environ
        if env.get("PAGEQUERY_BASE_URL"):
            self.base_url = env["PAGEQUERY_BASE_URL"]
        if env.get("PAGEQUERY_CACHE_ENABLED"):
            self.cache.enabled = env["PAGEQUERY_CACHE_ENABLED"].strip().lower() in _TRUE_VALUES
        if env.get("PAGEQUERY_CACHE_DIR"):
            self.cache.dir = env["PAGEQUERY_CACHE_DIR"]
        if env.get("PAGEQUERY_LOG_DIR"):
            self.logging.dir = env["PAGEQUERY_LOG_DIR"]
        return self


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[dict] = None,
) -> QueryConfig:
    """
    Load config.yaml (project root by default).

    A missing file, or one without a `pagequery:` section, yields defaults.
    """
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    data = {}
    if config_path.exists():
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        data = raw.get("pagequery") or {}
    return QueryConfig.from_dict(data).apply_env(environ)


def build_cache_store(config: QueryConfig) -> FileCacheStore:
    return FileCacheStore(cache_dir=config.cache.dir, db_name=config.cache.db_name)


def build_client(config: QueryConfig) -> HttpResourceClient:
    return HttpResourceClient(
        base_url=config.base_url,
        headers=config.headers,
        timeout_seconds=config.timeout_seconds,
    )
