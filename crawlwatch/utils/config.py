"""
Configuration management for the crawl and feed monitoring system.
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Dict, List, Any, Optional, Tuple
from dataclasses import dataclass, field, fields, replace

from ..errors import ConfigError


@dataclass(frozen=True)
class ScraperConfig:
    """Configuration for page fetching and traversal."""
    user_agent: str = "Mozilla/5.0 (compatible; CrawlWatch/1.0)"
    timeout_ms: int = 30000
    max_retries: int = 3
    retry_initial_delay_ms: int = 1000
    retry_max_delay_ms: int = 10000
    retry_backoff_factor: float = 2.0
    delay_between_requests_ms: int = 1000
    max_depth: int = 2
    max_pages_per_domain: int = 50
    max_content_chars: int = 50000
    max_links: int = 50
    resolve_relative_links: bool = False
    render_endpoint: Optional[str] = None
    proxy_endpoint: Optional[str] = None
    proxy_api_key: Optional[str] = None


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for the page cache."""
    backend: str = "memory"
    ttl_seconds: int = 24 * 60 * 60
    key_prefix: str = "scrape:"


@dataclass(frozen=True)
class ScoringConfig:
    """Keyword weight table and threshold for feed scoring."""
    keywords: Tuple[str, ...] = ()
    high_priority_keywords: Tuple[str, ...] = ()
    weight_high: float = 2.0
    weight_medium: float = 1.0
    title_bonus: float = 1.0
    threshold: float = 5.0


@dataclass(frozen=True)
class FeedConfig:
    """A monitored feed."""
    name: str
    url: str
    enabled: bool = True


@dataclass(frozen=True)
class StorageConfig:
    """Configuration for the persistence sink."""
    type: str = "file"
    directory: str = "data"


@dataclass(frozen=True)
class QueueConfig:
    """Configuration for crawl job dispatch."""
    backend: str = "memory"
    key: str = "crawlwatch:jobs"
    max_attempts: int = 3


@dataclass(frozen=True)
class RedisConfig:
    """Configuration for Redis."""
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


@dataclass(frozen=True)
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"
    file: str = "logs/crawlwatch.log"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass(frozen=True)
class Config:
    """Main configuration class."""
    scraper: ScraperConfig = field(default_factory=ScraperConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    feeds: Tuple[FeedConfig, ...] = ()
    storage: StorageConfig = field(default_factory=StorageConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    redis: RedisConfig = field(default_factory=RedisConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def _section(cls, data: Optional[Dict[str, Any]]):
    """Build a config section, rejecting unknown keys."""
    data = data or {}
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**data)


def build_config(config_data: Dict[str, Any]) -> Config:
    """Build a validated Config from a parsed mapping."""
    config_data = config_data or {}

    scoring_data = dict(config_data.get('scoring') or {})
    keywords = tuple(scoring_data.pop('keywords', ()) or ())
    high_priority = tuple(scoring_data.pop('high_priority_keywords', ()) or ())
    # High-priority keywords are always scored, even when missing from the list
    lowered = {k.lower() for k in keywords}
    keywords = keywords + tuple(k for k in high_priority if k.lower() not in lowered)
    scoring = _section(ScoringConfig, {
        **scoring_data,
        'keywords': keywords,
        'high_priority_keywords': high_priority,
    })

    feeds = tuple(_section(FeedConfig, feed) for feed in config_data.get('feeds') or [])

    config = Config(
        scraper=_section(ScraperConfig, config_data.get('scraper')),
        cache=_section(CacheConfig, config_data.get('cache')),
        scoring=scoring,
        feeds=feeds,
        storage=_section(StorageConfig, config_data.get('storage')),
        queue=_section(QueueConfig, config_data.get('queue')),
        redis=_section(RedisConfig, config_data.get('redis')),
        logging=_section(LoggingConfig, config_data.get('logging')),
        monitoring=_section(MonitoringConfig, config_data.get('monitoring')),
    )
    config = apply_env_overrides(config, os.environ)
    validate_config(config)
    return config


def apply_env_overrides(config: Config, env: Dict[str, str]) -> Config:
    """Apply the supported environment variable overrides."""
    scraper = config.scraper
    scoring = config.scoring

    if env.get('RSS_SCORE_THRESHOLD'):
        try:
            scoring = replace(scoring, threshold=float(env['RSS_SCORE_THRESHOLD']))
        except ValueError:
            raise ConfigError(f"RSS_SCORE_THRESHOLD is not a number: {env['RSS_SCORE_THRESHOLD']!r}")
    if env.get('PROXY_API_KEY'):
        scraper = replace(scraper, proxy_api_key=env['PROXY_API_KEY'])
    if env.get('RENDER_ENDPOINT'):
        scraper = replace(scraper, render_endpoint=env['RENDER_ENDPOINT'])

    return replace(config, scraper=scraper, scoring=scoring)


def validate_config(config: Config):
    """Validate configuration values."""
    scraper = config.scraper

    if scraper.timeout_ms <= 0:
        raise ConfigError("timeout_ms must be positive")

    if scraper.max_retries < 1:
        raise ConfigError("max_retries must be at least 1")

    if scraper.retry_initial_delay_ms < 0 or scraper.retry_max_delay_ms < 0:
        raise ConfigError("retry delays must be non-negative")

    if scraper.retry_backoff_factor < 1:
        raise ConfigError("retry_backoff_factor must be at least 1")

    if scraper.delay_between_requests_ms < 0:
        raise ConfigError("delay_between_requests_ms must be non-negative")

    if scraper.max_depth < 0:
        raise ConfigError("max_depth must be non-negative")

    for name in ('max_pages_per_domain', 'max_content_chars', 'max_links'):
        if getattr(scraper, name) < 1:
            raise ConfigError(f"{name} must be at least 1")

    if config.cache.backend not in ('memory', 'redis', 'none'):
        raise ConfigError("Cache backend must be 'memory', 'redis' or 'none'")

    if config.cache.ttl_seconds <= 0:
        raise ConfigError("Cache ttl_seconds must be positive")

    scoring = config.scoring
    if min(scoring.weight_high, scoring.weight_medium, scoring.title_bonus) < 0:
        raise ConfigError("Scoring weights must be non-negative")

    if config.storage.type not in ('file', 'none'):
        raise ConfigError("Storage type must be 'file' or 'none'")

    if config.queue.backend not in ('memory', 'redis'):
        raise ConfigError("Queue backend must be 'memory' or 'redis'")

    if config.queue.max_attempts < 1:
        raise ConfigError("Queue max_attempts must be at least 1")

    logging.getLogger(__name__).debug("Configuration validation passed")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}")

        if config_data is not None and not isinstance(config_data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        self._config = build_config(config_data or {})
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ConfigError("Configuration not loaded. Call load_config() first.")
        return self._config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    return ConfigManager(config_path).load_config()


def enabled_feeds(config: Config) -> List[FeedConfig]:
    """Return the feeds that scheduled checks should visit."""
    return [feed for feed in config.feeds if feed.enabled]
