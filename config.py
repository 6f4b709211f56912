#!/usr/bin/env python3
"""
Configuration management for the combined radio news feed.

This module centralizes configuration loading, validation, and logging setup.
It handles environment variables, the optional .env file, and the feeds file
(YAML, or the JSON config of the web client, which YAML also reads).

A Config is built once by the entry point and passed to the collaborators
that need it; the normalization pipeline itself never reads configuration.
"""

from os import environ, path, access, R_OK
from typing import Dict, Any, List, Optional
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import yaml
from dotenv import load_dotenv

from errors import ConfigError
from models import FeedFormat, FeedSource


def _setup_global_logger():
    """Setup a single global logger for the entire application.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    All modules should use get_logger() to create module-specific loggers that
    inherit this configuration.
    """
    level_str = environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = environ.get("LOG_TIMESTAMPS", "true").lower() != "false"

    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stdout)],
        force=True
    )

    # aiohttp access logs are noisy at INFO
    getLogger("aiohttp.access").setLevel(WARNING)

    return getLogger("RadioNews")


def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Args:
        name: The logger name (e.g., "fetcher", "proxy", "publisher")

    Returns:
        A logger named "RadioNews.{name}"
    """
    return getLogger(f"RadioNews.{name}")


logger = _setup_global_logger()

DEFAULT_TITLE = "Global Radio News"
DEFAULT_DESCRIPTION = "Combined feed of the latest news episodes from public radio stations worldwide"
DEFAULT_PODCAST_TIMEOUT_MS = 5000
DEFAULT_FEED_CACHE_TIME = 3600


def _pick(mapping: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present key, accepting snake_case and camelCase spellings."""
    for key in keys:
        if key in mapping and mapping[key] is not None:
            return mapping[key]
    return default


class Config:
    """Configuration for the fetcher, proxy, publisher and CLI.

    Loading order:
    1. Environment variables
    2. .env file next to this module (if present)
    3. The feeds file (FEEDS_CONFIG_PATH, or feeds.yaml next to this module)

    Example feeds.yaml:
    ```yaml
    settings:
      title: "Global Radio News"
      podcast_timeout: 5000
      allowed_domains: ["api.dr.dk", "sr.se"]
    podcasts:
      Denmark:
        flag: "🇩🇰"
        feeds:
          - id: radioavisen
            feed_url: https://api.dr.dk/podcasts/v1/feeds/radioavisen
            type: json
            requires_proxy: true
    ```
    """

    def __init__(self, feeds_path: Optional[str] = None):
        """Initialize configuration with environment variables and validation.

        Args:
            feeds_path: Optional explicit feeds file; overrides FEEDS_CONFIG_PATH.
        """
        self._load_environment()
        self._validate_and_set_config(feeds_path)
        self._load_feeds_file()

    def _load_environment(self):
        """Load environment variables from .env file if present."""
        dotenv_path = path.join(path.dirname(path.abspath(__file__)), '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.info(f"Loaded environment variables from {dotenv_path}")

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_positive_float(self, env_var: str, default: float, min_val: float = 0.1) -> float:
        """Validate and parse a positive float environment variable."""
        try:
            value = float(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _validate_and_set_config(self, feeds_path: Optional[str]):
        """Validate and set all environment-driven configuration values."""
        base_dir = path.dirname(path.abspath(__file__))

        self.FEEDS_CONFIG_PATH = feeds_path or environ.get("FEEDS_CONFIG_PATH", path.join(base_dir, "feeds.yaml"))
        self.USER_AGENT = environ.get("USER_AGENT", "GlobalRadioNews/1.0 (Combined Feed Generator)")
        self.PROXY_USER_AGENT = environ.get("PROXY_USER_AGENT", "Radio News App RSS Reader/1.0")

        # HTTP request configuration
        self.FETCH_RETRIES = self._validate_positive_int("FETCH_RETRIES", 0, 0)
        self.RETRY_DELAY_BASE = self._validate_positive_float("RETRY_DELAY_BASE", 0.5, 0.1)
        self.FETCH_CONCURRENCY = self._validate_positive_int("FETCH_CONCURRENCY", 5, 1)
        self.PROXY_TIMEOUT = self._validate_positive_int("PROXY_TIMEOUT", 30, 1)
        self.PROXY_MAX_REDIRECTS = self._validate_positive_int("PROXY_MAX_REDIRECTS", 3, 0)

        # File paths
        self.DATA_PATH = environ.get("DATA_PATH", base_dir)
        self.PLAYED_HISTORY_PATH = environ.get(
            "PLAYED_HISTORY_PATH", path.join(self.DATA_PATH, "played_episodes.json")
        )
        self.TEMPLATES_PATH = path.join(base_dir, "templates")

        # HTTP server
        self.SERVER_HOST = environ.get("SERVER_HOST", "127.0.0.1")
        self.SERVER_PORT = self._validate_positive_int("SERVER_PORT", 8080, 1)

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any:
        """Read a YAML (or JSON) file with consistent validation.

        Raises:
            ConfigError: If the file is missing, unreadable, too large or invalid.
        """
        if not path.isfile(file_path):
            raise ConfigError(f"{kind.capitalize()} file not found at {file_path}", file_path)
        if not access(file_path, R_OK):
            raise ConfigError(f"No read permission for {kind} file at {file_path}", file_path)
        size = path.getsize(file_path)
        if size > max_size:
            raise ConfigError(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)", file_path)
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Error parsing {kind} file {file_path}: {e}", file_path) from e
        except OSError as e:
            raise ConfigError(f"Error loading {kind} file {file_path}: {e}", file_path) from e
        if not isinstance(data, dict):
            raise ConfigError(f"{kind.capitalize()} file {file_path} must be a mapping at the top level", file_path)
        return data

    def _load_feeds_file(self) -> None:
        """Populate settings and podcast sources from the feeds file.

        Any failure is recorded in ``load_error`` and results in defaults
        with no sources, so callers can still render an (error) feed.
        """
        self.load_error: Optional[str] = None
        self.PODCASTS: Dict[str, Dict[str, Any]] = {}
        settings: Dict[str, Any] = {}
        try:
            data = self._safe_read_yaml(self.FEEDS_CONFIG_PATH, 5 * 1024 * 1024, 'feeds')
            settings = data.get('settings') or {}
            if not isinstance(settings, dict):
                logger.warning(f"Ignoring invalid settings section in {self.FEEDS_CONFIG_PATH}")
                settings = {}
            podcasts = data.get('podcasts') or {}
            if isinstance(podcasts, dict):
                self.PODCASTS = podcasts
            else:
                logger.warning(f"No valid podcasts section found in {self.FEEDS_CONFIG_PATH}")
        except ConfigError as e:
            self.load_error = str(e)
            logger.error(f"Configuration error: {e}")

        self.SETTINGS = settings
        self.TITLE = str(_pick(settings, 'title', default=DEFAULT_TITLE))
        self.DESCRIPTION = str(_pick(settings, 'description', default=DEFAULT_DESCRIPTION))
        self.LANGUAGE = str(_pick(settings, 'language', default='en'))
        self.SITE_URL = str(_pick(settings, 'site_url', 'siteUrl', default='http://localhost:8080'))
        self.FEED_CACHE_TIME = self._setting_int(settings, DEFAULT_FEED_CACHE_TIME, 'feed_cache_time', 'feedCacheTime')

        # PODCAST_TIMEOUT_MS in the environment wins over the feeds file
        timeout_ms = self._setting_int(settings, DEFAULT_PODCAST_TIMEOUT_MS, 'podcast_timeout', 'podcastTimeout')
        if "PODCAST_TIMEOUT_MS" in environ:
            timeout_ms = self._validate_positive_int("PODCAST_TIMEOUT_MS", timeout_ms, 1)
        self.PODCAST_TIMEOUT_MS = timeout_ms

        enabled = _pick(settings, 'enabled_countries', 'enabledCountries', default={}) or {}
        podcast_countries = enabled.get('podcasts') if isinstance(enabled, dict) else None
        self.ENABLED_PODCAST_COUNTRIES: List[str] = [str(c) for c in (podcast_countries or [])]

        self.ALLOWED_DOMAINS: List[str] = [
            str(d).strip().lower() for d in (_pick(settings, 'allowed_domains', 'allowedDomains', default=[]) or []) if str(d).strip()
        ]
        self.ALLOWED_ORIGINS: List[str] = [
            str(o).strip().lower() for o in (_pick(settings, 'allowed_origins', 'allowedOrigins', default=[]) or []) if str(o).strip()
        ]

        proxy_endpoint = environ.get("PROXY_ENDPOINT") or _pick(settings, 'proxy_endpoint', 'proxyEndpoint')
        self.PROXY_ENDPOINT: Optional[str] = str(proxy_endpoint).strip() if proxy_endpoint else None

        if not self.load_error:
            logger.info(
                f"Loaded {len(self.all_feed_sources())} podcast feeds from {self.FEEDS_CONFIG_PATH}"
            )

    def _setting_int(self, settings: Dict[str, Any], default: int, *keys: str) -> int:
        raw = _pick(settings, *keys)
        if raw is None:
            return default
        try:
            value = int(str(raw).strip())
        except ValueError:
            logger.warning(f"Invalid {keys[0]} value '{raw}' in feeds file; using default {default}")
            return default
        if value < 1:
            logger.warning(f"{keys[0]} must be >= 1; using default {default} (got {raw})")
            return default
        return value

    @property
    def podcast_timeout_seconds(self) -> float:
        return self.PODCAST_TIMEOUT_MS / 1000.0

    def is_podcast_country_enabled(self, country: str) -> bool:
        return not self.ENABLED_PODCAST_COUNTRIES or country in self.ENABLED_PODCAST_COUNTRIES

    def _build_source(self, country: str, feed_cfg: Dict[str, Any]) -> Optional[FeedSource]:
        url = _pick(feed_cfg, 'feed_url', 'feedUrl', 'url')
        if not url:
            logger.warning(f"Skipping feed without url for '{country}': {feed_cfg}")
            return None
        try:
            return FeedSource(
                label=str(country),
                url=str(url).strip(),
                declared_format=FeedFormat.from_config(_pick(feed_cfg, 'type', 'format')),
                requires_proxy=bool(_pick(feed_cfg, 'requires_proxy', 'requiresProxy', default=False)),
                feed_id=str(_pick(feed_cfg, 'id', default='')),
                name=str(_pick(feed_cfg, 'name', default='')),
            )
        except ValueError as e:
            logger.warning(f"Skipping invalid feed configuration for '{country}': {e}")
            return None

    def _country_feeds(self):
        for country, country_data in self.PODCASTS.items():
            if not self.is_podcast_country_enabled(country):
                continue
            feeds = country_data.get('feeds') if isinstance(country_data, dict) else None
            if not isinstance(feeds, list):
                logger.warning(f"Skipping podcast country '{country}' without a feeds list")
                continue
            yield country, [f for f in feeds if isinstance(f, dict)]

    def feed_sources(self) -> List[FeedSource]:
        """Sources for the combined feed: the first valid feed of each enabled country."""
        sources: List[FeedSource] = []
        for country, feeds in self._country_feeds():
            for feed_cfg in feeds:
                source = self._build_source(country, feed_cfg)
                if source:
                    sources.append(source)
                    break
        return sources

    def all_feed_sources(self) -> List[FeedSource]:
        """Every valid feed of every enabled country."""
        sources: List[FeedSource] = []
        for country, feeds in self._country_feeds():
            for feed_cfg in feeds:
                source = self._build_source(country, feed_cfg)
                if source:
                    sources.append(source)
        return sources

    def find_feed(self, feed_id: str) -> Optional[FeedSource]:
        for source in self.all_feed_sources():
            if source.feed_id == feed_id:
                return source
        return None

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "feeds_config_path": self.FEEDS_CONFIG_PATH,
            "load_error": self.load_error,
            "title": self.TITLE,
            "feed_count": len(self.all_feed_sources()),
            "combined_source_count": len(self.feed_sources()),
            "podcast_timeout_ms": self.PODCAST_TIMEOUT_MS,
            "fetch_retries": self.FETCH_RETRIES,
            "fetch_concurrency": self.FETCH_CONCURRENCY,
            "feed_cache_time": self.FEED_CACHE_TIME,
            "allowed_domains": len(self.ALLOWED_DOMAINS),
            "proxy_endpoint": self.PROXY_ENDPOINT,
            "played_history_path": self.PLAYED_HISTORY_PATH,
        }
