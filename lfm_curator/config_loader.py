"""
Configuration Loader - Manages YAML configuration and environment variables
"""
import logging
import os
from pathlib import Path
from typing import Any, List, Optional, Union

import yaml
from platformdirs import user_config_dir

from lfm_curator.cache.storage import default_cache_dir
from lfm_curator.errors import ConfigurationError
from lfm_curator.models import VALID_PERIODS

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "config.yaml"


def default_config_path() -> Path:
    """./config.yaml if present, otherwise the per-user config directory"""
    local = Path(DEFAULT_CONFIG_NAME)
    if local.exists():
        return local
    return Path(user_config_dir('lfm', appauthor=False)) / DEFAULT_CONFIG_NAME


class Config:
    """Configuration manager for lfm_curator"""

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Args:
            config_path: YAML file to load. When omitted, the default location
                is used and a missing file simply means built-in defaults.

        Raises:
            ConfigurationError: explicit path missing, unreadable YAML or invalid values
        """
        explicit = config_path is not None
        self.config_path = Path(config_path) if explicit else default_config_path()
        self.config = self._load_config(explicit)
        self._checked_validate()

    @classmethod
    def from_dict(cls, data: Optional[dict] = None) -> 'Config':
        """Build a Config from an in-memory mapping (same validation as a file)"""
        config = cls.__new__(cls)
        config.config_path = Path('<memory>')
        config.config = dict(data or {})
        config._checked_validate()
        return config

    def _checked_validate(self):
        try:
            self._validate_config()
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid value in {self.config_path}", technical_details=str(e))

    def _load_config(self, explicit: bool) -> dict:
        if not self.config_path.exists():
            if explicit:
                raise ConfigurationError(f"Configuration file not found: {self.config_path}")
            logger.debug(f"No config file at {self.config_path}, using defaults")
            return {}

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read {self.config_path}", technical_details=str(e))

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"{self.config_path} must contain a mapping at the top level")
        return data

    def _validate_config(self):
        """Validate value ranges (required credentials are checked where they are used)"""
        for section, value in self.config.items():
            if value is not None and not isinstance(value, dict):
                raise ConfigurationError(f"Configuration section '{section}' must be a mapping")

        if self.default_period not in VALID_PERIODS:
            raise ConfigurationError(
                f"defaults.period must be one of {', '.join(VALID_PERIODS)} (got {self.default_period})"
            )
        if not 0.0 <= self.mixtape_bias <= 1.0:
            raise ConfigurationError(f"defaults.mixtape_bias must be between 0 and 1 (got {self.mixtape_bias})")
        if self.cache_expiry_minutes < 0:
            raise ConfigurationError("cache.expiry_minutes cannot be negative")
        if self.cache_eviction not in ('deferred', 'sync'):
            raise ConfigurationError(f"cache.eviction must be 'deferred' or 'sync' (got {self.cache_eviction})")
        if self.lastfm_calls_per_second <= 0:
            raise ConfigurationError("lastfm.calls_per_second must be positive")
        for section, key in (('playlists', 'page_size'), ('playlists', 'max_windows'),
                             ('playlists', 'max_empty_windows'), ('playlists', 'mixtape_pool_pages'),
                             ('recommendations', 'similar_limit'), ('recommendations', 'play_count_pages'),
                             ('history', 'page_size'), ('history', 'max_pages'),
                             ('defaults', 'tracks_per_artist'), ('defaults', 'limit')):
            value = self.get(section, key)
            if value is not None and (not isinstance(value, int) or value < 1):
                raise ConfigurationError(f"{section}.{key} must be a positive integer (got {value!r})")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found

        Returns:
            Configuration value or default
        """
        values = self.config.get(section) or {}
        value = values.get(key, default)
        return default if value is None else value

    # Last.FM
    @property
    def lastfm_api_key(self) -> str:
        """Get Last.FM API key (with environment variable override)"""
        return os.getenv('LASTFM_API_KEY') or self._credential('api_key')

    @property
    def lastfm_username(self) -> str:
        """Get Last.FM username (with environment variable override)"""
        return os.getenv('LASTFM_USERNAME') or self._credential('username')

    def _credential(self, key: str) -> str:
        # Placeholders from config.example.yaml count as unset
        value = str(self.get('lastfm', key, '') or '').strip()
        return '' if value.startswith('YOUR_') else value

    @property
    def lastfm_calls_per_second(self) -> float:
        return float(self.get('lastfm', 'calls_per_second', 5.0))

    # Cache
    @property
    def cache_enabled(self) -> bool:
        return bool(self.get('cache', 'enabled', True))

    @property
    def cache_directory(self) -> Path:
        """Cache directory (LFM_CACHE_DIR overrides the config file)"""
        configured = os.getenv('LFM_CACHE_DIR') or self.get('cache', 'directory')
        return Path(configured).expanduser() if configured else default_cache_dir()

    @property
    def cache_expiry_minutes(self) -> float:
        return float(self.get('cache', 'expiry_minutes', 10))

    @property
    def cache_eviction(self) -> str:
        return str(self.get('cache', 'eviction', 'deferred')).lower()

    @property
    def cache_eviction_queue_size(self) -> int:
        return int(self.get('cache', 'eviction_queue_size', 256))

    # Defaults
    @property
    def default_period(self) -> str:
        return str(self.get('defaults', 'period', 'overall'))

    @property
    def default_limit(self) -> int:
        return int(self.get('defaults', 'limit', 20))

    @property
    def default_tracks_per_artist(self) -> int:
        return int(self.get('defaults', 'tracks_per_artist', 1))

    @property
    def mixtape_bias(self) -> float:
        return float(self.get('defaults', 'mixtape_bias', 0.3))

    @property
    def min_plays(self) -> int:
        return int(self.get('defaults', 'min_plays', 0))

    # Playlist building
    @property
    def page_size(self) -> int:
        """Tracks fetched per page in the expanding-window fetch"""
        return int(self.get('playlists', 'page_size', 200))

    @property
    def max_windows(self) -> int:
        return int(self.get('playlists', 'max_windows', 10))

    @property
    def max_empty_windows(self) -> int:
        """Consecutive pages that add nothing before giving up"""
        return int(self.get('playlists', 'max_empty_windows', 3))

    @property
    def mixtape_pool_pages(self) -> int:
        return int(self.get('playlists', 'mixtape_pool_pages', 3))

    # Recommendations
    @property
    def analysis_limit(self) -> int:
        return int(self.get('recommendations', 'analysis_limit', 20))

    @property
    def filter_threshold(self) -> int:
        return int(self.get('recommendations', 'filter_threshold', 0))

    @property
    def similar_limit(self) -> int:
        return int(self.get('recommendations', 'similar_limit', 50))

    @property
    def play_count_pages(self) -> int:
        """Pages of overall top artists used to look up the user's play counts"""
        return int(self.get('recommendations', 'play_count_pages', 2))

    # Custom date ranges
    @property
    def history_page_size(self) -> int:
        """Scrobbles per user.getRecentTracks page"""
        return int(self.get('history', 'page_size', 200))

    @property
    def history_max_pages(self) -> int:
        return int(self.get('history', 'max_pages', 50))

    # Tag filter
    @property
    def tag_filter_enabled(self) -> bool:
        return bool(self.get('tag_filter', 'enabled', False))

    @property
    def excluded_tags(self) -> List[str]:
        tags = self.get('tag_filter', 'excluded_tags', [])
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(',')]
        return [str(t) for t in tags if str(t).strip()]

    @property
    def tag_threshold(self) -> int:
        return int(self.get('tag_filter', 'threshold', 0))
