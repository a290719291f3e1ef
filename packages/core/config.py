"""Environment configuration for Splice.

Provides centralized configuration with sensible defaults.
All configuration is loaded from environment variables.

Usage:
    from packages.core import get_config

    config = get_config()
    print(f"Encoder timeout: {config.encode_timeout}s")
    print(f"Environment: {config.env}")
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from pathlib import Path

from .errors import ConfigurationError


class Environment(Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(Enum):
    """Logging level."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass(frozen=True)
class SpliceConfig:
    """Application configuration.

    Immutable configuration object created from environment variables.

    Attributes:
        env: Current environment (development/production/testing)
        log_level: Logging level
        debug: Debug mode enabled
        temp_dir: Parent directory for transcoder scratch directories
        ffmpeg_path: ffmpeg executable
        encode_timeout: Upper bound in seconds for every encoder wait
        settle_delay: Wait after the last recorded frame before stopping
        gif_workers: Worker threads used for GIF palette quantization
        seek_tolerance: Accepted distance between requested and decoded time
        seek_max_attempts: Seeks issued before giving up on a position
        seek_polls_per_attempt: Readiness checks per seek attempt
        seek_poll_interval: Delay between readiness checks
        seek_retry_delay: Delay before re-issuing a seek
    """

    env: Environment
    log_level: LogLevel
    debug: bool

    temp_dir: Path
    ffmpeg_path: str

    encode_timeout: float = 120.0
    settle_delay: float = 0.5
    gif_workers: int = 2

    seek_tolerance: float = 0.1
    seek_max_attempts: int = 3
    seek_polls_per_attempt: int = 3
    seek_poll_interval: float = 0.05
    seek_retry_delay: float = 0.1

    def __post_init__(self) -> None:
        """Validate numeric settings and ensure the temp dir exists."""
        if self.encode_timeout <= 0:
            raise ConfigurationError("encode_timeout must be positive")
        if self.settle_delay < 0:
            raise ConfigurationError("settle_delay must not be negative")
        if self.gif_workers < 1:
            raise ConfigurationError("gif_workers must be at least 1")
        if self.seek_tolerance <= 0:
            raise ConfigurationError("seek_tolerance must be positive")
        if self.seek_max_attempts < 1 or self.seek_polls_per_attempt < 1:
            raise ConfigurationError("seek attempts and polls must be at least 1")
        if self.seek_poll_interval < 0 or self.seek_retry_delay < 0:
            raise ConfigurationError("seek delays must not be negative")

        if self.env != Environment.TESTING:
            self.temp_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.env == Environment.TESTING


def _get_env_float(var: str, default: float) -> float:
    """Get a float from an environment variable, falling back on bad input."""
    value = os.environ.get(var)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_env_int(var: str, default: int) -> int:
    """Get an int from an environment variable, falling back on bad input."""
    value = os.environ.get(var)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@lru_cache(maxsize=1)
def get_config() -> SpliceConfig:
    """Get the application configuration (singleton).

    Configuration is loaded from environment variables:
    - SPLICE_ENV: Environment (development/production/testing)
    - SPLICE_LOG_LEVEL: Logging level (DEBUG/INFO/WARNING/ERROR)
    - SPLICE_DEBUG: Enable debug mode (1/true/yes)
    - SPLICE_TEMP_DIR: Scratch directory parent (default: <tmp>/splice)
    - SPLICE_FFMPEG_PATH: ffmpeg executable (default: ffmpeg)
    - SPLICE_ENCODE_TIMEOUT: Encoder timeout in seconds (default: 120)
    - SPLICE_SETTLE_DELAY: Recorder settle delay in seconds (default: 0.5)
    - SPLICE_GIF_WORKERS: GIF encoder worker threads (default: 2)
    - SPLICE_SEEK_TOLERANCE: Seek tolerance in seconds (default: 0.1)
    - SPLICE_SEEK_ATTEMPTS: Seek attempts (default: 3)
    - SPLICE_SEEK_POLL_INTERVAL: Seconds between readiness polls (default: 0.05)
    - SPLICE_SEEK_RETRY_DELAY: Seconds before re-seeking (default: 0.1)

    Returns:
        Immutable SpliceConfig instance
    """
    env_str = os.environ.get("SPLICE_ENV", "development").lower()
    try:
        env = Environment(env_str)
    except ValueError:
        env = Environment.DEVELOPMENT

    log_str = os.environ.get("SPLICE_LOG_LEVEL", "INFO").upper()
    try:
        log_level = LogLevel(log_str)
    except ValueError:
        log_level = LogLevel.INFO

    debug_str = os.environ.get("SPLICE_DEBUG", "").lower()
    debug = debug_str in ("1", "true", "yes") or env == Environment.DEVELOPMENT

    temp_value = os.environ.get("SPLICE_TEMP_DIR")
    temp_dir = Path(temp_value) if temp_value else Path(tempfile.gettempdir()) / "splice"

    return SpliceConfig(
        env=env,
        log_level=log_level,
        debug=debug,
        temp_dir=temp_dir,
        ffmpeg_path=os.environ.get("SPLICE_FFMPEG_PATH", "ffmpeg"),
        encode_timeout=_get_env_float("SPLICE_ENCODE_TIMEOUT", 120.0),
        settle_delay=_get_env_float("SPLICE_SETTLE_DELAY", 0.5),
        gif_workers=_get_env_int("SPLICE_GIF_WORKERS", 2),
        seek_tolerance=_get_env_float("SPLICE_SEEK_TOLERANCE", 0.1),
        seek_max_attempts=_get_env_int("SPLICE_SEEK_ATTEMPTS", 3),
        seek_poll_interval=_get_env_float("SPLICE_SEEK_POLL_INTERVAL", 0.05),
        seek_retry_delay=_get_env_float("SPLICE_SEEK_RETRY_DELAY", 0.1),
    )


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing when environment variables change
    between test cases.
    """
    get_config.cache_clear()
