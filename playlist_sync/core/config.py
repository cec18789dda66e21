"""
Configuration management for playlist-sync.

This module handles loading, validating, and providing access to the
application configuration stored in config.yaml.

The configuration file contains:
    - YouTube Data API credentials (API key or stored OAuth token file)
    - Storage directory for the SQLite database and log files
    - Daily quota limit, warning threshold and per-operation costs
    - Remote fetch retry behavior
    - Scheduler defaults (fallback interval, retry budget, stop grace period)

Configuration File Location:
    By default config.yaml is read from the current working directory.
    The CLI accepts --config to point at another file.

Example config.yaml:
    youtube:
      api_key: "your_api_key_here"
      token_file: null         # Optional: stored OAuth token (authorized user JSON)

    storage:
      directory: "~/.playlist-sync"

    quota:
      daily_limit: 10000
      warning_threshold: 9000
      costs:
        playlist.items: 1
        search: 100

    sync:
      fetch_attempts: 3
      backoff_base: 1.0
      backoff_max: 30.0

    scheduler:
      default_interval: "1h"
      cron_fallback_interval: "6h"
      max_retries: 3
      stop_grace_period: 30
"""

from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml

from playlist_sync.core.exceptions import ConfigError
from playlist_sync.utils import parse_interval


# Default configuration file name (in current working directory)
CONFIG_FILENAME = "config.yaml"

DEFAULT_STORAGE_DIRECTORY = "~/.playlist-sync"

# YouTube Data API v3 unit costs per request
DEFAULT_OPERATION_COSTS: dict[str, int] = {
    "playlist.details": 1,
    "playlist.items": 1,
    "video.details": 1,
    "search": 100,
    "channel.details": 1,
}

DEFAULT_DAILY_LIMIT = 10000
DEFAULT_WARNING_THRESHOLD = 9000


@dataclass(frozen=True)
class YouTubeConfig:
    """
    YouTube Data API credentials.

    At least one of the two must be set for any command that talks to
    the remote. Token acquisition and refresh flows are not handled here;
    token_file must point at an already authorized-user JSON file.

    Attributes:
        api_key: Data API key from the Google Cloud console.
        token_file: Path to a stored OAuth token file.
    """
    api_key: str | None = None
    token_file: Path | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key) or self.token_file is not None


@dataclass(frozen=True)
class StorageConfig:
    """
    Storage location.

    Attributes:
        directory: Directory holding database.db and the logs/ folder.
                   Path expansion is performed (~ is expanded to home directory).
    """
    directory: Path

    @property
    def database_path(self) -> Path:
        return self.directory / "database.db"


@dataclass(frozen=True)
class QuotaConfig:
    """
    Daily quota budget.

    Attributes:
        daily_limit: Cost units available per UTC day.
        warning_threshold: Usage level that triggers a warning log.
        costs: Unit cost per remote operation kind.
    """
    daily_limit: int = DEFAULT_DAILY_LIMIT
    warning_threshold: int = DEFAULT_WARNING_THRESHOLD
    costs: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_OPERATION_COSTS))


@dataclass(frozen=True)
class SyncConfig:
    """
    Remote fetch behavior.

    Attributes:
        fetch_attempts: Attempts per page before a transient error is final.
        backoff_base: Initial backoff delay in seconds (doubles per attempt).
        backoff_max: Upper bound for a single backoff delay in seconds.
    """
    fetch_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Scheduler defaults.

    Attributes:
        default_interval: Interval used by `schedule create` when neither
                          --interval nor --cron is given.
        cron_fallback_interval: Interval used for valid cron expressions that
                                do not map onto a fixed cadence.
        max_retries: Consecutive failures before a schedule auto-disables.
        stop_grace_period: Seconds stop() waits for in-flight runs.
    """
    default_interval: timedelta = timedelta(hours=1)
    cron_fallback_interval: timedelta = timedelta(hours=6)
    max_retries: int = 3
    stop_grace_period: float = 30.0


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    This is the main configuration object that aggregates all configuration
    sections. It is created by load_config() and should be treated as
    immutable (frozen dataclass).

    Example:
        config = load_config()
        print(f"Database: {config.storage.database_path}")
        print(f"Daily limit: {config.quota.daily_limit}")
    """
    youtube: YouTubeConfig
    storage: StorageConfig
    quota: QuotaConfig
    sync: SyncConfig
    scheduler: SchedulerConfig


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    This function reads the YAML configuration file, validates every
    section that is present, applies defaults for missing ones, and returns
    a frozen Config object.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If the config file is not found, has invalid YAML syntax,
                     or contains invalid values. The error names the field.

    Behavior:
        1. Locate config file (explicit path or CWD/config.yaml)
        2. Read and parse YAML content (an empty file means all defaults)
        3. Validate structure (sections must be dictionaries)
        4. Parse each section with defaults
        5. Cross-check quota warning threshold against the limit
    """
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        raise ConfigError(
            f"Configuration file not found: {config_path}",
            details={"file_path": str(config_path)}
        )

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except IOError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    _validate_config(raw_config)

    return Config(
        youtube=_parse_youtube_config(raw_config.get("youtube")),
        storage=_parse_storage_config(raw_config.get("storage")),
        quota=_parse_quota_config(raw_config.get("quota")),
        sync=_parse_sync_config(raw_config.get("sync")),
        scheduler=_parse_scheduler_config(raw_config.get("scheduler")),
    )


def _validate_config(raw_config: dict[str, Any]) -> None:
    """
    Check that every known section present in the file is a dictionary.

    Raises:
        ConfigError: If a section has the wrong type.
    """
    for section in ("youtube", "storage", "quota", "sync", "scheduler"):
        value = raw_config.get(section)
        if value is not None and not isinstance(value, dict):
            raise ConfigError(
                f"Section '{section}' must be a dictionary",
                details={"section": section}
            )


def _parse_youtube_config(section: dict[str, Any] | None) -> YouTubeConfig:
    """
    Parse the YouTube credentials section.

    Credentials are optional at load time; commands that reach the remote
    check YouTubeConfig.has_credentials themselves.

    Raises:
        ConfigError: If api_key is not a string, or token_file does not exist.
    """
    if not section:
        return YouTubeConfig()

    api_key = section.get("api_key")
    if api_key is not None:
        if not isinstance(api_key, str):
            raise ConfigError(
                "'youtube.api_key' must be a string",
                details={"field": "youtube.api_key"}
            )
        api_key = api_key.strip() or None

    token_file = None
    raw_token = section.get("token_file")
    if raw_token is not None:
        if not isinstance(raw_token, str) or not raw_token.strip():
            raise ConfigError(
                "'youtube.token_file' must be a string path or null",
                details={"field": "youtube.token_file"}
            )
        token_file = Path(raw_token.strip()).expanduser().resolve()
        if not token_file.exists():
            raise ConfigError(
                f"Token file not found: {token_file}",
                details={"field": "youtube.token_file", "path": str(token_file)}
            )

    return YouTubeConfig(api_key=api_key, token_file=token_file)


def _parse_storage_config(section: dict[str, Any] | None) -> StorageConfig:
    """
    Parse the storage section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directory (that happens at startup).

    Raises:
        ConfigError: If directory is present but empty.
    """
    directory = DEFAULT_STORAGE_DIRECTORY
    if section and section.get("directory") is not None:
        directory = section["directory"]
        if not isinstance(directory, str) or not directory.strip():
            raise ConfigError(
                "'storage.directory' must be a non-empty string",
                details={"field": "storage.directory"}
            )

    return StorageConfig(directory=Path(directory.strip()).expanduser().resolve())


def _parse_quota_config(section: dict[str, Any] | None) -> QuotaConfig:
    """
    Parse the quota section.

    Costs from the file are merged over DEFAULT_OPERATION_COSTS so a
    config only needs to list the operations it overrides.

    Raises:
        ConfigError: If the limit, the threshold or any cost is invalid.
    """
    if not section:
        return QuotaConfig()

    daily_limit = _positive_int(section, "daily_limit", "quota", DEFAULT_DAILY_LIMIT)

    warning_threshold = section.get("warning_threshold")
    if warning_threshold is None:
        warning_threshold = min(DEFAULT_WARNING_THRESHOLD, int(daily_limit * 0.9))
    elif not isinstance(warning_threshold, int) or isinstance(warning_threshold, bool) or warning_threshold < 0:
        raise ConfigError(
            "'quota.warning_threshold' must be a non-negative integer",
            details={"field": "quota.warning_threshold", "value": warning_threshold}
        )

    if warning_threshold > daily_limit:
        raise ConfigError(
            "'quota.warning_threshold' cannot exceed 'quota.daily_limit'",
            details={"warning_threshold": warning_threshold, "daily_limit": daily_limit}
        )

    costs = dict(DEFAULT_OPERATION_COSTS)
    raw_costs = section.get("costs")
    if raw_costs is not None:
        if not isinstance(raw_costs, dict):
            raise ConfigError(
                "'quota.costs' must be a mapping of operation to units",
                details={"field": "quota.costs"}
            )
        for operation, cost in raw_costs.items():
            if not isinstance(cost, int) or isinstance(cost, bool) or cost < 1:
                raise ConfigError(
                    f"'quota.costs.{operation}' must be a positive integer",
                    details={"field": f"quota.costs.{operation}", "value": cost}
                )
            costs[str(operation)] = cost

    return QuotaConfig(
        daily_limit=daily_limit,
        warning_threshold=warning_threshold,
        costs=costs,
    )


def _parse_sync_config(section: dict[str, Any] | None) -> SyncConfig:
    """Parse the sync section, applying defaults for missing fields."""
    if not section:
        return SyncConfig()

    fetch_attempts = _positive_int(section, "fetch_attempts", "sync", 3)
    backoff_base = _positive_float(section, "backoff_base", "sync", 1.0)
    backoff_max = _positive_float(section, "backoff_max", "sync", 30.0)

    if backoff_max < backoff_base:
        raise ConfigError(
            "'sync.backoff_max' cannot be lower than 'sync.backoff_base'",
            details={"backoff_base": backoff_base, "backoff_max": backoff_max}
        )

    return SyncConfig(
        fetch_attempts=fetch_attempts,
        backoff_base=backoff_base,
        backoff_max=backoff_max,
    )


def _parse_scheduler_config(section: dict[str, Any] | None) -> SchedulerConfig:
    """Parse the scheduler section, applying defaults for missing fields."""
    if not section:
        return SchedulerConfig()

    defaults = SchedulerConfig()

    return SchedulerConfig(
        default_interval=_interval(section, "default_interval", defaults.default_interval),
        cron_fallback_interval=_interval(
            section, "cron_fallback_interval", defaults.cron_fallback_interval
        ),
        max_retries=_positive_int(section, "max_retries", "scheduler", defaults.max_retries),
        stop_grace_period=_positive_float(
            section, "stop_grace_period", "scheduler", defaults.stop_grace_period
        ),
    )


def _positive_int(section: dict[str, Any], key: str, prefix: str, default: int) -> int:
    value = section.get(key)
    if value is None:
        return default
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(
            f"'{prefix}.{key}' must be a positive integer",
            details={"field": f"{prefix}.{key}", "value": value}
        )
    return value


def _positive_float(section: dict[str, Any], key: str, prefix: str, default: float) -> float:
    value = section.get(key)
    if value is None:
        return default
    if not isinstance(value, (int, float)) or isinstance(value, bool) or value <= 0:
        raise ConfigError(
            f"'{prefix}.{key}' must be a positive number",
            details={"field": f"{prefix}.{key}", "value": value}
        )
    return float(value)


def _interval(section: dict[str, Any], key: str, default: timedelta) -> timedelta:
    value = section.get(key)
    if value is None:
        return default
    try:
        return parse_interval(value)
    except ValueError as e:
        raise ConfigError(
            f"'scheduler.{key}' is not a valid interval: {value!r}",
            details={"field": f"scheduler.{key}", "value": value}
        ) from e
