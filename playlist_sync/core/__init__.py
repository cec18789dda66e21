"""
Core module for playlist-sync.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - models: Targets, edit scripts, outcomes and schedules
    - database: Thread-safe SQLite store
    - logger: Logging system with multiple outputs

Usage:
    from playlist_sync.core import (
        Config, load_config,
        Database,
        setup_logging, get_logger,
        PlaylistSyncError, ConfigError, DatabaseError
    )
"""

from playlist_sync.core.config import (
    Config,
    QuotaConfig,
    SchedulerConfig,
    StorageConfig,
    SyncConfig,
    YouTubeConfig,
    load_config,
)
from playlist_sync.core.database import Database
from playlist_sync.core.exceptions import (
    ConfigError,
    DatabaseError,
    DiffError,
    InvalidScheduleConfig,
    LockContention,
    PlaylistSyncError,
    QuotaError,
    QuotaExceeded,
    RemoteFetchError,
    StaleReservation,
    StoreWriteError,
)
from playlist_sync.core.logger import (
    get_logger,
    log_sync_event,
    log_sync_failure,
    setup_logging,
    shutdown_logging,
)
from playlist_sync.core.models import (
    CollectionItem,
    EditScript,
    RemoteItem,
    Schedule,
    SchedulerStatus,
    SyncOutcome,
    SyncStatus,
    Target,
    utc_now,
)

__all__ = [
    # Config
    "Config",
    "YouTubeConfig",
    "StorageConfig",
    "QuotaConfig",
    "SyncConfig",
    "SchedulerConfig",
    "load_config",
    # Database
    "Database",
    # Exceptions
    "PlaylistSyncError",
    "ConfigError",
    "DatabaseError",
    "StoreWriteError",
    "LockContention",
    "DiffError",
    "QuotaError",
    "QuotaExceeded",
    "StaleReservation",
    "RemoteFetchError",
    "InvalidScheduleConfig",
    # Logger
    "setup_logging",
    "get_logger",
    "log_sync_event",
    "log_sync_failure",
    "shutdown_logging",
    # Models
    "SyncStatus",
    "Target",
    "RemoteItem",
    "CollectionItem",
    "EditScript",
    "SyncOutcome",
    "Schedule",
    "SchedulerStatus",
    "utc_now",
]
