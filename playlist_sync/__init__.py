"""
playlist-sync: Keep local copies of YouTube playlists in sync.

Each registered playlist (a "target") is mirrored into a local SQLite
store. A sync fetches the remote playlist, computes the minimal edit
script (added, removed and moved items) against the stored snapshot and
applies it in one transaction, while a daily quota ledger keeps the
YouTube Data API usage under its hard limit.

Architecture:
    quota/      - Daily quota ledger: reserve, commit and release cost units
    youtube/    - YouTube Data API client and paged snapshot fetcher
    sync/       - Diff engine, per-target locks and the sync engine
    scheduler/  - Recurring syncs on APScheduler, cron conversion
    core/       - Configuration, database, logging, models, exceptions
    utils/      - Small helpers (playlist ids, intervals, durations)
    app.py      - Wires the components together from a Config
    cli.py      - Command-line interface

Usage:
    Command Line:
        playlist-sync add "https://www.youtube.com/playlist?list=PL..."
        playlist-sync sync --all
        playlist-sync schedule create 1 --interval 6h
        playlist-sync scheduler run

    Python API:
        from playlist_sync import Application, load_config, setup_logging

        config = load_config()
        setup_logging(config.storage.directory)
        app = Application.from_config(config)
        try:
            target = app.add_target("PLxxxxxxxx")
            outcome = app.engine.run(target.target_id)
        finally:
            app.close()

Configuration:
    Reads config.yaml from the current directory; see README.md.

Dependencies:
    - google-api-python-client, google-auth: YouTube Data API v3
    - apscheduler: Recurring sync timers
    - click, rich-click, rich: CLI and progress display
    - tqdm: Progress-safe console logging
    - pyyaml: Configuration file parsing
"""

__version__ = "0.1.0"
__author__ = "playlist-sync"
__license__ = "MIT"

# Convenience imports for common usage
from playlist_sync.core import (
    Config,
    ConfigError,
    Database,
    DatabaseError,
    InvalidScheduleConfig,
    PlaylistSyncError,
    QuotaExceeded,
    RemoteFetchError,
    SyncOutcome,
    SyncStatus,
    Target,
    get_logger,
    load_config,
    setup_logging,
)
from playlist_sync.app import Application

__all__ = [
    # Version
    "__version__",
    # Core
    "Application",
    "Config",
    "load_config",
    "Database",
    "setup_logging",
    "get_logger",
    # Exceptions
    "PlaylistSyncError",
    "ConfigError",
    "DatabaseError",
    "QuotaExceeded",
    "RemoteFetchError",
    "InvalidScheduleConfig",
    # Models
    "Target",
    "SyncStatus",
    "SyncOutcome",
]
