"""
Application wiring for playlist-sync.

Builds the database, quota ledger, remote fetcher, sync engine and
scheduler from a Config and owns their lifecycle. Nothing here is a
module-level singleton: the CLI creates one Application per invocation,
tests build their own with fakes.

Usage:
    app = Application.from_config(load_config())
    try:
        outcome = app.engine.run(target_id)
    finally:
        app.close()
"""

from playlist_sync.core.config import Config
from playlist_sync.core.database import Database
from playlist_sync.core.logger import get_logger
from playlist_sync.core.models import Target
from playlist_sync.quota.ledger import QuotaLedger
from playlist_sync.scheduler.scheduler import Scheduler
from playlist_sync.sync.engine import SyncEngine
from playlist_sync.sync.locks import TargetLocks
from playlist_sync.utils import ensure_directory, extract_playlist_id
from playlist_sync.youtube.client import YouTubeClient
from playlist_sync.youtube.fetcher import SnapshotFetcher
from playlist_sync.youtube.models import PageSource, RemotePage

logger = get_logger(__name__)


class _DeferredYouTubeSource:
    """
    PageSource that builds the YouTube client on first use.

    Commands that never reach the remote (list, schedule, quota) then work
    without credentials configured.
    """

    def __init__(self, app: "Application") -> None:
        self._app = app

    def fetch_page(self, remote_id: str, page_token: str | None = None) -> RemotePage:
        return self._app.remote.fetch_page(remote_id, page_token)


class Application:
    """
    Composition root holding every long-lived component.

    Attributes:
        config: Loaded configuration.
        database: SQLite store.
        ledger: Daily quota ledger.
        engine: Sync engine.
        scheduler: Recurring sync scheduler (not started).
    """

    def __init__(
        self,
        config: Config,
        database: Database,
        source: PageSource | None = None,
        remote: YouTubeClient | None = None
    ) -> None:
        self.config = config
        self.database = database
        self._remote = remote

        self.ledger = QuotaLedger(
            database,
            daily_limit=config.quota.daily_limit,
            costs=config.quota.costs,
            warning_threshold=config.quota.warning_threshold,
        )

        self.fetcher = SnapshotFetcher(
            source or _DeferredYouTubeSource(self),
            page_cost=config.quota.costs.get("playlist.items", 1),
            max_attempts=config.sync.fetch_attempts,
            backoff_base=config.sync.backoff_base,
            backoff_max=config.sync.backoff_max,
        )

        self.locks = TargetLocks()
        self.engine = SyncEngine(database, self.ledger, self.fetcher, locks=self.locks)
        self.scheduler = Scheduler(self.engine, database, config.scheduler)

    @classmethod
    def from_config(cls, config: Config, source: PageSource | None = None) -> "Application":
        """
        Create the storage directory and open the database.

        Targets left IN_PROGRESS by an earlier process that died mid-sync
        are marked FAILED, since no run holds their lock any more.

        Raises:
            DatabaseError: If the database cannot be opened.
        """
        ensure_directory(config.storage.directory)
        database = Database(config.storage.database_path)
        for target in database.fail_interrupted_targets():
            logger.warning(
                f"Target {target.target_id} ({target.display_name}) was left syncing "
                f"by an interrupted run, marked as failed"
            )
        return cls(config, database, source=source)

    @property
    def remote(self) -> YouTubeClient:
        """
        The YouTube client, created on first access.

        Raises:
            ConfigError: If no credentials are configured.
        """
        if self._remote is None:
            self._remote = YouTubeClient.from_config(self.config.youtube)
        return self._remote

    def resolve_target(self, reference: str) -> Target | None:
        """Find a target by local id, remote id or playlist URL."""
        reference = reference.strip()
        if reference.isdigit():
            target = self.database.get_target(int(reference))
            if target is not None:
                return target
        try:
            remote_id = extract_playlist_id(reference)
        except ValueError:
            return None
        return self.database.get_target_by_remote_id(remote_id)

    def add_target(self, url_or_id: str, title: str | None = None, fetch_details: bool = True) -> Target:
        """
        Register a playlist for syncing.

        When fetch_details is set and no title is given, the playlist's
        title is looked up remotely (one playlist.details quota charge,
        committed whether or not the call succeeds). The remote item count
        from that lookup is stored for targets that were never synced, so
        the first sync reserves the right number of pages up front.

        Raises:
            ValueError: If url_or_id is not a playlist URL or id.
            QuotaExceeded: If the lookup cannot be afforded today.
            RemoteFetchError: If the lookup fails.
        """
        remote_id = extract_playlist_id(url_or_id)
        remote_item_count = None

        if title is None and fetch_details and self.config.youtube.has_credentials:
            cost = self.ledger.estimate_cost("playlist.details")
            handle = self.ledger.reserve(cost, operation="playlist.details")
            try:
                details = self.remote.playlist_details(remote_id)
            finally:
                self.ledger.commit(handle)
            title = details.get("title")
            remote_item_count = details.get("item_count")

        target = self.database.add_target(remote_id, title=title)

        if remote_item_count and target.last_synced_at is None:
            self.database.update_target(target.target_id, item_count=int(remote_item_count))
            target = self.database.get_target(target.target_id)

        logger.info(f"Registered target {target.target_id}: {target.display_name}")
        return target

    def close(self) -> None:
        """Stop the scheduler if it runs and close the database."""
        if self.scheduler.running:
            self.scheduler.stop()
        self.database.close()
