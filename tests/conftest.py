"""Test configuration and fixtures"""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from playlist_sync.core.database import Database
from playlist_sync.core.exceptions import RemoteFetchError
from playlist_sync.core.models import RemoteItem
from playlist_sync.quota.ledger import QuotaLedger
from playlist_sync.sync.engine import SyncEngine
from playlist_sync.sync.locks import TargetLocks
from playlist_sync.youtube.fetcher import SnapshotFetcher
from playlist_sync.youtube.models import RemotePage


class FixedClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakePageSource:
    """
    In-memory PageSource.

    playlists maps remote_id -> list of item ids. errors maps
    remote_id -> exceptions raised (in order) before pages are served.
    """

    def __init__(self, playlists=None, page_size: int = 50) -> None:
        self.playlists: dict[str, list[str]] = dict(playlists or {})
        self.page_size = page_size
        self.errors: dict[str, list[Exception]] = {}
        self.calls: list[tuple[str, str | None]] = []

    def fail(self, remote_id: str, *errors: Exception) -> None:
        self.errors.setdefault(remote_id, []).extend(errors)

    def fetch_page(self, remote_id: str, page_token: str | None = None) -> RemotePage:
        self.calls.append((remote_id, page_token))

        pending = self.errors.get(remote_id)
        if pending:
            raise pending.pop(0)

        if remote_id not in self.playlists:
            raise RemoteFetchError(
                f"Playlist not found: {remote_id}",
                http_status=404,
                is_retryable=False
            )

        ids = self.playlists[remote_id]
        start = int(page_token) if page_token else 0
        end = start + self.page_size
        items = tuple(RemoteItem(item_id, title=f"Title {item_id}") for item_id in ids[start:end])
        next_token = str(end) if end < len(ids) else None
        return RemotePage(items=items, next_page_token=next_token)


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def database(temp_dir):
    """Fresh SQLite database"""
    db = Database(temp_dir / "database.db")
    yield db
    db.close()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def source():
    return FakePageSource()


@pytest.fixture
def make_ledger(database, clock):
    """Factory for ledgers sharing the test database and clock"""
    def factory(daily_limit: int = 10000, **kwargs) -> QuotaLedger:
        kwargs.setdefault("clock", clock)
        return QuotaLedger(database, daily_limit=daily_limit, **kwargs)
    return factory


@pytest.fixture
def ledger(make_ledger):
    return make_ledger()


@pytest.fixture
def fetcher(source):
    """Fetcher over the fake source that never really sleeps"""
    return SnapshotFetcher(source, max_attempts=3, sleep=lambda delay: None, rng=lambda: 0.5)


@pytest.fixture
def make_engine(database, ledger, fetcher, clock):
    """Factory for engines; pass ledger/fetcher/locks to override"""
    def factory(**kwargs) -> SyncEngine:
        return SyncEngine(
            database,
            kwargs.get("ledger", ledger),
            kwargs.get("fetcher", fetcher),
            locks=kwargs.get("locks", TargetLocks()),
            clock=kwargs.get("clock", clock),
        )
    return factory


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def target(database, source):
    """A registered target whose remote holds A, B, C"""
    source.playlists["PLtest"] = ["A", "B", "C"]
    return database.add_target("PLtest", title="Test Playlist")
