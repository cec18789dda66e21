# tests/test_fetcher.py
"""Test remote snapshot fetching"""

from unittest.mock import Mock

import pytest

from playlist_sync.core.exceptions import QuotaExceeded, RemoteFetchError
from playlist_sync.core.models import RemoteItem
from playlist_sync.quota.ledger import QuotaBudget
from playlist_sync.youtube.fetcher import SnapshotFetcher
from playlist_sync.youtube.models import RemotePage, RemoteSnapshot


def retryable(status: int = 503) -> RemoteFetchError:
    return RemoteFetchError(f"HTTP {status}", http_status=status, is_retryable=True)


class TestRemotePage:
    """Test parsing of playlistItems.list responses"""

    def test_from_api_response(self):
        """Test ids, titles and page token are extracted"""
        page = RemotePage.from_api_response({
            "items": [
                {
                    "snippet": {"title": "First", "publishedAt": "2024-01-01T00:00:00Z"},
                    "contentDetails": {"videoId": "vid1"},
                },
                {
                    "snippet": {"title": "Second", "resourceId": {"videoId": "vid2"}},
                },
                {
                    "snippet": {"title": "Deleted video"},
                    "contentDetails": {},
                },
            ],
            "nextPageToken": "CAUQAA",
        })

        assert [item.remote_item_id for item in page.items] == ["vid1", "vid2"]
        assert page.items[0].title == "First"
        assert page.items[0].added_at == "2024-01-01T00:00:00Z"
        assert page.next_page_token == "CAUQAA"

    def test_last_page(self):
        """Test empty token means no next page"""
        page = RemotePage.from_api_response({"items": [], "nextPageToken": ""})
        assert page.items == ()
        assert page.next_page_token is None

    def test_snapshot_by_id_keeps_first(self):
        """Test duplicate entries in a snapshot"""
        snapshot = RemoteSnapshot(
            items=(RemoteItem("a", title="one"), RemoteItem("a", title="two")),
            pages=1,
        )
        assert snapshot.item_ids == ["a", "a"]
        assert snapshot.by_id()["a"].title == "one"


class TestSnapshotFetcher:
    """Test paging and retries"""

    def test_follows_pages(self, fetcher, source):
        """Test all pages are collected in order"""
        source.page_size = 2
        source.playlists["PL"] = ["a", "b", "c", "d", "e"]

        snapshot = fetcher.fetch_snapshot("PL")

        assert snapshot.item_ids == ["a", "b", "c", "d", "e"]
        assert snapshot.pages == 3
        assert source.calls == [("PL", None), ("PL", "2"), ("PL", "4")]

    def test_retries_transient_errors(self, source):
        """Test a retryable error is retried with backoff"""
        delays = []
        fetcher = SnapshotFetcher(source, max_attempts=3, sleep=delays.append, rng=lambda: 0.5)
        source.playlists["PL"] = ["a"]
        source.fail("PL", retryable(), retryable(500))

        snapshot = fetcher.fetch_snapshot("PL")

        assert snapshot.item_ids == ["a"]
        assert delays == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self, fetcher, source):
        """Test the last error is raised verbatim"""
        source.playlists["PL"] = ["a"]
        source.fail("PL", retryable(), retryable(), retryable(502))

        with pytest.raises(RemoteFetchError) as exc_info:
            fetcher.fetch_snapshot("PL")

        assert exc_info.value.http_status == 502
        assert len(source.calls) == 3

    def test_non_retryable_error_raises_immediately(self, fetcher, source):
        """Test 404 is not retried"""
        with pytest.raises(RemoteFetchError) as exc_info:
            fetcher.fetch_snapshot("PLmissing")

        assert str(exc_info.value) == "Playlist not found: PLmissing"
        assert len(source.calls) == 1

    def test_repeated_page_token(self, fetcher):
        """Test a remote looping on the same token is an error"""
        class LoopingSource:
            def fetch_page(self, remote_id, page_token=None):
                return RemotePage(items=(RemoteItem("x"),), next_page_token="same")

        fetcher.source = LoopingSource()
        with pytest.raises(RemoteFetchError):
            fetcher.fetch_snapshot("PL")

    def test_backoff_delay(self):
        """Test exponential backoff with cap and jitter"""
        fetcher = SnapshotFetcher(Mock(), backoff_base=1.0, backoff_max=30.0,
                                  rng=lambda: 0.5)
        assert fetcher.backoff_delay(0) == 1.0
        assert fetcher.backoff_delay(3) == 8.0
        assert fetcher.backoff_delay(10) == 30.0

        low = SnapshotFetcher(Mock(), rng=lambda: 0.0)
        high = SnapshotFetcher(Mock(), rng=lambda: 1.0)
        assert low.backoff_delay(1) == pytest.approx(1.4)
        assert high.backoff_delay(1) == pytest.approx(2.6)

    def test_invalid_attempts(self):
        """Test max_attempts must be positive"""
        with pytest.raises(ValueError):
            SnapshotFetcher(Mock(), max_attempts=0)


class TestFetchQuota:
    """Test quota charging during fetches"""

    def test_each_page_attempt_is_charged(self, ledger, fetcher, source):
        """Test retries cost quota too"""
        source.page_size = 1
        source.playlists["PL"] = ["a", "b"]
        source.fail("PL", retryable())

        budget = QuotaBudget(ledger, ledger.reserve(1))
        fetcher.fetch_snapshot("PL", budget)

        assert budget.spent == 3
        assert budget.settle() == 3
        assert ledger.entry().used == 3

    def test_budget_exhaustion_stops_fetch(self, make_ledger, fetcher, source):
        """Test an underestimate fails instead of overshooting"""
        ledger = make_ledger(daily_limit=2)
        source.page_size = 1
        source.playlists["PL"] = ["a", "b", "c"]

        budget = QuotaBudget(ledger, ledger.reserve(1))
        with pytest.raises(QuotaExceeded):
            fetcher.fetch_snapshot("PL", budget)

        assert len(source.calls) == 2
        budget.settle()
        assert ledger.entry().used == 2
