"""
Remote snapshot fetcher for playlist-sync.

Walks every page of a remote playlist and returns its full ordering.
Every page attempt is charged to the run's QuotaBudget before the call
is made, so the cost of a failed call is still accounted for.

Retry Strategy:
    - Only RemoteFetchError with is_retryable=True is retried
    - Exponential backoff: base, 2*base, 4*base ... capped at backoff_max
    - Jitter: +/-30% randomization so concurrent runs do not retry in lockstep
    - When attempts are exhausted the last error propagates unchanged

Usage:
    fetcher = SnapshotFetcher(client, max_attempts=3)
    snapshot = fetcher.fetch_snapshot("PLabc123", budget)
    print(snapshot.pages, len(snapshot.items))
"""

import random
import time
from typing import Callable

from playlist_sync.core.exceptions import RemoteFetchError
from playlist_sync.core.logger import get_logger
from playlist_sync.quota.ledger import QuotaBudget
from playlist_sync.youtube.models import PageSource, RemotePage, RemoteSnapshot

logger = get_logger(__name__)


# Jitter factor (+/-30%)
RETRY_JITTER_FACTOR = 0.3

# Lower bound for any backoff delay (seconds)
RETRY_DELAY_MIN = 0.1


class SnapshotFetcher:
    """
    Fetches complete remote snapshots with bounded retries.

    Attributes:
        source: PageSource used for the remote calls.
        page_cost: Quota units charged per page attempt.
        max_attempts: Attempts per page (1 means no retry).
    """

    def __init__(
        self,
        source: PageSource,
        page_cost: int = 1,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        backoff_max: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")

        self.source = source
        self.page_cost = page_cost
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep
        self._rng = rng

    def fetch_snapshot(self, remote_id: str, budget: QuotaBudget | None = None) -> RemoteSnapshot:
        """
        Fetch every page of a playlist.

        Args:
            remote_id: Remote playlist id.
            budget: Quota meter charged per page attempt. None skips
                    quota accounting.

        Returns:
            RemoteSnapshot with all entries in remote order.

        Raises:
            RemoteFetchError: If a page cannot be fetched, or the remote
                              repeats a page token.
            QuotaExceeded: If the budget cannot cover another page attempt.
        """
        items = []
        pages = 0
        page_token: str | None = None
        seen_tokens: set[str] = set()

        while True:
            page = self._fetch_with_retry(remote_id, page_token, budget)
            pages += 1
            items.extend(page.items)

            page_token = page.next_page_token
            if not page_token:
                break

            if page_token in seen_tokens:
                raise RemoteFetchError(
                    f"Remote returned a repeated page token for {remote_id}",
                    details={"remote_id": remote_id, "page_token": page_token, "pages": pages}
                )
            seen_tokens.add(page_token)

        logger.debug(f"Fetched {len(items)} items in {pages} page(s) for {remote_id}")
        return RemoteSnapshot(items=tuple(items), pages=pages)

    def backoff_delay(self, attempt: int) -> float:
        """
        Delay before retry number `attempt` (0-based).

        Examples (base=1.0, max=30.0, no jitter):
            attempt 0 -> 1.0, attempt 1 -> 2.0, attempt 5 -> 30.0
        """
        base_delay = min(self.backoff_base * (2 ** attempt), self.backoff_max)
        jitter = base_delay * RETRY_JITTER_FACTOR * (2 * self._rng() - 1)
        return max(RETRY_DELAY_MIN, base_delay + jitter)

    def _fetch_with_retry(
        self,
        remote_id: str,
        page_token: str | None,
        budget: QuotaBudget | None
    ) -> RemotePage:
        for attempt in range(self.max_attempts):
            if budget is not None:
                budget.charge(self.page_cost)

            try:
                return self.source.fetch_page(remote_id, page_token)
            except RemoteFetchError as e:
                if not e.is_retryable or attempt == self.max_attempts - 1:
                    if e.is_retryable:
                        logger.warning(
                            f"Fetch of {remote_id} failed after {self.max_attempts} attempts: {e}"
                        )
                    raise

                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{self.max_attempts} for {remote_id} "
                    f"failed: {e}. Retrying in {delay:.1f}s"
                )
                self._sleep(delay)

        # max_attempts >= 1, so the loop always returns or raises
        raise AssertionError("unreachable")
