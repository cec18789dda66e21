"""
Data models for playlist-sync.

These types are shared by the store, the diff, the sync engine and the
scheduler. Values crossing a component boundary (edit scripts, outcomes,
remote pages) are frozen; records that the store owns and hands out for
editing (targets, schedules) are plain dataclasses.

Timestamps are timezone-aware UTC datetimes throughout.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class SyncStatus(str, Enum):
    """Lifecycle state of a target's synchronization."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Target:
    """
    A remote ordered collection mirrored locally (e.g. a YouTube playlist).

    Attributes:
        target_id: Local database id.
        remote_id: Id of the collection on the remote.
        title: Display title, if known.
        item_count: Number of items stored after the last successful sync.
        sync_status: Current lifecycle state. IN_PROGRESS means exactly
                     one engine run holds the target's lock.
        last_synced_at: End of the last COMPLETED run.
        created_at: When the target was registered.
    """
    target_id: int
    remote_id: str
    title: str | None = None
    item_count: int = 0
    sync_status: SyncStatus = SyncStatus.PENDING
    last_synced_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def display_name(self) -> str:
        return self.title or self.remote_id


@dataclass(frozen=True)
class RemoteItem:
    """One entry of a remote page, in remote order."""
    remote_item_id: str
    title: str | None = None
    added_at: str | None = None


@dataclass(frozen=True)
class CollectionItem:
    """
    One stored member of a target.

    Attributes:
        remote_item_id: Id of the item on the remote.
        position: 0-based, dense and unique within the target.
        content_ref: Row id in the deduplicated content registry.
        added_at: When the item was added on the remote (or locally).
        title: Title from the content registry.
    """
    remote_item_id: str
    position: int
    content_ref: int
    added_at: str | None = None
    title: str | None = None


@dataclass(frozen=True)
class EditScript:
    """
    Minimal set of changes turning a local snapshot into a remote one.

    Attributes:
        added: (remote_item_id, new_position), ordered by new position.
        removed: remote_item_ids, ordered by their old local position.
        reordered: (remote_item_id, old_position, new_position), ordered
                   by new position.
    """
    added: tuple[tuple[str, int], ...] = ()
    removed: tuple[str, ...] = ()
    reordered: tuple[tuple[str, int, int], ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.reordered)

    def __len__(self) -> int:
        return len(self.added) + len(self.removed) + len(self.reordered)

    def summary(self) -> str:
        return f"+{len(self.added)} -{len(self.removed)} ~{len(self.reordered)}"


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of one sync run. Appended to history, never mutated.

    Attributes:
        target_id: Target that was synchronized.
        status: COMPLETED or FAILED.
        items_added / items_removed / items_reordered: Edit script sizes.
        duration: Wall time of the run in seconds.
        quota_used: Units committed to the ledger by this run.
        error: Human-readable error for FAILED runs.
        started_at: When the run acquired the target lock.
    """
    target_id: int
    status: SyncStatus
    items_added: int = 0
    items_removed: int = 0
    items_reordered: int = 0
    duration: float = 0.0
    quota_used: int = 0
    error: str | None = None
    started_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == SyncStatus.COMPLETED


@dataclass
class Schedule:
    """
    Recurring sync schedule for one target.

    Invariants:
        - retry_count is reset to 0 after any COMPLETED run.
        - retry_count reaching max_retries disables the schedule once,
          with the reason kept in disabled_reason.
    """
    target_id: int
    interval: timedelta
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    retry_count: int = 0
    max_retries: int = 3
    disabled_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class SchedulerStatus:
    """Snapshot of the scheduler for status displays."""
    running: bool
    active_schedules: int
    running_jobs: tuple[int, ...] = field(default_factory=tuple)
    uptime: float = 0.0
    last_error: str | None = None
