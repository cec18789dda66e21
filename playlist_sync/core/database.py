"""
Thread-safe SQLite database for playlist-sync.

This module uses a Content Registry pattern: each unique remote item is
stored once in `content`, and linked to targets via `collection_items`
together with its position in that target.

Schema:
    targets:            Mirrored remote collections and their sync status
    content:            One row per unique remote item id
    collection_items:   Junction table (target_id, content_id, position, added_at)
    schedules:          One recurring sync schedule per target
    quota_usage:        Committed quota units per UTC day
    quota_operations:   Individual committed charges (for usage breakdowns)
    sync_history:       Append-only log of SyncOutcome records

Edit Scripts:
    apply_edit_script() applies a whole diff in one transaction. Moved and
    added rows are first parked at negative positions, so no intermediate
    state ever violates UNIQUE(target_id, position), then flipped into
    place. Positions are verified to be dense (0..n-1) before commit.

Usage:
    db = Database(storage_dir / "database.db")

    target = db.add_target("PLabc123", title="Road trip")
    snapshot = db.load_snapshot(target.target_id)
    db.apply_edit_script(target.target_id, script, remote_items)
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Generator, Mapping

from playlist_sync.core.exceptions import DatabaseError, StoreWriteError
from playlist_sync.core.models import (
    CollectionItem,
    EditScript,
    RemoteItem,
    Schedule,
    SyncOutcome,
    SyncStatus,
    Target,
)


DATABASE_VERSION = 1


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS targets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    remote_id TEXT UNIQUE NOT NULL,
    title TEXT,
    item_count INTEGER NOT NULL DEFAULT 0,
    sync_status TEXT NOT NULL DEFAULT 'pending',
    last_synced_at TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS content (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    remote_item_id TEXT UNIQUE NOT NULL,
    title TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS collection_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    target_id INTEGER NOT NULL,
    content_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    added_at TEXT,
    FOREIGN KEY (target_id) REFERENCES targets(id) ON DELETE CASCADE,
    FOREIGN KEY (content_id) REFERENCES content(id) ON DELETE CASCADE,
    UNIQUE(target_id, content_id),
    UNIQUE(target_id, position)
);

CREATE TABLE IF NOT EXISTS schedules (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    target_id INTEGER UNIQUE NOT NULL,
    interval_seconds INTEGER NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    last_run TEXT,
    next_run TEXT,
    retry_count INTEGER NOT NULL DEFAULT 0,
    max_retries INTEGER NOT NULL DEFAULT 3,
    disabled_reason TEXT,
    created_at TEXT,
    updated_at TEXT,
    FOREIGN KEY (target_id) REFERENCES targets(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS quota_usage (
    day TEXT PRIMARY KEY,
    used INTEGER NOT NULL DEFAULT 0,
    daily_limit INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS quota_operations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    day TEXT NOT NULL,
    operation TEXT NOT NULL,
    cost INTEGER NOT NULL,
    timestamp TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS sync_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    target_id INTEGER NOT NULL,
    status TEXT NOT NULL,
    items_added INTEGER NOT NULL DEFAULT 0,
    items_removed INTEGER NOT NULL DEFAULT 0,
    items_reordered INTEGER NOT NULL DEFAULT 0,
    duration REAL NOT NULL DEFAULT 0,
    quota_used INTEGER NOT NULL DEFAULT 0,
    error TEXT,
    started_at TEXT,
    completed_at TEXT,
    FOREIGN KEY (target_id) REFERENCES targets(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_collection_items_target ON collection_items(target_id);
CREATE INDEX IF NOT EXISTS idx_collection_items_content ON collection_items(content_id);
CREATE INDEX IF NOT EXISTS idx_schedules_next_run ON schedules(next_run);
CREATE INDEX IF NOT EXISTS idx_quota_operations_day ON quota_operations(day);
CREATE INDEX IF NOT EXISTS idx_sync_history_target ON sync_history(target_id);
"""

# Columns update_target() accepts
_TARGET_COLUMNS = ("title", "item_count", "sync_status", "last_synced_at")


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class Database:
    """
    Thread-safe SQLite database with a Content Registry.

    Uses a single persistent connection shared by all threads behind one lock.
    All public methods acquire self._lock before executing.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            raise DatabaseError(
                f"Parent directory does not exist: {db_path.parent}",
                details={"path": str(db_path.parent)}
            )

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to initialize database: {e}",
                details={"path": str(db_path)}
            ) from e

    def _connect(self) -> sqlite3.Connection:
        """Create the persistent connection on first use and return it."""
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection as a context manager.

        The connection is created once and reused for all operations.
        sqlite3.Error raised inside the block is rolled back and wrapped
        in DatabaseError.
        """
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(
                f"Database operation failed: {e}",
                details={"path": str(self.db_path), "original_error": str(e)}
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)

            cursor = conn.execute("SELECT version FROM schema_version LIMIT 1")
            row = cursor.fetchone()

            if row is None:
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            elif row[0] != DATABASE_VERSION:
                raise DatabaseError(
                    f"Database version mismatch: expected {DATABASE_VERSION}, got {row[0]}",
                    details={"expected": DATABASE_VERSION, "actual": row[0]}
                )
            conn.commit()

    def _now_iso(self) -> str:
        return datetime.now(timezone.utc).isoformat()

    # =========================================================================
    # Targets
    # =========================================================================

    def _row_to_target(self, row: sqlite3.Row) -> Target:
        return Target(
            target_id=row["id"],
            remote_id=row["remote_id"],
            title=row["title"],
            item_count=row["item_count"],
            sync_status=SyncStatus(row["sync_status"]),
            last_synced_at=_from_iso(row["last_synced_at"]),
            created_at=_from_iso(row["created_at"]),
        )

    def add_target(self, remote_id: str, title: str | None = None) -> Target:
        """
        Register a remote collection, or refresh the title of a known one.

        Returns:
            The stored Target.
        """
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO targets (remote_id, title, created_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(remote_id) DO UPDATE SET
                        title = COALESCE(excluded.title, targets.title)
                """, (remote_id, title, self._now_iso()))
                conn.commit()

                cursor = conn.execute("SELECT * FROM targets WHERE remote_id = ?", (remote_id,))
                return self._row_to_target(cursor.fetchone())

    def get_target(self, target_id: int) -> Target | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM targets WHERE id = ?", (target_id,))
                row = cursor.fetchone()
                return self._row_to_target(row) if row else None

    def get_target_by_remote_id(self, remote_id: str) -> Target | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM targets WHERE remote_id = ?", (remote_id,))
                row = cursor.fetchone()
                return self._row_to_target(row) if row else None

    def list_targets(self) -> list[Target]:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM targets ORDER BY id")
                return [self._row_to_target(row) for row in cursor.fetchall()]

    def update_target(self, target_id: int, **fields: Any) -> None:
        """
        Update selected columns of a target.

        Accepted fields: title, item_count, sync_status (SyncStatus),
        last_synced_at (datetime).

        Raises:
            DatabaseError: If the target does not exist or a field is unknown.
        """
        unknown = set(fields) - set(_TARGET_COLUMNS)
        if unknown:
            raise DatabaseError(
                f"Unknown target fields: {', '.join(sorted(unknown))}",
                details={"target_id": target_id}
            )
        if not fields:
            return

        values = []
        for key in fields:
            value = fields[key]
            if isinstance(value, SyncStatus):
                value = value.value
            elif isinstance(value, datetime):
                value = _to_iso(value)
            values.append(value)

        assignments = ", ".join(f"{key} = ?" for key in fields)

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE targets SET {assignments} WHERE id = ?",
                    (*values, target_id)
                )
                conn.commit()
                if cursor.rowcount == 0:
                    raise DatabaseError(
                        f"Target not found: {target_id}",
                        details={"target_id": target_id}
                    )

    def set_sync_status(self, target_id: int, status: SyncStatus) -> None:
        self.update_target(target_id, sync_status=status)

    def fail_interrupted_targets(self) -> list[Target]:
        """
        Mark every IN_PROGRESS target as FAILED.

        Run locks live in memory, so a target left IN_PROGRESS by a process
        that died mid-sync has no run behind it.

        Returns:
            The targets as they were before the reset.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT * FROM targets WHERE sync_status = ? ORDER BY id",
                    (SyncStatus.IN_PROGRESS.value,)
                )
                interrupted = [self._row_to_target(row) for row in cursor.fetchall()]
                if interrupted:
                    conn.execute(
                        "UPDATE targets SET sync_status = ? WHERE sync_status = ?",
                        (SyncStatus.FAILED.value, SyncStatus.IN_PROGRESS.value)
                    )
                    conn.commit()
                return interrupted

    def delete_target(self, target_id: int) -> bool:
        """Delete a target with its items, schedule and history."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM targets WHERE id = ?", (target_id,))
                conn.commit()
                return cursor.rowcount > 0

    # =========================================================================
    # Collection Items
    # =========================================================================

    def load_snapshot(self, target_id: int) -> list[tuple[str, int]]:
        """
        Get the stored ordering of a target as (remote_item_id, position) pairs.

        Ordered by position. This is the local side of the diff.
        """
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT c.remote_item_id, ci.position
                    FROM collection_items ci
                    JOIN content c ON c.id = ci.content_id
                    WHERE ci.target_id = ?
                    ORDER BY ci.position
                """, (target_id,))
                return [(row[0], row[1]) for row in cursor.fetchall()]

    def load_items(self, target_id: int) -> list[CollectionItem]:
        """Get all items of a target with registry metadata, ordered by position."""
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    SELECT c.remote_item_id, c.title, ci.content_id, ci.position, ci.added_at
                    FROM collection_items ci
                    JOIN content c ON c.id = ci.content_id
                    WHERE ci.target_id = ?
                    ORDER BY ci.position
                """, (target_id,))
                return [
                    CollectionItem(
                        remote_item_id=row["remote_item_id"],
                        position=row["position"],
                        content_ref=row["content_id"],
                        added_at=row["added_at"],
                        title=row["title"],
                    )
                    for row in cursor.fetchall()
                ]

    def _get_or_create_content(self, conn: sqlite3.Connection, item: RemoteItem) -> int:
        now = self._now_iso()
        conn.execute("""
            INSERT INTO content (remote_item_id, title, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(remote_item_id) DO UPDATE SET
                title = COALESCE(excluded.title, content.title),
                updated_at = excluded.updated_at
        """, (item.remote_item_id, item.title, now, now))
        cursor = conn.execute(
            "SELECT id FROM content WHERE remote_item_id = ?", (item.remote_item_id,)
        )
        return cursor.fetchone()[0]

    def apply_edit_script(
        self,
        target_id: int,
        script: EditScript,
        remote_items: Mapping[str, RemoteItem] | None = None
    ) -> int:
        """
        Apply an edit script to a target's items atomically.

        Either every change in the script is applied or none is. The
        target's item_count is updated in the same transaction.

        Args:
            target_id: Target to modify.
            script: Output of diff() for this target's current snapshot.
            remote_items: Metadata for added items, keyed by remote_item_id.

        Returns:
            Number of items in the target after the script is applied.

        Raises:
            StoreWriteError: If any statement fails, the script references
                             items not stored for the target, or the result
                             positions are not dense. Nothing is written.

        Behavior:
            1. Delete removed items
            2. Park reordered items at -(new_position + 1)
            3. Register added items in the content registry and insert
               them parked at -(position + 1)
            4. Flip every parked position back to its real value
            5. Verify positions are exactly 0..n-1
            6. Update targets.item_count and commit
        """
        remote_items = remote_items or {}

        with self._lock:
            # Failures here surface as StoreWriteError, not DatabaseError
            conn = self._connect()

            try:
                if conn.execute("SELECT 1 FROM targets WHERE id = ?", (target_id,)).fetchone() is None:
                    raise StoreWriteError(
                        f"Target not found: {target_id}",
                        details={"target_id": target_id}
                    )

                for remote_item_id in script.removed:
                    cursor = conn.execute("""
                        DELETE FROM collection_items
                        WHERE target_id = ? AND content_id =
                            (SELECT id FROM content WHERE remote_item_id = ?)
                    """, (target_id, remote_item_id))
                    if cursor.rowcount != 1:
                        raise StoreWriteError(
                            f"Cannot remove item not stored in target: {remote_item_id}",
                            details={"target_id": target_id, "remote_item_id": remote_item_id}
                        )

                for remote_item_id, old_position, new_position in script.reordered:
                    cursor = conn.execute("""
                        UPDATE collection_items SET position = ?
                        WHERE target_id = ? AND position = ? AND content_id =
                            (SELECT id FROM content WHERE remote_item_id = ?)
                    """, (-(new_position + 1), target_id, old_position, remote_item_id))
                    if cursor.rowcount != 1:
                        raise StoreWriteError(
                            f"Cannot move item not stored at position {old_position}: {remote_item_id}",
                            details={"target_id": target_id, "remote_item_id": remote_item_id}
                        )

                now = self._now_iso()
                for remote_item_id, position in script.added:
                    item = remote_items.get(remote_item_id) or RemoteItem(remote_item_id)
                    content_id = self._get_or_create_content(conn, item)
                    conn.execute("""
                        INSERT INTO collection_items (target_id, content_id, position, added_at)
                        VALUES (?, ?, ?, ?)
                    """, (target_id, content_id, -(position + 1), item.added_at or now))

                conn.execute("""
                    UPDATE collection_items SET position = -position - 1
                    WHERE target_id = ? AND position < 0
                """, (target_id,))

                count, distinct, low, high = conn.execute("""
                    SELECT COUNT(*), COUNT(DISTINCT position), MIN(position), MAX(position)
                    FROM collection_items WHERE target_id = ?
                """, (target_id,)).fetchone()

                if count and (distinct != count or low != 0 or high != count - 1):
                    raise StoreWriteError(
                        "Positions are not dense after applying edit script",
                        details={"target_id": target_id, "count": count, "min": low, "max": high}
                    )

                conn.execute(
                    "UPDATE targets SET item_count = ? WHERE id = ?", (count, target_id)
                )
                conn.commit()
                return count

            except StoreWriteError:
                conn.rollback()
                raise
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreWriteError(
                    f"Failed to apply edit script: {e}",
                    details={"target_id": target_id, "original_error": str(e)}
                ) from e

    # =========================================================================
    # Schedules
    # =========================================================================

    def _row_to_schedule(self, row: sqlite3.Row) -> Schedule:
        return Schedule(
            target_id=row["target_id"],
            interval=timedelta(seconds=row["interval_seconds"]),
            enabled=bool(row["enabled"]),
            last_run=_from_iso(row["last_run"]),
            next_run=_from_iso(row["next_run"]),
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            disabled_reason=row["disabled_reason"],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
        )

    def create_schedule(self, schedule: Schedule) -> Schedule:
        """
        Insert a new schedule.

        Raises:
            DatabaseError: If the target already has a schedule or does not exist.
        """
        now = self._now_iso()
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO schedules (
                        target_id, interval_seconds, enabled, last_run, next_run,
                        retry_count, max_retries, disabled_reason, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    schedule.target_id, int(schedule.interval.total_seconds()),
                    1 if schedule.enabled else 0, _to_iso(schedule.last_run),
                    _to_iso(schedule.next_run), schedule.retry_count, schedule.max_retries,
                    schedule.disabled_reason, now, now
                ))
                conn.commit()

                cursor = conn.execute(
                    "SELECT * FROM schedules WHERE target_id = ?", (schedule.target_id,)
                )
                return self._row_to_schedule(cursor.fetchone())

    def save_schedule(self, schedule: Schedule) -> Schedule:
        """
        Persist every mutable field of an existing schedule.

        Raises:
            DatabaseError: If no schedule exists for the target.
        """
        now = self._now_iso()
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    UPDATE schedules SET
                        interval_seconds = ?, enabled = ?, last_run = ?, next_run = ?,
                        retry_count = ?, max_retries = ?, disabled_reason = ?, updated_at = ?
                    WHERE target_id = ?
                """, (
                    int(schedule.interval.total_seconds()), 1 if schedule.enabled else 0,
                    _to_iso(schedule.last_run), _to_iso(schedule.next_run),
                    schedule.retry_count, schedule.max_retries, schedule.disabled_reason,
                    now, schedule.target_id
                ))
                conn.commit()
                if cursor.rowcount == 0:
                    raise DatabaseError(
                        f"Schedule not found for target {schedule.target_id}",
                        details={"target_id": schedule.target_id}
                    )

                cursor = conn.execute(
                    "SELECT * FROM schedules WHERE target_id = ?", (schedule.target_id,)
                )
                return self._row_to_schedule(cursor.fetchone())

    def get_schedule(self, target_id: int) -> Schedule | None:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("SELECT * FROM schedules WHERE target_id = ?", (target_id,))
                row = cursor.fetchone()
                return self._row_to_schedule(row) if row else None

    def delete_schedule(self, target_id: int) -> bool:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM schedules WHERE target_id = ?", (target_id,))
                conn.commit()
                return cursor.rowcount > 0

    def list_schedules(self, enabled_only: bool = False) -> list[Schedule]:
        """List schedules ordered by next run (unscheduled last)."""
        query = "SELECT * FROM schedules"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY next_run IS NULL, next_run, target_id"

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(query)
                return [self._row_to_schedule(row) for row in cursor.fetchall()]

    def find_enabled_schedules(self) -> list[Schedule]:
        return self.list_schedules(enabled_only=True)

    # =========================================================================
    # Quota Usage
    # =========================================================================

    def get_quota_used(self, day: date) -> int:
        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "SELECT used FROM quota_usage WHERE day = ?", (day.isoformat(),)
                )
                row = cursor.fetchone()
                return row[0] if row else 0

    def add_quota_usage(self, day: date, units: int, operation: str, daily_limit: int) -> int:
        """
        Add committed units to a day's usage and record the operation.

        Returns:
            The day's usage after the addition.
        """
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO quota_usage (day, used, daily_limit)
                    VALUES (?, ?, ?)
                    ON CONFLICT(day) DO UPDATE SET
                        used = quota_usage.used + excluded.used,
                        daily_limit = excluded.daily_limit
                """, (day.isoformat(), units, daily_limit))
                conn.execute("""
                    INSERT INTO quota_operations (day, operation, cost, timestamp)
                    VALUES (?, ?, ?, ?)
                """, (day.isoformat(), operation, units, self._now_iso()))
                conn.commit()

                cursor = conn.execute(
                    "SELECT used FROM quota_usage WHERE day = ?", (day.isoformat(),)
                )
                return cursor.fetchone()[0]

    def get_quota_history(self, first_day: date, last_day: date) -> dict[str, dict[str, Any]]:
        """
        Get committed usage between two days (inclusive), keyed by ISO day.

        Each value holds 'used', 'limit', 'operations' (number of charges)
        and 'by_operation' (units per operation kind).
        """
        with self._lock:
            with self._get_connection() as conn:
                history: dict[str, dict[str, Any]] = {}

                cursor = conn.execute("""
                    SELECT day, used, daily_limit FROM quota_usage
                    WHERE day BETWEEN ? AND ? ORDER BY day
                """, (first_day.isoformat(), last_day.isoformat()))
                for row in cursor.fetchall():
                    history[row["day"]] = {
                        "used": row["used"],
                        "limit": row["daily_limit"],
                        "operations": 0,
                        "by_operation": {},
                    }

                cursor = conn.execute("""
                    SELECT day, operation, COUNT(*) AS calls, SUM(cost) AS units
                    FROM quota_operations
                    WHERE day BETWEEN ? AND ?
                    GROUP BY day, operation
                """, (first_day.isoformat(), last_day.isoformat()))
                for row in cursor.fetchall():
                    entry = history.get(row["day"])
                    if entry is None:
                        continue
                    entry["operations"] += row["calls"]
                    entry["by_operation"][row["operation"]] = row["units"]

                return history

    def reset_quota(self, day: date) -> None:
        """Forget all committed usage for a day."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("DELETE FROM quota_usage WHERE day = ?", (day.isoformat(),))
                conn.execute("DELETE FROM quota_operations WHERE day = ?", (day.isoformat(),))
                conn.commit()

    # =========================================================================
    # Sync History
    # =========================================================================

    def record_outcome(self, outcome: SyncOutcome) -> None:
        """Append a sync outcome to the history."""
        with self._lock:
            with self._get_connection() as conn:
                conn.execute("""
                    INSERT INTO sync_history (
                        target_id, status, items_added, items_removed, items_reordered,
                        duration, quota_used, error, started_at, completed_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    outcome.target_id, outcome.status.value, outcome.items_added,
                    outcome.items_removed, outcome.items_reordered, outcome.duration,
                    outcome.quota_used, outcome.error, _to_iso(outcome.started_at),
                    self._now_iso()
                ))
                conn.commit()

    def get_history(self, target_id: int | None = None, limit: int = 20) -> list[SyncOutcome]:
        """Most recent outcomes first, optionally for one target."""
        query = "SELECT * FROM sync_history"
        params: tuple = ()
        if target_id is not None:
            query += " WHERE target_id = ?"
            params = (target_id,)
        query += " ORDER BY id DESC LIMIT ?"

        with self._lock:
            with self._get_connection() as conn:
                cursor = conn.execute(query, (*params, limit))
                return [
                    SyncOutcome(
                        target_id=row["target_id"],
                        status=SyncStatus(row["status"]),
                        items_added=row["items_added"],
                        items_removed=row["items_removed"],
                        items_reordered=row["items_reordered"],
                        duration=row["duration"],
                        quota_used=row["quota_used"],
                        error=row["error"],
                        started_at=_from_iso(row["started_at"]),
                    )
                    for row in cursor.fetchall()
                ]

    def sync_stats(self, target_id: int) -> dict[str, Any]:
        """
        Aggregate sync history for one target.

        Returns dict with: total_syncs, successful_syncs, failed_syncs,
        last_sync (datetime | None), average_duration (seconds), quota_used.
        """
        with self._lock:
            with self._get_connection() as conn:
                row = conn.execute("""
                    SELECT
                        COUNT(*) AS total,
                        SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS successful,
                        SUM(CASE WHEN status = ? THEN 1 ELSE 0 END) AS failed,
                        MAX(completed_at) AS last_sync,
                        AVG(duration) AS average_duration,
                        SUM(quota_used) AS quota_used
                    FROM sync_history WHERE target_id = ?
                """, (SyncStatus.COMPLETED.value, SyncStatus.FAILED.value, target_id)).fetchone()

                return {
                    "total_syncs": row["total"],
                    "successful_syncs": row["successful"] or 0,
                    "failed_syncs": row["failed"] or 0,
                    "last_sync": _from_iso(row["last_sync"]),
                    "average_duration": round(row["average_duration"] or 0.0, 3),
                    "quota_used": row["quota_used"] or 0,
                }
