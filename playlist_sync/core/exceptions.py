"""
Exception classes for playlist-sync.

This module defines all custom exceptions used throughout the application.
Each exception is designed to provide clear, actionable error messages
and to distinguish between different failure modes.

Exception Hierarchy:
    PlaylistSyncError (base)
        ConfigError - Configuration file issues
        DatabaseError - SQLite store issues
            StoreWriteError - Edit script could not be applied atomically
        LockContention - Target already being synchronized
        DiffError - Local snapshot is inconsistent
        QuotaError - Quota ledger issues
            QuotaExceeded - Reservation would overshoot the daily limit
            StaleReservation - Reservation belongs to a previous UTC day
        RemoteFetchError - Remote API issues
        InvalidScheduleConfig - Schedule rejected before arming
"""


class PlaylistSyncError(Exception):
    """
    Base exception for all playlist-sync errors.

    All custom exceptions in this project inherit from this class,
    allowing callers to catch all playlist-sync errors with a single
    except clause if desired.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (e.g., target id, day).

    Example:
        try:
            # some operation
        except PlaylistSyncError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Useful for logging and debugging. Common keys include:
                     - 'target_id': Local target involved in the error
                     - 'remote_id': Remote playlist id
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(PlaylistSyncError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml not found
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., negative daily limit, unparseable interval)

    Example:
        raise ConfigError(
            "'quota.daily_limit' must be a positive integer",
            details={'field': 'quota.daily_limit', 'value': -1}
        )
    """
    pass


class DatabaseError(PlaylistSyncError):
    """
    Raised when there's an issue with the SQLite database.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - Permission denied when reading/writing
        - Disk full
        - Schema version mismatch
        - Target or schedule referenced by id does not exist
    """
    pass


class StoreWriteError(DatabaseError):
    """
    Raised when an edit script cannot be applied to a target.

    The transaction is rolled back before this error is raised, so the
    stored collection is exactly as it was before the attempt.

    Common causes:
        - SQLite constraint violation
        - Resulting positions are not dense (0..n-1)
        - Script references an item that is not in the collection
    """
    pass


class LockContention(PlaylistSyncError):
    """
    Raised when a target's sync lock is already held.

    This is NOT a failure: the engine swallows it and returns no outcome,
    since another run for the same target is already in flight.
    """
    pass


class DiffError(PlaylistSyncError):
    """
    Raised when a snapshot handed to the diff is malformed.

    A local snapshot listing the same remote item twice means the store
    is corrupted; computing an edit script against it would be meaningless.
    """
    pass


class QuotaError(PlaylistSyncError):
    """Base class for quota ledger errors."""
    pass


class QuotaExceeded(QuotaError):
    """
    Raised when a reservation would push the day's usage past its limit.

    The ledger is left untouched when this is raised.

    Attributes:
        requested: Units the caller asked for.
        available: Units still free for the day (limit - used - reserved).

    Example:
        raise QuotaExceeded(
            "Daily quota exceeded: requested 5, available 2",
            details={'day': '2024-05-01', 'limit': 100},
            requested=5,
            available=2
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        requested: int = 0,
        available: int = 0
    ) -> None:
        super().__init__(message, details)
        self.requested = requested
        self.available = available


class StaleReservation(QuotaError):
    """
    Raised when committing a reservation taken on a UTC day that has ended.

    Reservations do not carry over midnight: the new day starts with a
    fresh ledger entry and the old in-flight reservations are dropped.
    """
    pass


class RemoteFetchError(PlaylistSyncError):
    """
    Raised when the remote playlist API cannot deliver a page.

    Can be transient (retry with backoff) or permanent (not found,
    forbidden, remote quota exhausted).

    Attributes:
        http_status: HTTP status code, or None for transport failures.
        is_retryable: True if the call may succeed when repeated.

    Example:
        raise RemoteFetchError(
            "Playlist not found",
            details={'remote_id': 'PLxxxx'},
            http_status=404
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        http_status: int | None = None,
        is_retryable: bool = False
    ) -> None:
        """
        Initialize remote fetch error with status information.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            http_status: Status code returned by the remote, if any.
            is_retryable: Set to True for rate limits, server errors and
                          transport failures.
        """
        super().__init__(message, details)
        self.http_status = http_status
        self.is_retryable = is_retryable


class InvalidScheduleConfig(PlaylistSyncError):
    """
    Raised when a schedule is rejected before it reaches the timer layer.

    Common causes:
        - Interval shorter than the minimum (60 seconds)
        - max_retries lower than 1
        - Unparseable cron expression
        - A schedule already exists for the target
        - The target does not exist
    """
    pass
