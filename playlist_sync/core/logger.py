"""
Logging configuration for playlist-sync.

Each run writes to the console and to three files under <storage>/logs:
    - Console: colored levels, printed through tqdm so progress bars survive
    - log_full_<timestamp>.log: Complete log of all events (DEBUG and above)
    - log_errors_<timestamp>.log: Only ERROR and CRITICAL level messages
    - sync_failures_<timestamp>.log: One block per failed sync run

The full log is a superset of the console; the error log and the failure
report are filtered views of it.

Sync Events:
    State transitions of the sync engine, the quota ledger and the scheduler
    (lock acquired, quota reserved, outcome recorded, schedule auto-disabled,
    ...) are logged through log_sync_event(), which attaches the event name
    and its fields as `extra` so handlers can pick them up without parsing
    the message text.

Usage:
    from playlist_sync.core.logger import setup_logging, get_logger

    setup_logging(storage_dir)  # once, from the CLI
    logger = get_logger(__name__)

    logger.info("Starting sync")
    log_sync_event(logger, "quota.reserved", target_id=3, units=2)
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from tqdm import tqdm


# File records: timestamp, level, logger name
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Console records: level and message only
CONSOLE_LOG_FORMAT = "%(levelname)s: %(message)s"

# Attribute names set on records by log_sync_event() / log_sync_failure()
EVENT_ATTRIBUTE = "sync_event"
EVENT_FIELDS_ATTRIBUTE = "sync_event_fields"
FAILED_TARGET_ATTRIBUTE = "sync_failed_target_id"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking progress bars.

    tqdm and rich progress bars redraw in place using carriage returns.
    Plain writes to stderr interleave with the redraws; tqdm.write() prints
    the message above any active bar instead.
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class SyncFailureHandler(logging.Handler):
    """
    Custom handler that captures failed sync runs for the failure report.

    This handler listens for log records produced by log_sync_failure()
    and writes them to sync_failures_<timestamp>.log in a simple,
    human-readable format:

        [2024-05-01 10:00:00] target 3 (PLabc123)
        quota exceeded

        [2024-05-01 11:00:00] target 7 (PLxyz789)
        Remote error 404: playlist not found

    Only records carrying the 'sync_failed_target_id' attribute are written.

    Attributes:
        report_path: Path to the report file.
        report_file: Open file handle (opened by open()).
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None

    def open(self) -> None:
        """Open the report file for writing (overwrites existing content)."""
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, FAILED_TARGET_ATTRIBUTE):
            return

        if self.report_file is None:
            return

        try:
            target_id = getattr(record, FAILED_TARGET_ATTRIBUTE)
            remote_id = getattr(record, "sync_failed_remote_id", None) or "?"
            error = getattr(record, "sync_failed_error", None) or "unknown error"
            timestamp = datetime.fromtimestamp(record.created).strftime(FILE_DATE_FORMAT)

            self.report_file.write(f"[{timestamp}] target {target_id} ({remote_id})\n")
            self.report_file.write(f"{error}\n\n")
            self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """Close the report file handle. Safe to call multiple times."""
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """
    Passes ERROR and CRITICAL records only.

    Keeps the error log free of routine sync chatter.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(storage_dir: Path, verbose: bool = False) -> None:
    """
    Install the console, file and failure-report handlers on the root logger.

    Called by each CLI command right after load_config(). A later call
    replaces the handlers installed by an earlier one.

    Args:
        storage_dir: Storage directory; log files go to storage_dir/logs.
        verbose: Show DEBUG messages on the console as well.

    Handlers:
        - Console (TqdmLoggingHandler), INFO unless verbose
        - log_full_<timestamp>.log, DEBUG
        - log_errors_<timestamp>.log, ERROR+ via ErrorOnlyFilter
        - sync_failures_<timestamp>.log, via SyncFailureHandler

    Thread Safety:
        Not thread-safe. Call from the main thread before the scheduler
        starts.
    """
    logs_dir = storage_dir / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = logs_dir / f"log_full_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = logs_dir / f"log_errors_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    failures_path = logs_dir / f"sync_failures_{timestamp}.log"
    failures_handler = SyncFailureHandler(failures_path)
    failures_handler.open()
    root_logger.addHandler(failures_handler)

    # APScheduler logs every job execution at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.
              This creates a hierarchy like 'playlist_sync.sync.engine'.

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def log_sync_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.DEBUG,
    **fields: Any
) -> None:
    """
    Log a state transition of the sync subsystem.

    The message renders as "<event> key=value ...", and the event name and
    the fields are attached to the record as `extra` attributes.

    Args:
        logger: The logger to use.
        event: Dotted event name, e.g. "lock.acquired", "quota.committed",
               "schedule.auto_disabled".
        level: Log level (DEBUG by default; warnings for auto-disable).
        **fields: Event payload.

    Example:
        log_sync_event(logger, "quota.reserved", target_id=3, units=2, reservation="r-1")
    """
    rendered = " ".join(f"{key}={value}" for key, value in fields.items())
    message = f"{event} {rendered}" if rendered else event
    logger.log(
        level,
        message,
        extra={
            EVENT_ATTRIBUTE: event,
            EVENT_FIELDS_ATTRIBUTE: dict(fields),
        }
    )


def log_sync_failure(
    logger: logging.Logger,
    target_id: int,
    remote_id: str | None,
    error_message: str
) -> None:
    """
    Log a failed sync run.

    Logs at ERROR level and attaches the fields SyncFailureHandler uses to
    write the failure report.

    Example:
        log_sync_failure(logger, 3, "PLabc123", "quota exceeded")
    """
    logger.error(
        f"Sync failed for target {target_id}: {error_message}",
        extra={
            FAILED_TARGET_ATTRIBUTE: target_id,
            "sync_failed_remote_id": remote_id,
            "sync_failed_error": error_message,
        }
    )


def shutdown_logging() -> None:
    """
    Flush, close and detach every root handler.

    The CLI calls this in a finally block so the failure report is
    complete even when a command errors out.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except OSError:
            pass
        root_logger.removeHandler(handler)
