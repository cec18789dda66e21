"""
Progress display for multi-target syncs using the Rich library.

Usage:
    from playlist_sync.core.progress import SyncProgressBar

    with SyncProgressBar(total=len(targets)) as progress:
        for target in targets:
            progress.update(engine.run(target.target_id))
"""

from rich import get_console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn
from rich.theme import Theme

from playlist_sync.core.models import SyncOutcome


PROGRESS_THEME = Theme({
    "bar.back": "grey23",
    "bar.complete": "rgb(165,66,129)",
    "bar.finished": "rgb(114,156,31)",
    "bar.pulse": "rgb(165,66,129)",
    "progress.percentage": "white",
})


class SyncProgressBar:
    """
    Progress bar for `sync --all`.

    Displays:
        Syncing     ✓ 4  ✗ 1  ⏭ 1      ━━━━━━━━━━━━━━━━━━━━  6/10

    where ⏭ counts targets skipped because they were already syncing.
    """

    def __init__(self, total: int, description: str = "Syncing") -> None:
        self.total = total
        self.description = description
        self.completed = 0
        self.succeeded = 0
        self.failed = 0
        self.skipped = 0

        self.console = get_console()
        self.console.push_theme(PROGRESS_THEME)

        self.progress = Progress(
            TextColumn("[white]{task.description:<12}"),
            TextColumn("{task.fields[status]}", style="white"),
            BarColumn(bar_width=40, finished_style="green"),
            MofNCompleteColumn(),
            console=self.console,
            transient=False,
            refresh_per_second=10,
        )
        self.task_id: TaskID | None = None
        self._started = False

    def __enter__(self) -> "SyncProgressBar":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        if not self._started:
            self.progress.start()
            self.task_id = self.progress.add_task(
                description=self.description,
                total=self.total,
                status=self._status_text(),
            )
            self._started = True

    def stop(self) -> None:
        if self._started:
            self.progress.stop()
            self.console.pop_theme()
            self._started = False

    def log(self, message: str) -> None:
        """Print a message above the progress bar."""
        self.progress.console.print(message, highlight=False)

    def _status_text(self) -> str:
        parts = [
            f"[green]✓ {self.succeeded}[/green]",
            f"[red]✗ {self.failed}[/red]",
        ]
        if self.skipped:
            parts.append(f"[yellow]⏭ {self.skipped}[/yellow]")
        return "  ".join(parts)

    def update(self, outcome: SyncOutcome | None) -> None:
        """Count one finished target (None means it was skipped)."""
        self.completed += 1
        if outcome is None:
            self.skipped += 1
        elif outcome.succeeded:
            self.succeeded += 1
        else:
            self.failed += 1

        if self.task_id is not None:
            self.progress.update(
                self.task_id,
                completed=self.completed,
                status=self._status_text(),
            )
