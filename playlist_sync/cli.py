"""
Command-line interface for playlist-sync.

This module implements the CLI using Click, with rich-click for the help
output colors.

Commands:
    playlist-sync add <playlist>                  Register a playlist
    playlist-sync remove <target>                 Forget a playlist and its items
    playlist-sync list                            Show registered playlists
    playlist-sync sync <target>                   Sync one playlist now
    playlist-sync sync --all                      Sync every playlist now
    playlist-sync quota [--days N] [--reset]      Show (or reset) quota usage
    playlist-sync stats <target>                  Show sync history statistics
    playlist-sync schedule create <target> ...    Create a recurring sync
    playlist-sync schedule list|update|delete|enable|disable
    playlist-sync scheduler run                   Run scheduled syncs in the foreground

A <target> is the local id shown by `list`, a playlist id or a playlist URL.

Configuration:
    The CLI reads config.yaml from the current directory (or --config).
    YouTube credentials are only needed by commands that reach the API.

Exit codes:
    0 success, 1 configuration error or failed sync, 2 database error,
    3 YouTube API error, 4 other playlist-sync error, 130 interrupted.
"""

import sys
import time
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Generator, Optional

import rich_click as click

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.COMMAND_GROUPS = {
    "cli": [
        {
            "name": "Playlists",
            "commands": ["add", "remove", "list"],
        },
        {
            "name": "Syncing",
            "commands": ["sync", "stats", "quota"],
        },
        {
            "name": "Scheduling",
            "commands": ["schedule", "scheduler"],
        },
    ],
}

from playlist_sync import __version__
from playlist_sync.app import Application
from playlist_sync.core import (
    ConfigError,
    DatabaseError,
    PlaylistSyncError,
    RemoteFetchError,
    Schedule,
    SyncOutcome,
    Target,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from playlist_sync.core.progress import SyncProgressBar
from playlist_sync.scheduler import interval_to_cron
from playlist_sync.utils import format_duration, format_interval, parse_interval

logger = get_logger(__name__)


def _parse_interval_option(
    ctx: click.Context,
    param: click.Parameter,
    value: Optional[str]
) -> Optional[timedelta]:
    if value is None:
        return None
    try:
        return parse_interval(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<config.yaml>",
    help="Configuration file (default: ./config.yaml)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug messages on the console"
)
@click.version_option(__version__, prog_name="playlist-sync")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: bool) -> None:
    """
    playlist-sync: Keep local copies of YouTube playlists in sync.

    Each sync fetches the playlist, computes what was added, removed or
    moved since the last run and applies it locally, without ever going
    over the daily YouTube API quota.

    \b
    BASIC USAGE:
        playlist-sync add "https://www.youtube.com/playlist?list=PL..."
        playlist-sync sync 1
        playlist-sync sync --all

    \b
    RECURRING SYNCS:
        playlist-sync schedule create 1 --interval 6h
        playlist-sync schedule create 2 --cron "0 */12 * * *"
        playlist-sync scheduler run
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


@contextmanager
def _application(ctx: click.Context) -> Generator[Application, None, None]:
    """
    Load the configuration, set up logging and open the application.

    Errors raised inside the block are reported and mapped to exit codes.
    """
    app: Application | None = None

    try:
        config = load_config(ctx.obj.get("config_path"))
        setup_logging(config.storage.directory, verbose=ctx.obj.get("verbose", False))
        app = Application.from_config(config, source=ctx.obj.get("source"))
        yield app

    except click.ClickException:
        raise

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except RemoteFetchError as e:
        click.echo(f"YouTube error: {e.message}", err=True)
        if e.http_status in (401, 403):
            click.echo("Check the youtube credentials in config.yaml", err=True)
        logger.error(f"YouTube error: {e.message}", exc_info=True)
        sys.exit(3)

    except PlaylistSyncError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        if app is not None:
            app.close()
        shutdown_logging()


def _require_target(app: Application, reference: str) -> Target:
    target = app.resolve_target(reference)
    if target is None:
        raise click.UsageError(f"Unknown target: {reference}")
    return target


# =============================================================================
# Playlists
# =============================================================================

@cli.command()
@click.argument("playlist", metavar="<playlist>")
@click.option("--title", type=str, default=None, help="Title to store instead of the remote one")
@click.option("--offline", is_flag=True, help="Do not look the playlist up on YouTube")
@click.pass_context
def add(ctx: click.Context, playlist: str, title: Optional[str], offline: bool) -> None:
    """Register a playlist (URL or id) for syncing."""
    with _application(ctx) as app:
        try:
            target = app.add_target(playlist, title=title, fetch_details=not offline)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="<playlist>") from e
        click.echo(f"Added target {target.target_id}: {target.display_name}")


@cli.command()
@click.argument("target", metavar="<target>")
@click.pass_context
def remove(ctx: click.Context, target: str) -> None:
    """Forget a playlist, its stored items and its schedule."""
    with _application(ctx) as app:
        found = _require_target(app, target)
        app.scheduler.delete_schedule(found.target_id)
        app.database.delete_target(found.target_id)
        click.echo(f"Removed target {found.target_id}: {found.display_name}")


@cli.command(name="list")
@click.pass_context
def list_targets(ctx: click.Context) -> None:
    """Show registered playlists and their sync status."""
    with _application(ctx) as app:
        targets = app.database.list_targets()
        if not targets:
            click.echo("No targets registered. Add one with `playlist-sync add <playlist>`.")
            return

        click.echo(f"{'ID':>4}  {'STATUS':<12} {'ITEMS':>6}  {'LAST SYNC':<23}  TITLE")
        for target in targets:
            click.echo(
                f"{target.target_id:>4}  {target.sync_status.value:<12} "
                f"{target.item_count:>6}  {_format_time(target.last_synced_at):<23}  "
                f"{target.display_name}"
            )


# =============================================================================
# Syncing
# =============================================================================

def _describe_outcome(target: Target, outcome: SyncOutcome) -> str:
    if outcome.succeeded:
        return (
            f"✓ {target.display_name}: +{outcome.items_added} -{outcome.items_removed} "
            f"~{outcome.items_reordered} in {format_duration(outcome.duration)} "
            f"(quota {outcome.quota_used})"
        )
    return f"✗ {target.display_name}: {outcome.error}"


@cli.command()
@click.argument("target", metavar="<target>", required=False)
@click.option("--all", "sync_all", is_flag=True, help="Sync every registered playlist")
@click.pass_context
def sync(ctx: click.Context, target: Optional[str], sync_all: bool) -> None:
    """Sync one playlist (or all of them) now."""
    if target and sync_all:
        raise click.UsageError("Cannot use both <target> and --all")
    if not target and not sync_all:
        raise click.UsageError("Give a <target> or --all")

    with _application(ctx) as app:
        if target:
            found = _require_target(app, target)
            outcome = app.engine.run(found.target_id)
            if outcome is None:
                click.echo(f"{found.display_name} is already syncing, skipped")
                return
            click.echo(_describe_outcome(found, outcome))
            if not outcome.succeeded:
                sys.exit(1)
            return

        targets = app.database.list_targets()
        if not targets:
            click.echo("No targets registered.")
            return

        by_id = {t.target_id: t for t in targets}
        with SyncProgressBar(total=len(targets)) as progress:
            def on_outcome(target_id: int, outcome: SyncOutcome | None) -> None:
                progress.update(outcome)
                if outcome is not None and not outcome.succeeded:
                    progress.log(_describe_outcome(by_id[target_id], outcome))

            outcomes = app.engine.run_many(list(by_id), on_outcome=on_outcome)

        _print_sync_summary(outcomes, skipped=len(targets) - len(outcomes))
        if any(not outcome.succeeded for outcome in outcomes):
            sys.exit(1)


def _print_sync_summary(outcomes: list[SyncOutcome], skipped: int) -> None:
    succeeded = [o for o in outcomes if o.succeeded]

    logger.info("=" * 60)
    logger.info("SYNC SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Completed:         {len(succeeded)}")
    logger.info(f"Failed:            {len(outcomes) - len(succeeded)}")
    logger.info(f"Skipped:           {skipped}")
    logger.info(f"Items added:       {sum(o.items_added for o in succeeded)}")
    logger.info(f"Items removed:     {sum(o.items_removed for o in succeeded)}")
    logger.info(f"Items reordered:   {sum(o.items_reordered for o in succeeded)}")
    logger.info(f"Quota used:        {sum(o.quota_used for o in outcomes)}")
    logger.info("=" * 60)


@cli.command()
@click.option("--days", type=click.IntRange(min=1, max=90), default=7, show_default=True,
              help="Days of history to show")
@click.option("--reset", is_flag=True, help="Forget today's recorded usage")
@click.pass_context
def quota(ctx: click.Context, days: int, reset: bool) -> None:
    """Show today's YouTube API quota usage and recent history."""
    with _application(ctx) as app:
        if reset:
            app.ledger.reset_day()
            click.echo("Today's quota usage was reset.")

        entry = app.ledger.entry()
        click.echo(
            f"Today ({entry.day.isoformat()}): {entry.used}/{entry.limit} units used "
            f"({entry.percent_used:.1f}%), {entry.remaining} remaining"
        )
        if entry.reserved:
            click.echo(f"Reserved by running syncs: {entry.reserved}")

        click.echo("")
        click.echo(f"{'DAY':<10}  {'USED':>6}  {'LIMIT':>6}  {'%':>6}  {'CALLS':>5}")
        for day in app.ledger.usage_stats(days):
            click.echo(
                f"{day['day'].isoformat():<10}  {day['used']:>6}  {day['limit']:>6}  "
                f"{day['percent_used']:>6.1f}  {day['operations']:>5}"
            )


@cli.command()
@click.argument("target", metavar="<target>")
@click.option("--history", type=click.IntRange(min=0), default=5, show_default=True,
              help="Number of recent runs to list")
@click.pass_context
def stats(ctx: click.Context, target: str, history: int) -> None:
    """Show sync statistics for a playlist."""
    with _application(ctx) as app:
        found = _require_target(app, target)
        summary = app.database.sync_stats(found.target_id)
        schedule = app.scheduler.get_schedule(found.target_id)

        click.echo(f"{found.display_name} ({found.remote_id})")
        click.echo(f"  Status:            {found.sync_status.value}")
        click.echo(f"  Items:             {found.item_count}")
        click.echo(f"  Syncs:             {summary['total_syncs']} "
                   f"({summary['successful_syncs']} ok, {summary['failed_syncs']} failed)")
        click.echo(f"  Last sync:         {_format_time(summary['last_sync'])}")
        click.echo(f"  Average duration:  {format_duration(summary['average_duration'])}")
        click.echo(f"  Quota used:        {summary['quota_used']}")
        if schedule is not None:
            click.echo(f"  Schedule:          {_describe_schedule(schedule)}")

        if history:
            for outcome in app.database.get_history(found.target_id, limit=history):
                line = f"    {_format_time(outcome.started_at)}  {outcome.status.value:<9}"
                if outcome.succeeded:
                    line += (f" +{outcome.items_added} -{outcome.items_removed} "
                             f"~{outcome.items_reordered}")
                else:
                    line += f" {outcome.error}"
                click.echo(line)


# =============================================================================
# Scheduling
# =============================================================================

def _describe_schedule(schedule: Schedule) -> str:
    text = f"every {format_interval(schedule.interval)} ({interval_to_cron(schedule.interval)})"
    if schedule.enabled:
        text += f", next {_format_time(schedule.next_run)}"
    else:
        text += ", disabled"
        if schedule.disabled_reason:
            text += f": {schedule.disabled_reason}"
    return text


@cli.group()
def schedule() -> None:
    """Manage recurring syncs."""


@schedule.command(name="create")
@click.argument("target", metavar="<target>")
@click.option("--interval", type=str, default=None, callback=_parse_interval_option,
              metavar="<30m|6h|1d>", help="Sync interval")
@click.option("--cron", "cron_expression", type=str, default=None, metavar="<expr>",
              help="Cron expression, mapped to the closest interval")
@click.option("--disabled", is_flag=True, help="Create the schedule disabled")
@click.option("--max-retries", type=int, default=None,
              help="Consecutive failures before the schedule disables itself")
@click.pass_context
def schedule_create(
    ctx: click.Context,
    target: str,
    interval,
    cron_expression: Optional[str],
    disabled: bool,
    max_retries: Optional[int]
) -> None:
    """Create a recurring sync for a playlist."""
    if interval is not None and cron_expression is not None:
        raise click.UsageError("Cannot use both --interval and --cron")

    with _application(ctx) as app:
        found = _require_target(app, target)
        if cron_expression is not None:
            created = app.scheduler.create_schedule_from_cron(
                found.target_id, cron_expression, enabled=not disabled, max_retries=max_retries
            )
        else:
            created = app.scheduler.create_schedule(
                found.target_id,
                interval or app.config.scheduler.default_interval,
                enabled=not disabled,
                max_retries=max_retries,
            )
        click.echo(f"Scheduled {found.display_name}: {_describe_schedule(created)}")


@schedule.command(name="list")
@click.option("--enabled-only", is_flag=True, help="Hide disabled schedules")
@click.pass_context
def schedule_list(ctx: click.Context, enabled_only: bool) -> None:
    """Show schedules, soonest first."""
    with _application(ctx) as app:
        schedules = app.scheduler.list_schedules(enabled_only=enabled_only)
        if not schedules:
            click.echo("No schedules.")
            return

        for item in schedules:
            target = app.database.get_target(item.target_id)
            name = target.display_name if target else "?"
            click.echo(
                f"{item.target_id:>4}  {name:<30.30}  {_describe_schedule(item)}  "
                f"[failures {item.retry_count}/{item.max_retries}]"
            )


@schedule.command(name="update")
@click.argument("target", metavar="<target>")
@click.option("--interval", type=str, default=None, callback=_parse_interval_option,
              metavar="<30m|6h|1d>", help="New sync interval")
@click.option("--max-retries", type=int, default=None, help="New failure budget")
@click.pass_context
def schedule_update(ctx: click.Context, target: str, interval, max_retries: Optional[int]) -> None:
    """Change a schedule's interval or failure budget."""
    if interval is None and max_retries is None:
        raise click.UsageError("Nothing to update: give --interval and/or --max-retries")

    with _application(ctx) as app:
        found = _require_target(app, target)
        updated = app.scheduler.update_schedule(
            found.target_id, interval=interval, max_retries=max_retries
        )
        click.echo(f"Updated {found.display_name}: {_describe_schedule(updated)}")


@schedule.command(name="delete")
@click.argument("target", metavar="<target>")
@click.pass_context
def schedule_delete(ctx: click.Context, target: str) -> None:
    """Delete a playlist's schedule."""
    with _application(ctx) as app:
        found = _require_target(app, target)
        if app.scheduler.delete_schedule(found.target_id):
            click.echo(f"Deleted schedule for {found.display_name}")
        else:
            click.echo(f"{found.display_name} has no schedule")


@schedule.command(name="enable")
@click.argument("target", metavar="<target>")
@click.pass_context
def schedule_enable(ctx: click.Context, target: str) -> None:
    """Enable a schedule and clear its failure count."""
    with _application(ctx) as app:
        found = _require_target(app, target)
        updated = app.scheduler.enable_schedule(found.target_id)
        click.echo(f"Enabled {found.display_name}: {_describe_schedule(updated)}")


@schedule.command(name="disable")
@click.argument("target", metavar="<target>")
@click.pass_context
def schedule_disable(ctx: click.Context, target: str) -> None:
    """Disable a schedule without deleting it."""
    with _application(ctx) as app:
        found = _require_target(app, target)
        app.scheduler.disable_schedule(found.target_id)
        click.echo(f"Disabled schedule for {found.display_name}")


@cli.group()
def scheduler() -> None:
    """Run the scheduler."""


@scheduler.command(name="run")
@click.option("--poll", type=float, default=1.0, hidden=True)
@click.pass_context
def scheduler_run(ctx: click.Context, poll: float) -> None:
    """Run scheduled syncs in the foreground until Ctrl-C."""
    with _application(ctx) as app:
        app.scheduler.start()
        status = app.scheduler.status()
        logger.info(f"Scheduler running with {status.active_schedules} active schedule(s). "
                    f"Press Ctrl-C to stop.")
        try:
            while True:
                time.sleep(poll)
        except KeyboardInterrupt:
            logger.info("Stopping scheduler...")
        finally:
            abandoned = app.scheduler.stop()

        if abandoned:
            click.echo(f"Stopped with {len(abandoned)} sync(s) still running", err=True)
        else:
            click.echo("Scheduler stopped")


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `playlist-sync` from the command line.
    """
    cli()


if __name__ == "__main__":
    main()
