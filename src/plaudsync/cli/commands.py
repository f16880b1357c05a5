"""Sync commands for the plaudsync CLI.

Commands:
- sync: Pull new or updated recordings (incremental)
- backfill: Re-evaluate every recording, ignoring sync state
- verify: Check every recording directory against its checksums
- export-dataset: Rebuild dataset lines from the recordings on disk
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import datetime
from functools import wraps
from pathlib import Path
from typing import Any

import click

from plaudsync.cli.config import get_out_dir
from plaudsync.cli.exit_codes import ExitCode, exit_code_for
from plaudsync.client.api import AuthenticationError
from plaudsync.core.config import DEFAULT_CONCURRENCY, SyncSettings
from plaudsync.core.timestamps import ensure_utc
from plaudsync.core.types import ALL_FORMATS, TranscriptFormat
from plaudsync.logs import configure_logging
from plaudsync.storage.atomic import StorageError
from plaudsync.sync.runner import PlaudSync
from plaudsync.sync.types import SyncResult, VerifyResult


def _parse_since(ctx: click.Context, param: click.Parameter, value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError as e:
        raise click.BadParameter(f"expected an ISO date, got {value!r}") from e


def _parse_formats(
    ctx: click.Context, param: click.Parameter, value: str
) -> tuple[TranscriptFormat, ...]:
    formats = TranscriptFormat.parse_list(value)
    if not formats:
        raise click.BadParameter("expected a comma-separated subset of json,txt,md")
    return formats


def common_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command."""
    func = click.option("--redact", is_flag=True, help="Redact tokens and cookies from logs.")(func)
    func = click.option("--verbose", "-v", is_flag=True, help="Verbose logging.")(func)
    func = click.option(
        "--out",
        "out",
        type=click.Path(file_okay=False, path_type=Path),
        default=None,
        help="Output directory (default: $PLAUDSYNC_DATA_DIR or ~/plaudsync/data).",
    )(func)
    return func


def run_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by sync and backfill."""
    options = [
        click.option(
            "--since",
            callback=_parse_since,
            help="Only recordings after this ISO date (overrides last-sync state).",
        ),
        click.option(
            "--limit", type=click.IntRange(min=1), default=None,
            help="Max number of recordings to process.",
        ),
        click.option(
            "--concurrency", type=click.IntRange(min=1), default=DEFAULT_CONCURRENCY,
            show_default=True, help="Recordings processed in parallel.",
        ),
        click.option(
            "--formats", default="json,txt,md", show_default=True, callback=_parse_formats,
            help="Transcript formats to write.",
        ),
        click.option(
            "--dataset/--no-dataset", default=True, show_default=True,
            help="Append transcripts to datasets/plaud_transcripts.jsonl.",
        ),
        click.option("--dry-run", is_flag=True, help="Print the plan without downloading."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Turn authentication and storage failures into exit codes."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except AuthenticationError as e:
            click.echo(f"Error: {e}", err=True)
            click.echo("Refresh the stored credentials and run the command again.", err=True)
            sys.exit(exit_code_for(e))
        except StorageError as e:
            click.echo(f"Error: could not write {e.path}: {e}", err=True)
            sys.exit(exit_code_for(e))

    return wrapper


def _make_plaudsync(
    out: Path | None,
    verbose: bool,
    redact: bool,
    concurrency: int = DEFAULT_CONCURRENCY,
    formats: tuple[TranscriptFormat, ...] | None = None,
    dataset: bool = True,
) -> PlaudSync:
    out_dir = get_out_dir(out)
    configure_logging(out_dir, verbose=verbose, redact=redact)
    settings = SyncSettings(
        out_dir=out_dir,
        concurrency=concurrency,
        formats=formats or ALL_FORMATS,
        include_dataset=dataset,
    )
    return PlaudSync(settings)


def print_sync_summary(result: SyncResult, dry_run: bool = False) -> None:
    """Print the outcome of a sync or backfill pass."""
    label = result.mode.value.capitalize()
    if dry_run:
        click.echo(f"\n{label} plan ({len(result.planned)} to process)")
        for recording_id in result.planned:
            click.echo(f"  {recording_id}")
        click.echo(f"  Skipped:     {result.skipped}")
        return

    click.echo(f"\n{label} complete ({result.duration:.1f}s)")
    click.echo(f"  Downloaded:  {result.succeeded}")
    click.echo(f"  Skipped:     {result.skipped}")
    click.echo(f"  Failed:      {result.failed}")
    if result.dataset_path:
        click.echo(f"  Dataset:     {result.dataset_path}")
    if result.errors:
        click.echo("\nFailed recordings:", err=True)
        for error in result.errors:
            click.echo(f"  {error.recording_id}: {error.error}", err=True)


def print_verify_summary(result: VerifyResult) -> None:
    """Print the outcome of a verification pass."""
    click.echo("\nVerify complete")
    click.echo(f"  Scanned:     {result.scanned}")
    click.echo(f"  OK:          {result.ok}")
    click.echo(f"  Failed:      {result.failed}")
    if result.repaired:
        click.echo(f"  Repaired:    {result.repaired}")
    if result.issues:
        click.echo("\nIssues:", err=True)
        for issue in result.issues:
            where = f"/{issue.file}" if issue.file else ""
            click.echo(f"  {issue.recording_id}{where}: {issue.issue}", err=True)


def _exit_for_result(ok: bool) -> None:
    sys.exit(ExitCode.SUCCESS if ok else ExitCode.PARTIAL_FAILURE)


@click.command()
@common_options
@run_options
@handle_errors
def sync(
    out: Path | None,
    verbose: bool,
    redact: bool,
    since: datetime | None,
    limit: int | None,
    concurrency: int,
    formats: tuple[TranscriptFormat, ...],
    dataset: bool,
    dry_run: bool,
) -> None:
    """Pull new or updated recordings (incremental).

    Only recordings changed since the last fully successful sync are
    downloaded, unless --since says otherwise.
    """
    plaud = _make_plaudsync(out, verbose, redact, concurrency, formats, dataset)
    result = plaud.sync(since=since, limit=limit, dry_run=dry_run)
    print_sync_summary(result, dry_run)
    _exit_for_result(result.ok)


@click.command()
@common_options
@run_options
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@handle_errors
def backfill(
    out: Path | None,
    verbose: bool,
    redact: bool,
    since: datetime | None,
    limit: int | None,
    concurrency: int,
    formats: tuple[TranscriptFormat, ...],
    dataset: bool,
    dry_run: bool,
    yes: bool,
) -> None:
    """Re-evaluate every recording, ignoring sync state.

    Existing recording directories are rewritten in place.
    """
    if not (yes or dry_run):
        scope = f"since {since.date().isoformat()}" if since else "of all time"
        click.confirm(f"Re-download every recording {scope}?", abort=True)

    plaud = _make_plaudsync(out, verbose, redact, concurrency, formats, dataset)
    result = plaud.backfill(since=since, limit=limit, dry_run=dry_run)
    print_sync_summary(result, dry_run)
    _exit_for_result(result.ok)


@click.command()
@common_options
@click.option("--repair", is_flag=True, help="Re-download recordings whose files do not match.")
@handle_errors
def verify(out: Path | None, verbose: bool, redact: bool, repair: bool) -> None:
    """Check every recording directory against its checksums."""
    plaud = _make_plaudsync(out, verbose, redact)
    result = plaud.verify(repair=repair)
    print_verify_summary(result)
    _exit_for_result(result.clean)


@click.command("export-dataset")
@common_options
@handle_errors
def export_dataset(out: Path | None, verbose: bool, redact: bool) -> None:
    """Rebuild dataset lines from the transcripts on disk.

    Lines are appended; earlier exports stay in the file, so consumers
    should dedupe by id.
    """
    plaud = _make_plaudsync(out, verbose, redact)
    path = plaud.export_dataset()
    click.echo(f"Dataset written to {path}")
