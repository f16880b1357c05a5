"""Command-line interface for plaudsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- sync: Pull new or updated recordings (incremental)
- backfill: Re-evaluate every recording, ignoring sync state
- verify: Check recording directories against their checksums
- export-dataset: Rebuild dataset lines from the transcripts on disk
"""

from __future__ import annotations

import click

from plaudsync.cli.commands import backfill, export_dataset, sync, verify
from plaudsync.cli.config import get_config_file, get_out_dir, load_config, save_config
from plaudsync.cli.exit_codes import ExitCode, exit_code_for


@click.group()
@click.version_option(package_name="plaudsync")
def cli() -> None:
    """plaudsync - Incremental, crash-safe export of Plaud recordings."""


# Sync commands
cli.add_command(sync)
cli.add_command(backfill)

# Integrity commands
cli.add_command(verify)
cli.add_command(export_dataset)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Exit codes
    "ExitCode",
    "exit_code_for",
    # Config utilities
    "get_config_file",
    "get_out_dir",
    "load_config",
    "save_config",
]
