# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command line interface.

    pgs3backup backup
    pgs3backup list [--format human|json]
    pgs3backup remove <id>
    pgs3backup restore <id> [--force] [--drop] [--dry-run]

Configuration comes from the environment (and an optional .env file).
Logs go to stderr so stdout stays machine-readable.
"""

import asyncio
import logging
import sys
from enum import IntEnum
from typing import Any, Awaitable, TypeVar

import click
import structlog

from pgs3backup import __version__
from pgs3backup.backup import RestoreOptions, run_backup, run_restore
from pgs3backup.catalog import list_backups, remove_backup
from pgs3backup.config import BackupConfig, OutputFormat
from pgs3backup.env import create_config_from_env
from pgs3backup.exceptions import (
    BackupError,
    BackupNotFoundError,
    CommandTimeout,
    ConfigurationError,
    IntegrityError,
    OperationInterrupted,
    PgS3BackupError,
    PreconditionError,
    RestoreError,
    StorageError,
)
from pgs3backup.formatting import (
    format_bytes,
    format_duration,
    render_json,
    render_table,
)
from pgs3backup.lifecycle import interruptible
from pgs3backup.storage import open_store

logger = structlog.get_logger()

T = TypeVar("T")


class ExitCode(IntEnum):
    SUCCESS = 0
    CONFIG_ERROR = 1
    DATABASE_ERROR = 2
    S3_ERROR = 3
    OPERATION_ERROR = 4
    USER_INTERRUPT = 5
    SYSTEM_ERROR = 6


_EXIT_CODES = [
    (ConfigurationError, ExitCode.CONFIG_ERROR),
    (PreconditionError, ExitCode.DATABASE_ERROR),
    (BackupError, ExitCode.DATABASE_ERROR),
    (RestoreError, ExitCode.DATABASE_ERROR),
    (CommandTimeout, ExitCode.DATABASE_ERROR),
    (StorageError, ExitCode.S3_ERROR),
    (IntegrityError, ExitCode.OPERATION_ERROR),
    (BackupNotFoundError, ExitCode.OPERATION_ERROR),
    (OperationInterrupted, ExitCode.USER_INTERRUPT),
]


def exit_code_for(error: BaseException) -> ExitCode:
    for error_type, code in _EXIT_CODES:
        if isinstance(error, error_type):
            return code
    return ExitCode.SYSTEM_ERROR


def configure_logging(verbose: bool = False) -> None:
    """Send structlog output to stderr, at debug level when verbose."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _execute(ctx: click.Context, awaitable: Awaitable[T]) -> T:
    """Run a pipeline on a fresh event loop and map failures to exit codes."""
    try:
        return asyncio.run(interruptible(awaitable))
    except PgS3BackupError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(exit_code_for(e))
    except Exception as e:
        logger.exception("unexpected_error", error=str(e))
        click.echo(f"Unexpected error: {e}", err=True)
        ctx.exit(ExitCode.SYSTEM_ERROR)


def _store(ctx: click.Context):
    factory = ctx.obj.get("store_factory", open_store)
    return factory(ctx.obj["config"])


@click.group()
@click.version_option(__version__, prog_name="pgs3backup")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Load environment variables from this file instead of ./.env.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, env_file: str | None) -> None:
    """Back up and restore a PostgreSQL database to S3-compatible storage."""
    ctx.ensure_object(dict)
    configure_logging(verbose)

    if "config" in ctx.obj:
        return
    try:
        ctx.obj["config"] = create_config_from_env(dotenv_path=env_file)
    except ConfigurationError as e:
        click.echo(f"Configuration error: {e}", err=True)
        ctx.exit(ExitCode.CONFIG_ERROR)


@cli.command()
@click.pass_context
def backup(ctx: click.Context) -> None:
    """Create a backup, upload it and apply retention."""
    config: BackupConfig = ctx.obj["config"]

    async def _run():
        async with _store(ctx) as store:
            return await run_backup(config, store, runner=ctx.obj.get("runner"))

    result = _execute(ctx, _run())

    click.echo("\nBackup Summary:")
    click.echo("===============")
    click.echo(f"Name: {result.backup_name}")
    if result.original_size is not None:
        click.echo(f"DB Size: {format_bytes(result.original_size)}")
        if result.compression_ratio is not None:
            click.echo(f"Compression Ratio: {result.compression_ratio:.2f}x")
    click.echo(f"Backup Size: {format_bytes(result.compressed_size)}")
    click.echo(f"Duration: {format_duration(result.duration_ms)}")
    click.echo(f"Checksum: {result.checksum}")

    if result.retention is not None:
        click.echo(
            f"Rotation: kept {len(result.retention.kept)}, "
            f"deleted {len(result.retention.deleted)} (MAX_BACKUPS={config.max_backups})"
        )
        for name, error in result.retention.failures:
            click.echo(f"Warning: could not delete {name}: {error}", err=True)


@cli.command(name="list")
@click.option(
    "--format",
    "output_format",
    type=click.Choice([f.value for f in OutputFormat]),
    default=OutputFormat.HUMAN.value,
    show_default=True,
    help="Output format.",
)
@click.pass_context
def list_command(ctx: click.Context, output_format: str) -> None:
    """List backups, most recent first."""
    config: BackupConfig = ctx.obj["config"]

    async def _run():
        async with _store(ctx) as store:
            return await list_backups(store, config)

    entries = _execute(ctx, _run())

    if OutputFormat(output_format) is OutputFormat.JSON:
        click.echo(render_json(entries))
    else:
        click.echo(render_table(entries))


@cli.command()
@click.argument("identifier")
@click.pass_context
def remove(ctx: click.Context, identifier: str) -> None:
    """Delete one backup by ID (from the latest listing) or name."""
    config: BackupConfig = ctx.obj["config"]

    async def _run():
        async with _store(ctx) as store:
            return await remove_backup(store, config, identifier)

    entry = _execute(ctx, _run())
    click.echo(f"Backup with ID {entry.id} removed ({entry.name})")


@cli.command()
@click.argument("identifier")
@click.option("--force", is_flag=True, help="Do not ask for confirmation.")
@click.option("--drop", is_flag=True, help="Drop existing objects before restoring.")
@click.option("--dry-run", is_flag=True, help="Download and verify only.")
@click.pass_context
def restore(
    ctx: click.Context, identifier: str, force: bool, drop: bool, dry_run: bool
) -> None:
    """Verify a backup and restore it into the configured database."""
    config: BackupConfig = ctx.obj["config"]
    options = RestoreOptions(force=force, drop=drop, dry_run=dry_run)
    extra: dict[str, Any] = {
        key: ctx.obj[key] for key in ("runner", "probe", "confirm") if key in ctx.obj
    }

    async def _run():
        async with _store(ctx) as store:
            return await run_restore(config, store, identifier, options, **extra)

    result = _execute(ctx, _run())

    if result.cancelled:
        click.echo("Operation cancelled")
    elif result.dry_run:
        click.echo(f"Backup {result.backup_name} verified (checksum {result.checksum}); nothing restored")
    else:
        click.echo(
            f"Database restored from {result.backup_name} "
            f"in {format_duration(result.duration_ms)}"
        )


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
