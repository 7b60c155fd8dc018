# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Restore Pipeline - Locate, download, verify and apply a backup.

Nothing is applied to the database until the downloaded file's checksum
matches the one stored at backup time. The downloaded copy is removed on
every exit path.
"""

from dataclasses import dataclass
from datetime import datetime, UTC
from typing import Callable

import structlog

from pgs3backup.catalog import BackupMetadata, list_backups, resolve_backup
from pgs3backup.config import BackupConfig
from pgs3backup.database import (
    PG_RESTORE,
    ConnectionProbe,
    check_connection,
    pg_env,
    restore_command,
)
from pgs3backup.errors import explain_missing_binary
from pgs3backup.exceptions import (
    IntegrityError,
    OperationInterrupted,
    PgS3BackupError,
    PreconditionError,
    RestoreError,
)
from pgs3backup.integrity import checksums_match, file_digest
from pgs3backup.lifecycle import raise_on_signals, temporary_artifact
from pgs3backup.retry import with_retry
from pgs3backup.runner import CommandRunner, SubprocessRunner
from pgs3backup.storage import ObjectStore

logger = structlog.get_logger()

ConfirmFunc = Callable[[str], bool]


@dataclass(frozen=True)
class RestoreOptions:
    """Operator choices for a restore."""

    force: bool = False  # Skip the confirmation prompt
    drop: bool = False  # Drop existing objects before recreating them
    dry_run: bool = False  # Download and verify only


@dataclass
class RestoreResult:
    """Result of a restore run."""

    run_id: str  # ULID
    backup_name: str
    checksum: str
    applied: bool
    cancelled: bool = False
    dry_run: bool = False
    duration_ms: int = 0


def _prompt(message: str) -> bool:
    """Ask on the terminal. End of input at the prompt aborts the run."""
    import click

    try:
        return click.confirm(message, default=False)
    except click.Abort as e:
        raise OperationInterrupted(
            "Restore aborted at the confirmation prompt",
            details={"step": "confirm"},
        ) from e


async def run_restore(
    config: BackupConfig,
    store: ObjectStore,
    identifier: str,
    options: RestoreOptions | None = None,
    runner: CommandRunner | None = None,
    probe: ConnectionProbe | None = None,
    confirm: ConfirmFunc | None = None,
) -> RestoreResult:
    """
    Restore the database from the backup matching identifier.

    Steps:
    1. Check for pg_restore
    2. Resolve identifier against a fresh catalog
    3. Check database connectivity
    4. Download, retrying transient failures
    5. Verify the checksum against stored metadata
    6. Confirm with the operator unless forced
    7. Run pg_restore

    Args:
        config: Backup configuration
        store: Object store for the configured bucket
        identifier: Snapshot id from the latest listing, or a backup name
        options: force / drop / dry_run
        runner: External command runner (defaults to real subprocesses)
        probe: Connectivity check (defaults to an asyncpg SELECT 1)
        confirm: Yes/no prompt (defaults to an interactive prompt)

    Returns:
        RestoreResult; cancelled=True when the operator declined

    Raises:
        PreconditionError: pg_restore missing or database unreachable
        BackupNotFoundError: identifier matches no backup
        StorageError: download failed after all retries
        IntegrityError: checksum mismatch
        RestoreError: pg_restore failed
    """
    from ulid import ULID

    options = options or RestoreOptions()
    runner = runner or SubprocessRunner()
    probe = probe or check_connection
    confirm = confirm or _prompt
    run_id = str(ULID())
    log = logger.bind(run_id=run_id)
    started = datetime.now(UTC)

    log.info("restore_started", identifier=identifier, force=options.force, drop=options.drop)

    # Step 1: Tooling
    if not options.dry_run and not runner.which(PG_RESTORE):
        raise PreconditionError(
            explain_missing_binary(PG_RESTORE), details={"step": "preflight"}
        )

    # Step 2: Resolve against a fresh snapshot
    entries = await list_backups(store, config)
    entry = resolve_backup(entries, identifier)
    log.info("restore_backup_resolved", id=entry.id, backup_name=entry.name)

    # Step 3: Connectivity, before any data moves
    if not options.dry_run:
        await probe(config)

    async with temporary_artifact(config.temp_dir, entry.name) as local_path:
        # Step 4: Download
        await with_retry(
            lambda: store.download(entry.name, local_path),
            attempts=config.retry_attempts,
            base_delay=config.retry_base_delay,
            description="download",
        )
        log.info("restore_downloaded", backup_name=entry.name, path=str(local_path))

        # Step 5: Verify
        checksum = await file_digest(local_path)
        stored = BackupMetadata.from_s3(await store.head_metadata(entry.name))

        if stored.checksum:
            if not checksums_match(stored.checksum, checksum):
                log.error(
                    "restore_checksum_mismatch",
                    backup_name=entry.name,
                    expected=stored.checksum,
                    actual=checksum,
                )
                raise IntegrityError(
                    "Checksum mismatch! The downloaded backup file may be corrupted.",
                    details={
                        "step": "verify",
                        "backup_name": entry.name,
                        "expected": stored.checksum,
                        "actual": checksum,
                    },
                )
        elif config.verify_checksum:
            raise IntegrityError(
                "Backup has no stored checksum; refusing to restore unverified data",
                details={"step": "verify", "backup_name": entry.name},
            )
        else:
            log.warning("restore_checksum_unavailable", backup_name=entry.name)

        log.info("restore_checksum_verified", backup_name=entry.name, checksum=checksum)

        if options.dry_run:
            return RestoreResult(
                run_id=run_id,
                backup_name=entry.name,
                checksum=checksum,
                applied=False,
                dry_run=True,
                duration_ms=_elapsed_ms(started),
            )

        # Step 6: Confirm
        if not options.force:
            question = (
                f"Are you sure you want to restore backup {entry.name}? "
                "This will overwrite the current database."
            )
            # The loop is blocked while confirm() waits; signals must raise here
            with raise_on_signals("confirm"):
                confirmed = confirm(question)
            if not confirmed:
                log.info("restore_cancelled", backup_name=entry.name)
                return RestoreResult(
                    run_id=run_id,
                    backup_name=entry.name,
                    checksum=checksum,
                    applied=False,
                    cancelled=True,
                    duration_ms=_elapsed_ms(started),
                )

        # Step 7: Apply
        log.info("pg_restore_started", backup_name=entry.name, drop=options.drop)
        try:
            result = await runner.run(
                restore_command(config, local_path, drop=options.drop),
                env=pg_env(config),
                timeout=config.operation_timeout,
            )
        except PgS3BackupError:
            raise
        except OSError as e:
            raise RestoreError(
                f"Failed to run pg_restore: {e}",
                details={"step": "restore"},
            ) from e

        if not result.ok:
            raise RestoreError(
                f"Failed to restore database: {result.stderr.strip()}",
                details={"step": "restore", "returncode": result.returncode},
            )

    duration_ms = _elapsed_ms(started)
    log.info("restore_completed", backup_name=entry.name, duration_ms=duration_ms)

    return RestoreResult(
        run_id=run_id,
        backup_name=entry.name,
        checksum=checksum,
        applied=True,
        duration_ms=duration_ms,
    )


def _elapsed_ms(started: datetime) -> int:
    return int((datetime.now(UTC) - started).total_seconds() * 1000)
