# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Pipeline - Dump, verify, upload and rotate.

The dump is written to a temporary path owned by this run, hashed,
uploaded together with its checksum metadata, and removed again whatever
happens. Retention runs only after the new backup is stored.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Callable

import structlog

from pgs3backup.catalog import BackupMetadata, TIMESTAMP_FORMAT, make_backup_name
from pgs3backup.config import BackupConfig
from pgs3backup.database import (
    PG_DUMP,
    dump_command,
    pg_env,
    query_database_size,
)
from pgs3backup.errors import explain_missing_binary
from pgs3backup.exceptions import (
    BackupError,
    IntegrityError,
    PgS3BackupError,
    PreconditionError,
)
from pgs3backup.integrity import checksums_match, file_digest
from pgs3backup.lifecycle import temporary_artifact
from pgs3backup.retention import RetentionResult, enforce_retention
from pgs3backup.retry import with_retry
from pgs3backup.runner import CommandRunner, SubprocessRunner
from pgs3backup.storage import ObjectStore

logger = structlog.get_logger()


@dataclass
class BackupResult:
    """Result of a backup run."""

    run_id: str  # ULID
    backup_name: str
    checksum: str
    compressed_size: int
    duration_ms: int
    original_size: int | None = None
    retention: RetentionResult | None = None
    warnings: list = field(default_factory=list)

    @property
    def compression_ratio(self) -> float | None:
        if not self.original_size or not self.compressed_size:
            return None
        return self.original_size / self.compressed_size


async def run_backup(
    config: BackupConfig,
    store: ObjectStore,
    runner: CommandRunner | None = None,
    clock: Callable[[], datetime] | None = None,
) -> BackupResult:
    """
    Create a backup of the configured database and upload it.

    Steps:
    1. Name the backup from the database name and the current minute
    2. Check for pg_dump (required) and psql (optional, for size)
    3. Dump to a temporary file
    4. Hash the dump
    5. Upload with metadata, retrying transient failures
    6. Optionally read the stored checksum back
    7. Enforce retention (failures reported, not raised)

    Args:
        config: Backup configuration
        store: Object store for the configured bucket
        runner: External command runner (defaults to real subprocesses)
        clock: Source of the current time (tests)

    Returns:
        BackupResult with name, checksum, sizes, duration and retention outcome

    Raises:
        PreconditionError: pg_dump is not installed
        BackupError: pg_dump failed
        StorageError: upload failed after all retries
        IntegrityError: stored checksum differs from the local one
    """
    from ulid import ULID

    runner = runner or SubprocessRunner()
    now = (clock or (lambda: datetime.now(UTC)))()
    run_id = str(ULID())
    log = logger.bind(run_id=run_id)

    started = datetime.now(UTC)
    backup_name = make_backup_name(config.db_name, now)
    timestamp = now.strftime(TIMESTAMP_FORMAT)

    log.info("backup_started", backup_name=backup_name, database=config.db_name)

    if not runner.which(PG_DUMP):
        raise PreconditionError(explain_missing_binary(PG_DUMP), details={"step": "preflight"})

    try:
        async with temporary_artifact(config.temp_dir, backup_name) as backup_path:
            # Step 3: Dump
            log.info("dump_started", path=str(backup_path))
            try:
                result = await runner.run(
                    dump_command(config, backup_path),
                    env=pg_env(config),
                    timeout=config.operation_timeout,
                )
            except PgS3BackupError:
                raise
            except OSError as e:
                raise BackupError(
                    f"Failed to run pg_dump: {e}",
                    details={"step": "dump"},
                ) from e

            if not result.ok:
                raise BackupError(
                    f"Failed to create database backup: {result.stderr.strip()}",
                    details={"step": "dump", "returncode": result.returncode},
                )
            if not backup_path.exists():
                raise BackupError(
                    "pg_dump reported success but wrote no file",
                    details={"step": "dump", "path": str(backup_path)},
                )

            original_size = await query_database_size(runner, config)

            # Step 4: Integrity
            compressed_size = backup_path.stat().st_size
            checksum = await file_digest(backup_path)
            log.info(
                "dump_completed",
                compressed_size=compressed_size,
                original_size=original_size,
                checksum=checksum,
            )

            # Step 5: Upload
            metadata = BackupMetadata(
                checksum=checksum,
                timestamp=timestamp,
                compressed_size=compressed_size,
                original_size=original_size,
            )
            await with_retry(
                lambda: store.upload(backup_path, backup_name, metadata.to_s3()),
                attempts=config.retry_attempts,
                base_delay=config.retry_base_delay,
                description="upload",
            )
            log.info("backup_uploaded", backup_name=backup_name)

            # Step 6: Read back
            if config.verify_checksum:
                stored = BackupMetadata.from_s3(await store.head_metadata(backup_name))
                if not checksums_match(stored.checksum, checksum):
                    raise IntegrityError(
                        "Stored checksum does not match the uploaded backup",
                        details={
                            "step": "verify",
                            "backup_name": backup_name,
                            "expected": checksum,
                            "stored": stored.checksum,
                        },
                    )

        # Step 7: Retention, with the local artifact already gone
        retention = await _rotate(store, config, log)

    except BaseException as e:
        log.error("backup_failed", backup_name=backup_name, error=str(e) or type(e).__name__)
        raise

    duration_ms = int((datetime.now(UTC) - started).total_seconds() * 1000)

    backup_result = BackupResult(
        run_id=run_id,
        backup_name=backup_name,
        checksum=checksum,
        compressed_size=compressed_size,
        duration_ms=duration_ms,
        original_size=original_size,
        retention=retention,
    )
    if original_size is None:
        backup_result.warnings.append("Could not determine database size")
    if not retention.complete:
        backup_result.warnings.append(
            f"Retention incomplete: {len(retention.failures)} backup(s) could not be deleted"
        )

    log.info(
        "backup_completed",
        backup_name=backup_name,
        duration_ms=duration_ms,
        compressed_size=compressed_size,
        deleted=len(retention.deleted),
    )

    return backup_result


async def _rotate(store: ObjectStore, config: BackupConfig, log) -> RetentionResult:
    """Run retention; a failing catalog listing is reported like a failed delete."""
    try:
        return await enforce_retention(store, config)
    except Exception as e:
        log.error("retention_failed", error=str(e))
        result = RetentionResult(max_backups=config.max_backups)
        result.failures.append(("<catalog>", str(e)))
        return result
