# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup pipeline tests.

These tests verify the backup guarantees:
1. Checksum integrity - the stored checksum is the digest of the dump
2. Cleanup - the local dump never survives a run, whatever happens
3. Retention - at most max_backups remain after a run
4. Failure semantics - fatal vs. reported-only failures
"""

import asyncio
import hashlib
from pathlib import Path

import pytest

from conftest import (
    DUMP_CONTENT,
    FakeObjectStore,
    FakeRunner,
    backup_clock,
    make_config,
    temp_files,
)
from pgs3backup.backup import run_backup
from pgs3backup.catalog import list_backups
from pgs3backup.exceptions import (
    BackupError,
    IntegrityError,
    PreconditionError,
    StorageError,
)


# ============================================================================
# Checksum integrity
# ============================================================================

@pytest.mark.asyncio
async def test_backup_checksum_matches_stored_metadata(test_config, fake_store, fake_runner):
    """
    CRITICAL: The digest computed before upload must equal the checksum
    retrievable from the store's metadata afterwards.
    """
    result = await run_backup(test_config, fake_store, runner=fake_runner)

    metadata = await fake_store.head_metadata(result.backup_name)
    assert metadata["checksum"] == result.checksum
    assert result.checksum == hashlib.sha256(DUMP_CONTENT).hexdigest()
    assert fake_store.objects[result.backup_name]["body"] == DUMP_CONTENT


@pytest.mark.asyncio
async def test_backup_records_sizes_and_timestamp(test_config, fake_store, fake_runner):
    result = await run_backup(
        test_config, fake_store, runner=fake_runner, clock=backup_clock(5)
    )

    assert result.backup_name == "dump_app.2026-10-17-09:05.zstd"
    assert result.compressed_size == len(DUMP_CONTENT)
    assert result.original_size == fake_runner.db_size
    assert result.compression_ratio == pytest.approx(fake_runner.db_size / len(DUMP_CONTENT))
    assert result.duration_ms >= 0

    metadata = await fake_store.head_metadata(result.backup_name)
    assert metadata["timestamp"] == "2026-10-17-09:05"
    assert metadata["compressed-size"] == str(len(DUMP_CONTENT))
    assert metadata["original-size"] == str(fake_runner.db_size)


@pytest.mark.asyncio
async def test_backup_invokes_pg_dump_with_custom_compressed_format(test_config, fake_store, fake_runner):
    await run_backup(test_config, fake_store, runner=fake_runner)

    dump_call = next(call for call in fake_runner.calls if call[0] == "pg_dump")
    assert "-Fc" in dump_call
    assert "--compress=zstd:3" in dump_call
    assert dump_call[dump_call.index("-d") + 1] == "app"

    env = fake_runner.envs[fake_runner.calls.index(dump_call)]
    assert env["PGPASSWORD"] == "secret"


@pytest.mark.asyncio
async def test_backup_detects_stored_checksum_mismatch(test_config, fake_store, fake_runner):
    """Read-back verification fails when the stored checksum differs."""
    original_head = fake_store.head_metadata

    async def tampered_head(name):
        metadata = await original_head(name)
        metadata["checksum"] = "0" * 64
        return metadata

    fake_store.head_metadata = tampered_head

    with pytest.raises(IntegrityError):
        await run_backup(test_config, fake_store, runner=fake_runner)

    assert temp_files(test_config) == []


@pytest.mark.asyncio
async def test_backup_skips_read_back_when_verification_disabled(temp_dir, fake_store, fake_runner):
    config = make_config(temp_dir, verify_checksum=False)

    async def fail_head(name):
        raise AssertionError("head_metadata should not be called")

    fake_store.head_metadata = fail_head

    result = await run_backup(config, fake_store, runner=fake_runner)
    assert result.backup_name in fake_store.objects


# ============================================================================
# Preconditions
# ============================================================================

@pytest.mark.asyncio
async def test_missing_pg_dump_is_fatal_without_side_effects(test_config, fake_store):
    runner = FakeRunner(binaries=("psql",))

    with pytest.raises(PreconditionError, match="pg_dump not found"):
        await run_backup(test_config, fake_store, runner=runner)

    assert runner.calls == []
    assert fake_store.upload_calls == 0


@pytest.mark.asyncio
async def test_missing_psql_only_omits_original_size(test_config, fake_store):
    runner = FakeRunner(binaries=("pg_dump",))

    result = await run_backup(test_config, fake_store, runner=runner)

    assert result.original_size is None
    assert result.compression_ratio is None
    assert "Could not determine database size" in result.warnings
    assert "original-size" not in await fake_store.head_metadata(result.backup_name)


@pytest.mark.asyncio
async def test_failed_size_query_is_not_fatal(test_config, fake_store, fake_runner):
    fake_runner.size_returncode = 2

    result = await run_backup(test_config, fake_store, runner=fake_runner)

    assert result.original_size is None
    assert result.backup_name in fake_store.objects


# ============================================================================
# Cleanup on every exit path
# ============================================================================

@pytest.mark.asyncio
async def test_successful_backup_removes_local_dump(test_config, fake_store, fake_runner):
    await run_backup(test_config, fake_store, runner=fake_runner)
    assert temp_files(test_config) == []


@pytest.mark.asyncio
async def test_pg_dump_failure_removes_partial_artifact(test_config, fake_store, fake_runner):
    fake_runner.dump_returncode = 1
    fake_runner.dump_partial = True

    with pytest.raises(BackupError, match="connection refused"):
        await run_backup(test_config, fake_store, runner=fake_runner)

    assert temp_files(test_config) == []
    assert fake_store.upload_calls == 0


@pytest.mark.asyncio
async def test_upload_is_retried_until_success(test_config, fake_store, fake_runner):
    fake_store.upload_failures = 2

    result = await run_backup(test_config, fake_store, runner=fake_runner)

    assert fake_store.upload_calls == 3
    assert result.backup_name in fake_store.objects


@pytest.mark.asyncio
async def test_upload_exhaustion_is_fatal_and_cleans_up(test_config, fake_store, fake_runner):
    fake_store.upload_failures = 10

    with pytest.raises(StorageError):
        await run_backup(test_config, fake_store, runner=fake_runner)

    assert fake_store.upload_calls == test_config.retry_attempts
    assert temp_files(test_config) == []


@pytest.mark.asyncio
async def test_interrupt_mid_upload_removes_artifact(test_config, fake_store, fake_runner):
    """
    CRITICAL: Cancelling the run after the dump exists but before the
    upload completes must leave no local artifact behind.
    """
    upload_started = asyncio.Event()
    seen_paths = []

    async def block_upload(path: Path):
        seen_paths.append(path)
        assert path.exists(), "dump must exist while uploading"
        upload_started.set()
        await asyncio.sleep(3600)

    fake_store.on_upload = block_upload

    task = asyncio.create_task(run_backup(test_config, fake_store, runner=fake_runner))
    await asyncio.wait_for(upload_started.wait(), timeout=5)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert seen_paths and not seen_paths[0].exists()
    assert temp_files(test_config) == []
    assert fake_store.objects == {}


# ============================================================================
# Retention after backup
# ============================================================================

@pytest.mark.asyncio
async def test_retention_keeps_three_newest_after_new_backup(temp_dir, fake_runner):
    """
    Catalog A (oldest), B, C plus new backup D with max_backups=3:
    A is deleted and exactly {D, C, B} remain.
    """
    store = FakeObjectStore()
    for name in ("A", "B", "C"):
        store.seed(f"dump_app.{name}.zstd")
    config = make_config(temp_dir, max_backups=3)

    result = await run_backup(config, store, runner=fake_runner)

    names = [e.name for e in await list_backups(store, config)]
    assert names == [result.backup_name, "dump_app.C.zstd", "dump_app.B.zstd"]
    assert result.retention.deleted == ["dump_app.A.zstd"]
    assert result.retention.complete


@pytest.mark.asyncio
async def test_retention_never_exceeds_max_backups(temp_dir, fake_runner):
    """With max_backups=2 the same catalog ends as {D, C}."""
    store = FakeObjectStore()
    for name in ("A", "B", "C"):
        store.seed(f"dump_app.{name}.zstd")
    config = make_config(temp_dir, max_backups=2)

    result = await run_backup(config, store, runner=fake_runner)

    entries = await list_backups(store, config)
    assert len(entries) == 2
    assert [e.name for e in entries] == [result.backup_name, "dump_app.C.zstd"]
    assert sorted(result.retention.deleted) == ["dump_app.A.zstd", "dump_app.B.zstd"]


@pytest.mark.asyncio
async def test_retention_ignores_other_databases(temp_dir, fake_runner):
    store = FakeObjectStore()
    store.seed("dump_other.X.zstd")
    store.seed("dump_app.A.zstd")
    store.seed("dump_app_archive.Y.zstd")
    config = make_config(temp_dir, max_backups=1)

    await run_backup(config, store, runner=fake_runner)

    assert "dump_other.X.zstd" in store.objects
    assert "dump_app_archive.Y.zstd" in store.objects
    assert "dump_app.A.zstd" not in store.objects


@pytest.mark.asyncio
async def test_retention_failure_does_not_fail_backup(temp_dir, fake_runner):
    """
    A failed deletion is reported but the new backup stays and the run
    succeeds.
    """
    store = FakeObjectStore()
    for name in ("A", "B", "C"):
        store.seed(f"dump_app.{name}.zstd")
    store.failing_deletes.add("dump_app.A.zstd")
    config = make_config(temp_dir, max_backups=1)

    result = await run_backup(config, store, runner=fake_runner)

    assert result.backup_name in store.objects
    assert result.retention.deleted == ["dump_app.C.zstd", "dump_app.B.zstd"]
    assert [name for name, _ in result.retention.failures] == ["dump_app.A.zstd"]
    assert not result.retention.complete
    assert any("Retention incomplete" in w for w in result.warnings)
    assert temp_files(config) == []


@pytest.mark.asyncio
async def test_retention_listing_failure_is_reported(test_config, fake_runner):
    store = FakeObjectStore()
    list_calls = []

    async def flaky_list(prefix):
        list_calls.append(prefix)
        raise StorageError("listing unavailable")

    store.list = flaky_list

    result = await run_backup(test_config, store, runner=fake_runner)

    assert list_calls
    assert result.backup_name in store.objects
    assert result.retention.failures[0][0] == "<catalog>"
