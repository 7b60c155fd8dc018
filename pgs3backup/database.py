# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
PostgreSQL tooling - Command lines for pg_dump, pg_restore and psql, plus
the connectivity probe used before a restore.
"""

import os
from pathlib import Path
from typing import Awaitable, Callable, Dict, List

import structlog

from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import PreconditionError
from pgs3backup.runner import CommandRunner

logger = structlog.get_logger()

PG_DUMP = "pg_dump"
PG_RESTORE = "pg_restore"
PSQL = "psql"

# Custom format, compressed with zstd inside pg_dump
DUMP_FORMAT_ARGS = ["-Fc", "--compress=zstd:3"]

ConnectionProbe = Callable[[BackupConfig], Awaitable[None]]


def _connection_args(config: BackupConfig) -> List[str]:
    return [
        "-h", config.db_host,
        "-p", str(config.db_port),
        "-U", config.db_user,
        "-d", config.db_name,
    ]


def pg_env(config: BackupConfig) -> Dict[str, str]:
    """Child environment carrying the password; os.environ is never modified."""
    return {**os.environ, "PGPASSWORD": config.db_password}


def dump_command(config: BackupConfig, output_path: Path) -> List[str]:
    return [PG_DUMP, *_connection_args(config), *DUMP_FORMAT_ARGS, "-f", str(output_path)]


def restore_command(config: BackupConfig, input_path: Path, drop: bool = False) -> List[str]:
    """
    Build the pg_restore command line.

    With drop, existing objects are dropped (if they exist) before being
    recreated from the dump.
    """
    args = [PG_RESTORE, *_connection_args(config)]
    if drop:
        args += ["--clean", "--if-exists"]
    args.append(str(input_path))
    return args


def size_query_command(config: BackupConfig) -> List[str]:
    # Tuples-only, unaligned output so stdout is just the number
    return [
        PSQL,
        *_connection_args(config),
        "-t",
        "-A",
        "-c",
        f"SELECT pg_database_size('{config.db_name}')",
    ]


async def query_database_size(runner: CommandRunner, config: BackupConfig) -> int | None:
    """
    Return the on-disk size of the database in bytes, or None.

    The size is informational only (compression ratio), so every failure
    here is logged and swallowed into None.
    """
    if not runner.which(PSQL):
        logger.warning("database_size_skipped", reason="psql_not_found")
        return None

    try:
        result = await runner.run(
            size_query_command(config),
            env=pg_env(config),
            timeout=config.operation_timeout,
        )
    except Exception as e:
        logger.warning("database_size_failed", error=str(e))
        return None

    if not result.ok:
        logger.warning("database_size_failed", error=result.stderr.strip()[:500])
        return None

    try:
        return int(result.stdout.strip())
    except ValueError:
        logger.warning("database_size_unparseable", output=result.stdout.strip()[:100])
        return None


async def check_connection(config: BackupConfig) -> None:
    """
    Open a connection to the target database and run SELECT 1.

    Raises:
        PreconditionError: If the database cannot be reached
    """
    import asyncpg

    try:
        conn = await asyncpg.connect(
            host=config.db_host,
            port=config.db_port,
            user=config.db_user,
            password=config.db_password,
            database=config.db_name,
            timeout=30,
        )
    except Exception as e:
        raise PreconditionError(
            f"Failed to connect to Postgres: {e}",
            details={"host": config.db_host, "port": config.db_port, "database": config.db_name},
        ) from e

    try:
        await conn.fetchval("SELECT 1")
    except Exception as e:
        raise PreconditionError(
            f"Postgres connection check failed: {e}",
            details={"host": config.db_host, "database": config.db_name},
        ) from e
    finally:
        await conn.close()

    logger.debug("database_connection_ok", host=config.db_host, database=config.db_name)
