# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration.

Builds a BackupConfig from well-known environment variables, optionally
pre-loaded from a .env file. All required variables are checked up front
so a misconfigured run fails before touching the database or the bucket.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Mapping

from dotenv import load_dotenv

from pgs3backup.config import BackupConfig
from pgs3backup.errors import (
    explain_invalid_float_env,
    explain_invalid_int_env,
    explain_missing_env,
)
from pgs3backup.exceptions import ConfigurationError

REQUIRED_ENV: List[str] = [
    "DB_HOST",
    "DB_NAME",
    "DB_USER",
    "DB_PASSWORD",
    "S3_ENDPOINT",
    "S3_ACCESS_KEY",
    "S3_SECRET_KEY",
    "S3_BUCKET",
]


def _parse_int(env: Mapping[str, str], name: str, default: int, minimum: int) -> int:
    value = env.get(name)
    if not value:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_int_env(name, value, minimum)) from exc
    if parsed < minimum:
        raise ConfigurationError(explain_invalid_int_env(name, value, minimum))
    return parsed


def _parse_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if not value:
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_float_env(name, value)) from exc
    if parsed < 0:
        raise ConfigurationError(explain_invalid_float_env(name, value))
    return parsed


def _parse_bool(value: str | None) -> bool:
    # Anything but an explicit "false" keeps verification on
    return (value or "").strip().lower() != "false"


def create_config_from_env(
    env: Mapping[str, str] | None = None,
    *,
    dotenv_path: Path | str | None = None,
    load_dotenv_file: bool = True,
) -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Required:
        DB_HOST, DB_NAME, DB_USER, DB_PASSWORD,
        S3_ENDPOINT, S3_ACCESS_KEY, S3_SECRET_KEY, S3_BUCKET

    Optional:
        DB_PORT (5432), S3_REGION (us-east-1), S3_PREFIX (""),
        MAX_BACKUPS (5), TEMP_DIR (cwd), OPERATION_TIMEOUT (3600),
        VERIFY_CHECKSUM (true), RETRY_ATTEMPTS (3), RETRY_BASE_DELAY (1.0)

    Args:
        env: Mapping to read instead of os.environ (tests)
        dotenv_path: Explicit .env file; defaults to searching from cwd
        load_dotenv_file: Whether to load a .env file into os.environ first

    Raises:
        ConfigurationError: If a required variable is missing or a value is invalid
    """
    if env is None:
        if load_dotenv_file:
            load_dotenv(dotenv_path, override=False)
        env = os.environ

    missing = [name for name in REQUIRED_ENV if not env.get(name)]
    if missing:
        raise ConfigurationError(
            explain_missing_env(missing),
            details={"missing": missing},
        )

    temp_dir_env = env.get("TEMP_DIR")

    return BackupConfig(
        db_host=env["DB_HOST"],
        db_name=env["DB_NAME"],
        db_user=env["DB_USER"],
        db_password=env["DB_PASSWORD"],
        db_port=_parse_int(env, "DB_PORT", 5432, 1),
        s3_endpoint=env["S3_ENDPOINT"],
        s3_access_key=env["S3_ACCESS_KEY"],
        s3_secret_key=env["S3_SECRET_KEY"],
        s3_bucket=env["S3_BUCKET"],
        s3_region=env.get("S3_REGION") or "us-east-1",
        s3_prefix=env.get("S3_PREFIX") or "",
        max_backups=_parse_int(env, "MAX_BACKUPS", 5, 1),
        temp_dir=Path(temp_dir_env) if temp_dir_env else Path.cwd(),
        operation_timeout=_parse_int(env, "OPERATION_TIMEOUT", 3600, 1),
        verify_checksum=_parse_bool(env.get("VERIFY_CHECKSUM")),
        retry_attempts=_parse_int(env, "RETRY_ATTEMPTS", 3, 1),
        retry_base_delay=_parse_float(env, "RETRY_BASE_DELAY", 1.0),
    )
