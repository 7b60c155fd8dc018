# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg-s3-backup Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that a pipeline
run sees exactly the settings that were validated at startup.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
import re


class OutputFormat(str, Enum):
    """Catalog presentation format."""

    HUMAN = "human"
    JSON = "json"


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens, periods
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _validate_prefix(prefix: str) -> bool:
    """A key prefix must be empty or a relative path ending in '/'."""
    if not prefix:
        return True
    return not prefix.startswith("/") and prefix.endswith("/")


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for backup and restore runs.

    Validation happens once in __post_init__ and reports every problem
    at the same time, before any pipeline side effect.
    """

    # Database connection
    db_host: str
    db_name: str
    db_user: str
    db_password: str = field(repr=False)
    db_port: int = 5432

    # Object store
    s3_endpoint: str = ""
    s3_access_key: str = field(default="", repr=False)
    s3_secret_key: str = field(default="", repr=False)
    s3_bucket: str = ""
    s3_region: str = "us-east-1"

    # Key prefix inside the bucket, e.g. "postgres/" (empty for bucket root)
    s3_prefix: str = ""

    # Number of most recent backups kept after each backup run
    max_backups: int = 5

    # Where dumps are written and downloads land; always cleaned up
    temp_dir: Path = field(default_factory=Path.cwd)

    # Hard deadline in seconds for pg_dump / pg_restore
    operation_timeout: int = 3600

    # Read back stored checksums after upload
    verify_checksum: bool = True

    # Upload/download retry policy
    retry_attempts: int = 3
    retry_base_delay: float = 1.0

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        for name in ("db_host", "db_name", "db_user", "s3_endpoint"):
            if not getattr(self, name):
                errors.append(f"{name} must not be empty")

        if not _validate_bucket_name(self.s3_bucket):
            errors.append(f"Invalid bucket name: {self.s3_bucket}")

        if not _validate_prefix(self.s3_prefix):
            errors.append(
                f"Invalid s3_prefix: {self.s3_prefix!r}, expected e.g. 'postgres/'"
            )

        if not 0 < self.db_port < 65536:
            errors.append(f"db_port must be in 1..65535, got {self.db_port}")

        if self.max_backups < 1:
            errors.append(f"max_backups must be >= 1, got {self.max_backups}")

        if self.operation_timeout < 1:
            errors.append(
                f"operation_timeout must be >= 1, got {self.operation_timeout}"
            )

        if self.retry_attempts < 1:
            errors.append(f"retry_attempts must be >= 1, got {self.retry_attempts}")

        if self.retry_base_delay < 0:
            errors.append(
                f"retry_base_delay must be >= 0, got {self.retry_base_delay}"
            )

        if errors:
            from pgs3backup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def backup_prefix(self) -> str:
        """Name prefix shared by every backup of the configured database."""
        return f"dump_{self.db_name}."
