# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg-s3-backup - PostgreSQL backup and restore against S3-compatible storage.

Dumps one database with pg_dump, uploads it with a SHA-256 checksum in
its object metadata, keeps the most recent N backups, and restores a
chosen backup only after its checksum has been re-verified. Temporary
files never outlive a run, including interrupted ones. Package name:
pgs3backup.
"""

__version__ = "0.1.0"

# Configuration
from pgs3backup.config import BackupConfig
from pgs3backup.env import create_config_from_env

# Pipelines
from pgs3backup.backup import (
    run_backup,
    run_restore,
    BackupResult,
    RestoreOptions,
    RestoreResult,
)

# Catalog and retention
from pgs3backup.catalog import CatalogEntry, list_backups, remove_backup
from pgs3backup.retention import enforce_retention, select_excess

__all__ = [
    # Version
    "__version__",
    # Configuration
    "BackupConfig",
    "create_config_from_env",
    # Pipelines
    "run_backup",
    "run_restore",
    "BackupResult",
    "RestoreOptions",
    "RestoreResult",
    # Catalog and retention
    "CatalogEntry",
    "list_backups",
    "remove_backup",
    "enforce_retention",
    "select_excess",
]
