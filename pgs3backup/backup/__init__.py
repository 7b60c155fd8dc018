# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Backup and restore pipelines.
"""

from pgs3backup.backup.manager import (
    run_backup,
    BackupResult,
)

from pgs3backup.backup.restore import (
    run_restore,
    RestoreOptions,
    RestoreResult,
)

__all__ = [
    # Manager
    "run_backup",
    "BackupResult",
    # Restore
    "run_restore",
    "RestoreOptions",
    "RestoreResult",
]
