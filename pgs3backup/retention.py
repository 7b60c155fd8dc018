# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Retention Policy - Keep the N most recent backups, delete the rest.
"""

from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import structlog

from pgs3backup.catalog import CatalogEntry, list_backups
from pgs3backup.config import BackupConfig
from pgs3backup.storage import ObjectStore

logger = structlog.get_logger()


@dataclass
class RetentionResult:
    """Outcome of one retention pass."""

    max_backups: int
    kept: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failures


def select_excess(
    entries: Sequence[CatalogEntry], max_backups: int
) -> List[CatalogEntry]:
    """
    Return the entries past position max_backups.

    entries must be ordered most recent first, as list_backups returns them.
    """
    if max_backups < 0:
        raise ValueError(f"max_backups must be >= 0, got {max_backups}")
    return list(entries[max_backups:])


async def enforce_retention(store: ObjectStore, config: BackupConfig) -> RetentionResult:
    """
    Delete every backup older than the config.max_backups most recent ones.

    Each deletion is attempted independently. Failures are collected into
    the result rather than raised, since the caller's backup has already
    been stored.
    """
    entries = await list_backups(store, config)
    excess = select_excess(entries, config.max_backups)

    result = RetentionResult(
        max_backups=config.max_backups,
        kept=[e.name for e in entries[: config.max_backups]],
    )

    for entry in excess:
        try:
            await store.delete(entry.name)
            result.deleted.append(entry.name)
            logger.info("retention_deleted", name=entry.name)
        except Exception as e:
            result.failures.append((entry.name, str(e)))
            logger.error("retention_delete_failed", name=entry.name, error=str(e))

    logger.info(
        "retention_complete",
        max_backups=config.max_backups,
        kept=len(result.kept),
        deleted=len(result.deleted),
        failed=len(result.failures),
    )

    return result
