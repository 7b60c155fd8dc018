# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Catalog - Live listing, naming and identifier resolution.

IDs are 1-based positions in the most-recent-first listing. They are
recomputed on every call and are only meaningful for that snapshot; the
backup name is the durable identifier.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Sequence

import structlog

from pgs3backup.config import BackupConfig
from pgs3backup.errors import explain_not_found
from pgs3backup.exceptions import BackupNotFoundError
from pgs3backup.storage import ObjectStore

logger = structlog.get_logger()

TIMESTAMP_FORMAT = "%Y-%m-%d-%H:%M"
BACKUP_SUFFIX = ".zstd"


@dataclass(frozen=True)
class CatalogEntry:
    """One backup as presented to the operator."""

    id: str
    date: datetime
    name: str
    size: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "name": self.name,
            "size": self.size,
        }


@dataclass(frozen=True)
class BackupMetadata:
    """Metadata stored on the object at upload time."""

    checksum: str
    timestamp: str
    compressed_size: int
    original_size: int | None = None

    def to_s3(self) -> Dict[str, str]:
        metadata = {
            "checksum": self.checksum,
            "timestamp": self.timestamp,
            "compressed-size": str(self.compressed_size),
        }
        if self.original_size is not None:
            metadata["original-size"] = str(self.original_size)
        return metadata

    @classmethod
    def from_s3(cls, metadata: Dict[str, str]) -> "BackupMetadata":
        """Parse stored metadata; missing fields become empty values."""
        original = metadata.get("original-size")
        try:
            compressed_size = int(metadata.get("compressed-size", "0"))
        except ValueError:
            compressed_size = 0
        return cls(
            checksum=metadata.get("checksum", ""),
            timestamp=metadata.get("timestamp", ""),
            compressed_size=compressed_size,
            original_size=int(original) if original and original.isdigit() else None,
        )


def make_backup_name(db_name: str, now: datetime) -> str:
    """
    Build the durable backup name, e.g. dump_app.2026-10-17-14:05.zstd.

    Minute resolution: two backups started in the same minute share a name.
    """
    return f"dump_{db_name}.{now.strftime(TIMESTAMP_FORMAT)}{BACKUP_SUFFIX}"


async def list_backups(store: ObjectStore, config: BackupConfig) -> List[CatalogEntry]:
    """
    Query the store and number the configured database's backups.

    Ordering is most recent first; equal timestamps fall back to name
    (descending) so repeated listings of the same state are identical.
    """
    objects = await store.list(config.backup_prefix)

    ordered = sorted(
        objects,
        key=lambda obj: (obj.last_modified, obj.name),
        reverse=True,
    )

    entries = [
        CatalogEntry(
            id=str(index + 1),
            date=obj.last_modified,
            name=obj.name,
            size=obj.size,
        )
        for index, obj in enumerate(ordered)
    ]

    logger.debug("catalog_listed", count=len(entries), prefix=config.backup_prefix)
    return entries


def resolve_backup(entries: Sequence[CatalogEntry], identifier: str) -> CatalogEntry:
    """
    Find a catalog entry by snapshot id, falling back to its name.

    Raises:
        BackupNotFoundError: If nothing matches
    """
    identifier = identifier.strip()
    for entry in entries:
        if entry.id == identifier:
            return entry
    for entry in entries:
        if entry.name == identifier:
            return entry
    raise BackupNotFoundError(
        explain_not_found(identifier),
        details={"identifier": identifier, "catalog_size": len(entries)},
    )


async def remove_backup(
    store: ObjectStore, config: BackupConfig, identifier: str
) -> CatalogEntry:
    """
    Delete one backup, resolved against a freshly fetched catalog.

    Returns:
        The entry that was removed
    """
    entries = await list_backups(store, config)
    entry = resolve_backup(entries, identifier)
    await store.delete(entry.name)
    logger.info("backup_removed", id=entry.id, name=entry.name)
    return entry
