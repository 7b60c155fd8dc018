# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
pg-s3-backup Exceptions - Custom exceptions for the pgs3backup package.
"""


class PgS3BackupError(Exception):
    """Base exception for all pgs3backup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(PgS3BackupError):
    """Raised when configuration is missing or invalid."""

    pass


class PreconditionError(PgS3BackupError):
    """Raised when a required binary is missing or the database is unreachable."""

    pass


class BackupError(PgS3BackupError):
    """Raised when creating a dump fails."""

    pass


class RestoreError(PgS3BackupError):
    """Raised when applying a dump fails."""

    pass


class CommandTimeout(PgS3BackupError):
    """Raised when an external command exceeds the operation timeout."""

    pass


class StorageError(PgS3BackupError):
    """Raised when object store operations fail."""

    pass


class IntegrityError(PgS3BackupError):
    """Raised when a checksum does not match the stored metadata."""

    pass


class BackupNotFoundError(PgS3BackupError):
    """Raised when an identifier does not match any backup in the catalog."""

    pass


class OperationInterrupted(PgS3BackupError):
    """Raised when the run is cancelled by SIGINT or SIGTERM."""

    pass
