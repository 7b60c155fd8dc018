# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for pg-s3-backup.

These helpers centralize wording for common configuration and precondition
errors so that all modules present consistent, actionable messages.
"""

from typing import Iterable


def explain_missing_env(names: Iterable[str]) -> str:
    """
    Explain that one or more required environment variables are missing.
    """

    return (
        f"Missing required environment variables: {', '.join(names)}. "
        "Set them in the environment or in a .env file in the working directory."
    )


def explain_invalid_int_env(name: str, value: str | None, minimum: int) -> str:
    """
    Explain that an integer environment variable is invalid.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        f"It must be an integer >= {minimum}."
    )


def explain_invalid_float_env(name: str, value: str | None) -> str:
    """
    Explain that a numeric environment variable is invalid.
    """

    return f"Invalid {name} value: {value!r}. It must be a non-negative number of seconds."


def explain_missing_binary(binary: str) -> str:
    """
    Explain that a PostgreSQL client binary is not on PATH.
    """

    return (
        f"{binary} not found. "
        "Install the PostgreSQL client tools and make sure they are on PATH."
    )


def explain_not_found(identifier: str) -> str:
    """
    Explain that a backup identifier did not resolve.
    """

    return (
        f"Backup with ID {identifier} not found. "
        "IDs are renumbered on every listing; run 'pgs3backup list' for current IDs "
        "or pass the backup name instead."
    )
