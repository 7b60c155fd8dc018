# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Integrity Verifier - Streaming content digests for backup artifacts.

The same function hashes the freshly created dump and every downloaded
copy, so the two digests are directly comparable.
"""

import hashlib
from pathlib import Path

import aiofiles

DIGEST_ALGORITHM = "sha256"
CHUNK_SIZE = 1024 * 1024


async def file_digest(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Calculate the SHA-256 digest of a file without loading it into memory.

    Args:
        path: File to hash
        chunk_size: Bytes read per iteration

    Returns:
        Hex-encoded digest
    """
    digest = hashlib.new(DIGEST_ALGORITHM)

    async with aiofiles.open(path, "rb") as f:
        while True:
            chunk = await f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)

    return digest.hexdigest()


def checksums_match(expected: str | None, actual: str) -> bool:
    """Compare two hex digests exactly; a missing expected value never matches."""
    if not expected:
        return False
    return expected == actual
