# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

import hashlib
from pathlib import Path

import pytest

from pgs3backup.integrity import checksums_match, file_digest


@pytest.mark.asyncio
async def test_digest_matches_hashlib(temp_dir: Path):
    path = temp_dir / "dump"
    content = b"x" * 3000 + b"tail"
    path.write_bytes(content)

    # Small chunks force several reads
    digest = await file_digest(path, chunk_size=1024)

    assert digest == hashlib.sha256(content).hexdigest()


@pytest.mark.asyncio
async def test_digest_of_empty_file(temp_dir: Path):
    path = temp_dir / "empty"
    path.write_bytes(b"")

    assert await file_digest(path) == hashlib.sha256(b"").hexdigest()


@pytest.mark.asyncio
async def test_single_flipped_byte_changes_digest(temp_dir: Path):
    original = temp_dir / "a"
    corrupted = temp_dir / "b"
    content = bytearray(b"PGDMP" + bytes(range(256)) * 8)
    original.write_bytes(bytes(content))
    content[100] ^= 0x01
    corrupted.write_bytes(bytes(content))

    assert not checksums_match(await file_digest(original), await file_digest(corrupted))


def test_missing_expected_checksum_never_matches():
    assert not checksums_match("", "abc")
    assert not checksums_match(None, "abc")
    assert checksums_match("abc", "abc")
