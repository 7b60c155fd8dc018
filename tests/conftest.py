# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for pgs3backup tests.

Provides an in-memory object store, a scripted command runner that plays
pg_dump / psql / pg_restore, and test configuration helpers.
"""

import hashlib
import tempfile
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Callable, Dict, Generator, List, Mapping, Sequence, Set

import pytest
import structlog

from pgs3backup.config import BackupConfig
from pgs3backup.exceptions import StorageError
from pgs3backup.runner import CommandResult
from pgs3backup.storage import StoredObject

BASE_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=UTC)
DUMP_CONTENT = b"PGDMP\x01\x0e\x00" + b"fake custom-format dump " * 512


@pytest.fixture(autouse=True)
def reset_structlog():
    """Undo logging configuration done by CLI tests."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def make_config(temp_dir: Path, **overrides) -> BackupConfig:
    values = dict(
        db_host="localhost",
        db_name="app",
        db_user="postgres",
        db_password="secret",
        s3_endpoint="http://localhost:9000",
        s3_access_key="minio",
        s3_secret_key="minio123",
        s3_bucket="test-bucket",
        max_backups=5,
        temp_dir=temp_dir / "tmp",
        retry_attempts=3,
        retry_base_delay=0,
    )
    values.update(overrides)
    return BackupConfig(**values)


@pytest.fixture
def test_config(temp_dir: Path) -> BackupConfig:
    """Create a test configuration."""
    return make_config(temp_dir)


class FakeObjectStore:
    """
    In-memory ObjectStore.

    Every upload gets a LastModified one minute after the previous object,
    so recency order follows insertion order.
    """

    def __init__(self):
        self.objects: Dict[str, dict] = {}
        self.clock = BASE_TIME
        self.upload_failures = 0
        self.download_failures = 0
        self.failing_deletes: Set[str] = set()
        self.upload_calls = 0
        self.download_calls = 0
        self.deleted: List[str] = []
        self.corrupt_downloads = False
        self.on_upload: Callable[[Path], object] | None = None
        self.metadata_override: Dict[str, Dict[str, str]] = {}

    def _tick(self) -> datetime:
        self.clock += timedelta(minutes=1)
        return self.clock

    def seed(self, name: str, content: bytes = b"old dump", metadata: Mapping[str, str] | None = None) -> None:
        meta = dict(metadata) if metadata is not None else {
            "checksum": hashlib.sha256(content).hexdigest(),
            "timestamp": "seeded",
            "compressed-size": str(len(content)),
        }
        self.objects[name] = {
            "body": content,
            "metadata": meta,
            "last_modified": self._tick(),
        }

    async def upload(self, path: Path, name: str, metadata: Mapping[str, str]) -> None:
        self.upload_calls += 1
        if self.on_upload is not None:
            await self.on_upload(path)
        if self.upload_failures > 0:
            self.upload_failures -= 1
            raise StorageError("simulated upload failure", details={"name": name})
        self.objects[name] = {
            "body": path.read_bytes(),
            "metadata": dict(metadata),
            "last_modified": self._tick(),
        }

    async def download(self, name: str, path: Path) -> None:
        self.download_calls += 1
        if self.download_failures > 0:
            self.download_failures -= 1
            raise StorageError("simulated download failure", details={"name": name})
        body = bytearray(self.objects[name]["body"])
        if self.corrupt_downloads:
            body[len(body) // 2] ^= 0x01
        path.write_bytes(bytes(body))

    async def delete(self, name: str) -> None:
        if name in self.failing_deletes:
            raise StorageError("simulated delete failure", details={"name": name})
        del self.objects[name]
        self.deleted.append(name)

    async def list(self, prefix: str) -> List[StoredObject]:
        return [
            StoredObject(name=name, last_modified=obj["last_modified"], size=len(obj["body"]))
            for name, obj in self.objects.items()
            if name.startswith(prefix)
        ]

    async def head_metadata(self, name: str) -> Dict[str, str]:
        if name in self.metadata_override:
            return dict(self.metadata_override[name])
        return dict(self.objects[name]["metadata"])


class FakeRunner:
    """
    Scripted CommandRunner.

    pg_dump writes dump_content to its -f path, psql prints db_size, and
    pg_restore exits with restore_returncode. Every call is recorded.
    """

    def __init__(
        self,
        binaries: Sequence[str] = ("pg_dump", "pg_restore", "psql"),
        dump_content: bytes = DUMP_CONTENT,
        db_size: int = 1024 * 1024,
    ):
        self.binaries = set(binaries)
        self.dump_content = dump_content
        self.db_size = db_size
        self.dump_returncode = 0
        self.dump_partial = False
        self.size_returncode = 0
        self.restore_returncode = 0
        self.calls: List[List[str]] = []
        self.envs: List[Mapping[str, str] | None] = []

    def which(self, binary: str) -> bool:
        return binary in self.binaries

    def called(self, binary: str) -> bool:
        return any(call[0] == binary for call in self.calls)

    async def run(self, args, env=None, timeout=None) -> CommandResult:
        args = list(args)
        self.calls.append(args)
        self.envs.append(env)
        binary = args[0]

        if binary == "pg_dump":
            output = Path(args[args.index("-f") + 1])
            if self.dump_returncode != 0:
                if self.dump_partial:
                    output.write_bytes(self.dump_content[:10])
                return CommandResult(self.dump_returncode, "", "pg_dump: error: connection refused")
            output.write_bytes(self.dump_content)
            return CommandResult(0, "", "")

        if binary == "psql":
            if self.size_returncode != 0:
                return CommandResult(self.size_returncode, "", "psql: error")
            return CommandResult(0, f" {self.db_size}\n", "")

        if binary == "pg_restore":
            if self.restore_returncode != 0:
                return CommandResult(self.restore_returncode, "", "pg_restore: error: could not execute query")
            return CommandResult(0, "", "")

        raise OSError(f"unexpected binary {binary}")


@pytest.fixture
def fake_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


def temp_files(config: BackupConfig) -> List[Path]:
    """Files left in the configured temporary directory."""
    if not config.temp_dir.exists():
        return []
    return [p for p in config.temp_dir.iterdir() if p.is_file()]


async def allow_probe(config: BackupConfig) -> None:
    return None


def backup_clock(minute: int) -> Callable[[], datetime]:
    """Clock for run_backup producing distinct minute-resolution names."""
    return lambda: datetime(2026, 10, 17, 9, minute, tzinfo=UTC)


