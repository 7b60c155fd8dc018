# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command Runner - External process capability used by the pipelines.

The pipelines only see the CommandRunner protocol, so they can be driven
by a scripted fake in tests without PostgreSQL binaries present.
"""

import asyncio
import shutil
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

import structlog

from pgs3backup.exceptions import CommandTimeout

logger = structlog.get_logger()


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Protocol for locating and running external binaries."""

    def which(self, binary: str) -> bool:
        ...

    async def run(
        self,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        ...


class SubprocessRunner:
    """CommandRunner backed by asyncio subprocesses."""

    def which(self, binary: str) -> bool:
        return shutil.which(binary) is not None

    async def run(
        self,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """
        Run a command and capture its output.

        On timeout the child is killed and CommandTimeout is raised. On
        cancellation (SIGINT/SIGTERM) the child is left to finish on its own.

        Raises:
            OSError: If the binary cannot be started
            CommandTimeout: If the command exceeds timeout seconds
        """
        logger.debug("command_started", binary=args[0], args=list(args[1:]))

        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=dict(env) if env is not None else None,
        )

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout)
        except asyncio.TimeoutError:
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise CommandTimeout(
                f"{args[0]} timed out after {timeout}s",
                details={"command": args[0], "timeout": timeout},
            )

        result = CommandResult(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout.decode("utf-8", "replace"),
            stderr=stderr.decode("utf-8", "replace"),
        )

        logger.debug("command_finished", binary=args[0], returncode=result.returncode)
        return result
