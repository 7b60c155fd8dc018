# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Artifact lifecycle - Temporary files that never outlive a run.

temporary_artifact() owns the local dump/download path and removes it on
normal exit, on any exception and on task cancellation. interruptible()
turns SIGINT/SIGTERM into cancellation of the running pipeline so those
cleanups run before the process exits.

raise_on_signals() covers blocking calls that keep the event loop from
seeing a signal, such as the restore confirmation prompt.
"""

import asyncio
import signal
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Iterator, List, TypeVar

import structlog

from pgs3backup.exceptions import OperationInterrupted

logger = structlog.get_logger()

T = TypeVar("T")

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def remove_file(path: Path) -> bool:
    """Remove path if present. Returns True if a file was removed."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


@asynccontextmanager
async def temporary_artifact(directory: Path, name: str) -> AsyncIterator[Path]:
    """
    Reserve a local path for a backup artifact and always clean it up.

    The directory is created if missing. Any stale file at the path (e.g.
    from a crashed earlier run) is removed before use.
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    remove_file(path)

    try:
        yield path
    finally:
        if remove_file(path):
            logger.debug("temporary_artifact_removed", path=str(path))


async def interruptible(awaitable: Awaitable[T]) -> T:
    """
    Await a pipeline, cancelling it when SIGINT or SIGTERM arrives.

    Cancellation unwinds the pipeline (running its cleanup) and is then
    reported as OperationInterrupted. Running child processes are not
    signalled by us.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(awaitable)
    received: List[int] = []

    def _on_signal(signum: int) -> None:
        if not received:
            logger.warning("interrupt_received", signal=signal.Signals(signum).name)
        received.append(signum)
        task.cancel()

    installed = []
    for sig in HANDLED_SIGNALS:
        try:
            loop.add_signal_handler(sig, _on_signal, sig)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops have no add_signal_handler
            pass

    try:
        return await task
    except asyncio.CancelledError:
        if received:
            name = signal.Signals(received[0]).name
            raise OperationInterrupted(
                f"Interrupted by {name}; temporary files were removed",
                details={"signal": name},
            ) from None
        raise
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@contextmanager
def raise_on_signals(step: str) -> Iterator[None]:
    """
    Raise OperationInterrupted synchronously when SIGINT or SIGTERM arrives.

    While a blocking call holds the thread, the event loop cannot act on
    a signal, so the handlers installed by interruptible() would only run
    after the call returns. Inside this block the signal interrupts the
    call itself. Previous handlers are restored on exit.
    """

    def _raise(signum, frame):
        name = signal.Signals(signum).name
        logger.warning("interrupt_received", signal=name, step=step)
        raise OperationInterrupted(
            f"Interrupted by {name}",
            details={"signal": name, "step": step},
        )

    previous = {}
    try:
        for sig in HANDLED_SIGNALS:
            previous[sig] = signal.signal(sig, _raise)
    except ValueError:
        # Not the main thread; signals cannot be handled here
        pass

    try:
        yield
    finally:
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)
