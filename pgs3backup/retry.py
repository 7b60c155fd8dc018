# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Retry with bounded exponential backoff for transient store failures.
"""

from typing import Awaitable, Callable, Tuple, Type, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pgs3backup.exceptions import StorageError

logger = structlog.get_logger()

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (StorageError,),
    description: str = "operation",
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> T:
    """
    Run an async operation, retrying on transient errors.

    The delay before retry n (1-based) is base_delay * 2 ** (n - 1).
    The last error is re-raised unchanged once attempts are exhausted.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        attempts: Maximum number of attempts (>= 1)
        base_delay: Delay in seconds before the first retry
        retry_on: Exception types considered transient
        description: Name used in log events
        sleep: Replacement for asyncio.sleep (tests)

    Returns:
        The operation's result
    """

    def _log_retry(retry_state) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "retrying_after_failure",
            operation=description,
            attempt=retry_state.attempt_number,
            max_attempts=attempts,
            error=str(error),
        )

    kwargs = {"sleep": sleep} if sleep is not None else {}
    retrying = AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=base_delay, exp_base=2, min=0, max=float("inf")),
        retry=retry_if_exception_type(retry_on),
        before_sleep=_log_retry,
        reraise=True,
        **kwargs,
    )

    async for attempt in retrying:
        with attempt:
            return await operation()

    # Unreachable: reraise=True raises on exhaustion
    raise RuntimeError(f"{description} did not run")
