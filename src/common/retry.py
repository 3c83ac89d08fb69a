"""Bounded retry with exponential backoff for transient fetch failures.

Only ``TransientFetchError`` is retried; ``PackageNotFoundError`` and every
other exception propagate on the first attempt.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from common.errors import TransientFetchError
from common.logging_utils import extra_context, is_debug_enabled
from constants import Constants

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retrying after the given zero-based attempt."""
    return base_delay * (2 ** attempt)


def call_with_retries(
    func: Callable[[], T],
    *,
    retries: int = Constants.HTTP_RETRY_MAX,
    base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
    context: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``func`` up to ``retries`` times, sleeping between transient failures."""
    last_exc: Optional[TransientFetchError] = None
    attempts = max(1, retries)
    for attempt in range(attempts):
        try:
            return func()
        except TransientFetchError as exc:
            last_exc = exc
            if is_debug_enabled(logger):
                logger.debug(
                    "Transient failure",
                    extra=extra_context(
                        event="retry",
                        component="retry",
                        outcome="transient_error",
                        attempt=attempt + 1,
                        context=context or None,
                    ),
                )
            if attempt + 1 < attempts:
                sleep(backoff_delay(attempt, base_delay))
    assert last_exc is not None
    raise last_exc


async def acall_with_retries(
    func: Callable[[], Awaitable[T]],
    *,
    retries: int = Constants.HTTP_RETRY_MAX,
    base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
    timeout: Optional[float] = None,
    context: str = "",
) -> T:
    """Async counterpart of ``call_with_retries``.

    Each attempt is bounded by ``timeout`` seconds; an attempt that times out
    counts as a transient failure.
    """
    last_exc: Optional[TransientFetchError] = None
    attempts = max(1, retries)
    for attempt in range(attempts):
        try:
            if timeout is None:
                return await func()
            return await asyncio.wait_for(func(), timeout=timeout)
        except asyncio.TimeoutError:
            last_exc = TransientFetchError(context or "fetch", reason=f"timed out after {timeout}s")
        except TransientFetchError as exc:
            last_exc = exc
        if is_debug_enabled(logger):
            logger.debug(
                "Transient failure",
                extra=extra_context(
                    event="retry",
                    component="retry",
                    outcome="transient_error",
                    attempt=attempt + 1,
                    context=context or None,
                ),
            )
        if attempt + 1 < attempts:
            await asyncio.sleep(backoff_delay(attempt, base_delay))
    assert last_exc is not None
    raise last_exc
