"""Retry logic with exponential backoff and jitter

Implements bounded retry for contended progress updates that:
1. Only retries lock conflicts (the row was busy, nothing was written)
2. Uses exponential backoff with jitter so competing writers spread out
3. Gives up after max retries and re-raises the last conflict
"""

import asyncio
import random
import logging
from typing import Awaitable, Callable, Optional, TypeVar, Any

from progress_engine import config
from progress_engine.db.store import StoreConflict
from progress_engine.monitoring import track_progress_retry

logger = logging.getLogger(__name__)

T = TypeVar('T')

MAX_DELAY = 1.0  # seconds
JITTER = 0.1  # 10% random jitter


def is_retryable_error(exc: Exception) -> bool:
    """
    Determine if error is transient and should be retried.

    Only StoreConflict qualifies: the store guarantees nothing was written
    when it raises one.
    """
    return isinstance(exc, StoreConflict)


def calculate_backoff(attempt: int, base_delay: Optional[float] = None) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: delay = min(base_delay * (2 ** attempt), MAX_DELAY) +/- 10%

    Example (base 0.05s):
        Attempt 0: ~0.05s
        Attempt 1: ~0.1s
        Attempt 2: ~0.2s
    """
    if base_delay is None:
        base_delay = config.PROGRESS_RETRY_BASE_DELAY

    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    return max(delay + jitter_amount, 0.0)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: Optional[int] = None,
    **kwargs: Any
) -> T:
    """
    Retry async function with exponential backoff.

    Args:
        func: Async function to retry
        max_retries: Maximum number of retry attempts (default: PROGRESS_MAX_RETRIES)
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result from func

    Raises:
        Last exception if all retries exhausted or non-retryable error
    """
    if max_retries is None:
        max_retries = config.PROGRESS_MAX_RETRIES

    name = getattr(func, "__name__", repr(func))

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)

        except Exception as e:
            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.warning(
                    f"[RETRY] All {max_retries} retries exhausted for {name}"
                )
                raise

            backoff = calculate_backoff(attempt)
            track_progress_retry()

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {name} "
                f"after {backoff:.3f}s (error: {type(e).__name__})"
            )

            await asyncio.sleep(backoff)

    raise RuntimeError("Retry logic failed unexpectedly")
