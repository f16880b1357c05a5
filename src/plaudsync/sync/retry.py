"""Retry logic with a fixed backoff schedule.

This module provides:
- retry_with_backoff: Retry a callable on retryable errors
- is_retryable_error: Classify an exception as retryable or not

The schedule is fixed rather than jittered: no wait before the first
attempt, then 1s, 4s and 16s.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from typing import TypeVar

from plaudsync.client.api import APIError
from plaudsync.storage.atomic import StorageError

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 4
RETRY_DELAYS: tuple[float, ...] = (0.0, 1.0, 4.0, 16.0)  # seconds, indexed by attempt

# "429" as a standalone token, not inside a date or an id
RATE_LIMIT_PATTERN = re.compile(r"\b429\b")


def is_retryable_error(error: BaseException) -> bool:
    """Check whether an error may go away if the operation is retried.

    APIError decides for itself (server fault, rate limit, network).
    StorageError is never retried: its message carries a file path. Any
    other error is retryable only if it reports an HTTP 429.
    """
    if isinstance(error, APIError):
        return error.is_retryable
    if isinstance(error, StorageError):
        return False
    return RATE_LIMIT_PATTERN.search(str(error)) is not None


def retry_with_backoff(
    func: Callable[[], T],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    delays: Sequence[float] = RETRY_DELAYS,
    label: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
    logger: logging.Logger | None = None,
) -> T:
    """Execute a function, retrying retryable errors on a fixed schedule.

    Args:
        func: Function to execute.
        max_attempts: Maximum number of attempts (including the first).
        delays: Wait before attempt N+1 is delays[N]; the last delay is
            reused when attempts outnumber the schedule.
        label: Name of the operation for log messages.
        sleep: Sleep function (injectable for tests).
        logger: Logger to use (defaults to this module's logger).

    Returns:
        Result of the function.

    Raises:
        The first non-retryable error immediately, or the last error once
        all attempts are used (with a "gave up after N attempts" note).
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    log = logger or logging.getLogger(__name__)
    name = label or getattr(func, "__name__", "operation")

    for attempt in range(1, max_attempts + 1):
        try:
            return func()
        except Exception as e:
            if not is_retryable_error(e):
                if attempt > 1:
                    log.warning(f"{name}: giving up on attempt {attempt}: {e}")
                raise

            if attempt == max_attempts:
                log.warning(f"{name}: giving up after {attempt} attempts: {e}")
                e.add_note(f"gave up after {attempt} attempts")
                raise

            delay = delays[min(attempt, len(delays) - 1)]
            log.debug(
                f"{name}: attempt {attempt}/{max_attempts} failed: {e}. "
                f"Retrying in {delay:.1f}s..."
            )
            sleep(delay)

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry loop exit")
