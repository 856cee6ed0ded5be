"""Retry - Re-runs a remote operation up to a fixed number of times.

Every exception raised by the operation triggers a retry. There is no
distinction between transient and permanent failures, no jitter and no
backoff: attempts are separated by a fixed interval. When the budget is
spent, the last exception propagates unchanged.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from vaultwire.errors import RetryCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Retried(Generic[T]):
    """A successful result plus the number of retries it took (0 = first try)."""

    value: T
    retries: int


def _log_retry(retry_state: RetryCallState) -> None:
    """Log a scheduled retry. Only the exception type is logged; messages may carry response bodies."""
    exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
    delay = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
    logger.warning(
        "Attempt %d failed with %s; retrying in %.3fs",
        retry_state.attempt_number,
        type(exc).__name__,
        delay,
    )


def with_retry(
    max_attempts: int,
    interval_ms: int,
    operation: Callable[[int], T],
    *,
    cancel: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Retried[T]:
    """Run operation, retrying on failure.

    The operation is called with the 0-based attempt index. It runs at most
    max_attempts + 1 times; max_attempts=0 means a single attempt.

    Args:
        max_attempts: Number of retries allowed after the first attempt.
        interval_ms: Delay between attempts in milliseconds.
        operation: Callable receiving the attempt index.
        cancel: Optional event. When set during the inter-attempt delay, the
                wait ends immediately and no further attempt is made.
        sleep: Sleep function used when no cancel event is given.

    Returns:
        Retried holding the operation's result and the retry count.

    Raises:
        RetryCancelled: If cancel was set while waiting between attempts.
        ValueError: If max_attempts or interval_ms is negative.
        Exception: The operation's last exception, unchanged, once the
            attempts are exhausted.
    """
    if max_attempts < 0:
        raise ValueError(f"max_attempts must be >= 0, got {max_attempts}")
    if interval_ms < 0:
        raise ValueError(f"interval_ms must be >= 0, got {interval_ms}")

    attempts = 0

    def pause(seconds: float) -> None:
        if cancel is None:
            sleep(seconds)
        elif cancel.wait(seconds):
            raise RetryCancelled(attempts)

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts + 1),
        wait=wait_fixed(interval_ms / 1000),
        retry=retry_if_exception_type(Exception),
        sleep=pause,
        before_sleep=_log_retry,
        reraise=True,
    )

    for attempt in retrying:
        with attempt:
            index = attempt.retry_state.attempt_number - 1
            attempts = index + 1
            value = operation(index)

    return Retried(value=value, retries=index)
