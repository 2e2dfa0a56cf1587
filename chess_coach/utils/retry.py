# chess_coach/utils/retry.py
"""
An asynchronous retry decorator for repository operations.

SQLite in WAL mode reports lock contention as an `OperationalError`, which is
the same class it uses for genuine faults such as a missing table. Callers
therefore pass a `should_retry` predicate to separate the transient case
from the permanent one; only the former is retried.
"""
import asyncio
import functools
import random
from typing import Any, Callable, Coroutine, Optional, Tuple, Type

import structlog

from chess_coach.utils import metrics

logger = structlog.get_logger(__name__)

TRANSIENT_SQLITE_MARKERS: Tuple[str, ...] = ("database is locked", "database is busy", "database table is locked")


def is_transient_sqlite_error(error: BaseException) -> bool:
    """True for lock/busy errors that may succeed on a later attempt."""
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_SQLITE_MARKERS)


def retry_with_backoff(
    exceptions_to_catch: Tuple[Type[Exception], ...],
    operation: str,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    attempts: int = 3,
    initial_backoff_s: float = 0.2,
    max_backoff_s: float = 2.0,
    jitter_factor: float = 0.2,
) -> Callable[[Callable[..., Coroutine]], Callable[..., Coroutine]]:
    """
    Retries a coroutine function with exponential backoff and jitter.

    Args:
        exceptions_to_catch: Exception classes that may be transient.
        operation: Metric and log label for the retried operation, e.g. "games.insert".
        should_retry: Narrows `exceptions_to_catch`; errors it rejects propagate at once.
        attempts: Total tries, including the first.
        initial_backoff_s: Delay before the first retry; doubled after each one.
        max_backoff_s: Upper bound for any single delay.
        jitter_factor: Fraction of the delay added or subtracted at random.
    """
    def decorator(func: Callable[..., Coroutine]) -> Callable[..., Coroutine]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            delay = initial_backoff_s
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions_to_catch as e:
                    if should_retry is not None and not should_retry(e):
                        raise
                    metrics.DB_TRANSIENT_ERRORS_TOTAL.labels(operation=operation).inc()
                    if attempt == attempts:
                        logger.error(
                            "Operation still failing after retries.",
                            operation=operation,
                            attempts=attempts,
                            error=str(e),
                        )
                        raise

                    wait_s = min(max_backoff_s, delay + random.uniform(-delay, delay) * jitter_factor)
                    logger.warning(
                        "Transient error, retrying.",
                        operation=operation,
                        attempt=attempt,
                        wait_seconds=round(wait_s, 3),
                        error=str(e),
                    )
                    await asyncio.sleep(wait_s)
                    delay *= 2
        return wrapper
    return decorator
