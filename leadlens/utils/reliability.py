"""
Reliability helpers for LeadLens.

Retry with exponential backoff for calls to external collaborators, and a
wall-clock timer for per-stage performance accounting.
"""

import logging
import time
from functools import wraps
from typing import Callable, Optional

import structlog
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)
_stdlib_logger = logging.getLogger(__name__)


def with_retry(
    max_attempts: int = 3,
    backoff_base: float = 0.5,
    backoff_max: float = 20.0,
    retry_exceptions: tuple = (Exception,),
):
    """Decorator to add retry logic with exponential backoff."""

    def decorator(func: Callable) -> Callable:
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=backoff_base, max=backoff_max),
            retry=retry_if_exception_type(retry_exceptions),
            before_sleep=before_sleep_log(_stdlib_logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except retry_exceptions as e:
                logger.warning(
                    "retrying_operation",
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        return wrapper

    return decorator


class StageTimer:
    """
    Context manager measuring wall-clock milliseconds.

    The elapsed time is available after the block exits, whether it
    completed or raised.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._start: Optional[float] = None
        self.elapsed_ms: int = 0

    def __enter__(self) -> "StageTimer":
        self._start = self._clock()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.elapsed_ms = int(round((self._clock() - self._start) * 1000))
        return False
