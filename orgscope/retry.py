from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    fn: Callable[[], T],
    *,
    retry_on: tuple[type[BaseException], ...],
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    max_backoff_seconds: float = 30.0,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "call",
) -> T:
    """
    Call `fn`, retrying `retry_on` errors with exponential backoff.

    Waits backoff * 2**attempt between attempts (1s, 2s, 4s, ... capped).
    Any other exception propagates immediately. After the last attempt the
    last retryable error is re-raised.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(max_attempts):
        try:
            return fn()
        except retry_on as e:
            if attempt == max_attempts - 1:
                logger.error("%s failed after %s attempts: %s", description, max_attempts, type(e).__name__)
                raise
            wait_time = min(backoff_seconds * (2**attempt), max_backoff_seconds)
            logger.warning(
                "%s failed (attempt %s/%s): %s. Retrying in %.1fs",
                description,
                attempt + 1,
                max_attempts,
                type(e).__name__,
                wait_time,
            )
            sleep(wait_time)

    raise RuntimeError("Unexpected retry loop exit")
