"""
Retry with exponential backoff for idempotent reads.

Writes must not go through this helper: a write that timed out may still have
landed, and retrying it risks creating duplicate rows.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

from domain.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_with_backoff(
    fn: Callable[[], T],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = (UpstreamError,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call `fn`, retrying on `retry_on` errors with delays base_delay * 2**n.

    Total attempts = 1 + max_retries. The last error is re-raised unchanged.
    """

    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    for attempt in range(max_retries + 1):
        try:
            return fn()
        except retry_on as exc:
            if attempt == max_retries:
                raise
            delay = base_delay * (2**attempt)
            logger.warning(
                "Retry %d/%d after %.2fs: %s",
                attempt + 1,
                max_retries,
                delay,
                exc,
            )
            sleep(delay)

    raise AssertionError("unreachable")


__all__ = ["retry_with_backoff"]
