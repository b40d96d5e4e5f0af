"""Bounded retry for remote calls that fail with a transient status."""

import logging
import time
from typing import Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


def retry_until(
    func: Callable[[], T],
    is_done: Callable[[T], bool],
    max_retries: int,
    backoff: float = 0.5,
) -> T:
    """Call *func* until *is_done* accepts its result or retries run out.

    Args:
        func: Zero-argument callable performing one attempt.
        is_done: Predicate over an attempt's result; ``False`` means retry.
        max_retries: Extra attempts after the first (0 disables retrying).
        backoff: Base delay in seconds; attempt ``n`` sleeps ``backoff * n``.

    Returns:
        The result of the last attempt, accepted or not.
    """
    attempt = 0
    while True:
        result = func()
        if is_done(result) or attempt >= max_retries:
            return result
        attempt += 1
        logger.info(
            "Transient remote failure, retrying (%d/%d)",
            attempt,
            max_retries,
        )
        time.sleep(backoff * attempt)
