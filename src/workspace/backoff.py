"""Retry with exponential backoff for rate-limited Notion API calls."""

import logging
import random
import time
from collections.abc import Callable
from typing import TypeVar

from src.workspace.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = 429
RATE_LIMIT_CODE = "rate_limited"

# Upper bound on the random jitter added to each delay
MAX_JITTER_MS = 1000


def is_rate_limit_error(error: BaseException) -> bool:
    """Whether an error signals that a rate limit was hit.

    :param error: The raised exception.
    :returns: True for a 429 status, a ``rate_limited`` code, or a message
        mentioning a rate limit.
    """
    if isinstance(error, RateLimitExceededError):
        return True
    if getattr(error, "status_code", None) == RATE_LIMIT_STATUS:
        return True
    if getattr(error, "code", None) == RATE_LIMIT_CODE:
        return True
    return "rate limit" in str(error).lower()


def backoff_delay_ms(attempt: int, base_delay_ms: int) -> float:
    """Delay before retrying after a failed attempt.

    :param attempt: Zero-based index of the attempt that failed.
    :param base_delay_ms: Base delay in milliseconds.
    :returns: ``base * 2**attempt`` plus up to one second of jitter.
    """
    return base_delay_ms * 2**attempt + random.uniform(0, MAX_JITTER_MS)


def with_backoff(
    operation: Callable[[], T],
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run a single API call, retrying only when it is rate limited.

    Any other error is treated as permanent and raised immediately.

    :param operation: Zero-argument callable making one API request.
    :param max_retries: Retries after the first attempt.
    :param base_delay_ms: Base backoff delay in milliseconds.
    :param sleep: Sleep function taking seconds.
    :returns: The operation's result.
    :raises RateLimitExceededError: If every attempt was rate limited.
    """
    for attempt in range(max_retries + 1):
        try:
            return operation()
        except Exception as e:
            if not is_rate_limit_error(e):
                raise
            if attempt >= max_retries:
                raise RateLimitExceededError(attempts=attempt + 1) from e

            delay_ms = backoff_delay_ms(attempt, base_delay_ms)
            logger.warning(
                f"Rate limit hit, retrying in {delay_ms:.0f}ms "
                f"(attempt {attempt + 1}/{max_retries + 1})"
            )
            sleep(delay_ms / 1000)

    raise RateLimitExceededError(attempts=max_retries + 1)
