r"""Retry delay calculation.

This module combines the server-supplied Retry-After hint with the
configured backoff strategy to decide how long to wait before the next
transport call.
"""

from __future__ import annotations

__all__ = ["calculate_retry_delay"]

import logging
from typing import TYPE_CHECKING

from apiary.utils.retry_after import retry_after_delay

if TYPE_CHECKING:
    from apiary.backoff.base import BaseBackoffStrategy
    from apiary.headers import HeaderMap

logger: logging.Logger = logging.getLogger(__name__)


def calculate_retry_delay(
    attempt: int,
    backoff_strategy: BaseBackoffStrategy,
    headers: HeaderMap | None,
    retry_after_max: int,
) -> int:
    """Calculate the delay before the next attempt, in milliseconds.

    The delay is calculated as follows:
    1. If the response carries a positive Retry-After hint, use
       ``min(hint_seconds * 1000, retry_after_max)``.
    2. Otherwise use ``backoff_strategy.calculate(attempt)``.

    Args:
        attempt: The number of transport calls made so far (1-indexed).
        backoff_strategy: The strategy used when no hint is available.
        headers: Headers of the retry-eligible response, or ``None`` when
            the retry was caused by a transport error.
        retry_after_max: Upper bound of the Retry-After delay in milliseconds.

    Returns:
        The delay in milliseconds.

    Example:
        ```pycon
        >>> from apiary.backoff import ExponentialBackoff
        >>> from apiary.headers import HeaderMap
        >>> from apiary.utils.sleep import calculate_retry_delay
        >>> backoff = ExponentialBackoff(step=20, cap=20, jitter=0)
        >>> calculate_retry_delay(1, backoff, HeaderMap(), retry_after_max=30000)
        20
        >>> calculate_retry_delay(1, backoff, HeaderMap({"Retry-After": "2"}), retry_after_max=30000)
        2000

        ```
    """
    if headers is not None:
        hinted = retry_after_delay(headers, retry_after_max)
        if hinted is not None:
            logger.debug(f"Using Retry-After header value: {hinted}ms")
            return hinted

    delay = backoff_strategy.calculate(attempt)
    logger.debug(f"Waiting {delay}ms before retry (attempt={attempt})")
    return delay
