r"""Retry-After header parsing utilities.

The header can carry either a number of seconds or an HTTP-date
(RFC 7231). Servers sometimes send unreasonable values, so the delay
derived from it is always capped by the caller-supplied maximum.
"""

from __future__ import annotations

__all__ = ["parse_retry_after", "retry_after_delay"]

import logging
import math
from contextlib import suppress
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from apiary.headers import HeaderMap

logger: logging.Logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header value into seconds.

    Args:
        value: The raw header value, or ``None`` when absent.

    Returns:
        The number of seconds to wait, or ``None`` when the header is
        absent or cannot be parsed. Dates in the past yield ``0.0``.

    Example:
        ```pycon
        >>> from apiary.utils.retry_after import parse_retry_after
        >>> parse_retry_after("120")
        120.0
        >>> parse_retry_after(None) is None
        True
        >>> parse_retry_after("inf") is None
        True
        >>> parse_retry_after("soon") is None
        True

        ```
    """
    if value is None:
        return None
    value = value.strip()

    with suppress(ValueError):
        seconds = float(value)
        if not math.isfinite(seconds):
            logger.debug(f"Ignoring non-finite Retry-After header: {value!r}")
            return None
        return seconds

    try:
        retry_date = parsedate_to_datetime(value)
    except (ValueError, TypeError, OverflowError):
        logger.debug(f"Failed to parse Retry-After header: {value!r}")
        return None
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_date - datetime.now(timezone.utc)).total_seconds())


def retry_after_delay(headers: HeaderMap, retry_after_max: int) -> int | None:
    """Return the server-suggested retry delay in milliseconds.

    Args:
        headers: The headers of the retry-eligible response.
        retry_after_max: Upper bound of the delay in milliseconds.

    Returns:
        ``min(seconds * 1000, retry_after_max)`` when the response carries
        a positive Retry-After hint, otherwise ``None``.

    Example:
        ```pycon
        >>> from apiary.headers import HeaderMap
        >>> from apiary.utils.retry_after import retry_after_delay
        >>> retry_after_delay(HeaderMap({"Retry-After": "1"}), retry_after_max=30000)
        1000
        >>> retry_after_delay(HeaderMap({"Retry-After": "120"}), retry_after_max=30000)
        30000
        >>> retry_after_delay(HeaderMap(), retry_after_max=30000) is None
        True

        ```
    """
    raw = headers.get("retry-after")
    seconds = parse_retry_after(raw if isinstance(raw, str) else None)
    if seconds is None or seconds <= 0:
        return None
    return min(int(seconds * 1000), retry_after_max)
