r"""Parameter validation utilities for request options.

This module provides validation functions for the retry, redirect and
timeout options to ensure they meet the required constraints before a
logical request starts.
"""

from __future__ import annotations

__all__ = ["validate_method", "validate_retry_params", "validate_timeout"]

VALID_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"})


def validate_timeout(timeout: float) -> None:
    """Validate the timeout option.

    Args:
        timeout: Deadline in milliseconds. ``0`` disables the deadline.

    Raises:
        ValueError: If timeout is negative.

    Example:
        ```pycon
        >>> from apiary.core.validation import validate_timeout
        >>> validate_timeout(0)
        >>> validate_timeout(5000)
        >>> validate_timeout(-1)  # doctest: +SKIP
        Traceback (most recent call last):
        ...
        ValueError: timeout must be >= 0, got -1

        ```
    """
    if timeout < 0:
        msg = f"timeout must be >= 0, got {timeout}"
        raise ValueError(msg)


def validate_method(method: str) -> None:
    """Validate an HTTP method name (already upper-cased).

    Raises:
        ValueError: If the method is not a standard HTTP method.
    """
    if method not in VALID_METHODS:
        msg = f"unsupported HTTP method {method!r}"
        raise ValueError(msg)


def validate_retry_params(
    max_attempts: int,
    retry_delay_step: int,
    retry_delay_max: int,
    retry_delay_jitter: int = 0,
    retry_after_max: int = 0,
    max_redirects: int = 0,
) -> None:
    """Validate retry and redirect parameters.

    Args:
        max_attempts: Maximum number of transport calls for retry purposes.
            Must be >= 1. A value of 1 means no retries.
        retry_delay_step: Size of one backoff slot in milliseconds. Must
            be > 0.
        retry_delay_max: Maximum backoff delay in milliseconds. Must be >= 0.
        retry_delay_jitter: Maximum random jitter in milliseconds. Must be >= 0.
        retry_after_max: Maximum Retry-After delay in milliseconds. Must be >= 0.
        max_redirects: Maximum number of redirects followed. Must be >= 0.

    Raises:
        ValueError: If any parameter is out of range.

    Example:
        ```pycon
        >>> from apiary.core import validate_retry_params
        >>> validate_retry_params(max_attempts=2, retry_delay_step=200, retry_delay_max=1000)
        >>> validate_retry_params(max_attempts=0, retry_delay_step=200, retry_delay_max=1000)  # doctest: +SKIP

        ```
    """
    if max_attempts < 1:
        msg = f"max_attempts must be >= 1, got {max_attempts}"
        raise ValueError(msg)
    if retry_delay_step <= 0:
        msg = f"retry_delay_step must be > 0, got {retry_delay_step}"
        raise ValueError(msg)
    if retry_delay_max < 0:
        msg = f"retry_delay_max must be >= 0, got {retry_delay_max}"
        raise ValueError(msg)
    if retry_delay_jitter < 0:
        msg = f"retry_delay_jitter must be >= 0, got {retry_delay_jitter}"
        raise ValueError(msg)
    if retry_after_max < 0:
        msg = f"retry_after_max must be >= 0, got {retry_after_max}"
        raise ValueError(msg)
    if max_redirects < 0:
        msg = f"max_redirects must be >= 0, got {max_redirects}"
        raise ValueError(msg)
