r"""Callback types and data structures for observability.

This module provides the lifecycle hooks of a logical request, enabling
users to plug in logging, metrics or alerting:

- on_request: Called before each transport call
- on_retry: Called before each retry (before the backoff delay)
- on_redirect: Called before each redirect hop
- on_success: Called when the logical request succeeds
- on_failure: Called when the logical request fails

Example:
    ```pycon
    >>> from apiary import request_async
    >>> from apiary.callbacks import RetryInfo
    >>> def log_retry(retry_info: RetryInfo):
    ...     print(f"Retry {retry_info.attempt}/{retry_info.max_attempts}")
    ...
    >>> response = await request_async(
    ...     "https://api.example.com/data", on_retry=log_retry
    ... )  # doctest: +SKIP

    ```
"""

from __future__ import annotations

__all__ = [
    "FailureInfo",
    "RedirectInfo",
    "RequestInfo",
    "ResponseInfo",
    "RetryInfo",
]

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from apiary.response import Response


@dataclass
class RequestInfo:
    """Information passed to on_request callback.

    Attributes:
        url: The URL being requested.
        method: The HTTP method (e.g., "GET", "POST").
        attempt: The current attempt number (1-indexed). First attempt is 1.
        max_attempts: Maximum number of attempts configured.
    """

    url: str
    method: str
    attempt: int
    max_attempts: int


@dataclass
class RetryInfo:
    """Information passed to on_retry callback.

    Attributes:
        url: The URL being requested.
        method: The HTTP method (e.g., "GET", "POST").
        attempt: The number of the upcoming attempt. First retry is attempt 2.
        max_attempts: Maximum number of attempts configured.
        delay_ms: The delay in milliseconds before this retry.
        error: The transport error that triggered the retry (if any).
        status_code: The HTTP status code that triggered the retry (if any).
    """

    url: str
    method: str
    attempt: int
    max_attempts: int
    delay_ms: int
    error: Exception | None
    status_code: int | None


@dataclass
class RedirectInfo:
    """Information passed to on_redirect callback.

    Attributes:
        url: The URL that answered with the redirect.
        method: The HTTP method of the next hop, after any rewrite.
        location: The resolved target URL.
        status_code: The redirect status code.
        redirect_attempt: The number of redirects followed, this one included.
        max_redirects: Maximum number of redirects configured.
    """

    url: str
    method: str
    location: str
    status_code: int
    redirect_attempt: int
    max_redirects: int


@dataclass
class ResponseInfo:
    """Information passed to on_success callback.

    Attributes:
        url: The URL that was requested.
        method: The HTTP method (e.g., "GET", "POST").
        attempt: The attempt number that succeeded (1-indexed).
        max_attempts: Maximum number of attempts configured.
        response: The final response, with parsed body.
        total_time: Total time spent on all attempts including backoff (seconds).
    """

    url: str
    method: str
    attempt: int
    max_attempts: int
    response: Response
    total_time: float


@dataclass
class FailureInfo:
    """Information passed to on_failure callback.

    Attributes:
        url: The URL that was requested.
        method: The HTTP method (e.g., "GET", "POST").
        attempt: The final attempt number (1-indexed).
        max_attempts: Maximum number of attempts configured.
        error: The terminal error.
        status_code: The final HTTP status code (if any).
        total_time: Total time spent on all attempts including backoff (seconds).
    """

    url: str
    method: str
    attempt: int
    max_attempts: int
    error: BaseException
    status_code: int | None
    total_time: float
