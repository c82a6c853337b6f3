r"""Callback manager for orchestrating request lifecycle events.

This module provides the CallbackManager class that handles invocation
of user-defined callbacks at the various points of a logical request.
"""

from __future__ import annotations

__all__ = ["CallbackManager"]

import time
from typing import TYPE_CHECKING

from apiary.callbacks import FailureInfo, RedirectInfo, RequestInfo, ResponseInfo, RetryInfo

if TYPE_CHECKING:
    from apiary.core.config import RequestOptions
    from apiary.response import Response


class CallbackManager:
    """Manages callback invocations during the request lifecycle.

    Callbacks that are not configured are skipped. Exceptions raised by a
    callback propagate to the caller.

    Args:
        options: The request options holding the callbacks.
    """

    def __init__(self, options: RequestOptions) -> None:
        self.options = options
        self.start_time = time.time()

    def on_request(self, url: str, method: str, attempt: int) -> None:
        """Invoke on_request callback.

        Args:
            url: The URL being requested.
            method: The HTTP method.
            attempt: Current attempt number (1-indexed).
        """
        if self.options.on_request is not None:
            self.options.on_request(
                RequestInfo(
                    url=url,
                    method=method,
                    attempt=attempt,
                    max_attempts=self.options.max_attempts,
                )
            )

    def on_retry(
        self,
        url: str,
        method: str,
        attempt: int,
        delay_ms: int,
        error: Exception | None,
        status_code: int | None,
    ) -> None:
        """Invoke on_retry callback.

        Args:
            url: The URL being requested.
            method: The HTTP method.
            attempt: Number of the upcoming attempt (1-indexed).
            delay_ms: Delay before the retry.
            error: Transport error that triggered the retry (if any).
            status_code: Status code that triggered the retry (if any).
        """
        if self.options.on_retry is not None:
            self.options.on_retry(
                RetryInfo(
                    url=url,
                    method=method,
                    attempt=attempt,
                    max_attempts=self.options.max_attempts,
                    delay_ms=delay_ms,
                    error=error,
                    status_code=status_code,
                )
            )

    def on_redirect(
        self, url: str, method: str, location: str, status_code: int, redirect_attempt: int
    ) -> None:
        """Invoke on_redirect callback."""
        if self.options.on_redirect is not None:
            self.options.on_redirect(
                RedirectInfo(
                    url=url,
                    method=method,
                    location=location,
                    status_code=status_code,
                    redirect_attempt=redirect_attempt,
                    max_redirects=self.options.max_redirects,
                )
            )

    def on_success(self, url: str, method: str, attempt: int, response: Response) -> None:
        """Invoke on_success callback.

        Args:
            url: The URL that was requested.
            method: The HTTP method.
            attempt: Attempt number that succeeded (1-indexed).
            response: The final response.
        """
        if self.options.on_success is not None:
            self.options.on_success(
                ResponseInfo(
                    url=url,
                    method=method,
                    attempt=attempt,
                    max_attempts=self.options.max_attempts,
                    response=response,
                    total_time=time.time() - self.start_time,
                )
            )

    def on_failure(
        self,
        url: str,
        method: str,
        attempt: int,
        error: BaseException,
        status_code: int | None,
    ) -> None:
        """Invoke on_failure callback.

        Args:
            url: The URL that was requested.
            method: The HTTP method.
            attempt: Final attempt number (1-indexed).
            error: The terminal error.
            status_code: Final status code (if any).
        """
        if self.options.on_failure is not None:
            self.options.on_failure(
                FailureInfo(
                    url=url,
                    method=method,
                    attempt=attempt,
                    max_attempts=self.options.max_attempts,
                    error=error,
                    status_code=status_code,
                    total_time=time.time() - self.start_time,
                )
            )
