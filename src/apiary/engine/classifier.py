r"""Classification of transport outcomes.

This module provides the ``ResponseClassifier`` class that decides what
the executor does next with a completed response or a transport error.
"""

from __future__ import annotations

__all__ = ["Outcome", "ResponseClassifier", "error_code", "is_connection_reset"]

import enum
import errno
import logging
from typing import TYPE_CHECKING

import httpx

from apiary.core.config import REDIRECT_STATUS_CODES, RETRY_STATUS_CODES
from apiary.exceptions import ApiaryError, NetError, RequestTimeoutError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from apiary.engine.state import AttemptCounters
    from apiary.response import Response

logger: logging.Logger = logging.getLogger(__name__)


class Outcome(enum.Enum):
    """What to do with a completed transport call."""

    NO_CONTENT = "no_content"
    SUCCESS = "success"
    REDIRECT = "redirect"
    RETRY = "retry"
    REFRESH = "refresh"
    FAILURE = "failure"


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def is_connection_reset(exc: BaseException) -> bool:
    """Return ``True`` if ``exc`` is a reset of a reused connection.

    A keep-alive connection closed by the server between two requests
    surfaces either as ``httpx.RemoteProtocolError`` (server disconnected
    without sending a response) or as a read/write error caused by
    ``ConnectionResetError``.

    Example:
        ```pycon
        >>> import httpx
        >>> from apiary.engine.classifier import is_connection_reset
        >>> is_connection_reset(httpx.RemoteProtocolError("Server disconnected"))
        True
        >>> is_connection_reset(httpx.RemoteProtocolError("illegal status line"))
        False
        >>> is_connection_reset(httpx.ConnectError("refused"))
        False

        ```
    """
    if not isinstance(exc, (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)):
        return False
    if isinstance(exc, httpx.RemoteProtocolError) and "server disconnected" in str(exc).lower():
        return True
    return any(isinstance(e, ConnectionResetError) for e in _exception_chain(exc))


def error_code(exc: BaseException) -> str | None:
    """Return the symbolic errno name (e.g. ``"ECONNREFUSED"``) behind a
    transport error, if any."""
    for err in _exception_chain(exc):
        if isinstance(err, OSError) and err.errno is not None:
            return errno.errorcode.get(err.errno)
    if is_connection_reset(exc):
        return "ECONNRESET"
    return None


class ResponseClassifier:
    """Decide the next step of a logical request.

    The precedence is: ``204`` is a success without body, a redirect
    status with a ``Location`` header is followed, a retry status is
    retried while attempts remain, a ``401`` triggers the credential
    refresh once, any other ``2xx`` is a success and everything else is a
    terminal failure.

    Args:
        max_attempts: Maximum number of transport calls made for retry
            purposes.
        retry_status_codes: Status codes that trigger a retry.

    Example:
        ```pycon
        >>> from apiary.engine.classifier import ResponseClassifier
        >>> from apiary.engine.state import AttemptCounters
        >>> from apiary.response import Response
        >>> classifier = ResponseClassifier(max_attempts=2)
        >>> classifier.classify(Response(status=429), AttemptCounters()).name
        'RETRY'
        >>> classifier.classify(Response(status=429), AttemptCounters(attempts=2)).name
        'FAILURE'
        >>> classifier.classify(Response(status=204), AttemptCounters()).name
        'NO_CONTENT'

        ```
    """

    def __init__(
        self,
        max_attempts: int,
        retry_status_codes: tuple[int, ...] = RETRY_STATUS_CODES,
    ) -> None:
        self.max_attempts = max_attempts
        self.retry_status_codes = retry_status_codes

    def can_retry(self, counters: AttemptCounters) -> bool:
        return counters.attempts < self.max_attempts

    def classify(
        self, response: Response, counters: AttemptCounters, can_refresh: bool = False
    ) -> Outcome:
        """Classify a completed response.

        Args:
            response: The response, with unparsed body.
            counters: The counters of the logical request.
            can_refresh: Whether an unused credential refresh is available.

        Returns:
            The outcome.
        """
        status = response.status
        if status == 204:
            return Outcome.NO_CONTENT
        if status in REDIRECT_STATUS_CODES and response.headers.has("location"):
            return Outcome.REDIRECT
        if status in self.retry_status_codes and self.can_retry(counters):
            return Outcome.RETRY
        if status == 401 and can_refresh:
            return Outcome.REFRESH
        if 200 <= status < 300:
            return Outcome.SUCCESS
        return Outcome.FAILURE

    def classify_error(
        self, exc: Exception, counters: AttemptCounters
    ) -> tuple[Outcome, ApiaryError | None]:
        """Classify a transport error.

        Args:
            exc: The error raised by the transport.
            counters: The counters of the logical request.

        Returns:
            ``(Outcome.RETRY, None)`` for a reset of a reused connection
            while attempts remain, otherwise ``(Outcome.FAILURE, error)``
            where ``error`` is the terminal error to raise.
        """
        if isinstance(exc, httpx.TimeoutException):
            return Outcome.FAILURE, RequestTimeoutError(f"Request timed out ({type(exc).__name__})")
        if is_connection_reset(exc) and self.can_retry(counters):
            logger.debug(f"Connection reset on attempt {counters.attempts}, retrying")
            return Outcome.RETRY, None
        return Outcome.FAILURE, NetError(str(exc) or type(exc).__name__, code=error_code(exc))
