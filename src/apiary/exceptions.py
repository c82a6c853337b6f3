r"""Error types raised when a logical request settles with a failure.

Every logical request settles exactly once. When it fails, one of the
exceptions below is raised to the caller (or passed to the completion
callback):

- ``ResponseError``: the server answered with a terminal non-2xx status.
- ``RedirectError``: the redirect budget was exhausted, or a redirect
  could not be followed because the body cannot be replayed.
- ``RequestTimeoutError``: the local deadline fired. Never retried.
- ``NetError``: the transport failed before a response was received.
- ``InvalidBodyError``: the request body could not be serialized. Raised
  before any transport call is made.
"""

from __future__ import annotations

__all__ = [
    "ApiaryError",
    "InvalidBodyError",
    "NetError",
    "RedirectError",
    "RequestTimeoutError",
    "ResponseError",
]

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apiary.headers import HeaderMap
    from apiary.response import Response


class ApiaryError(Exception):
    """Base class for all errors raised by apiary."""


class ResponseError(ApiaryError):
    """Terminal non-2xx response.

    Args:
        message: Human readable message, usually the HTTP reason phrase.
        response: The final response. Its ``body`` holds the parsed error
            body, or ``None`` when it could not be parsed.

    Example:
        ```pycon
        >>> from apiary.exceptions import ResponseError
        >>> from apiary.headers import HeaderMap
        >>> from apiary.response import Response
        >>> err = ResponseError("Bad Request", Response(status=400, headers=HeaderMap()))
        >>> err.status
        400
        >>> str(err)
        'Bad Request'

        ```
    """

    def __init__(self, message: str, response: Response) -> None:
        super().__init__(message)
        self.message = message
        self.response = response

    @property
    def status(self) -> int:
        return self.response.status

    @property
    def headers(self) -> HeaderMap:
        return self.response.headers

    @property
    def body(self) -> Any:
        return self.response.body

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(status={self.status}, message={self.message!r})"


class RedirectError(ApiaryError):
    """A redirect could not be followed.

    Args:
        message: Description of the failure.
        status: Status code of the redirect response.
        headers: Headers of the last response received.
    """

    def __init__(self, message: str, status: int, headers: HeaderMap) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.headers = headers


class RequestTimeoutError(ApiaryError):
    """The request exceeded its local deadline."""

    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(message)
        self.message = message


class NetError(ApiaryError):
    """Transport level failure (connection refused, reset, DNS, ...).

    Args:
        message: Description of the failure.
        code: Optional platform error code (e.g. ``"ECONNRESET"``).
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class InvalidBodyError(ApiaryError, TypeError):
    """The request body has a shape that cannot be serialized."""
