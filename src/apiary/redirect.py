r"""Redirect following.

This module provides the ``RedirectResolver`` class that computes the next
hop of a redirected request: target URL, method, body and headers.
"""

from __future__ import annotations

__all__ = ["CREDENTIAL_HEADERS", "RedirectResolver", "resolve_location"]

import logging
from typing import TYPE_CHECKING

import httpx

from apiary.core.config import METHOD_REWRITE_STATUS_CODES
from apiary.exceptions import RedirectError

if TYPE_CHECKING:
    from apiary.engine.state import AttemptCounters, WorkingRequest
    from apiary.headers import HeaderMap

logger: logging.Logger = logging.getLogger(__name__)

# Dropped when a redirect crosses origins without ``credentials``
CREDENTIAL_HEADERS = ("authorization", "proxy-authorization", "cookie")

_BODY_HEADERS = ("content-type", "content-length", "content-encoding")


def resolve_location(current: httpx.URL, location: str) -> httpx.URL:
    """Resolve a ``Location`` header against the current URL.

    Example:
        ```pycon
        >>> import httpx
        >>> from apiary.redirect import resolve_location
        >>> url = httpx.URL("http://example.com/left/right")
        >>> str(resolve_location(url, "./center"))
        'http://example.com/left/center'
        >>> str(resolve_location(url, "../end"))
        'http://example.com/end'
        >>> str(resolve_location(url, "https://other.org/x"))
        'https://other.org/x'

        ```
    """
    return current.join(location.strip())


def _same_origin(a: httpx.URL, b: httpx.URL) -> bool:
    return (a.scheme, a.host, a.port) == (b.scheme, b.host, b.port)


class RedirectResolver:
    """Compute the next hop of a redirected request.

    Redirects ``301``, ``302`` and ``303`` rewrite the request to a bodiless
    ``GET``. ``307`` and ``308`` keep the method and body, and are refused
    for a writable method when the body cannot be sent again.

    Args:
        max_redirects: Maximum number of redirects followed.
        credentials: If ``False``, credential headers are dropped when a
            redirect crosses origins.
        replayable: Whether the request body can be sent again.

    Example:
        ```pycon
        >>> import httpx
        >>> from apiary.engine.state import AttemptCounters, WorkingRequest
        >>> from apiary.headers import HeaderMap
        >>> from apiary.redirect import RedirectResolver
        >>> working = WorkingRequest(
        ...     method="POST", url=httpx.URL("http://example.com/a"), body=b"{}"
        ... )
        >>> resolver = RedirectResolver(max_redirects=5)
        >>> resolver.resolve(302, HeaderMap({"Location": "/b"}), working, AttemptCounters())
        >>> working.method, str(working.url), working.body
        ('GET', 'http://example.com/b', None)

        ```
    """

    def __init__(self, max_redirects: int, credentials: bool = False, replayable: bool = True) -> None:
        self.max_redirects = max_redirects
        self.credentials = credentials
        self.replayable = replayable

    def resolve(
        self,
        status: int,
        headers: HeaderMap,
        working: WorkingRequest,
        counters: AttemptCounters,
    ) -> None:
        """Update ``working`` to target the next hop.

        The method rewrite happens before the budget check, so a refused
        ``302`` still leaves ``working`` as a bodiless ``GET``.

        Args:
            status: The redirect status code.
            headers: The headers of the redirect response.
            working: The working request, mutated in place.
            counters: The counters of the logical request. Incremented on
                success.

        Raises:
            RedirectError: If the redirect budget is exhausted, or the
                body of a ``307``/``308`` cannot be sent again.
        """
        if status in METHOD_REWRITE_STATUS_CODES:
            working.method = "GET"
            working.body = None
            for name in _BODY_HEADERS:
                working.headers.delete(name)

        if counters.redirect_attempts >= self.max_redirects:
            logger.debug(f"Redirect budget exhausted ({self.max_redirects}) at {working.url}")
            raise RedirectError("too many redirects", status, headers)

        if not self.replayable and working.is_writable:
            msg = (
                f"stream redirected ({status}) but unable to follow ({working.method}) "
                "since the data was not buffered; try the non-streaming api"
            )
            raise RedirectError(msg, status, headers)

        location = headers.get("location")
        if isinstance(location, list):
            location = location[-1]
        target = resolve_location(working.url, location or "")
        if not self.credentials and not _same_origin(working.url, target):
            for name in CREDENTIAL_HEADERS:
                if working.headers.delete(name):
                    logger.debug(f"Dropped {name} header on cross-origin redirect to {target.host}")

        logger.debug(f"Following {status} redirect from {working.url} to {target}")
        working.url = target
        counters.redirect_attempts += 1
