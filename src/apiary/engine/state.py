r"""Per-request mutable state owned by one ``RequestExecutor``."""

from __future__ import annotations

__all__ = ["AttemptCounters", "CancellationToken", "RequestState", "WorkingRequest"]

import enum
from dataclasses import dataclass, field

import httpx

from apiary.headers import HeaderMap

WRITABLE_METHODS = frozenset({"POST", "PUT", "PATCH"})


class RequestState(enum.Enum):
    """States of the request execution state machine."""

    IDLE = "idle"
    SENDING = "sending"
    WAITING_BACKOFF = "waiting_backoff"
    WAITING_REFRESH = "waiting_refresh"
    REDIRECTING = "redirecting"
    RESOLVED = "resolved"


@dataclass
class WorkingRequest:
    """Mutable view of the request sent by the next transport call.

    It is derived once from the immutable ``RequestOptions`` and then only
    mutated by redirect handling (method, body and header stripping) and
    by credential refresh (Authorization header).

    Attributes:
        method: The HTTP method.
        url: The target URL.
        headers: The request headers.
        body: The serialized body, or ``None``.
    """

    method: str
    url: httpx.URL
    headers: HeaderMap = field(default_factory=HeaderMap)
    body: bytes | None = None

    @property
    def is_writable(self) -> bool:
        """Whether the method normally carries a request body."""
        return self.method in WRITABLE_METHODS


@dataclass
class AttemptCounters:
    """Counters scoped to one logical request.

    Attributes:
        attempts: Number of transport calls made for retry purposes. The
            first call counts as attempt 1.
        redirect_attempts: Number of redirects followed.
        did_refresh: Whether the credential refresh already ran.
    """

    attempts: int = 1
    redirect_attempts: int = 0
    did_refresh: bool = False


class CancellationToken:
    """One-way latch shared by the executor and the caller's cancel handle.

    Example:
        ```pycon
        >>> from apiary.engine.state import CancellationToken
        >>> token = CancellationToken()
        >>> token.cancelled
        False
        >>> token.cancel()
        >>> token.cancelled
        True

        ```
    """

    __slots__ = ("_cancelled",)

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
