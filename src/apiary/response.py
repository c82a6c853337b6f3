r"""Normalized response returned when a logical request succeeds."""

from __future__ import annotations

__all__ = ["Response", "status_text"]

from dataclasses import dataclass, field
from typing import Any

import httpx

from apiary.headers import HeaderMap


@dataclass
class Response:
    """Result of one completed transport round-trip.

    Attributes:
        status: The HTTP status code.
        headers: The response headers.
        cookies: The values of any ``Set-Cookie`` headers, or ``None``.
        body: The raw body until parsed, then the parsed form.
        url: The URL that produced this response (after redirects).
    """

    status: int
    headers: HeaderMap = field(default_factory=HeaderMap)
    cookies: list[str] | None = None
    body: Any = None
    url: str | None = None

    @classmethod
    def from_httpx(cls, response: httpx.Response, url: str | None = None) -> Response:
        headers = HeaderMap.from_httpx(response.headers)
        cookies = headers.get_list("set-cookie") or None
        return cls(status=response.status_code, headers=headers, cookies=cookies, url=url)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def status_text(status: int) -> str:
    """Return the reason phrase of a status code, or ``"Unknown"``.

    Example:
        ```pycon
        >>> from apiary.response import status_text
        >>> status_text(400)
        'Bad Request'
        >>> status_text(599)
        'Unknown'

        ```
    """
    return httpx.codes.get_reason_phrase(status) or "Unknown"
