r"""Shared test helpers: a scripted in-memory transport.

``MockServer`` wraps ``httpx.MockTransport``. It answers requests with a
scripted sequence of replies and records every request it receives, so
tests can count transport calls and inspect what was sent.
"""

from __future__ import annotations

__all__ = ["TEST_URL", "MockServer", "echo", "hang", "reply", "streamed"]

import asyncio
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

TEST_URL = "http://api.example.com/data"


def reply(
    status: int = 200,
    *,
    json: Any = None,
    content: bytes | None = None,
    headers: dict[str, str] | list[tuple[str, str]] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Return a reply factory building a fresh ``httpx.Response`` per call."""

    def build(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        kwargs: dict[str, Any] = {"headers": headers}
        if json is not None:
            kwargs["json"] = json
        elif content is not None:
            kwargs["content"] = content
        return httpx.Response(status, **kwargs)

    return build


def streamed(
    status: int = 200,
    *,
    chunks: tuple[bytes, ...] = (),
    headers: dict[str, str] | None = None,
) -> Callable[[httpx.Request], httpx.Response]:
    """Return a reply factory whose body is streamed, not buffered.

    Unlike ``reply``, the response body is unread when it reaches the
    client, as with a real network transport.
    """

    def build(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
        async def body() -> AsyncIterator[bytes]:
            for chunk in chunks:
                yield chunk

        return httpx.Response(status, headers=headers, content=body())

    return build


class MockServer:
    """Scripted transport recording every request.

    Each request consumes the next reply; the last reply is repeated.
    A reply is an exception to raise, or a callable receiving the request
    and returning an ``httpx.Response``.
    """

    def __init__(self, *replies: Exception | Callable[[httpx.Request], httpx.Response]) -> None:
        self.replies = list(replies)
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(item, Exception):
            raise item
        return item(request)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def echo(request: httpx.Request) -> httpx.Response:
    """Reply factory mirroring the request body and content type."""
    headers = {}
    if "content-type" in request.headers:
        headers["Content-Type"] = request.headers["content-type"]
    return httpx.Response(200, content=request.content, headers=headers)


async def hang(request: httpx.Request) -> httpx.Response:  # noqa: ARG001
    """Transport handler that never answers."""
    await asyncio.Event().wait()
    msg = "unreachable"
    raise AssertionError(msg)
