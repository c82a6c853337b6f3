r"""Asynchronous context manager client binding request defaults.

This module provides an async context manager based client for making
multiple requests with shared defaults (base URL, headers, retry tuning,
hooks, ...). The ``AsyncApiaryClient`` manages the lifecycle of the
pooled ``httpx.AsyncClient`` used as transport by all its requests.
"""

from __future__ import annotations

__all__ = ["AsyncApiaryClient"]

from typing import TYPE_CHECKING, Any

import httpx

from apiary.core.config import RequestOptions, normalize_option_names
from apiary.request import PendingRequest, request, request_async
from apiary.streaming import StreamingRequest, request_stream

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType
    from typing import Self

    from apiary.response import Response


class AsyncApiaryClient:
    r"""Asynchronous context manager for requests sharing defaults.

    Args:
        base_url: Optional URL that relative request URLs are resolved
            against.
        conn: Optional ``httpx.AsyncClient`` to use as transport. When
            omitted, the client creates one on entry and closes it on exit.
        **defaults: Default option values of every request. Headers are
            merged with the headers of each request.

    Raises:
        ValueError: If a default fails validation.
        TypeError: If a default names an unknown option.

    Example:
        ```pycon
        >>> import asyncio
        >>> from apiary import AsyncApiaryClient
        >>> async def main():  # doctest: +SKIP
        ...     async with AsyncApiaryClient(
        ...         base_url="https://api.example.com", headers={"X-Api-Key": "secret"}, max_attempts=5
        ...     ) as client:
        ...         response1 = await client.get("/data1")
        ...         response2 = await client.post("/data2", body={"key": "value"})
        ...
        >>> asyncio.run(main())  # doctest: +SKIP

        ```

    Note:
        All HTTP method calls (get, post, put, delete, patch, head,
        options, request) accept the same options as ``request_async``,
        allowing per-request override of the client defaults.
    """

    def __init__(
        self,
        *,
        base_url: str | httpx.URL = "",
        conn: httpx.AsyncClient | None = None,
        **defaults: Any,
    ) -> None:
        self._defaults = normalize_option_names(defaults)
        # Validate the defaults eagerly
        RequestOptions.coerce({}, defaults=self._defaults)
        self._base_url = httpx.URL(base_url) if base_url else None
        self._conn = conn
        self._client: httpx.AsyncClient | None = None
        self._entered = False

    async def __aenter__(self) -> Self:
        """Enter the async context manager and create the underlying
        httpx client, unless one was given.

        Returns:
            The AsyncApiaryClient instance for making requests.
        """
        self._client = self._conn if self._conn is not None else httpx.AsyncClient(timeout=None)
        self._entered = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the async context manager and close the underlying httpx
        client if it is owned by this client."""
        if self._client is not None and self._conn is None:
            await self._client.aclose()
        self._client = None
        self._entered = False

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure the client is available for use.

        Raises:
            RuntimeError: If the client is used outside of a context manager.
        """
        if not self._entered or self._client is None:
            msg = "AsyncApiaryClient must be used within an async context manager (async with statement)"
            raise RuntimeError(msg)
        return self._client

    def build_options(
        self, options: RequestOptions | str | httpx.URL | Mapping[str, Any], /, **overrides: Any
    ) -> RequestOptions:
        """Merge the client defaults, ``options`` and ``overrides``.

        Raises:
            RuntimeError: If called outside of a context manager.
        """
        client = self._ensure_client()
        result = RequestOptions.coerce(options, defaults=self._defaults, **overrides)
        if self._base_url is not None:
            result = result.merge(url=self._base_url.join(result.url))
        if result.conn is None:
            result = result.merge(conn=client)
        return result

    async def request(
        self, options: RequestOptions | str | httpx.URL | Mapping[str, Any], /, **overrides: Any
    ) -> Response:
        r"""Run a request with the client defaults.

        Args:
            options: A URL, a mapping of options or ``RequestOptions``.
            **overrides: Option values applied on top of ``options``.

        Returns:
            The final response, with parsed body.

        Raises:
            RuntimeError: If called outside of a context manager.
            ApiaryError: If the request fails.
        """
        return await request_async(self.build_options(options, **overrides))

    def schedule(
        self, options: RequestOptions | str | httpx.URL | Mapping[str, Any], /, **overrides: Any
    ) -> PendingRequest:
        """Schedule a request with the client defaults and return its
        cancellable handle."""
        return request(self.build_options(options, **overrides))

    def stream(
        self, options: RequestOptions | str | httpx.URL | Mapping[str, Any], /, **overrides: Any
    ) -> StreamingRequest:
        """Start a streaming request with the client defaults."""
        return request_stream(self.build_options(options, **overrides))

    async def get(self, url: str | httpx.URL, **kwargs: Any) -> Response:
        r"""Send a GET request (see ``request``)."""
        return await self.request(url, method="GET", **kwargs)

    async def post(self, url: str | httpx.URL, **kwargs: Any) -> Response:
        r"""Send a POST request (see ``request``)."""
        return await self.request(url, method="POST", **kwargs)

    async def put(self, url: str | httpx.URL, **kwargs: Any) -> Response:
        r"""Send a PUT request (see ``request``)."""
        return await self.request(url, method="PUT", **kwargs)

    async def patch(self, url: str | httpx.URL, **kwargs: Any) -> Response:
        r"""Send a PATCH request (see ``request``)."""
        return await self.request(url, method="PATCH", **kwargs)

    async def delete(self, url: str | httpx.URL, **kwargs: Any) -> Response:
        r"""Send a DELETE request (see ``request``)."""
        return await self.request(url, method="DELETE", **kwargs)

    async def head(self, url: str | httpx.URL, **kwargs: Any) -> Response:
        r"""Send a HEAD request (see ``request``)."""
        return await self.request(url, method="HEAD", **kwargs)

    async def options(self, url: str | httpx.URL, **kwargs: Any) -> Response:
        r"""Send an OPTIONS request (see ``request``)."""
        return await self.request(url, method="OPTIONS", **kwargs)
