r"""Streaming requests.

A streaming request forwards the bytes written by the caller to the
transport and exposes the response body as an async iterator, without
buffering either side beyond ``high_water_mark`` chunks. Because the
request body is never buffered, streaming requests do not retry, do not
refresh credentials, do not compress and refuse to follow a ``307`` or
``308`` redirect of a ``POST``, ``PUT`` or ``PATCH``.

Example:
    ```pycon
    >>> import asyncio
    >>> from apiary import request_stream
    >>> async def main():  # doctest: +SKIP
    ...     stream = request_stream({"url": "https://api.example.com/upload", "method": "PUT"})
    ...     await stream.write(b"chunk 1")
    ...     await stream.write(b"chunk 2")
    ...     await stream.end()
    ...     response = await stream.response()
    ...     async for chunk in stream:
    ...         print(chunk)
    ...
    >>> asyncio.run(main())  # doctest: +SKIP

    ```
"""

from __future__ import annotations

__all__ = ["DuplexPipe", "StreamingRequest", "request_stream"]

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

import httpx

from apiary.auth import AuthRefreshCoordinator
from apiary.body.parsers import get_parser
from apiary.core.config import REDIRECT_STATUS_CODES, RequestOptions
from apiary.engine.classifier import error_code
from apiary.engine.executor import build_working_request, drain_response, response_error
from apiary.engine.state import AttemptCounters, CancellationToken
from apiary.exceptions import ApiaryError, NetError, RequestTimeoutError
from apiary.redirect import RedirectResolver
from apiary.response import Response

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping
    from types import TracebackType
    from typing import Self

logger: logging.Logger = logging.getLogger(__name__)

_EOF = None


class DuplexPipe:
    """Two bounded chunk queues between the caller and the transport.

    The writable side carries request body chunks from the caller to the
    transport, the readable side carries response body chunks from the
    transport to the caller. A full queue suspends the producer until the
    consumer catches up.

    Args:
        high_water_mark: Maximum number of chunks buffered on each side.
        writable: Whether the writable side is attached to a request body.
    """

    def __init__(self, high_water_mark: int, writable: bool) -> None:
        self.writable: asyncio.Queue[bytes | None] = asyncio.Queue(maxsize=high_water_mark)
        self.readable: asyncio.Queue[bytes | BaseException | None] = asyncio.Queue(
            maxsize=high_water_mark
        )
        self.attached = writable
        self.finished = False

    async def write(self, chunk: bytes | str) -> None:
        if not self.attached:
            msg = "writeable stream is not attached; did you mean to POST/PUT/PATCH instead?"
            raise ApiaryError(msg)
        if self.finished:
            msg = "write after end"
            raise ApiaryError(msg)
        await self.writable.put(chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk))

    async def end(self) -> None:
        if self.finished:
            return
        self.finished = True
        if self.attached:
            await self.writable.put(_EOF)

    async def iter_writable(self) -> AsyncIterator[bytes]:
        """Yield the chunks written by the caller until ``end()``."""
        while (chunk := await self.writable.get()) is not _EOF:
            yield chunk

    async def push(self, item: bytes | BaseException | None) -> None:
        await self.readable.put(item)

    async def iter_readable(self) -> AsyncIterator[bytes]:
        """Yield the response body chunks, raising a pushed error."""
        while (item := await self.readable.get()) is not _EOF:
            if isinstance(item, BaseException):
                raise item
            yield item


class StreamingRequest:
    """A request whose body and response body are streamed.

    Must be created while an event loop is running; the transport calls
    start immediately.

    Args:
        options: The request options.
    """

    def __init__(self, options: RequestOptions) -> None:
        self.options = options
        self.token = CancellationToken()
        self.parser = get_parser(options.response_type)
        self.working = build_working_request(options, self.parser, with_body=False)
        if options.auth is not None:
            AuthRefreshCoordinator(options.auth).apply(self.working)
        self.counters = AttemptCounters()
        self.redirects = RedirectResolver(options.max_redirects, options.credentials, replayable=False)
        self.pipe = DuplexPipe(options.high_water_mark, writable=self.working.is_writable)

        self._on_response: list[Callable[[Response], Any]] = []
        self._on_error: list[Callable[[BaseException, Response | None], Any]] = []
        loop = asyncio.get_running_loop()
        self._response: asyncio.Future[Response] = loop.create_future()
        self._response.add_done_callback(lambda fut: fut.cancelled() or fut.exception())
        self._task = loop.create_task(self._run())

    async def write(self, chunk: bytes | str) -> None:
        """Write a request body chunk, waiting while the transport is busy.

        Raises:
            ApiaryError: If the method does not carry a body, or after
                ``end()``.
        """
        await self.pipe.write(chunk)

    async def end(self) -> None:
        """Finish the request body."""
        await self.pipe.end()

    async def response(self) -> Response:
        """Wait for the status and headers of the final response.

        Raises:
            ApiaryError: If the request failed before a final response.
        """
        return await asyncio.shield(self._response)

    def on_response(self, fn: Callable[[Response], Any]) -> None:
        """Register ``fn(response)``, called with the status and headers of
        every response received, redirects included."""
        self._on_response.append(fn)

    def on_error(self, fn: Callable[[BaseException, Response | None], Any]) -> None:
        """Register ``fn(err, res)``, called when the request fails."""
        self._on_error.append(fn)

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.pipe.iter_readable()

    def cancel(self) -> None:
        self.token.cancel()
        self._task.cancel()
        if not self._response.done():
            self._response.cancel()

    async def aclose(self) -> None:
        """Cancel the request and wait for the transport to be released."""
        self.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if not self._task.done():
            await self.aclose()

    async def _run(self) -> None:
        owned = self.options.conn is None
        client = httpx.AsyncClient(timeout=None) if owned else self.options.conn
        response: Response | None = None
        try:
            while True:
                if self.token.cancelled:
                    raise asyncio.CancelledError
                content = None
                if self.counters.redirect_attempts == 0 and self.working.is_writable:
                    content = self.pipe.iter_writable()
                request = client.build_request(
                    self.working.method,
                    self.working.url,
                    headers=self.working.headers.to_httpx(),
                    content=content,
                )
                logger.debug(f"Streaming {self.working.method} {self.working.url}")
                raw = await client.send(request, stream=True, follow_redirects=False)
                try:
                    response = Response.from_httpx(raw, url=str(self.working.url))
                    for fn in self._on_response:
                        fn(response)
                    if response.status in REDIRECT_STATUS_CODES and response.headers.has("location"):
                        await drain_response(raw)
                        self.redirects.resolve(response.status, response.headers, self.working, self.counters)
                        continue
                    if response.status == 204 or 200 <= response.status < 300:
                        self._response.set_result(response)
                        if response.status != 204:
                            async for chunk in raw.aiter_bytes():
                                await self.pipe.push(chunk)
                        await self.pipe.push(_EOF)
                        return
                    response.body = await raw.aread()
                    error = await response_error(self.options, self.parser, response)
                    await self._fail(error, response, final=True)
                    return
                finally:
                    await raw.aclose()
        except asyncio.CancelledError:
            logger.debug(f"Streaming request to {self.working.url} cancelled")
            raise
        except httpx.TimeoutException as exc:
            await self._fail(RequestTimeoutError(f"Request timed out ({type(exc).__name__})"), response)
        except httpx.RequestError as exc:
            await self._fail(NetError(str(exc) or type(exc).__name__, code=error_code(exc)), response)
        except Exception as exc:
            await self._fail(exc, response)
        finally:
            if owned:
                await client.aclose()

    async def _fail(self, error: BaseException, response: Response | None, final: bool = False) -> None:
        logger.debug(f"Streaming request to {self.working.url} failed: {error!r}")
        if not self._response.done():
            if final:
                self._response.set_result(response)
            else:
                self._response.set_exception(error)
        for fn in self._on_error:
            fn(error, response)
        await self.pipe.push(error)


def request_stream(
    options: RequestOptions | str | httpx.URL | Mapping[str, Any], /, **overrides: Any
) -> StreamingRequest:
    """Start a streaming request on the running event loop.

    Args:
        options: A bare URL, a mapping of options or ``RequestOptions``.
        **overrides: Option values applied on top of ``options``.

    Returns:
        The streaming request.
    """
    return StreamingRequest(RequestOptions.coerce(options, **overrides))
