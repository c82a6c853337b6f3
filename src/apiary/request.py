r"""Entry points for buffered requests.

Three call styles share the same executor:

- ``request_async``: a coroutine returning the ``Response``;
- ``request``: schedules the request on the running loop and returns a
  ``PendingRequest`` that is awaitable and cancellable;
- ``request_with_callback``: calls ``callback(err, res)`` exactly once,
  unless cancelled, and returns the cancel function.
"""

from __future__ import annotations

__all__ = ["PendingRequest", "request", "request_async", "request_with_callback"]

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from apiary.core.config import RequestOptions
from apiary.engine.executor import RequestExecutor
from apiary.exceptions import InvalidBodyError

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Mapping

    import httpx

    from apiary.response import Response

    DoneCallback = Callable[[BaseException | None, Response | None], Any]

logger: logging.Logger = logging.getLogger(__name__)


class PendingRequest:
    """Handle of a scheduled logical request.

    Awaiting the handle returns the ``Response`` or raises the terminal
    error. After ``cancel()`` no done callback fires and awaiting the
    handle raises ``asyncio.CancelledError``.

    Args:
        executor: The executor of the logical request.
    """

    def __init__(self, executor: RequestExecutor) -> None:
        self._executor = executor
        self._loop = asyncio.get_running_loop()
        self._callbacks: list[DoneCallback] = []
        self._task = self._loop.create_task(executor.execute())
        self._task.add_done_callback(self._on_done)

    def __await__(self) -> Generator[Any, None, Response]:
        return self._task.__await__()

    def cancel(self) -> None:
        """Cancel the request. No further transport call is made and no
        done callback fires."""
        if not self._executor.token.cancelled:
            logger.debug(f"Cancelling {self._executor.working.method} request to {self._executor.working.url}")
        self._executor.token.cancel()
        self._task.cancel()

    def cancelled(self) -> bool:
        return self._executor.token.cancelled

    def done(self) -> bool:
        return self._task.done()

    def add_done_callback(self, fn: DoneCallback) -> None:
        """Register ``fn(err, res)``, called once when the request settles."""
        if self._task.done():
            self._loop.call_soon(self._fire, fn)
        else:
            self._callbacks.append(fn)

    def _on_done(self, task: asyncio.Task) -> None:
        for fn in self._callbacks:
            self._fire(fn)
        self._callbacks.clear()

    def _fire(self, fn: DoneCallback) -> None:
        if self.cancelled() or self._task.cancelled():
            return
        error = self._task.exception()
        if error is not None:
            fn(error, None)
        else:
            fn(None, self._task.result())


def _options(options: RequestOptions | str | httpx.URL | Mapping[str, Any], overrides: dict) -> RequestOptions:
    return RequestOptions.coerce(options, **overrides)


def request(options: RequestOptions | str | httpx.URL | Mapping[str, Any], /, **overrides: Any) -> PendingRequest:
    """Schedule a logical request on the running event loop.

    Args:
        options: A bare URL, a mapping of options or ``RequestOptions``.
        **overrides: Option values applied on top of ``options``.

    Returns:
        The pending request.

    Raises:
        InvalidBodyError: If the body cannot be serialized.
        RuntimeError: If no event loop is running.

    Example:
        ```pycon
        >>> import asyncio
        >>> from apiary import request
        >>> async def main():  # doctest: +SKIP
        ...     pending = request("https://api.example.com/data", max_attempts=3)
        ...     response = await pending
        ...     return response.body
        ...
        >>> asyncio.run(main())  # doctest: +SKIP

        ```
    """
    return PendingRequest(RequestExecutor(_options(options, overrides)))


async def request_async(
    options: RequestOptions | str | httpx.URL | Mapping[str, Any], /, **overrides: Any
) -> Response:
    """Run a logical request and return its response.

    Args:
        options: A bare URL, a mapping of options or ``RequestOptions``.
        **overrides: Option values applied on top of ``options``.

    Returns:
        The final response, with parsed body.

    Raises:
        ResponseError: If the final response has a terminal status.
        RedirectError: If a redirect cannot be followed.
        RequestTimeoutError: If the deadline fired.
        NetError: If the transport failed.
        InvalidBodyError: If the body cannot be serialized.

    Example:
        ```pycon
        >>> import asyncio
        >>> from apiary import request_async
        >>> async def main():  # doctest: +SKIP
        ...     response = await request_async(
        ...         {"url": "https://api.example.com/data", "method": "POST", "body": {"a": 1}}
        ...     )
        ...     return response.status
        ...
        >>> asyncio.run(main())  # doctest: +SKIP

        ```
    """
    return await RequestExecutor(_options(options, overrides)).execute()


def request_with_callback(
    options: RequestOptions | str | httpx.URL | Mapping[str, Any],
    callback: DoneCallback,
    /,
    **overrides: Any,
) -> Callable[[], None]:
    """Schedule a logical request and report its settlement to ``callback``.

    ``callback(err, res)`` is called exactly once, on the event loop,
    unless the returned cancel function is called first. An invalid body
    is also reported through ``callback``.

    Args:
        options: A bare URL, a mapping of options or ``RequestOptions``.
        callback: Called with ``(None, response)`` or ``(error, None)``.
        **overrides: Option values applied on top of ``options``.

    Returns:
        A function cancelling the request.
    """
    loop = asyncio.get_running_loop()
    try:
        pending = request(options, **overrides)
    except InvalidBodyError as exc:
        handle = loop.call_soon(callback, exc, None)
        return handle.cancel
    pending.add_done_callback(callback)
    return pending.cancel
