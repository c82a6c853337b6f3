r"""Execution of one logical request.

This module provides the ``RequestExecutor`` class that drives a logical
request through its transport calls: initial send, retries with backoff,
redirect hops and the one credential refresh, until it settles with a
``Response`` or a terminal error.
"""

from __future__ import annotations

__all__ = ["RequestExecutor", "build_working_request", "drain_response", "response_error"]

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any

import httpx

from apiary.auth import AuthRefreshCoordinator
from apiary.body.parsers import get_parser, parse_body
from apiary.body.serializers import iter_pairs, serialize_body
from apiary.core.config import USER_AGENT
from apiary.engine.classifier import Outcome, ResponseClassifier
from apiary.engine.manager import CallbackManager
from apiary.engine.state import AttemptCounters, CancellationToken, RequestState, WorkingRequest
from apiary.exceptions import RedirectError, RequestTimeoutError, ResponseError
from apiary.headers import HeaderMap
from apiary.progress import ProgressMonitor, iter_upload
from apiary.redirect import RedirectResolver
from apiary.response import Response, status_text
from apiary.utils.sleep import calculate_retry_delay
from apiary.utils.structured_logging import correlation_scope, log_structured

if TYPE_CHECKING:
    from apiary.body.parsers import ResponseParser
    from apiary.core.config import RequestOptions

logger: logging.Logger = logging.getLogger(__name__)


def build_working_request(
    options: RequestOptions, parser: ResponseParser, *, with_body: bool = True
) -> WorkingRequest:
    """Derive the working request of a logical request from its options.

    Query parameters are appended to the URL, the default ``Accept`` and
    ``User-Agent`` headers are added when absent and the body is
    serialized.

    Args:
        options: The request options.
        parser: The response parser, deciding the default ``Accept``.
        with_body: Whether to serialize ``options.body``.

    Returns:
        The working request.

    Raises:
        ValueError: If no URL is given.
        InvalidBodyError: If the body cannot be serialized.

    Example:
        ```pycon
        >>> from apiary.body.parsers import get_parser
        >>> from apiary.core.config import RequestOptions
        >>> from apiary.engine.executor import build_working_request
        >>> options = RequestOptions(
        ...     url="http://example.com/a?x=1", query={"ids": [1, 2]}, body={"a": 1}, method="POST"
        ... )
        >>> working = build_working_request(options, get_parser("json"))
        >>> str(working.url), working.body, working.headers.get("accept")
        ('http://example.com/a?x=1&ids=1&ids=2', b'{"a":1}', 'application/json')

        ```
    """
    if not options.url:
        msg = "a request URL is required"
        raise ValueError(msg)
    url = httpx.URL(options.url)
    if options.query:
        pairs = [*url.params.multi_items(), *iter_pairs(options.query)]
        url = url.copy_with(params=httpx.QueryParams(pairs))

    working = WorkingRequest(method=options.method, url=url, headers=HeaderMap(options.headers))
    if parser.accepts_json:
        working.headers.attempt("Accept", "application/json")
    working.headers.attempt("User-Agent", USER_AGENT)
    if with_body:
        working.body = serialize_body(
            working, options.body, options.request_type, compress=options.gzip
        )
    return working


async def response_error(options: RequestOptions, parser: ResponseParser, response: Response) -> BaseException:
    """Build the terminal error of a non-2xx response.

    ``response.body`` holds the raw body bytes and is replaced with the
    parsed error body. ``parse_error`` may return an exception, which is
    used as is, or any other value, which becomes the body of a
    ``ResponseError``. Errors raised by ``parse_error`` or by the response
    parser propagate verbatim.
    """
    if options.parse_error is not None:
        value = options.parse_error(response, response.body)
        if inspect.isawaitable(value):
            value = await value
        if isinstance(value, BaseException):
            return value
        response.body = value
    else:
        response.body = await parse_body(parser, response, response.body)
    return ResponseError(status_text(response.status), response)


async def drain_response(raw: httpx.Response) -> None:
    """Discard the unread body of a superseded response."""
    if raw.is_stream_consumed:
        return
    async for _ in raw.aiter_raw():
        pass


class RequestExecutor:
    """State machine of one logical request.

    The executor owns the working request and the counters of the logical
    request. Transport calls are strictly sequential. The cancellation
    token is checked before every transition: once it is set no further
    transport call is made and ``execute`` raises
    ``asyncio.CancelledError`` instead of settling.

    Args:
        options: The immutable request options.
        token: Optional cancellation token shared with the caller.

    Raises:
        InvalidBodyError: If the body cannot be serialized. Raised by the
            constructor, before any transport call.

    Example:
        ```pycon
        >>> import asyncio
        >>> from apiary.core.config import RequestOptions
        >>> from apiary.engine.executor import RequestExecutor
        >>> async def main():  # doctest: +SKIP
        ...     executor = RequestExecutor(RequestOptions(url="https://api.example.com/data"))
        ...     return await executor.execute()
        ...
        >>> asyncio.run(main())  # doctest: +SKIP

        ```
    """

    def __init__(self, options: RequestOptions, token: CancellationToken | None = None) -> None:
        self.options = options
        self.token = token if token is not None else CancellationToken()
        self.state = RequestState.IDLE
        self.counters = AttemptCounters()
        self.parser = get_parser(options.response_type)
        self.classifier = ResponseClassifier(options.max_attempts, options.retry_status_codes)
        self.redirects = RedirectResolver(options.max_redirects, options.credentials)
        self.backoff = options.get_backoff_strategy()
        self.callbacks = CallbackManager(options)
        self.auth = AuthRefreshCoordinator(options.auth) if options.auth is not None else None
        self.working = build_working_request(options, self.parser)
        if self.auth is not None:
            self.auth.apply(self.working)

    async def execute(self) -> Response:
        """Run the logical request until it settles.

        Returns:
            The final response, with parsed body.

        Raises:
            ResponseError: If the final response has a terminal status.
            RedirectError: If a redirect cannot be followed.
            RequestTimeoutError: If the deadline fired.
            NetError: If the transport failed.
            asyncio.CancelledError: If the request was cancelled.
        """
        with correlation_scope():
            deadline = self._timeout(per_attempt=False)
            try:
                async with deadline:
                    response = await self._run()
            except asyncio.CancelledError:
                logger.debug(f"{self.working.method} request to {self.working.url} cancelled")
                raise
            except TimeoutError as exc:
                if not deadline.expired():
                    self._fail(exc)
                    raise
                error = RequestTimeoutError(f"Request timed out after {self.options.timeout}ms")
                self._fail(error)
                raise error from exc
            except Exception as exc:
                self._fail(exc)
                raise
            finally:
                self.state = RequestState.RESOLVED
            return response

    def _timeout(self, per_attempt: bool) -> asyncio.Timeout:
        enabled = self.options.timeout > 0 and bool(self.options.timeout_per_attempt) == per_attempt
        return asyncio.timeout(self.options.timeout / 1000 if enabled else None)

    def _check_cancelled(self) -> None:
        if self.token.cancelled:
            raise asyncio.CancelledError

    def _transition(self, state: RequestState) -> None:
        self._check_cancelled()
        self.state = state

    def _can_refresh(self) -> bool:
        return self.auth is not None and self.auth.can_refresh(self.counters)

    async def _run(self) -> Response:
        owned = self.options.conn is None
        client = httpx.AsyncClient(timeout=None) if owned else self.options.conn
        try:
            if self.auth is not None and self.auth.needs_initial_refresh(self.working, self.counters):
                self._transition(RequestState.WAITING_REFRESH)
                log_structured(logger, logging.DEBUG, "refresh", event="refresh", url=str(self.working.url))
                await self.auth.refresh(self.working, None, self.counters)
            while True:
                self._transition(RequestState.SENDING)
                self.callbacks.on_request(str(self.working.url), self.working.method, self.counters.attempts)
                log_structured(
                    logger,
                    logging.DEBUG,
                    f"{self.working.method} {self.working.url} (attempt {self.counters.attempts})",
                    event="attempt",
                    url=str(self.working.url),
                    method=self.working.method,
                    attempt=self.counters.attempts,
                )
                outcome, response, error = await self._timed_attempt(client)
                self._check_cancelled()

                if outcome is Outcome.NO_CONTENT:
                    response.body = None
                    return self._succeed(response)
                if outcome is Outcome.SUCCESS:
                    response.body = await parse_body(self.parser, response, response.body)
                    return self._succeed(response)
                if outcome is Outcome.FAILURE:
                    raise await response_error(self.options, self.parser, response)
                if outcome is Outcome.REDIRECT:
                    await self._redirect(response)
                elif outcome is Outcome.REFRESH:
                    self._transition(RequestState.WAITING_REFRESH)
                    log_structured(
                        logger, logging.DEBUG, "refresh", event="refresh", url=str(self.working.url), status=401
                    )
                    refresh_error = await response_error(self.options, self.parser, response)
                    await self.auth.refresh(self.working, refresh_error, self.counters)
                else:
                    await self._retry(response, error)
        finally:
            if owned:
                await client.aclose()

    async def _timed_attempt(
        self, client: httpx.AsyncClient
    ) -> tuple[Outcome, Response | None, Exception | None]:
        timeout = self._timeout(per_attempt=True)
        try:
            async with timeout:
                return await self._attempt(client)
        except TimeoutError as exc:
            if timeout.expired():
                msg = f"Request timed out after {self.options.timeout}ms"
                raise RequestTimeoutError(msg) from exc
            raise

    async def _attempt(
        self, client: httpx.AsyncClient
    ) -> tuple[Outcome, Response | None, Exception | None]:
        """Make one transport call and classify its result.

        The body of a response that settles the request is read into
        ``Response.body``, the body of a superseded response is drained.
        """
        content: Any = self.working.body
        if content is not None and self.options.on_upload_progress is not None:
            content = iter_upload(content, self.options.on_upload_progress)
        request = client.build_request(
            self.working.method,
            self.working.url,
            headers=self.working.headers.to_httpx(),
            content=content,
        )
        try:
            raw = await client.send(request, stream=True, follow_redirects=False)
        except httpx.RequestError as exc:
            return self._transport_error(exc)
        try:
            response = Response.from_httpx(raw, url=str(self.working.url))
            outcome = self.classifier.classify(response, self.counters, self._can_refresh())
            if outcome in (Outcome.SUCCESS, Outcome.FAILURE, Outcome.REFRESH):
                response.body = await self._read_body(raw)
            else:
                await drain_response(raw)
        except httpx.RequestError as exc:
            return self._transport_error(exc)
        finally:
            await raw.aclose()
        return outcome, response, None

    def _transport_error(self, exc: httpx.RequestError) -> tuple[Outcome, None, Exception]:
        outcome, error = self.classifier.classify_error(exc, self.counters)
        if error is not None:
            logger.debug(f"{self.working.method} request to {self.working.url} failed: {exc!r}")
            raise error from exc
        return outcome, None, exc

    async def _read_body(self, raw: httpx.Response) -> bytes:
        if self.options.on_download_progress is None or "content-length" not in raw.headers:
            return await raw.aread()
        monitor = ProgressMonitor(int(raw.headers["content-length"]), self.options.on_download_progress)
        # A body buffered by the transport never advances num_bytes_downloaded
        buffered = raw.is_stream_consumed
        chunks = []
        async for chunk in raw.aiter_bytes():
            chunks.append(chunk)
            monitor.update(len(chunk) if buffered else raw.num_bytes_downloaded - monitor.done)
        return b"".join(chunks)

    async def _redirect(self, response: Response) -> None:
        self._transition(RequestState.REDIRECTING)
        previous = str(self.working.url)
        self.redirects.resolve(response.status, response.headers, self.working, self.counters)
        self.callbacks.on_redirect(
            previous,
            self.working.method,
            str(self.working.url),
            response.status,
            self.counters.redirect_attempts,
        )
        log_structured(
            logger,
            logging.DEBUG,
            f"redirect {response.status} to {self.working.url}",
            event="redirect",
            url=str(self.working.url),
            method=self.working.method,
            status=response.status,
        )

    async def _retry(self, response: Response | None, error: Exception | None) -> None:
        self._transition(RequestState.WAITING_BACKOFF)
        if response is None:
            # connection reset on a reused connection, retried without delay
            delay = 0
        else:
            delay = calculate_retry_delay(
                self.counters.attempts,
                self.backoff,
                response.headers,
                self.options.retry_after_max,
            )
        status = response.status if response is not None else None
        self.callbacks.on_retry(
            str(self.working.url), self.working.method, self.counters.attempts + 1, delay, error, status
        )
        log_structured(
            logger,
            logging.DEBUG,
            f"retry in {delay}ms",
            event="retry",
            url=str(self.working.url),
            method=self.working.method,
            attempt=self.counters.attempts,
            status=status,
            delay_ms=delay,
        )
        if delay > 0:
            await asyncio.sleep(delay / 1000)
        self.counters.attempts += 1

    def _succeed(self, response: Response) -> Response:
        self._transition(RequestState.RESOLVED)
        self.callbacks.on_success(str(self.working.url), self.working.method, self.counters.attempts, response)
        log_structured(
            logger,
            logging.DEBUG,
            f"{self.working.method} {self.working.url} resolved with {response.status}",
            event="resolved",
            url=str(self.working.url),
            method=self.working.method,
            attempt=self.counters.attempts,
            status=response.status,
        )
        return response

    def _fail(self, error: BaseException) -> None:
        status = error.status if isinstance(error, (ResponseError, RedirectError)) else None
        log_structured(
            logger,
            logging.DEBUG,
            f"{self.working.method} {self.working.url} failed: {error!r}",
            event="resolved",
            url=str(self.working.url),
            method=self.working.method,
            attempt=self.counters.attempts,
            status=status,
        )
        self.callbacks.on_failure(str(self.working.url), self.working.method, self.counters.attempts, error, status)
