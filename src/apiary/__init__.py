r"""apiary - Resilient HTTP request engine with retry, redirect and
credential refresh.

This package provides a request engine built on top of the httpx
library. One call to ``request`` is a logical request that may span
several transport calls before it settles exactly once with a normalized
``Response`` or a typed error.

Key Features:
    - Automatic retry of ``429 Too Many Requests`` with randomized
      exponential backoff
    - Retry-After header support (both integer seconds and HTTP-date formats)
    - Redirect following with method/body rewriting (301/302/303 to GET)
    - JSON, form and raw request bodies, JSON/raw/text/custom response parsing
    - One-shot credential refresh on ``401 Unauthorized``
    - Cancellation and timeouts
    - Streaming request and response bodies with bounded buffering
    - Callbacks and structured logging for observability
    - Context manager client binding defaults to a pooled transport

Example:
    ```pycon
    >>> import asyncio
    >>> from apiary import request_async
    >>> async def main():  # doctest: +SKIP
    ...     response = await request_async(
    ...         {"url": "https://api.example.com/data", "method": "POST", "body": {"a": 1}}
    ...     )
    ...     return response.body
    ...
    >>> asyncio.run(main())  # doctest: +SKIP

    ```
"""

from __future__ import annotations

__all__ = [
    "ApiaryError",
    "AsyncApiaryClient",
    "InvalidBodyError",
    "NetError",
    "PendingRequest",
    "RedirectError",
    "RequestOptions",
    "RequestTimeoutError",
    "Response",
    "ResponseError",
    "StreamingRequest",
    "__version__",
    "request",
    "request_async",
    "request_stream",
    "request_with_callback",
]

from importlib.metadata import PackageNotFoundError, version

from apiary.client import AsyncApiaryClient
from apiary.core.config import RequestOptions
from apiary.exceptions import (
    ApiaryError,
    InvalidBodyError,
    NetError,
    RedirectError,
    RequestTimeoutError,
    ResponseError,
)
from apiary.request import PendingRequest, request, request_async, request_with_callback
from apiary.response import Response
from apiary.streaming import StreamingRequest, request_stream

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    # Package is not installed, fallback if needed
    __version__ = "0.0.0"
