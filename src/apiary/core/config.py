r"""Request options and defaults.

This module provides the configuration constants and the immutable
``RequestOptions`` dataclass describing one logical request. Durations
are expressed in milliseconds.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_HIGH_WATER_MARK",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_REDIRECTS",
    "DEFAULT_RETRY_AFTER_MAX",
    "DEFAULT_RETRY_DELAY_JITTER",
    "DEFAULT_RETRY_DELAY_MAX",
    "DEFAULT_RETRY_DELAY_STEP",
    "DEFAULT_TIMEOUT",
    "METHOD_REWRITE_STATUS_CODES",
    "OPTION_ALIASES",
    "REDIRECT_STATUS_CODES",
    "RETRY_STATUS_CODES",
    "USER_AGENT",
    "RequestOptions",
]

import re
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Any

import httpx

from apiary.backoff import BaseBackoffStrategy, ExponentialBackoff
from apiary.core.validation import validate_method, validate_retry_params, validate_timeout
from apiary.headers import HeaderMap

if TYPE_CHECKING:
    from collections.abc import Callable

    from apiary.auth import CredentialAgent
    from apiary.body.parsers import ResponseParser
    from apiary.body.serializers import Serializer
    from apiary.callbacks import FailureInfo, RedirectInfo, RequestInfo, ResponseInfo, RetryInfo

try:
    _VERSION = version("apiary")
except PackageNotFoundError:  # pragma: no cover
    _VERSION = "0.0.0"

# Maximum number of transport calls made for retry purposes
# The first call counts as attempt 1, so 2 means one retry
DEFAULT_MAX_ATTEMPTS = 2

# Backoff slot size, backoff cap and jitter bound (milliseconds)
DEFAULT_RETRY_DELAY_STEP = 200
DEFAULT_RETRY_DELAY_MAX = 1000
DEFAULT_RETRY_DELAY_JITTER = 100

# Upper bound of a server supplied Retry-After delay (milliseconds)
DEFAULT_RETRY_AFTER_MAX = 30_000

# Deadline of a logical request (milliseconds), 0 disables it
DEFAULT_TIMEOUT = 0

DEFAULT_MAX_REDIRECTS = 5

# Number of chunks buffered on each side of a streaming request
DEFAULT_HIGH_WATER_MARK = 1

# HTTP status codes that trigger an automatic retry
# 429: Too Many Requests - Rate limiting
RETRY_STATUS_CODES = (429,)

REDIRECT_STATUS_CODES = (301, 302, 303, 307, 308)

# Redirects that rewrite the method to GET and drop the body
METHOD_REWRITE_STATUS_CODES = (301, 302, 303)

USER_AGENT = f"apiary/{_VERSION} (python)"

# Short names accepted for some options
OPTION_ALIASES = {
    "serialize": "request_type",
    "parse_response": "response_type",
    "total": "max_attempts",
    "low": "retry_delay_step",
    "high": "retry_delay_max",
    "with_credentials": "credentials",
    "agent": "conn",
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass(frozen=True)
class RequestOptions:
    """Immutable description of one logical request.

    Defaults are merged in when the options are built and the instance is
    never mutated afterwards. Each transport call derives its own working
    copy of the method, URL, headers and body.

    Args:
        url: The target URL.
        method: The HTTP method (default: ``"GET"``).
        query: Query parameters merged into the URL. Sequence values
            become repeated keys.
        headers: Request headers.
        body: The logical request body.
        request_type: How the body is serialized: ``"json"``, ``"form"``,
            ``"raw"``, a callable ``fn(request, body)`` or a
            ``Serializer``. ``None`` infers it from the body.
        response_type: How a response body is parsed: ``"json"``,
            ``"raw"``/``"buffer"``, ``"text"``, a callable
            ``fn(response, body)`` or a ``ResponseParser``.
        parse_error: Optional ``fn(response, body)`` building the error
            raised for a terminal non-2xx response.
        max_attempts: Maximum number of transport calls made for retry
            purposes. Must be >= 1.
        retry_delay_step: Backoff slot size in milliseconds. Must be > 0.
        retry_delay_max: Backoff cap in milliseconds.
        retry_delay_jitter: Backoff jitter bound in milliseconds.
        retry_after_max: Cap of the Retry-After delay in milliseconds.
        retry_status_codes: Status codes that trigger a retry.
        backoff_strategy: Optional custom backoff strategy. Defaults to
            ``ExponentialBackoff`` over the three delay options.
        timeout: Deadline in milliseconds, ``0`` disables it.
        timeout_per_attempt: If ``True`` the deadline applies to each
            transport call instead of the whole logical request.
        max_redirects: Maximum number of redirects followed.
        credentials: If ``False``, credentials are dropped when a
            redirect crosses origins.
        auth: Optional credential agent refreshed once on a 401.
        conn: Optional ``httpx.AsyncClient`` used as the transport.
        gzip: Whether to gzip the serialized request body.
        high_water_mark: Number of chunks buffered on each side of a
            streaming request.
        on_upload_progress: Optional ``fn(pct, done, total)`` callback.
        on_download_progress: Optional ``fn(pct, done, total)`` callback.
        on_request: Optional callback called before each transport call.
        on_retry: Optional callback called before each retry.
        on_redirect: Optional callback called before each redirect hop.
        on_success: Optional callback called when the request succeeds.
        on_failure: Optional callback called when the request fails.

    Example:
        ```pycon
        >>> from apiary.core.config import RequestOptions
        >>> options = RequestOptions.coerce("https://example.com")
        >>> options.method, options.max_attempts
        ('GET', 2)
        >>> merged = options.merge(method="post", total=5)
        >>> merged.method, merged.max_attempts
        ('POST', 5)
        >>> options.max_attempts  # Original unchanged
        2

        ```
    """

    url: str | httpx.URL = ""
    method: str = "GET"
    query: Any = None
    headers: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None
    request_type: str | Callable | Serializer | None = None
    response_type: str | Callable | ResponseParser = "json"
    parse_error: Callable[..., Any] | None = None
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay_step: int = DEFAULT_RETRY_DELAY_STEP
    retry_delay_max: int = DEFAULT_RETRY_DELAY_MAX
    retry_delay_jitter: int = DEFAULT_RETRY_DELAY_JITTER
    retry_after_max: int = DEFAULT_RETRY_AFTER_MAX
    retry_status_codes: tuple[int, ...] = RETRY_STATUS_CODES
    backoff_strategy: BaseBackoffStrategy | None = None
    timeout: float = DEFAULT_TIMEOUT
    timeout_per_attempt: bool = False
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    credentials: bool = False
    auth: CredentialAgent | None = None
    conn: httpx.AsyncClient | None = None
    gzip: bool = False
    high_water_mark: int = DEFAULT_HIGH_WATER_MARK
    on_upload_progress: Callable[[int, int, int], None] | None = None
    on_download_progress: Callable[[int, int, int], None] | None = None
    on_request: Callable[[RequestInfo], None] | None = None
    on_retry: Callable[[RetryInfo], None] | None = None
    on_redirect: Callable[[RedirectInfo], None] | None = None
    on_success: Callable[[ResponseInfo], None] | None = None
    on_failure: Callable[[FailureInfo], None] | None = None

    def __post_init__(self) -> None:
        """Normalize and validate the options.

        Raises:
            ValueError: If any parameter fails validation.
        """
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", dict(HeaderMap(self.headers)))
        object.__setattr__(self, "retry_status_codes", tuple(self.retry_status_codes))
        validate_method(self.method)
        validate_retry_params(
            max_attempts=self.max_attempts,
            retry_delay_step=self.retry_delay_step,
            retry_delay_max=self.retry_delay_max,
            retry_delay_jitter=self.retry_delay_jitter,
            retry_after_max=self.retry_after_max,
            max_redirects=self.max_redirects,
        )
        validate_timeout(self.timeout)
        if self.high_water_mark < 1:
            msg = f"high_water_mark must be >= 1, got {self.high_water_mark}"
            raise ValueError(msg)

    @classmethod
    def coerce(
        cls,
        options: RequestOptions | str | httpx.URL | Mapping[str, Any],
        /,
        defaults: Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> RequestOptions:
        """Build options from a URL, a mapping or existing options.

        Mapping keys may use the short aliases of ``OPTION_ALIASES`` or
        camelCase names (``maxAttempts``). Headers of ``defaults``,
        ``options`` and ``overrides`` are merged, later ones winning.

        Args:
            options: A bare URL, a mapping of options, or a
                ``RequestOptions`` instance.
            defaults: Optional option values applied below ``options``.
                Ignored when ``options`` is already a ``RequestOptions``.
            **overrides: Option values applied on top of ``options``.

        Returns:
            The new options.

        Raises:
            TypeError: If ``options`` has an unsupported type or names
                an unknown option.
            ValueError: If any parameter fails validation.

        Example:
            ```pycon
            >>> from apiary.core.config import RequestOptions
            >>> options = RequestOptions.coerce(
            ...     {"url": "https://example.com", "parseResponse": "raw", "high": 500},
            ...     defaults={"headers": {"X-Client": "demo"}},
            ... )
            >>> options.response_type, options.retry_delay_max, options.headers
            ('raw', 500, {'x-client': 'demo'})

            ```
        """
        if isinstance(options, RequestOptions):
            base = options
        else:
            if isinstance(options, (str, httpx.URL)):
                layer = {"url": options}
            elif isinstance(options, Mapping):
                layer = normalize_option_names(options)
            else:
                msg = f"options must be a URL, a mapping or RequestOptions, got {type(options).__name__}"
                raise TypeError(msg)
            values = normalize_option_names(defaults or {})
            headers = _merge_headers(values.get("headers"), layer.get("headers"))
            values.update(layer)
            values["headers"] = headers
            base = cls(**values)
        return base.merge(**overrides) if overrides else base

    def merge(self, **overrides: Any) -> RequestOptions:
        """Create new options with the specified parameters overridden.

        Only non-None override values are applied. Headers are merged with
        the current headers instead of replacing them.

        Args:
            **overrides: Option values to override. Aliases and camelCase
                names are accepted.

        Returns:
            A new ``RequestOptions`` instance with overrides applied.

        Example:
            ```pycon
            >>> from apiary.core.config import RequestOptions
            >>> options = RequestOptions(url="https://example.com", headers={"A": "1"})
            >>> options.merge(headers={"B": "2"}).headers
            {'a': '1', 'b': '2'}

            ```
        """
        filtered = {k: v for k, v in normalize_option_names(overrides).items() if v is not None}
        if "headers" in filtered:
            filtered["headers"] = _merge_headers(self.headers, filtered["headers"])
        return replace(self, **filtered)

    def get_backoff_strategy(self) -> BaseBackoffStrategy:
        """Return the custom backoff strategy or the default exponential one."""
        if self.backoff_strategy is not None:
            return self.backoff_strategy
        return ExponentialBackoff(
            step=self.retry_delay_step,
            cap=self.retry_delay_max,
            jitter=self.retry_delay_jitter,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the options to a dictionary of field values.

        Example:
            ```pycon
            >>> from apiary.core.config import RequestOptions
            >>> RequestOptions(url="https://example.com").to_dict()["max_redirects"]
            5

            ```
        """
        return {f.name: getattr(self, f.name) for f in fields(self)}


def normalize_option_names(options: Mapping[str, Any]) -> dict[str, Any]:
    """Translate aliases and camelCase option names to field names.

    Raises:
        TypeError: If a name does not match any option.

    Example:
        ```pycon
        >>> from apiary.core.config import normalize_option_names
        >>> normalize_option_names({"maxRedirects": 1, "total": 3})
        {'max_redirects': 1, 'max_attempts': 3}

        ```
    """
    names = {f.name for f in fields(RequestOptions)}
    result: dict[str, Any] = {}
    for key, value in options.items():
        name = _CAMEL_BOUNDARY.sub("_", key).lower()
        name = OPTION_ALIASES.get(name, name)
        if name not in names:
            msg = f"unknown request option {key!r}"
            raise TypeError(msg)
        result[name] = value
    return result


def _merge_headers(*layers: Mapping[str, Any] | None) -> dict[str, Any]:
    headers = HeaderMap()
    for layer in layers:
        for name, value in (layer or {}).items():
            headers.set(name, value)
    return dict(headers)
