r"""Structured logging for machine-readable request lifecycle events.

The executor emits one log record per lifecycle event (attempt, retry,
redirect, refresh, resolution) with structured fields such as ``url``,
``method``, ``attempt``, ``status`` and ``delay_ms``. Every record
emitted while a logical request runs carries that request's correlation
ID, so all the attempts of one logical request can be grouped.

Structured output is opt-in: attach ``StructuredFormatter`` to a handler
of the ``apiary`` logger.

Example:
    ```python
    import logging
    from apiary.utils.structured_logging import StructuredFormatter

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())

    logger = logging.getLogger("apiary")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    ```
"""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "clear_correlation_id",
    "correlation_scope",
    "get_correlation_id",
    "log_structured",
    "set_correlation_id",
]

import contextvars
import json
import logging
import time
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "apiary_correlation_id", default=None
)

_RESERVED_ATTRS = frozenset(
    {
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    }
)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any.

    Example:
        ```pycon
        >>> from apiary.utils.structured_logging import get_correlation_id, set_correlation_id
        >>> set_correlation_id("req-123")
        >>> get_correlation_id()
        'req-123'

        ```
    """
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context.

    The ID lives in a context variable, so each asyncio task sees its own
    value.
    """
    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    """Clear the correlation ID for the current context."""
    _correlation_id.set(None)


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """Run a block under a correlation ID.

    An already active ID is kept, so a caller-provided ID wins over the
    generated one. The previous value is restored on exit.

    Args:
        correlation_id: Optional ID to use. A short random ID is generated
            when neither this nor an active ID is available.

    Example:
        ```pycon
        >>> from apiary.utils.structured_logging import (
        ...     clear_correlation_id,
        ...     correlation_scope,
        ...     get_correlation_id,
        ... )
        >>> clear_correlation_id()
        >>> with correlation_scope("abc") as cid:
        ...     get_correlation_id()
        ...
        'abc'
        >>> get_correlation_id() is None
        True

        ```
    """
    current = _correlation_id.get()
    value = current or correlation_id or uuid.uuid4().hex[:12]
    token = _correlation_id.set(value)
    try:
        yield value
    finally:
        _correlation_id.reset(token)


class StructuredFormatter(logging.Formatter):
    """Format log records as single-line JSON objects.

    Standard fields: ``timestamp`` (ISO 8601, UTC), ``level``, ``logger``,
    ``message``, ``module``, ``function``, ``line``. The correlation ID
    is added when set, and any ``extra`` fields of the record are copied
    as-is (non-JSON values are rendered with ``str``).

    Example:
        ```pycon
        >>> import logging
        >>> from io import StringIO
        >>> from apiary.utils.structured_logging import StructuredFormatter
        >>> stream = StringIO()
        >>> handler = logging.StreamHandler(stream)
        >>> handler.setFormatter(StructuredFormatter())
        >>> logger = logging.getLogger("apiary.doctest")
        >>> logger.addHandler(handler)
        >>> logger.setLevel(logging.INFO)
        >>> logger.info("retrying", extra={"status": 429})
        >>> '"status": 429' in stream.getvalue()
        True

        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = get_correlation_id()
        if correlation_id is not None:
            log_data["correlation_id"] = correlation_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:  # noqa: N802
        return (
            time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
            + f".{int(record.msecs):03d}Z"
        )


def log_structured(logger: logging.Logger, level: int, message: str, **extra: Any) -> None:
    """Log a message with structured fields.

    Args:
        logger: Logger to use.
        level: Log level (e.g. ``logging.DEBUG``).
        message: Log message.
        **extra: Structured fields included in the JSON output.
    """
    if logger.isEnabledFor(level):
        logger.log(level, message, extra=extra)
