r"""Request options, defaults and validation."""

from __future__ import annotations

__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_REDIRECTS",
    "DEFAULT_TIMEOUT",
    "RETRY_STATUS_CODES",
    "RequestOptions",
    "validate_retry_params",
    "validate_timeout",
]

from apiary.core.config import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT,
    RETRY_STATUS_CODES,
    RequestOptions,
)
from apiary.core.validation import validate_retry_params, validate_timeout
