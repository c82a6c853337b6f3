r"""Helpers shared by the request engine: Retry-After parsing, retry
delay calculation and structured logging."""

from __future__ import annotations

__all__ = [
    "calculate_retry_delay",
    "parse_retry_after",
    "retry_after_delay",
]

from apiary.utils.retry_after import parse_retry_after, retry_after_delay
from apiary.utils.sleep import calculate_retry_delay
