r"""Backoff strategies for computing retry delays.

Delays are expressed in milliseconds.
"""

from __future__ import annotations

__all__ = ["BaseBackoffStrategy", "ExponentialBackoff", "exp_backoff"]

from apiary.backoff.base import BaseBackoffStrategy
from apiary.backoff.exponential import ExponentialBackoff, exp_backoff
