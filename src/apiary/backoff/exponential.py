r"""Randomized exponential backoff over a band of delay slots."""

from __future__ import annotations

__all__ = ["ExponentialBackoff", "exp_backoff"]

import math
import random

from apiary.backoff.base import BaseBackoffStrategy


def exp_backoff(step: int, cap: int, jitter: int, attempt: int, exponent: float = 2) -> int:
    """Compute a randomized exponential backoff delay.

    The delay is a uniformly random multiple of ``step`` picked among
    ``ceil(min(cap / step, exponent ** attempt))`` slots, shifted by a
    random jitter in ``[-jitter, +jitter]`` and clamped to ``[0, cap]``.

    ```
    exp_backoff(100, 500, 0, attempt)
    ----------+-------------------------
     attempt  | possible delay
    ----------+-------------------------
         1    | 100, 200
         2    | 100, 200, 300, 400
         3+   | 100, 200, 300, 400, 500
    ----------+-------------------------
    ```

    Args:
        step: Size of one delay slot in milliseconds. Must be > 0.
        cap: Maximum delay in milliseconds.
        jitter: Maximum random offset in milliseconds. With ``jitter=0``
            the result is always a multiple of ``step``.
        attempt: The number of transport calls made so far (>= 1).
        exponent: Growth factor of the slot count.

    Returns:
        The delay in milliseconds.

    Example:
        ```pycon
        >>> from apiary.backoff import exp_backoff
        >>> exp_backoff(step=20, cap=20, jitter=0, attempt=1)
        20
        >>> exp_backoff(step=100, cap=500, jitter=0, attempt=3) in (100, 200, 300, 400, 500)
        True

        ```
    """
    try:
        growth = exponent**attempt
    except OverflowError:
        growth = math.inf
    slots = math.ceil(min(cap / step, growth))
    selected = random.randint(1, max(1, slots))  # noqa: S311
    offset = random.randint(-jitter, jitter) if jitter > 0 else 0  # noqa: S311
    delay = selected * step + offset
    return max(0, min(delay, cap))


class ExponentialBackoff(BaseBackoffStrategy):
    """Randomized exponential backoff strategy.

    This is the default backoff strategy. Increasing the attempt never
    decreases the largest achievable delay, until ``cap`` is reached.

    Args:
        step: Size of one delay slot in milliseconds (default: 200).
        cap: Maximum delay in milliseconds (default: 1000).
        jitter: Maximum random offset in milliseconds (default: 100).
        exponent: Growth factor of the slot count (default: 2).

    Example:
        ```pycon
        >>> from apiary.backoff import ExponentialBackoff
        >>> backoff = ExponentialBackoff(step=250, cap=1000, jitter=0)
        >>> backoff.calculate(1) in (250, 500)
        True
        >>> backoff.calculate(10) in (250, 500, 750, 1000)
        True

        ```
    """

    def __init__(self, step: int = 200, cap: int = 1000, jitter: int = 100, exponent: float = 2) -> None:
        if step <= 0:
            msg = f"step must be > 0, got {step}"
            raise ValueError(msg)
        if cap < 0:
            msg = f"cap must be non-negative, got {cap}"
            raise ValueError(msg)
        if jitter < 0:
            msg = f"jitter must be non-negative, got {jitter}"
            raise ValueError(msg)
        if exponent <= 1:
            msg = f"exponent must be > 1, got {exponent}"
            raise ValueError(msg)

        self.step = step
        self.cap = cap
        self.jitter = jitter
        self.exponent = exponent

    def calculate(self, attempt: int) -> int:
        return exp_backoff(self.step, self.cap, self.jitter, attempt, self.exponent)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(step={self.step}, cap={self.cap}, "
            f"jitter={self.jitter}, exponent={self.exponent})"
        )
