r"""Abstract base class for backoff strategies."""

from __future__ import annotations

__all__ = ["BaseBackoffStrategy"]

from abc import ABC, abstractmethod


class BaseBackoffStrategy(ABC):
    """Abstract base class for backoff strategies.

    A backoff strategy determines how long to wait before the next
    transport call after a retry-eligible outcome.
    """

    @abstractmethod
    def calculate(self, attempt: int) -> int:
        """Calculate the backoff delay for a given attempt.

        Args:
            attempt: The number of transport calls made so far (1-indexed).
                For example, attempt=1 is the delay after the first call.

        Returns:
            The delay in milliseconds before the next transport call.
        """
