from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import Mock, patch

import pytest

from apiary.utils.structured_logging import clear_correlation_id

if TYPE_CHECKING:
    from collections.abc import Generator


@pytest.fixture
def mock_asleep() -> Generator[Mock, None, None]:
    """Patch asyncio.sleep to make tests run faster."""
    with patch("asyncio.sleep", return_value=None) as mock:
        yield mock


@pytest.fixture
def mock_callback() -> Mock:
    """Create a mock callback function for testing callbacks.

    Returns:
        A Mock object that can be used as a callback function.

    Example:
        >>> def test_callback(mock_callback):
        ...     some_function(on_request=mock_callback)
        ...     mock_callback.assert_called_once()
    """
    return Mock()


@pytest.fixture(autouse=True)
def _reset_correlation_id() -> Generator[None, None, None]:
    clear_correlation_id()
    yield
    clear_correlation_id()
