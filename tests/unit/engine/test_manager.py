r"""Unit tests for the callback manager."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from apiary.callbacks import FailureInfo, RedirectInfo, RequestInfo, ResponseInfo, RetryInfo
from apiary.core.config import RequestOptions
from apiary.engine.manager import CallbackManager
from apiary.exceptions import NetError
from apiary.response import Response

TEST_URL = "https://api.example.com/data"


#####################################
#     Tests for CallbackManager     #
#####################################


def test_callback_manager_without_callbacks() -> None:
    """Test that unset callbacks are skipped."""
    manager = CallbackManager(RequestOptions(url=TEST_URL))

    manager.on_request(TEST_URL, "GET", 1)
    manager.on_retry(TEST_URL, "GET", 2, 100, None, 429)
    manager.on_redirect(TEST_URL, "GET", TEST_URL, 302, 1)
    manager.on_success(TEST_URL, "GET", 1, Response(status=200))
    manager.on_failure(TEST_URL, "GET", 1, NetError("boom"), None)


def test_callback_manager_on_request(mock_callback: Mock) -> None:
    manager = CallbackManager(RequestOptions(url=TEST_URL, max_attempts=3, on_request=mock_callback))
    manager.on_request(TEST_URL, "GET", 1)

    mock_callback.assert_called_once_with(
        RequestInfo(url=TEST_URL, method="GET", attempt=1, max_attempts=3)
    )


def test_callback_manager_on_retry(mock_callback: Mock) -> None:
    manager = CallbackManager(RequestOptions(url=TEST_URL, max_attempts=3, on_retry=mock_callback))
    manager.on_retry(TEST_URL, "POST", 2, 150, None, 429)

    mock_callback.assert_called_once_with(
        RetryInfo(
            url=TEST_URL,
            method="POST",
            attempt=2,
            max_attempts=3,
            delay_ms=150,
            error=None,
            status_code=429,
        )
    )


def test_callback_manager_on_redirect(mock_callback: Mock) -> None:
    manager = CallbackManager(RequestOptions(url=TEST_URL, max_redirects=4, on_redirect=mock_callback))
    manager.on_redirect(TEST_URL, "GET", "https://api.example.com/next", 301, 1)

    mock_callback.assert_called_once_with(
        RedirectInfo(
            url=TEST_URL,
            method="GET",
            location="https://api.example.com/next",
            status_code=301,
            redirect_attempt=1,
            max_redirects=4,
        )
    )


def test_callback_manager_on_success(mock_callback: Mock) -> None:
    response = Response(status=200, body={"ok": True})
    manager = CallbackManager(RequestOptions(url=TEST_URL, on_success=mock_callback))
    manager.on_success(TEST_URL, "GET", 2, response)

    info = mock_callback.call_args.args[0]
    assert isinstance(info, ResponseInfo)
    assert info.response is response
    assert info.attempt == 2
    assert info.max_attempts == 2
    assert info.total_time >= 0


def test_callback_manager_on_failure(mock_callback: Mock) -> None:
    error = NetError("boom")
    manager = CallbackManager(RequestOptions(url=TEST_URL, on_failure=mock_callback))
    manager.on_failure(TEST_URL, "GET", 1, error, None)

    info = mock_callback.call_args.args[0]
    assert isinstance(info, FailureInfo)
    assert info.error is error
    assert info.status_code is None
    assert info.total_time >= 0


def test_callback_manager_propagates_callback_errors() -> None:
    manager = CallbackManager(RequestOptions(url=TEST_URL, on_request=Mock(side_effect=RuntimeError("hook"))))

    with pytest.raises(RuntimeError, match="hook"):
        manager.on_request(TEST_URL, "GET", 1)
