r"""Unit tests for RequestOptions."""

from __future__ import annotations

import dataclasses

import httpx
import pytest

from apiary.backoff import BaseBackoffStrategy, ExponentialBackoff
from apiary.core.config import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_RETRY_AFTER_MAX,
    DEFAULT_TIMEOUT,
    RETRY_STATUS_CODES,
    USER_AGENT,
    RequestOptions,
    normalize_option_names,
)

TEST_URL = "https://api.example.com/data"


####################################
#     Tests for RequestOptions     #
####################################


def test_request_options_defaults() -> None:
    options = RequestOptions(url=TEST_URL)

    assert options.method == "GET"
    assert options.headers == {}
    assert options.response_type == "json"
    assert options.max_attempts == DEFAULT_MAX_ATTEMPTS == 2
    assert options.retry_delay_step == 200
    assert options.retry_delay_max == 1000
    assert options.retry_delay_jitter == 100
    assert options.retry_after_max == DEFAULT_RETRY_AFTER_MAX == 30_000
    assert options.retry_status_codes == RETRY_STATUS_CODES == (429,)
    assert options.timeout == DEFAULT_TIMEOUT == 0
    assert options.max_redirects == DEFAULT_MAX_REDIRECTS == 5
    assert options.credentials is False
    assert options.gzip is False
    assert options.high_water_mark == 1


def test_request_options_normalizes_method_and_headers() -> None:
    options = RequestOptions(url=TEST_URL, method="post", headers={"X-Api-Key": "k"})

    assert options.method == "POST"
    assert options.headers == {"x-api-key": "k"}


def test_request_options_is_frozen() -> None:
    options = RequestOptions(url=TEST_URL)

    with pytest.raises(dataclasses.FrozenInstanceError):
        options.max_attempts = 5  # type: ignore[misc]


@pytest.mark.parametrize(
    ("kwargs", "message"),
    [
        ({"max_attempts": 0}, "max_attempts must be >= 1"),
        ({"retry_delay_step": 0}, "retry_delay_step must be > 0"),
        ({"retry_delay_max": -1}, "retry_delay_max must be >= 0"),
        ({"retry_delay_jitter": -1}, "retry_delay_jitter must be >= 0"),
        ({"retry_after_max": -1}, "retry_after_max must be >= 0"),
        ({"max_redirects": -1}, "max_redirects must be >= 0"),
        ({"timeout": -1}, "timeout must be >= 0"),
        ({"high_water_mark": 0}, "high_water_mark must be >= 1"),
        ({"method": "FETCH"}, "unsupported HTTP method 'FETCH'"),
    ],
)
def test_request_options_validation(kwargs: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        RequestOptions(url=TEST_URL, **kwargs)


def test_request_options_coerce_url() -> None:
    options = RequestOptions.coerce(TEST_URL)

    assert options.url == TEST_URL
    assert options.method == "GET"


def test_request_options_coerce_httpx_url() -> None:
    assert RequestOptions.coerce(httpx.URL(TEST_URL)).url == httpx.URL(TEST_URL)


def test_request_options_coerce_mapping_with_aliases() -> None:
    """Test that short aliases and camelCase names are accepted."""
    options = RequestOptions.coerce(
        {
            "url": TEST_URL,
            "serialize": "form",
            "parseResponse": "raw",
            "total": 4,
            "low": 50,
            "high": 500,
            "withCredentials": True,
            "maxRedirects": 1,
        }
    )

    assert options.request_type == "form"
    assert options.response_type == "raw"
    assert options.max_attempts == 4
    assert options.retry_delay_step == 50
    assert options.retry_delay_max == 500
    assert options.credentials is True
    assert options.max_redirects == 1


def test_request_options_coerce_unknown_option() -> None:
    with pytest.raises(TypeError, match="unknown request option 'colour'"):
        RequestOptions.coerce({"url": TEST_URL, "colour": "red"})


def test_request_options_coerce_unsupported_type() -> None:
    with pytest.raises(TypeError, match="options must be a URL, a mapping or RequestOptions"):
        RequestOptions.coerce(42)  # type: ignore[arg-type]


def test_request_options_coerce_defaults_and_overrides() -> None:
    """Test that defaults sit below options and overrides on top, with
    merged headers."""
    options = RequestOptions.coerce(
        {"url": TEST_URL, "headers": {"B": "options"}, "max_attempts": 3},
        defaults={"headers": {"A": "default", "B": "default"}, "max_attempts": 5, "timeout": 100},
        headers={"C": "override"},
        timeout=200,
    )

    assert options.headers == {"a": "default", "b": "options", "c": "override"}
    assert options.max_attempts == 3
    assert options.timeout == 200


def test_request_options_coerce_instance() -> None:
    options = RequestOptions(url=TEST_URL)

    assert RequestOptions.coerce(options) is options
    assert RequestOptions.coerce(options, method="delete").method == "DELETE"


def test_request_options_merge_keeps_original() -> None:
    options = RequestOptions(url=TEST_URL, headers={"A": "1"})
    merged = options.merge(method="put", headers={"B": "2"}, total=3, timeout=None)

    assert merged.method == "PUT"
    assert merged.headers == {"a": "1", "b": "2"}
    assert merged.max_attempts == 3
    assert merged.timeout == 0
    assert options.method == "GET"
    assert options.headers == {"a": "1"}


def test_request_options_merge_validates() -> None:
    with pytest.raises(ValueError, match="max_attempts must be >= 1"):
        RequestOptions(url=TEST_URL).merge(max_attempts=0)


def test_request_options_default_backoff_strategy() -> None:
    strategy = RequestOptions(
        url=TEST_URL, retry_delay_step=50, retry_delay_max=400, retry_delay_jitter=0
    ).get_backoff_strategy()

    assert isinstance(strategy, ExponentialBackoff)
    assert (strategy.step, strategy.cap, strategy.jitter) == (50, 400, 0)


def test_request_options_custom_backoff_strategy() -> None:
    class Fixed(BaseBackoffStrategy):
        def calculate(self, attempt: int) -> int:  # noqa: ARG002
            return 10

    strategy = Fixed()

    assert RequestOptions(url=TEST_URL, backoff_strategy=strategy).get_backoff_strategy() is strategy


def test_request_options_to_dict() -> None:
    data = RequestOptions(url=TEST_URL, max_attempts=3).to_dict()

    assert data["url"] == TEST_URL
    assert data["max_attempts"] == 3
    assert "on_retry" in data


def test_user_agent() -> None:
    assert USER_AGENT.startswith("apiary/")
    assert USER_AGENT.endswith("(python)")


############################################
#     Tests for normalize_option_names     #
############################################


@pytest.mark.parametrize(
    ("name", "field"),
    [
        ("maxAttempts", "max_attempts"),
        ("retryAfterMax", "retry_after_max"),
        ("onUploadProgress", "on_upload_progress"),
        ("agent", "conn"),
        ("max_redirects", "max_redirects"),
    ],
)
def test_normalize_option_names(name: str, field: str) -> None:
    assert normalize_option_names({name: 1}) == {field: 1}
