r"""Unit tests for response body parsing."""

from __future__ import annotations

import pytest

from apiary.body.parsers import (
    CallableParser,
    JsonParser,
    RawParser,
    ResponseParser,
    TextParser,
    get_parser,
    parse_body,
    parse_json,
)
from apiary.response import Response

################################
#     Tests for parse_json     #
################################


def test_parse_json_valid() -> None:
    assert parse_json(b'{"color": "red", "ids": [1, 2]}') == {"color": "red", "ids": [1, 2]}


@pytest.mark.parametrize("raw", [b"", b"***BAD JSON***", b"\xff\xfe"])
def test_parse_json_empty_or_invalid(raw: bytes) -> None:
    """Test that an empty or invalid body parses to None instead of
    raising."""
    assert parse_json(raw) is None


################################
#     Tests for get_parser     #
################################


@pytest.mark.parametrize(
    ("response_type", "cls"),
    [(None, JsonParser), ("json", JsonParser), ("raw", RawParser), ("buffer", RawParser), ("text", TextParser)],
)
def test_get_parser_builtin(response_type: str | None, cls: type) -> None:
    assert isinstance(get_parser(response_type), cls)


def test_get_parser_callable() -> None:
    assert isinstance(get_parser(lambda response, body: body), CallableParser)


def test_get_parser_unknown() -> None:
    with pytest.raises(ValueError, match="unknown response_type 'xml'"):
        get_parser("xml")


def test_only_json_parser_accepts_json() -> None:
    """Test that only the JSON parser asks for a JSON response by
    default."""
    assert get_parser("json").accepts_json
    assert not get_parser("raw").accepts_json
    assert not get_parser("text").accepts_json
    assert not get_parser(lambda response, body: body).accepts_json


################################
#     Tests for parse_body     #
################################


@pytest.mark.asyncio
async def test_parse_body_json() -> None:
    assert await parse_body(get_parser("json"), Response(status=200), b'{"a": 1}') == {"a": 1}


@pytest.mark.asyncio
async def test_parse_body_raw() -> None:
    assert await parse_body(get_parser("raw"), Response(status=200), b"\x00") == b"\x00"


@pytest.mark.asyncio
async def test_parse_body_text() -> None:
    assert await parse_body(get_parser("text"), Response(status=200), "héllo".encode()) == "héllo"


@pytest.mark.asyncio
async def test_parse_body_sync_callable() -> None:
    """Test that a callable parser receives the response and the raw
    body."""
    response = Response(status=200)

    def parse(res: Response, body: bytes) -> tuple[int, int]:
        return res.status, len(body)

    assert await parse_body(get_parser(parse), response, b"abc") == (200, 3)


@pytest.mark.asyncio
async def test_parse_body_async_callable() -> None:
    """Test that an awaitable parser result is awaited."""

    async def parse(res: Response, body: bytes) -> str:  # noqa: ARG001
        return body.decode().upper()

    assert await parse_body(get_parser(parse), Response(status=200), b"abc") == "ABC"


@pytest.mark.asyncio
async def test_parse_body_callable_error_propagates() -> None:
    def parse(res: Response, body: bytes) -> None:
        msg = "cannot parse"
        raise RuntimeError(msg)

    with pytest.raises(RuntimeError, match="cannot parse"):
        await parse_body(get_parser(parse), Response(status=200), b"abc")


@pytest.mark.asyncio
async def test_parse_body_custom_parser() -> None:
    class LineParser(ResponseParser):
        def parse(self, response: Response, body: bytes) -> list[str]:
            return body.decode().splitlines()

    assert await parse_body(LineParser(), Response(status=200), b"a\nb") == ["a", "b"]
