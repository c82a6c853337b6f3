r"""Response body parsing.

The ``response_type`` option selects how the buffered body of a
completed response is turned into ``Response.body``:

- ``"json"`` (default): decoded JSON, or ``None`` when the body is empty
  or not valid JSON.
- ``"raw"`` / ``"buffer"``: the bytes, unchanged.
- ``"text"``: the body decoded as UTF-8.
- a callable ``fn(response, body)``, which may return an awaitable. Any
  exception it raises becomes the terminal error verbatim.
- a ``ResponseParser`` instance.
"""

from __future__ import annotations

__all__ = [
    "CallableParser",
    "JsonParser",
    "RawParser",
    "ResponseParser",
    "TextParser",
    "get_parser",
    "parse_body",
    "parse_json",
]

import inspect
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from apiary.response import Response

logger: logging.Logger = logging.getLogger(__name__)


def parse_json(raw: bytes) -> Any:
    """Decode a JSON body, returning ``None`` when it is empty or invalid.

    Example:
        ```pycon
        >>> from apiary.body.parsers import parse_json
        >>> parse_json(b'{"color": "red"}')
        {'color': 'red'}
        >>> parse_json(b"***BAD JSON***") is None
        True

        ```
    """
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        logger.debug(f"Discarding response body that is not valid JSON ({len(raw)} bytes)")
        return None


class ResponseParser(ABC):
    """Turn a buffered response body into its parsed form."""

    #: Whether ``Accept: application/json`` is sent by default.
    accepts_json: bool = False

    @abstractmethod
    def parse(self, response: Response, body: bytes) -> Any | Awaitable[Any]:
        """Parse the body of ``response``.

        Args:
            response: The response whose body is being parsed. Its
                ``body`` attribute is not set yet.
            body: The raw body bytes.

        Returns:
            The parsed body, or an awaitable resolving to it.
        """


class JsonParser(ResponseParser):
    accepts_json = True

    def parse(self, response: Response, body: bytes) -> Any:
        return parse_json(body)


class RawParser(ResponseParser):
    def parse(self, response: Response, body: bytes) -> bytes:
        return body


class TextParser(ResponseParser):
    def parse(self, response: Response, body: bytes) -> str:
        return body.decode("utf-8", errors="replace")


class CallableParser(ResponseParser):
    """Adapt a ``fn(response, body)`` callable, sync or async."""

    def __init__(self, fn: Callable[[Response, bytes], Any]) -> None:
        self.fn = fn

    def parse(self, response: Response, body: bytes) -> Any:
        return self.fn(response, body)


_BUILTIN_PARSERS: dict[str, ResponseParser] = {
    "json": JsonParser(),
    "raw": RawParser(),
    "buffer": RawParser(),
    "text": TextParser(),
}


def get_parser(response_type: str | Callable | ResponseParser | None) -> ResponseParser:
    """Return the parser for a ``response_type`` option.

    Raises:
        ValueError: If ``response_type`` is an unknown name.

    Example:
        ```pycon
        >>> from apiary.body.parsers import get_parser
        >>> type(get_parser(None)).__name__
        'JsonParser'
        >>> type(get_parser("buffer")).__name__
        'RawParser'

        ```
    """
    if isinstance(response_type, ResponseParser):
        return response_type
    if callable(response_type):
        return CallableParser(response_type)
    if response_type is None:
        return _BUILTIN_PARSERS["json"]
    try:
        return _BUILTIN_PARSERS[response_type]
    except KeyError:
        msg = f"unknown response_type {response_type!r}"
        raise ValueError(msg) from None


async def parse_body(parser: ResponseParser, response: Response, body: bytes) -> Any:
    """Run ``parser`` and await its result when it is awaitable."""
    value = parser.parse(response, body)
    if inspect.isawaitable(value):
        value = await value
    return value
