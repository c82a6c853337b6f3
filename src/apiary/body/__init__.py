r"""Request body serialization and response body parsing."""

from __future__ import annotations

__all__ = [
    "ResponseParser",
    "Serializer",
    "get_parser",
    "get_serializer",
    "parse_body",
    "serialize_body",
]

from apiary.body.parsers import ResponseParser, get_parser, parse_body
from apiary.body.serializers import Serializer, get_serializer, serialize_body
