r"""Request body serialization.

A serializer turns the logical request body into transport bytes and
sets the Content-Type header on the working request when the caller has
not set one. The body kind is either declared with ``request_type``
(``"json"``, ``"form"``, ``"raw"``, a callable or a ``Serializer``) or
inferred from the body itself:

1. a callable or ``Serializer`` fully controls the bytes and headers;
2. ``"json"`` stringifies the body, ``application/json``;
3. ``"form"`` URL-encodes key/value pairs (sequences become repeated
   keys), ``application/x-www-form-urlencoded``;
4. an undeclared mapping behaves like ``"json"``;
5. undeclared ``bytes`` or ``str`` pass through, with a generic
   Content-Type only when none is present.

Anything else raises ``InvalidBodyError`` before any transport call.
"""

from __future__ import annotations

__all__ = [
    "CONTENT_TYPES",
    "CallableSerializer",
    "FormSerializer",
    "JsonSerializer",
    "RawSerializer",
    "Serializer",
    "encode_form",
    "get_serializer",
    "iter_pairs",
    "serialize_body",
]

import gzip
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

import httpx

from apiary.exceptions import InvalidBodyError

if TYPE_CHECKING:
    from apiary.engine.state import WorkingRequest

logger: logging.Logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "json": "application/json",
    "form": "application/x-www-form-urlencoded",
    "text": "text/plain",
    "binary": "application/octet-stream",
}

RAW_TYPES = (bytes, bytearray, memoryview, str)


class Serializer(ABC):
    """Turn a logical body into transport bytes."""

    @abstractmethod
    def serialize(self, request: WorkingRequest, body: Any) -> bytes | None:
        """Serialize ``body``, setting Content-Type on ``request`` as needed.

        Args:
            request: The working request, whose headers may be updated.
            body: The logical body.

        Returns:
            The transport bytes, or ``None`` for an empty body.

        Raises:
            InvalidBodyError: If the body cannot be serialized.
        """


class JsonSerializer(Serializer):
    """Serialize the body as compact JSON."""

    def serialize(self, request: WorkingRequest, body: Any) -> bytes:
        try:
            text = json.dumps(body, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            msg = f"request body is not JSON serializable: {exc}"
            raise InvalidBodyError(msg) from exc
        request.headers.attempt("Content-Type", CONTENT_TYPES["json"])
        return text.encode("utf-8")


class FormSerializer(Serializer):
    """Serialize key/value pairs as ``application/x-www-form-urlencoded``."""

    def serialize(self, request: WorkingRequest, body: Any) -> bytes:
        if not isinstance(body, (Mapping, httpx.QueryParams)):
            msg = f"form body must be a mapping, got {type(body).__name__}"
            raise InvalidBodyError(msg)
        request.headers.attempt("Content-Type", CONTENT_TYPES["form"])
        return encode_form(body).encode("ascii")


class RawSerializer(Serializer):
    """Pass ``bytes`` or ``str`` through unchanged."""

    def serialize(self, request: WorkingRequest, body: Any) -> bytes:
        if isinstance(body, str):
            request.headers.attempt("Content-Type", CONTENT_TYPES["text"])
            return body.encode("utf-8")
        if isinstance(body, (bytes, bytearray, memoryview)):
            request.headers.attempt("Content-Type", CONTENT_TYPES["binary"])
            return bytes(body)
        msg = f"raw body must be bytes or str, got {type(body).__name__}"
        raise InvalidBodyError(msg)


class CallableSerializer(Serializer):
    """Adapt a ``fn(request, body) -> bytes | str | None`` callable.

    The callable is responsible for setting Content-Type itself.
    """

    def __init__(self, fn: Callable[[WorkingRequest, Any], bytes | str | None]) -> None:
        self.fn = fn

    def serialize(self, request: WorkingRequest, body: Any) -> bytes | None:
        value = self.fn(request, body)
        if value is None:
            return None
        if isinstance(value, str):
            return value.encode("utf-8")
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        msg = f"serializer returned {type(value).__name__}, expected bytes, str or None"
        raise InvalidBodyError(msg)


_BUILTIN_SERIALIZERS: dict[str, Serializer] = {
    "json": JsonSerializer(),
    "form": FormSerializer(),
    "raw": RawSerializer(),
    "noop": RawSerializer(),
}


def get_serializer(request_type: str | Callable | Serializer | None, body: Any) -> Serializer:
    """Return the serializer for a declared or inferred body kind.

    Args:
        request_type: The declared kind, or ``None`` to infer it from
            ``body``.
        body: The logical body, used for inference.

    Returns:
        The serializer to use.

    Raises:
        InvalidBodyError: If the kind is unknown, or cannot be inferred.

    Example:
        ```pycon
        >>> from apiary.body.serializers import get_serializer
        >>> type(get_serializer(None, {"a": 1})).__name__
        'JsonSerializer'
        >>> type(get_serializer(None, b"raw")).__name__
        'RawSerializer'
        >>> type(get_serializer("form", {"a": 1})).__name__
        'FormSerializer'

        ```
    """
    if isinstance(request_type, Serializer):
        return request_type
    if callable(request_type):
        return CallableSerializer(request_type)
    if request_type is None:
        if isinstance(body, Mapping):
            return _BUILTIN_SERIALIZERS["json"]
        if isinstance(body, RAW_TYPES):
            return _BUILTIN_SERIALIZERS["raw"]
        msg = f"invalid request body of type {type(body).__name__}; declare request_type"
        raise InvalidBodyError(msg)
    try:
        return _BUILTIN_SERIALIZERS[request_type]
    except KeyError:
        msg = f"unknown request_type {request_type!r}"
        raise InvalidBodyError(msg) from None


def serialize_body(
    request: WorkingRequest,
    body: Any,
    request_type: str | Callable | Serializer | None = None,
    *,
    compress: bool = False,
) -> bytes | None:
    """Serialize ``body`` and set Content-Type/Content-Length on ``request``.

    A Content-Type already set by the caller always wins.

    Args:
        request: The working request, whose headers are updated.
        body: The logical body. ``None`` means no body.
        request_type: The declared body kind, or ``None`` to infer it.
        compress: Whether to gzip the serialized bytes and set
            ``Content-Encoding: gzip``.

    Returns:
        The transport bytes, or ``None`` for an empty body.

    Raises:
        InvalidBodyError: If the body cannot be serialized.

    Example:
        ```pycon
        >>> import httpx
        >>> from apiary.body.serializers import serialize_body
        >>> from apiary.engine.state import WorkingRequest
        >>> req = WorkingRequest(method="POST", url=httpx.URL("https://example.com"))
        >>> serialize_body(req, {"a": 1})
        b'{"a":1}'
        >>> req.headers.get("content-type"), req.headers.get("content-length")
        ('application/json', '7')

        ```
    """
    if body is None:
        return None
    content = get_serializer(request_type, body).serialize(request, body)
    if content is not None and compress:
        content = gzip.compress(content)
        request.headers.set("Content-Encoding", "gzip")
        logger.debug(f"Compressed request body to {len(content)} bytes")
    request.headers.set("Content-Length", len(content) if content is not None else 0)
    return content


def iter_pairs(params: Mapping[str, Any] | httpx.QueryParams | str) -> Iterable[tuple[str, Any]]:
    """Yield the ``(key, value)`` pairs of query or form parameters."""
    if isinstance(params, str):
        params = httpx.QueryParams(params)
    if isinstance(params, httpx.QueryParams):
        yield from params.multi_items()
        return
    for key, value in params.items():
        if isinstance(value, (list, tuple)):
            for item in value:
                if item is not None:
                    yield key, item
        elif value is not None:
            yield key, value


def encode_form(params: Mapping[str, Any] | httpx.QueryParams) -> str:
    """URL-encode key/value pairs; sequences become repeated keys and
    ``None`` values are skipped.

    Example:
        ```pycon
        >>> from apiary.body.serializers import encode_form
        >>> encode_form({"id": 123, "colors": ["red", "blue"], "skip": None})
        'id=123&colors=red&colors=blue'

        ```
    """
    return str(httpx.QueryParams(list(iter_pairs(params))))
