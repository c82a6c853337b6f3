r"""Case-insensitive, multi-valued header container.

Header names are stored lower-cased. Duplicates are merged by
``HeaderMap.append`` depending on the header name:

- Duplicates of single-valued headers (``content-length``,
  ``authorization``, ``location``, ``retry-after``, ...) replace the
  previous value.
- ``set-cookie`` is always a list; duplicates are added to the list.
- Duplicate ``cookie`` values are joined with ``"; "``.
- All other duplicates are joined with ``", "``.
"""

from __future__ import annotations

__all__ = ["SINGLE_HEADERS", "HeaderMap"]

from collections.abc import Iterable, Iterator, Mapping, MutableMapping
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    import httpx

HeaderValue = Union[str, list[str]]

SINGLE_HEADERS = frozenset(
    {
        "age",
        "authorization",
        "content-length",
        "content-type",
        "etag",
        "expires",
        "from",
        "host",
        "if-modified-since",
        "if-unmodified-since",
        "last-modified",
        "location",
        "max-forwards",
        "proxy-authorization",
        "referer",
        "retry-after",
        "server",
        "user-agent",
    }
)


class HeaderMap(MutableMapping[str, HeaderValue]):
    """Mapping of header names to values with case-insensitive keys.

    Args:
        headers: Optional initial headers, as a mapping or an iterable of
            ``(name, value)`` pairs. Initial values are ``set``, so later
            duplicates replace earlier ones.

    Example:
        ```pycon
        >>> from apiary.headers import HeaderMap
        >>> headers = HeaderMap({"X-Foo": "bar"})
        >>> headers.get("x-foo")
        'bar'
        >>> headers.append("Set-Cookie", "a=1")
        >>> headers.append("Set-Cookie", "b=2")
        >>> headers.get("set-cookie")
        ['a=1', 'b=2']
        >>> headers.append("Accept", "text/html")
        >>> headers.append("Accept", "application/json")
        >>> headers.get("accept")
        'text/html, application/json'

        ```
    """

    def __init__(
        self,
        headers: Mapping[str, HeaderValue | int] | Iterable[tuple[str, HeaderValue | int]] | None = None,
    ) -> None:
        self._store: dict[str, HeaderValue] = {}
        if headers is None:
            return
        items = headers.items() if isinstance(headers, Mapping) else headers
        for name, value in items:
            self.set(name, value)

    @classmethod
    def from_httpx(cls, headers: httpx.Headers) -> HeaderMap:
        """Build a ``HeaderMap`` from raw transport headers, merging
        duplicates with ``append``."""
        result = cls()
        for name, value in headers.multi_items():
            result.append(name, value)
        return result

    def set(self, name: str, value: HeaderValue | int) -> None:
        """Set a header, replacing any previous value."""
        key = name.lower()
        if isinstance(value, list):
            self._store[key] = [str(v) for v in value]
        else:
            self._store[key] = str(value)

    def append(self, name: str, value: str | int) -> None:
        """Add a header value, merging it with any previous value."""
        key = name.lower()
        value = str(value)
        if key in SINGLE_HEADERS:
            self._store[key] = value
            return
        prev = self._store.get(key)
        if key == "set-cookie":
            if prev is None:
                self._store[key] = [value]
            elif isinstance(prev, list):
                prev.append(value)
            else:
                self._store[key] = [prev, value]
            return
        if prev is None:
            self._store[key] = value
            return
        sep = "; " if key == "cookie" else ", "
        self._store[key] = f"{prev}{sep}{value}"

    def attempt(self, name: str, value: str | int) -> None:
        """Set a header only if it is not already present."""
        if not self.has(name):
            self.set(name, value)

    def delete(self, name: str) -> bool:
        """Remove a header. Returns ``True`` if it was present."""
        return self._store.pop(name.lower(), None) is not None

    def has(self, name: str) -> bool:
        return name.lower() in self._store

    def get(self, name: str, default: HeaderValue | None = None) -> HeaderValue | None:  # type: ignore[override]
        return self._store.get(name.lower(), default)

    def get_list(self, name: str) -> list[str]:
        """Return all values of a header as a list (empty if absent)."""
        value = self._store.get(name.lower())
        if value is None:
            return []
        if isinstance(value, list):
            return list(value)
        return [value]

    def copy(self) -> HeaderMap:
        result = HeaderMap()
        for key, value in self._store.items():
            result._store[key] = list(value) if isinstance(value, list) else value
        return result

    def to_httpx(self) -> list[tuple[str, str]]:
        """Return the headers as ``(name, value)`` pairs for the transport.

        List values are expanded to one pair per value.
        """
        pairs: list[tuple[str, str]] = []
        for key, value in self._store.items():
            if isinstance(value, list):
                pairs.extend((key, v) for v in value)
            else:
                pairs.append((key, value))
        return pairs

    def __getitem__(self, name: str) -> HeaderValue:
        return self._store[name.lower()]

    def __setitem__(self, name: str, value: HeaderValue) -> None:
        self.set(name, value)

    def __delitem__(self, name: str) -> None:
        del self._store[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.has(name)

    def __iter__(self) -> Iterator[str]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._store!r})"
