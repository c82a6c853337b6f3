r"""Upload and download progress reporting.

Progress callbacks receive ``(pct, bytes_done, bytes_total)`` where
``pct`` is the floored percentage. They are only invoked when the total
size is known, and only when the percentage changes.
"""

from __future__ import annotations

__all__ = ["ProgressMonitor", "iter_upload"]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

# Size of the chunks an upload body is split into
UPLOAD_CHUNK_SIZE = 16 * 1024


class ProgressMonitor:
    """Count transferred bytes and report percentage changes.

    Args:
        total: The number of bytes expected.
        callback: Called with ``(pct, bytes_done, bytes_total)``.

    Example:
        ```pycon
        >>> from apiary.progress import ProgressMonitor
        >>> calls = []
        >>> monitor = ProgressMonitor(4, lambda *args: calls.append(args))
        >>> monitor.update(1)
        >>> monitor.update(0)
        >>> monitor.update(3)
        >>> calls
        [(25, 1, 4), (100, 4, 4)]

        ```
    """

    def __init__(self, total: int, callback: Callable[[int, int, int], None]) -> None:
        self.total = total
        self.callback = callback
        self.done = 0
        self._prev = 0

    def update(self, nbytes: int) -> None:
        self.done += nbytes
        if self.total <= 0:
            return
        pct = self.done * 100 // self.total
        if pct != self._prev:
            self.callback(pct, self.done, self.total)
        self._prev = pct


async def iter_upload(
    content: bytes, callback: Callable[[int, int, int], None]
) -> AsyncIterator[bytes]:
    """Yield ``content`` in chunks, reporting upload progress."""
    monitor = ProgressMonitor(len(content), callback)
    for start in range(0, len(content), UPLOAD_CHUNK_SIZE):
        chunk = content[start : start + UPLOAD_CHUNK_SIZE]
        yield chunk
        monitor.update(len(chunk))
