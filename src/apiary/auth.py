r"""Credential refresh on ``401 Unauthorized``.

A credential agent supplies the ``Authorization`` header of a request and
may know how to mint a new credential. Its ``refresh`` method is called at
most once per logical request, with the working request and the error that
triggered it, and completes in either of two styles:

- callback style: ``refresh(request, error, done)`` calls ``done()`` on
  success or ``done(err)`` on failure;
- awaitable style: ``refresh(request, error)`` returns an awaitable.

Example:
    ```pycon
    >>> class TokenAgent:
    ...     def __init__(self):
    ...         self.token = "stale"
    ...     def to_header(self):
    ...         return f"Bearer {self.token}"
    ...     async def refresh(self, request, error):
    ...         self.token = "fresh"
    ...
    >>> from apiary.auth import AuthRefreshCoordinator
    >>> coordinator = AuthRefreshCoordinator(TokenAgent())
    >>> coordinator.has_refresh
    True

    ```
"""

from __future__ import annotations

__all__ = ["AuthRefreshCoordinator", "CredentialAgent", "await_completion"]

import asyncio
import inspect
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from apiary.exceptions import ApiaryError

if TYPE_CHECKING:
    from collections.abc import Callable

    from apiary.engine.state import AttemptCounters, WorkingRequest

logger: logging.Logger = logging.getLogger(__name__)

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


@runtime_checkable
class CredentialAgent(Protocol):
    """Supplier of the ``Authorization`` header.

    An agent may also define ``refresh(request, error[, done])``.
    """

    def to_header(self) -> str | None: ...


def _accepts_callback(fn: Callable[..., Any], nargs: int) -> bool:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return False
    params = [p for p in signature.parameters.values() if p.kind in _POSITIONAL]
    return len(params) > nargs


async def await_completion(fn: Callable[..., Any], *args: Any) -> None:
    """Call ``fn`` and wait for its completion, in either completion style.

    ``fn`` is given a trailing ``done(err=None)`` callback when its
    signature takes one more positional argument than ``args``. An
    awaitable return value is awaited.

    Args:
        fn: The function to call.
        *args: The positional arguments of ``fn``.

    Raises:
        Exception: The error passed to ``done``, or raised by ``fn`` or
            its awaitable, verbatim. A non-exception error value passed to
            ``done`` is wrapped in ``ApiaryError``.

    Example:
        ```pycon
        >>> import asyncio
        >>> from apiary.auth import await_completion
        >>> def callback_style(a, done):
        ...     done()
        ...
        >>> asyncio.run(await_completion(callback_style, 1))

        ```
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future[None] = loop.create_future()

    def done(err: Any = None) -> None:
        if future.done():
            return
        if err is None:
            future.set_result(None)
        elif isinstance(err, BaseException):
            future.set_exception(err)
        else:
            future.set_exception(ApiaryError(str(err)))

    wants_callback = _accepts_callback(fn, len(args))
    result = fn(*args, done) if wants_callback else fn(*args)
    if inspect.isawaitable(result):
        await result
        done()
    elif not wants_callback:
        done()
    await future


class AuthRefreshCoordinator:
    """Apply and refresh the credential of one logical request.

    Args:
        agent: The credential agent.
    """

    def __init__(self, agent: CredentialAgent) -> None:
        self.agent = agent

    @property
    def has_refresh(self) -> bool:
        return callable(getattr(self.agent, "refresh", None))

    def apply(self, working: WorkingRequest) -> None:
        """Set the ``Authorization`` header from the agent."""
        header = self.agent.to_header()
        if header:
            working.headers.set("Authorization", header)
        else:
            working.headers.delete("Authorization")

    def can_refresh(self, counters: AttemptCounters) -> bool:
        return self.has_refresh and not counters.did_refresh

    def needs_initial_refresh(self, working: WorkingRequest, counters: AttemptCounters) -> bool:
        """Whether the refresh must run before the first transport call,
        because the agent has no credential yet."""
        return self.can_refresh(counters) and not working.headers.has("authorization")

    async def refresh(
        self, working: WorkingRequest, error: BaseException | None, counters: AttemptCounters
    ) -> None:
        """Run the one refresh of the logical request and re-apply the header.

        Raises:
            Exception: The refresh error, verbatim.
        """
        counters.did_refresh = True
        logger.debug(f"Refreshing credentials for {working.method} {working.url}")
        await await_completion(self.agent.refresh, working, error)  # type: ignore[attr-defined]
        self.apply(working)
