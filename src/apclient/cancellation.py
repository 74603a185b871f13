"""Cooperative cancellation tokens for in-flight requests.

A :class:`CancelToken` is a single-fire cancellation source.  Work that
supports cancellation registers a callback or awaits :meth:`CancelToken.wait`
and stops when the token fires.  The request executor composes two sources,
its own per-attempt timeout and an optional caller-supplied token, into one
effective deadline with :func:`combine_tokens`.

Tokens are meant for a single asyncio event loop.  Callbacks run
synchronously inside :meth:`CancelToken.cancel`, so no locking is needed.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional


def _noop() -> None:
    return None


class CancelToken:
    """Single-fire cancellation token.

    Examples:
        >>> token = CancelToken()
        >>> token.cancelled
        False
        >>> token.cancel("stop")
        True
        >>> token.cancel()
        False
        >>> token.reason
        'stop'
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Any = None
        self._callbacks: list[Callable[[], Any]] = []
        self._waiters: list[asyncio.Future[None]] = []

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<{type(self).__name__} {state}>"

    @property
    def cancelled(self) -> bool:
        """Whether the token has fired."""
        return self._cancelled

    @property
    def reason(self) -> Any:
        """The value passed to :meth:`cancel`, if any."""
        return self._reason

    def cancel(self, reason: Any = None) -> bool:
        """Fire the token.

        Runs every registered callback once, in registration order, and wakes
        all :meth:`wait` callers.

        Returns:
            ``True`` if this call fired the token, ``False`` if it had already
            fired.
        """
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        return True

    def add_callback(self, callback: Callable[[], Any]) -> Callable[[], None]:
        """Run *callback* once when the token fires.

        If the token has already fired, *callback* runs immediately.

        Returns:
            A function that unregisters the callback.
        """
        if self._cancelled:
            callback()
            return _noop

        self._callbacks.append(callback)

        def remove() -> None:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass

        return remove

    async def wait(self) -> None:
        """Suspend until the token fires."""
        if self._cancelled:
            return
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)


class CombinedToken(CancelToken):
    """A token that fires when any of its sources fires.

    ``source`` is the source token that fired first, or ``None`` while the
    combined token is still active.  Created by :func:`combine_tokens`.
    """

    def __init__(self) -> None:
        super().__init__()
        self.source: Optional[CancelToken] = None
        self._unlinks: list[Callable[[], None]] = []

    def _link(self, source: CancelToken) -> None:
        def on_source_cancelled() -> None:
            if not self.cancelled:
                self.source = source
                self.cancel(source.reason)

        self._unlinks.append(source.add_callback(on_source_cancelled))

    def detach(self) -> None:
        """Unregister from all sources.  The token's own state is unchanged."""
        unlinks, self._unlinks = self._unlinks, []
        for unlink in unlinks:
            unlink()


def combine_tokens(
    timeout_token: CancelToken,
    external: Optional[CancelToken] = None,
) -> CombinedToken:
    """Merge an internal timeout token and an optional caller token.

    The result fires as soon as either source fires and is already cancelled
    when either source was cancelled before the call.  If both were, the
    external token wins so that caller intent is reported over the timeout.
    The sources are never cancelled or otherwise modified; the only side
    effect is one callback registered on each, removed by
    :meth:`CombinedToken.detach`.
    """
    combined = CombinedToken()
    if external is not None:
        combined._link(external)
    combined._link(timeout_token)
    return combined
