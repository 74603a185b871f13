"""Registry of cancellable in-flight requests keyed by caller-chosen ids.

A caller that may later want to abort a request registers it with
:meth:`RequestTracker.create_request` and passes the returned
:class:`~apclient.cancellation.CancelToken` down to the client.  Any other
part of the application can then cancel that one request by id, or all of
them at once.

Only requests registered here are affected; the tracker has no reach into
requests made without one of its tokens.
"""

from __future__ import annotations

import logging

from apclient.cancellation import CancelToken

logger = logging.getLogger(__name__)


class RequestTracker:
    """Maps request ids to cancellation tokens.

    At most one token is tracked per id.  A token removes itself from the
    registry the moment it fires.
    """

    def __init__(self) -> None:
        self._active: dict[str, CancelToken] = {}

    def create_request(self, request_id: str) -> CancelToken:
        """Register a new request under *request_id*.

        A request already tracked under the same id is cancelled and
        replaced.

        Returns:
            The token to pass as the request's cancellation token.
        """
        self.cancel_request(request_id)

        token = CancelToken()
        self._active[request_id] = token

        def untrack() -> None:
            if self._active.get(request_id) is token:
                del self._active[request_id]

        token.add_callback(untrack)
        return token

    def cancel_request(self, request_id: str) -> bool:
        """Cancel the live request tracked under *request_id*.

        Returns:
            ``True`` if a live request was found and cancelled.
        """
        token = self._active.pop(request_id, None)
        if token is None or token.cancelled:
            return False
        token.cancel("cancelled")
        logger.debug("Cancelled request %r", request_id)
        return True

    def complete(self, request_id: str, token: CancelToken | None = None) -> None:
        """Stop tracking a finished request without cancelling it.

        When *token* is given, the entry is only removed if it still belongs
        to that token, so a finished request never untracks its replacement.
        """
        current = self._active.get(request_id)
        if current is None:
            return
        if token is None or current is token:
            del self._active[request_id]

    def cancel_all(self) -> None:
        """Cancel every live request and clear the registry."""
        active, self._active = self._active, {}
        for token in active.values():
            token.cancel("cancelled")
        if active:
            logger.debug("Cancelled %d tracked requests", len(active))

    def is_active(self, request_id: str) -> bool:
        token = self._active.get(request_id)
        if token is None:
            return False
        if token.cancelled:
            del self._active[request_id]
            return False
        return True

    def get_active_count(self) -> int:
        """Number of live tracked requests, pruning any that already fired."""
        for request_id in [rid for rid, token in self._active.items() if token.cancelled]:
            del self._active[request_id]
        return len(self._active)

    def destroy(self) -> None:
        """Release all resources; equivalent to :meth:`cancel_all`."""
        self.cancel_all()
