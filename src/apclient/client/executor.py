"""Single-attempt request execution with a combined deadline.

:class:`RequestExecutor` performs exactly one HTTP exchange.  Each call
builds a fresh request and a fresh deadline: a timer that fires an internal
timeout token after ``timeout`` seconds, combined with the caller's optional
cancellation token via :func:`~apclient.cancellation.combine_tokens`.
Whichever fires first aborts the in-flight send.

Failures leave this module already classified:

* caller cancellation -> ``NetworkError("Request cancelled by client")``
* internal timeout -> ``NetworkError("Request timeout after <ms>ms")``
* transport faults -> ``NetworkError`` via
  :func:`~apclient.exceptions.classify_exception`
* non-2xx responses -> the typed error raised by
  :func:`~apclient.client.response.process_response`
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Mapping, Optional

import httpx

from apclient.cancellation import CancelToken, CombinedToken, combine_tokens
from apclient.client.response import process_response
from apclient.exceptions import APError, NetworkError, NetworkReason, classify_exception
from apclient.models import ResponseEnvelope
from apclient.output import get_output

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class RequestExecutor:
    """Issues one request against a fully-qualified URL.

    Args:
        http: The transport used to send requests.  Its own timeout should
            be disabled; the executor enforces the deadline.
        timeout: Per-attempt timeout in seconds.
        headers: Headers attached to every request.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        timeout: float,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._http = http
        self.timeout = timeout
        self._headers = dict(headers or {})

    async def execute(
        self,
        method: str,
        url: str,
        body: Any = None,
        token: Optional[CancelToken] = None,
    ) -> ResponseEnvelope:
        """Send one request and process its response.

        Args:
            method: HTTP method.
            url: Fully-qualified URL including the query string.
            body: JSON-serialisable object or pre-encoded string; only sent
                with POST, PUT and PATCH.
            token: Optional caller cancellation token.

        Returns:
            The processed :class:`ResponseEnvelope`.

        Raises:
            APError: The classified failure of this attempt.
        """
        loop = asyncio.get_running_loop()
        timeout_token = CancelToken()
        timer = loop.call_later(self.timeout, timeout_token.cancel, "timeout")
        deadline = combine_tokens(timeout_token, token)

        try:
            if deadline.cancelled:
                raise self._abort_error(deadline, token)

            request = self._build_request(method, url, body)
            get_output().debug(f"{request.method} {request.url}")
            response = await self._send(request, deadline, token)
            return process_response(response)
        except (APError, asyncio.CancelledError):
            raise
        except Exception as exc:
            raise classify_exception(exc) from exc
        finally:
            timer.cancel()
            deadline.detach()

    def _build_request(self, method: str, url: str, body: Any) -> httpx.Request:
        method = method.upper()
        content: Optional[str | bytes] = None
        if body is not None and method in _BODY_METHODS:
            content = body if isinstance(body, (str, bytes)) else json.dumps(body)
        return self._http.build_request(method, url, headers=self._headers, content=content)

    async def _send(
        self,
        request: httpx.Request,
        deadline: CombinedToken,
        external: Optional[CancelToken],
    ) -> httpx.Response:
        task = asyncio.ensure_future(self._http.send(request))
        remove = deadline.add_callback(task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if deadline.cancelled:
                raise self._abort_error(deadline, external) from None
            raise
        finally:
            remove()

    def _abort_error(self, deadline: CombinedToken, external: Optional[CancelToken]) -> NetworkError:
        """Tell caller cancellation apart from the internal timeout."""
        if external is not None and deadline.source is external:
            return NetworkError("Request cancelled by client", NetworkReason.CANCELLED)
        return NetworkError(
            f"Request timeout after {self.timeout * 1000:.0f}ms",
            NetworkReason.TIMEOUT,
        )
