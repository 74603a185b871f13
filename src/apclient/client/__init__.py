"""HTTP request core for apclient.

Provides the pieces that turn a service call into a resilient HTTP
exchange, built on :mod:`httpx`:

Classes:
    :class:`AsyncClient` -- the caller-facing client (cache, tracking, retry).
    :class:`RequestExecutor` -- one attempt with a combined deadline.
    :class:`RetryPolicy` / :class:`RetryCoordinator` -- backoff and retry classification.
    :class:`ClientPool` -- reuse of open clients across configurations.

Functions:
    :func:`process_response` -- response envelope or typed error.
    :func:`extract_rate_limit` -- rate-limit metadata from headers.

Example::

    from apclient.client import AsyncClient

    async with AsyncClient(config) as client:
        envelope = await client.get("account")
"""

from apclient.client.async_client import AsyncClient
from apclient.client.executor import RequestExecutor
from apclient.client.pool import ClientPool
from apclient.client.response import extract_rate_limit, format_envelope, process_response
from apclient.client.retry import RetryCoordinator, RetryPolicy

__all__ = [
    "AsyncClient",
    "ClientPool",
    "RequestExecutor",
    "RetryCoordinator",
    "RetryPolicy",
    "extract_rate_limit",
    "format_envelope",
    "process_response",
]
