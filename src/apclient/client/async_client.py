"""Asynchronous API client -- cache, tracking, retry and execution wired together.

:class:`AsyncClient` is the entry point service code calls.  For each
request it:

1. builds the fully-qualified URL from the configured base URL, the
   endpoint path and the query parameters;
2. for GET requests with a ``cache_key``, answers from the
   :class:`~apclient.cache.TTLCache` when it holds a live entry;
3. resolves the external cancellation token (the caller's token, a
   :class:`~apclient.tracker.RequestTracker` token registered under
   ``request_id``, or both combined);
4. runs :class:`~apclient.client.executor.RequestExecutor` under the
   :class:`~apclient.client.retry.RetryCoordinator`;
5. stores a successful cached GET and returns the
   :class:`~apclient.models.ResponseEnvelope`.

The cache and tracker are injected by the owner, never created here, so
their lifetime (including the cache's background sweep) stays with the
owner.

Example::

    tracker = RequestTracker()
    async with AsyncClient(load_config(), tracker=tracker) as client:
        envelope = await client.get("content/feed", request_id="feed")
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from apclient.cache import TTLCache
from apclient.cancellation import CancelToken, CombinedToken, combine_tokens
from apclient.client.executor import RequestExecutor
from apclient.client.retry import RetryCoordinator, RetryPolicy
from apclient.config import build_headers, build_url_with_params, config_summary, is_valid_url
from apclient.exceptions import AuthenticationError, ConfigError, ValidationError
from apclient.models import ClientConfig, ResponseEnvelope
from apclient.output import get_output
from apclient.tracker import RequestTracker

_MISSING = object()


class AsyncClient:
    """Resilient asynchronous client for the JSON API.

    Must be used as an async context manager so that the underlying
    :class:`httpx.AsyncClient` is opened and closed.

    Args:
        config: Connection settings (base URL, API key, timeout, retries).
        cache: Optional cache consulted for GET requests that pass a
            ``cache_key``.
        tracker: Optional registry used for requests that pass a
            ``request_id``.
        http: Optional pre-built :class:`httpx.AsyncClient`; the caller keeps
            ownership and must close it.
        transport: Optional transport for the internally created
            :class:`httpx.AsyncClient` (tests use :class:`httpx.MockTransport`).
        sleep: Optional backoff sleep override, forwarded to
            :class:`RetryCoordinator`.

    Raises:
        ConfigError: If ``config.base_url`` is not an absolute HTTP(S) URL.
    """

    def __init__(
        self,
        config: ClientConfig,
        cache: Optional[TTLCache] = None,
        tracker: Optional[RequestTracker] = None,
        http: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        if not is_valid_url(config.base_url):
            raise ConfigError(
                f"Invalid base URL: {config.base_url}. Must be a valid HTTP/HTTPS URL.",
                {"base_url": config.base_url},
            )
        self._config = config
        self._cache = cache
        self._tracker = tracker
        self._http = http
        self._owns_http = http is None
        self._transport = transport
        self._executor: Optional[RequestExecutor] = None

        request = config.request
        self._policy = RetryPolicy(
            retries=request.max_retries,
            base_delay=request.retry_delay,
            jitter=request.retry_jitter,
            max_delay=request.max_retry_delay,
        )
        self._coordinator = RetryCoordinator(self._policy, sleep=sleep)

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncClient:
        if self._http is None:
            # The executor owns the per-attempt deadline, so httpx's own timeout is off.
            self._http = httpx.AsyncClient(
                timeout=None,
                verify=self._config.request.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        self._executor = RequestExecutor(
            self._http,
            timeout=self._config.request.timeout,
            headers=build_headers(self._config),
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the owned transport.  Safe to call more than once."""
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None
        self._executor = None

    @property
    def is_open(self) -> bool:
        return self._executor is not None

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._policy

    def get_config(self) -> dict[str, Any]:
        """Return a loggable summary of the client settings."""
        return config_summary(self._config)

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        *,
        token: Optional[CancelToken] = None,
        request_id: Optional[str] = None,
        cache_key: Optional[str] = None,
        cache_ttl: Optional[float] = None,
    ) -> ResponseEnvelope:
        """Make a request with caching, cancellation, retry, and error mapping.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: Endpoint path relative to the configured base URL.
            params: Query parameters; ``None`` values are dropped and lists
                are comma-joined.
            body: JSON-serialisable body for POST / PUT / PATCH.
            token: Caller cancellation token.
            request_id: Register the request with the tracker under this id.
            cache_key: Cache GET results under this key.
            cache_ttl: TTL in seconds for the cached result.

        Returns:
            The :class:`ResponseEnvelope` of the successful attempt.

        Raises:
            APError: The last classified failure after retries.
        """
        assert self._executor is not None, "Client not initialised -- use as async context manager"

        method = method.upper()
        url = build_url_with_params(self._config.base_url, path, params)
        output = get_output()

        use_cache = (
            cache_key is not None
            and self._cache is not None
            and method == "GET"
            and self._config.cache.enabled
        )
        if use_cache:
            cached = self._cache.get(cache_key, _MISSING)
            if cached is not _MISSING:
                output.debug(f"Cache hit: {method} {path}")
                return cached.model_copy(deep=True)

        external, tracked = self._resolve_token(token, request_id)
        executor = self._executor
        try:
            envelope = await self._coordinator.run(
                lambda: executor.execute(method, url, body, external),
                token=external,
            )
        finally:
            if tracked is not None and request_id is not None:
                self._tracker.complete(request_id, tracked)
            if isinstance(external, CombinedToken):
                external.detach()

        if use_cache:
            self._cache.set(cache_key, envelope.model_copy(deep=True), cache_ttl)
        return envelope

    async def get(self, path: str, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> ResponseEnvelope:
        return await self.request("GET", path, params, **kwargs)

    async def post(
        self,
        path: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> ResponseEnvelope:
        return await self.request("POST", path, params, body, **kwargs)

    async def put(
        self,
        path: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> ResponseEnvelope:
        return await self.request("PUT", path, params, body, **kwargs)

    async def patch(
        self,
        path: str,
        body: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        **kwargs: Any,
    ) -> ResponseEnvelope:
        return await self.request("PATCH", path, params, body, **kwargs)

    async def delete(self, path: str, params: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> ResponseEnvelope:
        return await self.request("DELETE", path, params, **kwargs)

    async def test_connection(self) -> bool:
        """Check connectivity with ``GET account``.

        Returns:
            ``True`` if the API answered successfully, ``False`` if it
            rejected the API key (the host is reachable but credentials are
            wrong).

        Raises:
            APError: Any other failure.
        """
        try:
            await self.get("account")
        except AuthenticationError:
            return False
        return True

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _resolve_token(
        self,
        token: Optional[CancelToken],
        request_id: Optional[str],
    ) -> tuple[Optional[CancelToken], Optional[CancelToken]]:
        """Return ``(external_token, tracked_token)`` for one logical request."""
        if request_id is None:
            return token, None
        if self._tracker is None:
            raise ValidationError(
                "request_id was given but the client has no RequestTracker",
                field="request_id",
            )

        tracked = self._tracker.create_request(request_id)
        if token is None:
            return tracked, tracked
        return combine_tokens(tracked, token), tracked
