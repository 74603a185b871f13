"""Reuse of open clients across configurations.

:class:`ClientPool` keeps at most ``max_clients`` open
:class:`~apclient.client.async_client.AsyncClient` instances, one per
``(API key prefix, base URL)`` pair, so repeated service calls share
connections.  When the pool is full, the least recently used client (lowest
usage count on a tie) is closed and dropped.  :meth:`ClientPool.cleanup_idle`
closes clients that have not been acquired or released for ``max_idle``
seconds; the owner decides when to call it.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from apclient.client.async_client import AsyncClient
from apclient.models import ClientConfig

logger = logging.getLogger(__name__)


class ClientPool:
    """Bounded pool of open :class:`AsyncClient` instances.

    Args:
        max_clients: Maximum number of open clients.
        max_idle: Seconds after which :meth:`cleanup_idle` closes a client.
        client_factory: Builds a client for a configuration; defaults to
            ``AsyncClient(config)``.
        clock: Time source; injectable for tests.
    """

    def __init__(
        self,
        max_clients: int = 5,
        max_idle: float = 300.0,
        client_factory: Optional[Callable[[ClientConfig], AsyncClient]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_clients = max(1, max_clients)
        self.max_idle = max_idle
        self._factory = client_factory or AsyncClient
        self._clock = clock
        self._clients: dict[str, AsyncClient] = {}
        self._last_used: dict[str, float] = {}
        self._usage: dict[str, int] = {}

    @staticmethod
    def connection_key(config: ClientConfig) -> str:
        """Pool key: first 12 characters of the API key plus the base URL."""
        return f"{config.api_key[:12]}:{config.base_url}"

    def __len__(self) -> int:
        return len(self._clients)

    async def acquire(self, config: ClientConfig) -> AsyncClient:
        """Return the open client for *config*, creating it if needed."""
        key = self.connection_key(config)
        client = self._clients.get(key)
        if client is not None:
            self._last_used[key] = self._clock()
            self._usage[key] += 1
            return client

        if len(self._clients) >= self.max_clients:
            await self._evict_least_used()

        client = self._factory(config)
        await client.__aenter__()
        self._clients[key] = client
        self._last_used[key] = self._clock()
        self._usage[key] = 1
        return client

    def release(self, config: ClientConfig) -> None:
        """Mark the client for *config* as recently used; it stays open."""
        key = self.connection_key(config)
        if key in self._clients:
            self._last_used[key] = self._clock()

    async def cleanup_idle(self) -> int:
        """Close clients idle for longer than ``max_idle``; return how many."""
        now = self._clock()
        idle = [key for key, used in self._last_used.items() if now - used > self.max_idle]
        for key in idle:
            await self._remove(key)
        return len(idle)

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "size": len(self._clients),
            "max_clients": self.max_clients,
            "clients": [
                {
                    "key": key,
                    "usage": self._usage.get(key, 0),
                    "last_used": self._last_used.get(key, 0.0),
                    "idle_time": now - self._last_used.get(key, now),
                }
                for key in self._clients
            ],
        }

    async def aclose(self) -> None:
        """Close every pooled client."""
        for key in list(self._clients):
            await self._remove(key)

    async def __aenter__(self) -> ClientPool:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def _evict_least_used(self) -> None:
        victim: Optional[str] = None
        oldest = float("inf")
        lowest_usage = float("inf")
        for key, used in self._last_used.items():
            usage = self._usage.get(key, 0)
            if used < oldest or (used == oldest and usage < lowest_usage):
                victim, oldest, lowest_usage = key, used, usage

        if victim is not None:
            logger.debug("Evicting pooled client %s", victim)
            await self._remove(victim)

    async def _remove(self, key: str) -> None:
        client = self._clients.pop(key, None)
        self._last_used.pop(key, None)
        self._usage.pop(key, None)
        if client is not None:
            await client.aclose()
