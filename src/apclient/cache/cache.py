"""Bounded in-memory cache with per-entry TTL and an idle-aware expiry sweep.

:class:`TTLCache` stores opaque values under string keys.  Every entry
expires ``ttl`` seconds after it was written; expired entries are never
returned and are removed lazily on lookup as well as by a periodic sweep.

Capacity is bounded by ``max_size``.  Inserting a *new* key into a full
cache first evicts the single entry with the oldest ``created_at``
(insertion order breaks ties); overwriting an existing key never evicts.
Oldest-insertion eviction is used rather than LRU because entries are
short-lived and cache pressure is rare.

The sweep runs on the running asyncio loop via ``loop.call_later`` and is
active only while the cache holds entries.  A cache that outlives its
loop reschedules the sweep on the next loop that writes to it.  Outside an
event loop expiry is purely lazy.  Owners must call :meth:`TTLCache.dispose` before
discarding a cache.

Example::

    cache = TTLCache(max_size=500, default_ttl=120)
    key = generate_key("search", {"q": "election", "page_size": 10})
    result = await cache.get_or_set(key, lambda: client.get("content/search"))
    cache.dispose()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from apclient.models import CacheConfig, CacheStats

logger = logging.getLogger(__name__)

_MISSING = object()


class CacheTTL:
    """TTL presets in seconds for common operation types."""

    TRENDING_ANALYSIS = 5 * 60
    BULK_OPERATIONS = 2 * 60
    SEARCH_RESULTS = 60
    CONTENT_ITEMS = 30


@dataclass
class _CacheEntry:
    value: Any
    expires_at: float
    created_at: float


def _key_value(value: Any) -> str:
    if isinstance(value, (list, tuple, set, frozenset)):
        return ",".join(sorted(str(item) for item in value))
    return str(value)


def generate_key(prefix: str, params: Mapping[str, Any]) -> str:
    """Build a deterministic cache key from *prefix* and *params*.

    Parameter names are sorted, so ``{"a": 1, "b": 2}`` and
    ``{"b": 2, "a": 1}`` produce the same key.  Sequence values are sorted
    and comma-joined; ``None`` values are left out.

    Example::

        >>> generate_key("search", {"q": "vote", "ids": [3, 1], "page": None})
        'search|ids:1,3|q:vote'
    """
    parts = [prefix]
    for name in sorted(params):
        value = params[name]
        if value is None:
            continue
        parts.append(f"{name}:{_key_value(value)}")
    return "|".join(parts)


class TTLCache:
    """Bounded key/value cache with TTL expiry and hit/miss statistics.

    Args:
        max_size: Maximum number of entries.
        default_ttl: TTL in seconds used when :meth:`set` gets none.
        cleanup_interval: Seconds between background expiry sweeps.
        clock: Monotonic time source; injectable for tests.
    """

    generate_key = staticmethod(generate_key)

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        cleanup_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._timer_active = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._timer_loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_config(cls, config: CacheConfig) -> TTLCache:
        """Create a cache from a :class:`~apclient.models.CacheConfig`."""
        return cls(
            max_size=config.max_size,
            default_ttl=config.ttl_seconds,
            cleanup_interval=config.cleanup_interval,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store *value* under *key* for *ttl* seconds (default TTL when ``None``)."""
        now = self._clock()
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()

        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = _CacheEntry(value=value, expires_at=now + lifetime, created_at=now)
        self._start_timer()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for *key*, or *default* on a miss.

        Counts a hit or a miss.  An expired entry found here is deleted.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return default

        if self._clock() > entry.expires_at:
            self._remove(key)
            self._misses += 1
            return default

        self._hits += 1
        return entry.value

    def has(self, key: str) -> bool:
        """Whether *key* holds a live entry.  Does not touch hit/miss counters."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if self._clock() > entry.expires_at:
            self._remove(key)
            return False
        return True

    def delete(self, key: str) -> bool:
        """Remove *key*; return whether it was present."""
        if key not in self._entries:
            return False
        self._remove(key)
        return True

    def clear(self) -> None:
        """Remove every entry and reset all statistics to zero."""
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._stop_timer()

    def keys(self) -> list[str]:
        """Return the stored keys, including entries not yet swept."""
        return list(self._entries)

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        hit_rate = self._hits / total if total else 0.0
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            hit_rate=round(hit_rate, 3),
            max_size=self.max_size,
        )

    async def get_or_set(
        self,
        key: str,
        producer: Callable[[], Union[Awaitable[Any], Any]],
        ttl: Optional[float] = None,
    ) -> Any:
        """Return the cached value for *key*, or produce, store and return it.

        Concurrent callers racing on a cold key may each run *producer*;
        the last write wins.
        """
        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        value = producer()
        if inspect.isawaitable(value):
            value = await value
        self.set(key, value, ttl)
        return value

    def cleanup(self) -> int:
        """Remove all expired entries now; return how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        if not self._entries:
            self._stop_timer()
        return len(expired)

    def dispose(self) -> None:
        """Stop the background sweep and drop all entries."""
        self._stop_timer()
        self._entries.clear()

    @property
    def sweeping(self) -> bool:
        """Whether a background sweep is scheduled on a loop that is still open."""
        return self._timer_active and not self._timer_loop_closed()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _remove(self, key: str) -> None:
        del self._entries[key]
        if not self._entries:
            self._stop_timer()

    def _evict_oldest(self) -> None:
        oldest_key: Optional[str] = None
        oldest_time = float("inf")
        for key, entry in self._entries.items():
            if entry.created_at < oldest_time:
                oldest_time = entry.created_at
                oldest_key = key

        if oldest_key is not None:
            del self._entries[oldest_key]
            self._evictions += 1
            logger.debug("Evicted cache entry %r", oldest_key)

    def _timer_loop_closed(self) -> bool:
        return self._timer_loop is not None and self._timer_loop.is_closed()

    def _start_timer(self) -> None:
        if not self._entries:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if self._timer_loop_closed():
                self._stop_timer()
            return
        if self._timer_active:
            if self._timer_loop is loop:
                return
            # Scheduled on a loop that has since been replaced or closed.
            self._stop_timer()
        self._timer = loop.call_later(self.cleanup_interval, self._on_timer)
        self._timer_loop = loop
        self._timer_active = True

    def _stop_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._timer_loop = None
        self._timer_active = False

    def _on_timer(self) -> None:
        self._timer = None
        self._timer_active = False
        self.cleanup()
        self._start_timer()
