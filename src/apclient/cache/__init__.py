"""In-memory response caching for apclient.

This package provides :class:`TTLCache`, a bounded key/value store whose
entries expire after a per-entry TTL, together with :func:`generate_key`
for order-independent keys and the :class:`CacheTTL` presets.

The cache is volatile and owned by whoever creates it; pass it to
:class:`~apclient.client.AsyncClient` via ``cache=`` and call
:meth:`TTLCache.dispose` when done.
"""

from apclient.cache.cache import CacheTTL, TTLCache, generate_key

__all__ = ["TTLCache", "CacheTTL", "generate_key"]
