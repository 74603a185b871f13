"""Canonical Pydantic models shared across apclient modules.

The models fall into two groups:

**Configuration models** -- built by :func:`apclient.config.load_config`
from environment variables and explicit overrides:
    :class:`RequestConfig`, :class:`CacheConfig`, and :class:`ClientConfig`.

**Result models** -- produced by the request core and the cache:
    :class:`RateLimitInfo`, :class:`ResponseEnvelope`, and
    :class:`CacheStats`.

All durations are in seconds.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://api.ap.org/media/v"


# --- Configuration ---


class RequestConfig(BaseModel):
    """HTTP request settings applied to every call made by a client."""

    timeout: float = Field(default=30.0, description="Per-attempt timeout in seconds")
    max_retries: int = Field(default=3, description="Retries after the first attempt")
    retry_delay: float = Field(default=1.0, description="Base backoff delay in seconds")
    retry_jitter: float = Field(default=1.0, description="Upper bound of random jitter added to each delay")
    max_retry_delay: float = Field(default=30.0, description="Ceiling for a single backoff delay")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class CacheConfig(BaseModel):
    """In-memory response cache settings."""

    enabled: bool = Field(default=True, description="Enable response caching")
    max_size: int = Field(default=500, description="Maximum number of cached entries")
    ttl_seconds: float = Field(default=120.0, description="Default entry TTL in seconds")
    cleanup_interval: float = Field(default=30.0, description="Seconds between expiry sweeps")


class ClientConfig(BaseModel):
    """Everything a client needs to talk to the API.

    Example::

        ClientConfig(
            api_key="secret",
            base_url="https://api.ap.org/media/v",
            request=RequestConfig(timeout=10, max_retries=2),
        )
    """

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    user_agent: Optional[str] = Field(
        default=None, description="User-Agent header; defaults to apclient/<version>"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)


# --- Results ---


class RateLimitInfo(BaseModel):
    """Rate-limit metadata read from ``x-ratelimit-*`` and ``retry-after`` headers."""

    remaining: int = 100
    reset: int = 0
    limit: int = 100
    retry_after: Optional[int] = None


class ResponseEnvelope(BaseModel):
    """A successful API response, normalised.

    ``headers`` keys are lower-case.  ``data`` is the decoded JSON body, or
    the raw text for non-JSON (or unparseable but successful) responses.
    """

    data: Any = None
    status: int
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    rate_limit: Optional[RateLimitInfo] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class CacheStats(BaseModel):
    """Point-in-time counters of a :class:`~apclient.cache.TTLCache`."""

    size: int
    hits: int
    misses: int
    evictions: int
    hit_rate: float
    max_size: int
