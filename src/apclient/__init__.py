"""apclient -- resilient async client core for JSON/HTTP APIs.

The package sits between application-level service calls and a remote
JSON API.  It issues requests with bounded timeouts, retries transient
failures with exponential backoff, merges caller cancellation with the
internal timeout into one deadline, normalises responses (including
rate-limit headers) into typed results or typed errors, and short-circuits
repeated work through a bounded, self-expiring in-memory cache.

Typical use::

    from apclient.cache import TTLCache
    from apclient.client import AsyncClient
    from apclient.config import load_config

    cache = TTLCache(max_size=500, default_ttl=120)
    async with AsyncClient(load_config(), cache=cache) as client:
        envelope = await client.get("content/search", params={"q": "election"})
    cache.dispose()

Modules:
    app: Typer CLI entry point.
    cache: In-memory TTL cache with bounded size.
    cancellation: Cancellation tokens and deadline composition.
    client: Request executor, response processor, retry coordinator.
    config: Environment-driven configuration and URL/header helpers.
    exceptions: Typed failures and their classifiers.
    models: Pydantic models shared across the package.
    output: stdout/stderr formatting system with Rich support.
    tracker: Cancellable request registry keyed by request id.
"""

__version__ = "0.1.0"
