"""Configuration loading, validation, and request construction helpers.

This module is the configuration provider for the request core:

* **Precedence resolution** -- :func:`load_config` merges explicit
  overrides, ``AP_*`` environment variables, and built-in defaults (in that
  order) into a :class:`~apclient.models.ClientConfig`.
* **Validation** -- :func:`validate_config` rejects a missing API key, a
  non-HTTP base URL, and out-of-range timeout / retry settings with a
  :class:`~apclient.exceptions.ConfigError`.
* **Request construction** -- :func:`build_headers`, :func:`build_url`, and
  :func:`build_url_with_params` produce the static parts of every request.

Environment variables:

=================  ===========================================
``AP_API_KEY``     API key sent as ``x-api-key`` (required)
``AP_BASE_URL``    API root, e.g. ``https://api.ap.org/media/v``
``AP_TIMEOUT``     per-attempt timeout in seconds (1 - 300)
``AP_RETRIES``     retries after the first attempt (0 - 10)
=================  ===========================================
"""

from __future__ import annotations

import os
from typing import Any, Mapping, Optional
from urllib.parse import urlencode, urlparse

from apclient import __version__
from apclient.exceptions import ConfigError
from apclient.models import DEFAULT_BASE_URL, CacheConfig, ClientConfig, RequestConfig

_ENV_API_KEY = "AP_API_KEY"
_ENV_BASE_URL = "AP_BASE_URL"
_ENV_TIMEOUT = "AP_TIMEOUT"
_ENV_RETRIES = "AP_RETRIES"

MIN_TIMEOUT = 1.0
MAX_TIMEOUT = 300.0
MAX_RETRIES = 10


# --- Loading ---


def _env_number(name: str, cast: type) -> Optional[Any]:
    """Read a numeric environment variable, or ``None`` when unset/blank."""
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigError(
            f"Environment variable {name} must be a number. Got: {raw!r}",
            {"env_var": name, "value": raw},
        ) from exc


def load_config(
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    retries: Optional[int] = None,
    cache: Optional[CacheConfig] = None,
    user_agent: Optional[str] = None,
) -> ClientConfig:
    """Build and validate a :class:`ClientConfig`.

    Resolution order (highest first): explicit arguments, ``AP_*``
    environment variables, built-in defaults.

    Args:
        api_key: API key override.
        base_url: Base URL override.
        timeout: Per-attempt timeout override in seconds.
        retries: Retry count override.
        cache: Cache settings; defaults to :class:`CacheConfig`.
        user_agent: ``User-Agent`` override.

    Returns:
        A validated :class:`ClientConfig`.

    Raises:
        ConfigError: If no API key is available or a setting is invalid.
    """
    provided = [
        name
        for name, value in (
            ("api_key", api_key),
            ("base_url", base_url),
            ("timeout", timeout),
            ("retries", retries),
        )
        if value is not None
    ]

    resolved_key = api_key or os.environ.get(_ENV_API_KEY)
    if not resolved_key:
        raise ConfigError(
            f"API key is required. Set {_ENV_API_KEY} environment variable "
            "or provide api_key in configuration.",
            {"env_var": _ENV_API_KEY, "provided_overrides": provided},
        )

    resolved_timeout = timeout if timeout is not None else _env_number(_ENV_TIMEOUT, float)
    resolved_retries = retries if retries is not None else _env_number(_ENV_RETRIES, int)

    request = RequestConfig()
    if resolved_timeout is not None:
        request.timeout = float(resolved_timeout)
    if resolved_retries is not None:
        request.max_retries = int(resolved_retries)

    config = ClientConfig(
        api_key=resolved_key,
        base_url=base_url or os.environ.get(_ENV_BASE_URL) or DEFAULT_BASE_URL,
        user_agent=user_agent,
        request=request,
        cache=cache or CacheConfig(),
    )
    validate_config(config)
    return config


# --- Validation ---


def is_valid_url(url: str) -> bool:
    """Return True if *url* is an absolute ``http``/``https`` URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_config(config: ClientConfig) -> None:
    """Raise :class:`ConfigError` if *config* cannot be used."""
    if not config.api_key.strip():
        raise ConfigError("API key cannot be empty")

    if not config.base_url or not is_valid_url(config.base_url):
        raise ConfigError(
            f"Invalid base URL: {config.base_url}. Must be a valid HTTP/HTTPS URL.",
            {"base_url": config.base_url},
        )

    timeout = config.request.timeout
    if not MIN_TIMEOUT <= timeout <= MAX_TIMEOUT:
        raise ConfigError(
            f"Timeout must be between {MIN_TIMEOUT:g}s and {MAX_TIMEOUT:g}s. Got: {timeout:g}s",
            {"timeout": timeout},
        )

    retries = config.request.max_retries
    if not 0 <= retries <= MAX_RETRIES:
        raise ConfigError(
            f"Retries must be between 0 and {MAX_RETRIES}. Got: {retries}",
            {"retries": retries},
        )


# --- Request construction ---


def build_headers(config: ClientConfig) -> dict[str, str]:
    """Return the headers sent with every API request."""
    return {
        "x-api-key": config.api_key,
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": config.user_agent or f"apclient/{__version__}",
    }


def build_url(base_url: str, endpoint: str) -> str:
    """Join *base_url* and *endpoint* with exactly one slash."""
    return f"{base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_query_value(item) for item in value)
    return str(value)


def build_url_with_params(
    base_url: str,
    endpoint: str,
    params: Optional[Mapping[str, Any]] = None,
) -> str:
    """Build a fully-qualified URL with a query string.

    ``None`` values are dropped; list values are sent comma-joined as a
    single parameter.
    """
    url = build_url(base_url, endpoint)
    if not params:
        return url
    pairs = [(key, _query_value(value)) for key, value in params.items() if value is not None]
    if not pairs:
        return url
    return f"{url}?{urlencode(pairs)}"


def config_summary(config: ClientConfig) -> dict[str, Any]:
    """Return a loggable view of *config* without the API key itself."""
    return {
        "base_url": config.base_url,
        "timeout": config.request.timeout,
        "retries": config.request.max_retries,
        "cache_enabled": config.cache.enabled,
        "has_api_key": bool(config.api_key),
        "api_key_length": len(config.api_key),
    }
