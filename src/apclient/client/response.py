"""Response processing -- maps an :class:`httpx.Response` to an envelope or a typed error.

:func:`process_response` is deliberately defensive.  Upstream stacks send
both well-formed and malformed error bodies, and a secondary fault while
reading headers or decoding the body must never hide the HTTP failure that
actually happened.  Every fallback below degrades the *body*, never the
status classification.

:func:`format_envelope` bridges a processed envelope to the output system
for the CLI.

See Also:
    :func:`apclient.exceptions.error_from_response` -- the status switch
    that turns a non-2xx response into a typed error.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

import httpx

from apclient.exceptions import APError, error_from_response
from apclient.models import RateLimitInfo, ResponseEnvelope
from apclient.output import get_output

UNREADABLE_BODY = "[unreadable response body]"

_RATE_LIMIT_HEADERS = ("x-ratelimit-remaining", "x-ratelimit-reset", "x-ratelimit-limit")


def normalize_headers(response: httpx.Response) -> dict[str, str]:
    """Return the response headers with lower-case names, or ``{}`` on failure."""
    try:
        return {key.lower(): value for key, value in response.headers.items()}
    except Exception:
        return {}


def _content_type(response: httpx.Response) -> str:
    try:
        return response.headers.get("content-type") or ""
    except Exception:
        return ""


def _status_text(response: httpx.Response) -> str:
    try:
        return response.reason_phrase or ""
    except Exception:
        return ""


def _to_int(value: Optional[str], default: Optional[int]) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed >= 0 else default


def extract_rate_limit(headers: Mapping[str, str]) -> Optional[RateLimitInfo]:
    """Read rate-limit metadata from normalised (lower-case) headers.

    Returns ``None`` unless at least one of ``x-ratelimit-remaining``,
    ``x-ratelimit-reset`` or ``x-ratelimit-limit`` is present.  Missing,
    unparseable or negative values fall back to 100 for ``remaining`` /
    ``limit`` and 0 for ``reset``.
    """
    if not any(headers.get(name) for name in _RATE_LIMIT_HEADERS):
        return None
    return RateLimitInfo(
        remaining=_to_int(headers.get("x-ratelimit-remaining"), 100),
        reset=_to_int(headers.get("x-ratelimit-reset"), 0),
        limit=_to_int(headers.get("x-ratelimit-limit"), 100),
        retry_after=_to_int(headers.get("retry-after"), None),
    )


def process_response(response: Optional[httpx.Response]) -> ResponseEnvelope:
    """Turn one HTTP response into a :class:`ResponseEnvelope`.

    Args:
        response: The response of a single attempt.  ``None`` is tolerated.

    Returns:
        The envelope for a 2xx response.

    Raises:
        APError: A typed error for any non-2xx status, or a generic
            ``HTTP_ERROR`` when *response* is missing.
    """
    if response is None:
        raise APError("HTTP error with invalid response", "HTTP_ERROR")

    status = response.status_code
    status_text = _status_text(response)
    ok = 200 <= status < 300
    headers = normalize_headers(response)
    content_type = _content_type(response)

    data: Any
    if "application/json" in content_type:
        try:
            raw = response.text
        except APError:
            raise
        except Exception:
            if not ok:
                raise error_from_response(status, status_text, headers, None)
            raw = None
            data = UNREADABLE_BODY

        if raw is not None:
            try:
                data = json.loads(raw) if raw.strip() else None
            except ValueError:
                if not ok:
                    # The raw text becomes the error message.
                    data = {
                        "error": {"message": raw.strip() or "Malformed JSON response"},
                        "raw": raw,
                    }
                else:
                    data = raw
    else:
        try:
            data = response.text
        except Exception:
            data = UNREADABLE_BODY

    if not ok:
        raise error_from_response(status, status_text, headers, data)

    return ResponseEnvelope(
        data=data,
        status=status,
        status_text=status_text,
        headers=headers,
        rate_limit=extract_rate_limit(headers),
    )


def format_envelope(envelope: ResponseEnvelope) -> None:
    """Print an envelope: status line and rate limits to stderr, data to stdout."""
    output = get_output()
    output.info(f"HTTP {envelope.status} {envelope.status_text}".rstrip())

    if envelope.rate_limit is not None:
        rl = envelope.rate_limit
        output.debug(f"Rate limit: {rl.remaining}/{rl.limit} remaining, resets at {rl.reset}")

    if envelope.data is not None:
        output.format_response(envelope.data)
