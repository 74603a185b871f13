"""Exception hierarchy and failure classification for apclient.

Every failure that leaves the request core is an :class:`APError`.  Each
instance carries a stable machine-readable ``code``, a human message, an
optional HTTP ``status_code`` and a ``details`` dict for diagnostics.  The
class-level :attr:`APError.kind` tags the failure with one of the fixed
:class:`ErrorKind` values, and ``exit_code`` maps it to a constant from
:mod:`apclient.exit_codes` for the CLI.

Subclass hierarchy::

    APError                 (kind UNKNOWN,        exit 1)
    +-- ConfigError         (kind CONFIGURATION,  exit 1)
    +-- ValidationError     (kind VALIDATION,     exit 2)
    +-- NetworkError        (kind NETWORK,        exit 6)
    +-- APIError            (kind HTTP,           exit 5)
        +-- AuthenticationError  (401, exit 3)
        +-- ForbiddenError       (403, exit 3)
        +-- NotFoundError        (404, exit 4)
        +-- RateLimitError       (429, kind RATE_LIMIT, exit 8)

Two functions classify raw failures at the boundary where they are first
observed:

* :func:`error_from_response` -- a non-2xx HTTP status plus its parsed body.
* :func:`classify_exception` -- any exception raised while talking to the
  network.

Nothing further up the stack re-infers the kind of a failure.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Optional

import httpx

from apclient.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_RATE_LIMITED,
    EXIT_SERVER_ERROR,
)


class ErrorKind(str, enum.Enum):
    """The fixed set of failure kinds surfaced by the request core."""

    CONFIGURATION = "configuration"
    VALIDATION = "validation"
    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    HTTP = "http"
    UNKNOWN = "unknown"


class NetworkReason(str, enum.Enum):
    """Why a :class:`NetworkError` happened."""

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CONNECTION = "connection"


class APError(Exception):
    """Base exception for all apclient failures.

    Args:
        message: Human-readable error description.
        code: Stable machine-readable error code.
        status_code: HTTP status associated with the failure, if any.
        details: Extra diagnostic data (original exception name, parsed
            response body, ...).
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details: dict[str, Any] = dict(details or {})

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, code={self.code!r}, "
            f"status_code={self.status_code!r})"
        )

    @property
    def suggested_action(self) -> str:
        """A short next step a user can take to recover from this error."""
        status = self.status_code
        if status == 429:
            return "Wait for rate limit reset before retrying"
        if status == 404:
            return "Verify the item ID or try a broader search"
        if status == 401:
            return "Check API key configuration"
        if status == 403:
            return "Verify you have access to this content in your plan"
        if status == 400:
            return "Review request parameters and correct any invalid values"
        if status is not None and status >= 500:
            return "API service issue - retry after a short delay"
        if self.kind is ErrorKind.CONFIGURATION:
            return "Check the AP_* environment variables"
        return "Review error details and adjust request accordingly"

    @property
    def can_retry(self) -> bool:
        """Whether repeating the same call later is likely to succeed."""
        if self.status_code in (429, 502, 503, 504):
            return True
        return self.kind is ErrorKind.NETWORK

    def to_dict(self) -> dict[str, Any]:
        """Serialise the error into a JSON-friendly dict."""
        return {
            "name": type(self).__name__,
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
            "suggested_action": self.suggested_action,
            "can_retry": self.can_retry,
        }


class ConfigError(APError):
    """Raised for invalid or missing setup (API key, base URL, limits)."""

    kind = ErrorKind.CONFIGURATION
    exit_code = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, "CONFIGURATION_ERROR", None, details)


class ValidationError(APError):
    """Raised when caller input is rejected, locally or by the API (HTTP 400)."""

    kind = ErrorKind.VALIDATION
    exit_code = EXIT_INVALID_USAGE

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "VALIDATION_ERROR", 400, {"field": field, **(details or {})})
        self.field = field


class NetworkError(APError):
    """Raised on connectivity failures, client cancellation, and timeouts.

    The :attr:`reason` tag tells the three apart; retry decisions read the
    tag rather than the message text.
    """

    kind = ErrorKind.NETWORK
    exit_code = EXIT_CONNECTION_ERROR

    def __init__(
        self,
        message: str,
        reason: NetworkReason = NetworkReason.CONNECTION,
        original: Optional[BaseException] = None,
    ) -> None:
        details: dict[str, Any] = {"reason": reason.value}
        if original is not None:
            details["original_message"] = str(original)
            details["original_name"] = type(original).__name__
        super().__init__(message, "NETWORK_ERROR", None, details)
        self.reason = reason
        self.original = original


class APIError(APError):
    """Raised for a non-2xx API response not covered by a narrower subclass."""

    kind = ErrorKind.HTTP
    exit_code = EXIT_SERVER_ERROR

    def __init__(
        self,
        message: str,
        status_code: int,
        code: str = "HTTP_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, code, status_code, details)


class AuthenticationError(APIError):
    """Raised when the API rejects the credentials (HTTP 401)."""

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str = "Authentication failed", details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, 401, "AUTHENTICATION_ERROR", details)


class ForbiddenError(APIError):
    """Raised when the credentials lack access to the resource (HTTP 403)."""

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, 403, "FORBIDDEN_ERROR", details)


class NotFoundError(APIError):
    """Raised when the API returns HTTP 404."""

    exit_code = EXIT_NOT_FOUND

    def __init__(self, message: str, resource: Optional[str] = None) -> None:
        super().__init__(message, 404, "NOT_FOUND_ERROR", {"resource": resource})
        self.resource = resource


class RateLimitError(APIError):
    """Raised when the API rejects the request with HTTP 429.

    ``retry_after`` holds the server's ``Retry-After`` hint in seconds when
    one was sent.
    """

    kind = ErrorKind.RATE_LIMIT
    exit_code = EXIT_RATE_LIMITED

    def __init__(self, message: str, retry_after: Optional[int] = None) -> None:
        super().__init__(message, 429, "RATE_LIMIT_ERROR", {"retry_after": retry_after})
        self.retry_after = retry_after


# ------------------------------------------------------------------ #
# Classification
# ------------------------------------------------------------------ #

_MALFORMED_MARKERS = ("Malformed JSON response", "invalid json", "JSON", "unexpected token", "Unexpected token")
_VALIDATION_MARKERS = ("parameter", "required", "invalid", "missing")
_VALIDATION_CODES = ("INVALID_PARAMETER", "VALIDATION_ERROR")


def _error_section(body: Any) -> dict[str, Any]:
    """Return the ``error`` object of an API error body, or ``{}``."""
    if isinstance(body, dict):
        section = body.get("error")
        if isinstance(section, dict):
            return section
    return {}


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def error_from_response(
    status_code: int,
    status_text: str = "",
    headers: Optional[Mapping[str, str]] = None,
    body: Any = None,
) -> APError:
    """Classify a non-2xx response into a typed error.

    Args:
        status_code: The HTTP status of the response.
        status_text: The reason phrase (``"Not Found"``).
        headers: Normalised (lower-case) response headers.
        body: Parsed JSON body, raw text, or ``None``.

    Returns:
        The :class:`APError` subclass matching the status, carrying the
        API's own message and code when the body provides them.
    """
    section = _error_section(body)
    raw_message = section.get("message")
    api_message = str(raw_message) if raw_message else None
    raw_code = section.get("code")
    api_code = str(raw_code) if raw_code is not None else None
    response_details = {"response": body}

    if status_code == 400:
        message = api_message or f"Bad Request: {status_text}"
        if api_message and any(marker in api_message for marker in _MALFORMED_MARKERS):
            return APIError(message, 400, "MALFORMED_RESPONSE", response_details)

        looks_like_validation = api_code in _VALIDATION_CODES or (
            api_message is not None and any(marker in api_message for marker in _VALIDATION_MARKERS)
        )
        if looks_like_validation:
            extra = section.get("details")
            field = None
            if isinstance(extra, dict):
                field = extra.get("parameter") or extra.get("field")
            return ValidationError(message, field, response_details)

        return APIError(message, 400, api_code or "BAD_REQUEST", response_details)

    if status_code == 401:
        return AuthenticationError(api_message or f"Authentication failed: {status_text}", response_details)

    if status_code == 403:
        return ForbiddenError(api_message or f"Forbidden: {status_text}", response_details)

    if status_code == 404:
        return NotFoundError(api_message or f"Not found: {status_text}")

    if status_code == 429:
        retry_after = _parse_int((headers or {}).get("retry-after"))
        return RateLimitError(api_message or f"Rate limit exceeded: {status_text}", retry_after)

    if status_code in (500, 502, 503, 504):
        return APIError(
            api_message or f"Server error: {status_text}",
            status_code,
            api_code or "SERVER_ERROR",
            response_details,
        )

    return APIError(
        api_message or f"HTTP {status_code}: {status_text}",
        status_code,
        api_code or "HTTP_ERROR",
        response_details,
    )


def classify_exception(exc: BaseException) -> APError:
    """Map any exception onto the fixed error kinds.

    Already-typed errors pass through unchanged.  ``httpx`` timeouts become
    ``NetworkError(reason=TIMEOUT)``, other transport failures and ``OSError``
    become ``NetworkError(reason=CONNECTION)``, and everything else is
    wrapped as a generic :class:`APError` with ``UNKNOWN_ERROR``.
    """
    if isinstance(exc, APError):
        return exc

    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(f"Network error: {exc or 'timeout'}", NetworkReason.TIMEOUT, exc)

    if isinstance(exc, (httpx.TransportError, OSError)):
        return NetworkError(f"Network request failed: {exc or type(exc).__name__}", NetworkReason.CONNECTION, exc)

    message = str(exc) or f"{type(exc).__name__} with empty message"
    return APError(message, "UNKNOWN_ERROR", None, {"original_name": type(exc).__name__})
