"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a failure kind and is referenced by the corresponding
:class:`~apclient.exceptions.APError` subclass.  Shell wrappers around the
``apclient`` command can inspect the exit code to tell a rejected API key
from a rate limit or an unreachable host without parsing stderr.

Example::

    $ apclient get account
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the API key was rejected
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified or configuration error occurred."""

EXIT_INVALID_USAGE = 2
"""The request was rejected as invalid input (validation error)."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed (HTTP 401 / 403)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API answered with an error status not covered above."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, cancellation, connection refused)."""

EXIT_RATE_LIMITED = 8
"""The remote API rejected the request with HTTP 429."""
