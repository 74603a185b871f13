"""Retry coordination with exponential backoff and jitter.

:class:`RetryPolicy` decides *whether* a failed attempt may be repeated and
*how long* to wait first.  :class:`RetryCoordinator` drives the attempts:
attempt 0 is the first try, attempts ``1..retries`` are retries, and attempt
``k + 1`` never starts before attempt ``k`` has finished.

Non-retryable failures:

* HTTP 400, 401, 403 and 404 -- the same request will be rejected again.
* Timeouts and client cancellations -- repeating an attempt with the same
  timeout, or one the caller already abandoned, is futile.
* Configuration and validation errors.

Rate-limit failures (HTTP 429) are retried with the standard backoff; the
server's ``Retry-After`` hint stays on the raised error for callers that
want to honour it.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from apclient.cancellation import CancelToken
from apclient.exceptions import (
    APError,
    ConfigError,
    NetworkError,
    NetworkReason,
    RateLimitError,
    ValidationError,
    classify_exception,
)
from apclient.output import get_output

T = TypeVar("T")

NON_RETRYABLE_STATUS = frozenset({400, 401, 403, 404})
MAX_DELAY = 30.0


@dataclass
class RetryPolicy:
    """Backoff parameters and the retry classification.

    Attributes:
        retries: Retries after the first attempt (``retries + 1`` attempts in total).
        base_delay: Delay in seconds before the first retry, doubled per attempt.
        jitter: Upper bound in seconds of the uniform random jitter.
        max_delay: Ceiling in seconds for any single delay.
    """

    retries: int = 3
    base_delay: float = 1.0
    jitter: float = 1.0
    max_delay: float = MAX_DELAY

    def should_retry(self, error: APError) -> bool:
        """Return False if *error* must be raised without another attempt."""
        if error.status_code in NON_RETRYABLE_STATUS:
            return False
        if isinstance(error, RateLimitError):
            return True
        if isinstance(error, NetworkError):
            return error.reason not in (NetworkReason.TIMEOUT, NetworkReason.CANCELLED)
        if isinstance(error, (ConfigError, ValidationError)):
            return False
        return True

    def compute_delay(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (0-based)."""
        exponential = self.base_delay * (2 ** attempt)
        return min(exponential + random.uniform(0, self.jitter), self.max_delay)


class RetryCoordinator:
    """Runs an attempt function until success, a non-retryable error, or exhaustion.

    Args:
        policy: The retry policy.
        sleep: Coroutine used for backoff waits; defaults to a wait that
            ends early when the caller's token fires.  Tests inject a
            recording stub.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.policy = policy
        self._sleep = sleep

    async def run(
        self,
        attempt_fn: Callable[[], Awaitable[T]],
        token: Optional[CancelToken] = None,
    ) -> T:
        """Call *attempt_fn* with retries.

        Args:
            attempt_fn: Performs one full attempt and returns its result or
                raises.  Called again for every retry, so each attempt
                builds its own request and deadline.
            token: Optional caller cancellation token.  When it fires during
                a backoff wait the wait ends and a client-cancelled
                :class:`NetworkError` is raised.

        Returns:
            The result of the first successful attempt.

        Raises:
            APError: The last classified failure.
        """
        output = get_output()
        retries = max(self.policy.retries, 0)
        attempt = 0
        while True:
            try:
                return await attempt_fn()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = classify_exception(exc)
                if not self.policy.should_retry(error) or attempt >= retries:
                    if error is exc:
                        raise
                    raise error from exc

                delay = self.policy.compute_delay(attempt)
                output.debug(
                    f"{error.code} ({error.message}), retrying in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{retries})"
                )
                await self._wait(delay, token)
                attempt += 1

    async def _wait(self, delay: float, token: Optional[CancelToken]) -> None:
        if self._sleep is not None:
            await self._sleep(delay)
        elif token is None:
            await asyncio.sleep(delay)
        else:
            try:
                await asyncio.wait_for(token.wait(), timeout=delay)
            except asyncio.TimeoutError:
                return

        if token is not None and token.cancelled:
            raise NetworkError("Request cancelled by client", NetworkReason.CANCELLED)
