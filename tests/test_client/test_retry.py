"""Tests for retry classification and the backoff coordinator."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from apclient.cancellation import CancelToken
from apclient.client.retry import MAX_DELAY, RetryCoordinator, RetryPolicy
from apclient.exceptions import (
    APError,
    APIError,
    ConfigError,
    NetworkError,
    NetworkReason,
    RateLimitError,
    ValidationError,
    error_from_response,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    """Backoff stub that records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _failing(error: BaseException, succeed_after: int | None = None):
    """Attempt function raising *error*, optionally succeeding on a later call."""
    calls = {"n": 0}

    async def attempt() -> str:
        calls["n"] += 1
        if succeed_after is not None and calls["n"] > succeed_after:
            return "ok"
        raise error

    return attempt, calls


# ---------------------------------------------------------------------------
# RetryPolicy
# ---------------------------------------------------------------------------


class TestShouldRetry:
    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_client_errors_not_retried(self, status: int) -> None:
        assert RetryPolicy().should_retry(error_from_response(status)) is False

    @pytest.mark.parametrize("status", [500, 502, 503, 504, 418])
    def test_server_errors_retried(self, status: int) -> None:
        assert RetryPolicy().should_retry(error_from_response(status)) is True

    def test_rate_limit_retried(self) -> None:
        assert RetryPolicy().should_retry(RateLimitError("slow down", 5)) is True

    def test_timeout_and_cancel_not_retried(self) -> None:
        policy = RetryPolicy()
        assert policy.should_retry(NetworkError("t", NetworkReason.TIMEOUT)) is False
        assert policy.should_retry(NetworkError("c", NetworkReason.CANCELLED)) is False

    def test_connection_failure_retried(self) -> None:
        assert RetryPolicy().should_retry(NetworkError("refused")) is True

    def test_config_and_validation_not_retried(self) -> None:
        policy = RetryPolicy()
        assert policy.should_retry(ConfigError("bad")) is False
        assert policy.should_retry(ValidationError("bad")) is False

    def test_unknown_error_retried(self) -> None:
        assert RetryPolicy().should_retry(APError("weird")) is True


class TestComputeDelay:
    def test_exponential_without_jitter(self) -> None:
        policy = RetryPolicy(base_delay=1.0, jitter=0.0)
        assert [policy.compute_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_bounds(self) -> None:
        policy = RetryPolicy(base_delay=1.0, jitter=1.0)
        for attempt in range(4):
            delay = policy.compute_delay(attempt)
            assert 2 ** attempt <= delay <= 2 ** attempt + 1.0

    def test_capped(self) -> None:
        policy = RetryPolicy(base_delay=1.0, jitter=1.0)
        assert policy.compute_delay(10) == MAX_DELAY


# ---------------------------------------------------------------------------
# RetryCoordinator
# ---------------------------------------------------------------------------


class TestRetryCoordinator:
    @pytest.mark.anyio
    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    async def test_non_retryable_status_single_attempt(self, status: int) -> None:
        sleep = RecordingSleep()
        attempt, calls = _failing(error_from_response(status))
        with pytest.raises(APError) as exc_info:
            await RetryCoordinator(RetryPolicy(retries=3), sleep=sleep).run(attempt)
        assert exc_info.value.status_code == status
        assert calls["n"] == 1
        assert sleep.delays == []

    @pytest.mark.anyio
    async def test_server_error_exhausts_retries(self) -> None:
        sleep = RecordingSleep()
        attempt, calls = _failing(error_from_response(500))
        with pytest.raises(APIError):
            await RetryCoordinator(RetryPolicy(retries=3), sleep=sleep).run(attempt)
        assert calls["n"] == 4
        assert len(sleep.delays) == 3
        for n, delay in enumerate(sleep.delays, start=1):
            assert 2 ** (n - 1) <= delay <= MAX_DELAY

    @pytest.mark.anyio
    async def test_zero_retries(self) -> None:
        attempt, calls = _failing(error_from_response(503))
        with pytest.raises(APIError):
            await RetryCoordinator(RetryPolicy(retries=0), sleep=RecordingSleep()).run(attempt)
        assert calls["n"] == 1

    @pytest.mark.anyio
    async def test_rate_limit_retried_then_succeeds(self) -> None:
        attempt, calls = _failing(RateLimitError("slow down", 1), succeed_after=2)
        result = await RetryCoordinator(RetryPolicy(retries=3), sleep=RecordingSleep()).run(attempt)
        assert result == "ok"
        assert calls["n"] == 3

    @pytest.mark.anyio
    async def test_timeout_not_retried(self) -> None:
        attempt, calls = _failing(NetworkError("Request timeout after 30000ms", NetworkReason.TIMEOUT))
        with pytest.raises(NetworkError):
            await RetryCoordinator(RetryPolicy(retries=3), sleep=RecordingSleep()).run(attempt)
        assert calls["n"] == 1

    @pytest.mark.anyio
    async def test_raw_exception_is_classified(self) -> None:
        attempt, calls = _failing(httpx.ConnectError("refused"))
        with pytest.raises(NetworkError) as exc_info:
            await RetryCoordinator(RetryPolicy(retries=1), sleep=RecordingSleep()).run(attempt)
        assert calls["n"] == 2
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.anyio
    async def test_cancel_during_backoff(self) -> None:
        token = CancelToken()
        attempt, calls = _failing(error_from_response(503))
        coordinator = RetryCoordinator(RetryPolicy(retries=3, base_delay=10, jitter=0))

        asyncio.get_running_loop().call_later(0.01, token.cancel, "cancelled")
        with pytest.raises(NetworkError) as exc_info:
            await asyncio.wait_for(coordinator.run(attempt, token=token), timeout=2)
        assert exc_info.value.reason is NetworkReason.CANCELLED
        assert exc_info.value.message == "Request cancelled by client"
        assert calls["n"] == 1

    @pytest.mark.anyio
    async def test_sequential_attempts(self) -> None:
        in_flight = 0
        max_in_flight = 0

        async def attempt() -> None:
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            raise error_from_response(500)

        with pytest.raises(APIError):
            await RetryCoordinator(RetryPolicy(retries=2), sleep=RecordingSleep()).run(attempt)
        assert max_in_flight == 1
