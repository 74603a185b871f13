"""Shared test fixtures for apclient.

Provides reusable fixtures for isolating ``AP_*`` environment variables,
managing output state, building configurations, and running the CLI.
These fixtures are automatically discovered by pytest and available to
all test modules without explicit imports.
"""

from __future__ import annotations

import pytest

from apclient.models import CacheConfig, ClientConfig, RequestConfig
from apclient.output import OutputFormat, OutputManager, reset_output, set_output


BASE_URL = "https://api.example.com/v1"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time.  When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale
    ("I/O operation on closed file").  Resetting forces a fresh manager
    to be created on next use.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Async backend
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend() -> str:
    """Run ``@pytest.mark.anyio`` tests on asyncio only."""
    return "asyncio"


# ---------------------------------------------------------------------------
# Environment isolation
# ---------------------------------------------------------------------------


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Clear every AP_* environment variable for the duration of a test."""
    for var in ["AP_API_KEY", "AP_BASE_URL", "AP_TIMEOUT", "AP_RETRIES"]:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


# ---------------------------------------------------------------------------
# Configuration fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client_config() -> ClientConfig:
    """A valid configuration with a short timeout and fast retries."""
    return ClientConfig(
        api_key="test-key-1234567890",
        base_url=BASE_URL,
        request=RequestConfig(timeout=5, max_retries=2, retry_delay=0.01, retry_jitter=0.0),
        cache=CacheConfig(enabled=True, max_size=10, ttl_seconds=60),
    )


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN-format output manager for the test."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
