"""Typer application and CLI entry point for apclient.

The CLI is a thin shell over the request core, handy for checking
credentials and poking at endpoints:

* ``apclient get ENDPOINT -P key=value`` -- GET an endpoint and print the body.
* ``apclient ping`` -- verify connectivity and the API key.
* ``apclient config`` -- show the effective configuration (without secrets).

Configuration comes from the ``AP_*`` environment variables (see
:mod:`apclient.config`), with ``--timeout`` / ``--retries`` overrides.
Typed failures print their message plus a suggested next step and exit
with the error's ``exit_code``.
"""

from __future__ import annotations

import asyncio
import signal
import sys
from typing import Any, NoReturn, Optional

import typer

from apclient import __version__
from apclient.exit_codes import EXIT_AUTH_FAILURE, EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="apclient",
    help="Resilient command-line client for the AP JSON API.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"apclient {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Initialise the global output manager from the CLI flags."""
    from apclient.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _fail(exc: Exception) -> NoReturn:
    """Report a typed failure and exit with its code."""
    from apclient.exceptions import APError
    from apclient.output import get_output

    output = get_output()
    output.error(str(exc))
    if isinstance(exc, APError):
        output.suggest(exc.suggested_action)
        raise typer.Exit(code=exc.exit_code)
    raise typer.Exit(code=EXIT_GENERIC_FAILURE)


def parse_params(pairs: list[str]) -> dict[str, Any]:
    """Parse ``key=value`` strings; a repeated key collects a list."""
    from apclient.exceptions import ValidationError

    params: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValidationError(f"Invalid parameter {pair!r}; expected key=value", field=pair)
        if key in params:
            existing = params[key]
            params[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


@app.command("get")
def get_command(
    endpoint: str = typer.Argument(..., help="Endpoint path relative to the base URL."),
    param: list[str] = typer.Option([], "--param", "-P", help="Query parameter as key=value (repeatable)."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-attempt timeout in seconds."),
    retries: Optional[int] = typer.Option(None, "--retries", help="Retries after the first attempt."),
) -> None:
    """GET an endpoint and print the response body."""
    from apclient.client import AsyncClient, format_envelope
    from apclient.config import load_config
    from apclient.exceptions import APError

    async def _run() -> None:
        config = load_config(timeout=timeout, retries=retries)
        async with AsyncClient(config) as client:
            envelope = await client.get(endpoint, parse_params(param))
        format_envelope(envelope)

    try:
        asyncio.run(_run())
    except APError as exc:
        _fail(exc)


@app.command("ping")
def ping_command() -> None:
    """Check connectivity and whether the API key is accepted."""
    from apclient.client import AsyncClient
    from apclient.config import load_config
    from apclient.exceptions import APError
    from apclient.output import get_output

    async def _run() -> bool:
        async with AsyncClient(load_config()) as client:
            return await client.test_connection()

    try:
        ok = asyncio.run(_run())
    except APError as exc:
        _fail(exc)

    output = get_output()
    if not ok:
        output.error("API reachable but the API key was rejected")
        output.suggest("Check API key configuration")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    output.info("Connection OK")


@app.command("config")
def config_command() -> None:
    """Show the effective configuration (the API key itself is never printed)."""
    from apclient.config import config_summary, load_config
    from apclient.exceptions import APError
    from apclient.output import get_output

    try:
        summary = config_summary(load_config())
    except APError as exc:
        _fail(exc)

    rows = [[key, str(value)] for key, value in summary.items()]
    get_output().print_table(["setting", "value"], rows, title="apclient configuration")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``apclient`` console script."""
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from apclient.exceptions import APError
        from apclient.output import get_output

        if isinstance(exc, APError):
            get_output().error(str(exc))
            sys.exit(exc.exit_code)
        get_output().error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
