"""Tests for the output formatting system.

Covers:
- OutputFormat resolution (auto -> rich/plain based on TTY)
- NO_COLOR / TERM=dumb color disabling
- stdout vs stderr discipline
- Quiet and verbose modes
- format_response and print_table in each format
- Global instance management
"""

from __future__ import annotations

import json

import pytest

from apclient.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture(autouse=True)
def _reset_global_output():
    """Ensure the global output instance is reset between tests."""
    reset_output()
    yield
    reset_output()


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("apclient.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("apclient.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# OutputFormat resolution
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert OutputManager().format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_no_color(self, tty, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "1")
        assert OutputManager().format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_any_value(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout vs stderr discipline
# ------------------------------------------------------------------ #


class TestStdoutStderrDiscipline:
    def test_plain_string_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.format_response("hello world")
        captured = capfd.readouterr()
        assert "hello world" in captured.out
        assert captured.err == ""

    def test_info_goes_to_stderr(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.info("HTTP 200 OK")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "HTTP 200 OK" in captured.err

    def test_error_and_suggest_go_to_stderr(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True)
        mgr.error("Rate limit exceeded")
        mgr.suggest("Wait for rate limit reset before retrying")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "Error: Rate limit exceeded" in captured.err
        assert "Wait for rate limit reset" in captured.err

    def test_format_response_dict_goes_to_stdout(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON, no_color=True)
        mgr.format_response({"key": "value"})
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"key": "value"}
        assert captured.err == ""


class TestQuietAndVerbose:
    def test_quiet_suppresses_info_and_suggest(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.info("should not appear")
        mgr.suggest("should not appear")
        assert capfd.readouterr().err == ""

    def test_quiet_does_not_suppress_error(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        mgr.error("broken")
        assert "Error: broken" in capfd.readouterr().err

    def test_rich_error_keeps_brackets(self, capfd, non_tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        mgr = OutputManager(format=OutputFormat.RICH)
        mgr.error("Invalid parameter [ids]")
        err = capfd.readouterr().err
        assert "Error:" in err
        assert "[ids]" in err

    def test_debug_hidden_by_default(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN, no_color=True).debug("hidden")
        assert capfd.readouterr().err == ""

    def test_debug_prefix_with_verbose(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
        mgr.debug("retrying in 1.00s")
        assert "[debug] retrying in 1.00s" in capfd.readouterr().err

    def test_debug_with_brackets_in_rich_mode(self, capfd, non_tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm")
        mgr = OutputManager(format=OutputFormat.RICH, verbose=True)
        mgr.debug("GET https://api.example.com/v1/items?ids=[1]")
        assert "ids=[1]" in capfd.readouterr().err


# ------------------------------------------------------------------ #
# Data rendering
# ------------------------------------------------------------------ #


class TestFormatResponse:
    def test_json_string_is_reparsed(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        mgr.format_response('{"a": 1}')
        assert json.loads(capfd.readouterr().out) == {"a": 1}

    def test_plain_string_passes_through_json_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        mgr.format_response("not json")
        assert capfd.readouterr().out.strip() == "not json"

    def test_plain_dict_as_key_value(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN)
        mgr.format_response({"id": "abc", "type": "text"})
        out = capfd.readouterr().out
        assert "id\tabc" in out
        assert "type\ttext" in out

    def test_plain_list_of_dicts_as_rows(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN)
        mgr.format_response([{"id": 1, "name": "a"}, {"id": 2, "name": "b"}])
        lines = capfd.readouterr().out.strip().splitlines()
        assert lines == ["1\ta", "2\tb"]

    def test_rich_dict_produces_output(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.RICH, no_color=True)
        mgr.format_response({"headline": "Vote"})
        assert "headline" in capfd.readouterr().out


class TestPrintTable:
    def test_table_json_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.JSON)
        mgr.print_table(["setting", "value"], [["timeout", "30.0"]])
        assert json.loads(capfd.readouterr().out) == [{"setting": "timeout", "value": "30.0"}]

    def test_table_plain_mode(self, capfd, non_tty):
        mgr = OutputManager(format=OutputFormat.PLAIN)
        mgr.print_table(["setting", "value"], [["retries", "3"]], title="ignored")
        assert capfd.readouterr().out.splitlines() == ["setting\tvalue", "retries\t3"]


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default_lazily(self):
        first = get_output()
        assert get_output() is first

    def test_set_output_replaces_instance(self):
        mgr = OutputManager(quiet=True)
        set_output(mgr)
        assert get_output() is mgr

    def test_reset_output_drops_instance(self):
        mgr = OutputManager()
        set_output(mgr)
        reset_output()
        assert get_output() is not mgr
