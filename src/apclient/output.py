"""Console output for the CLI and the request core's diagnostics.

Response data goes to stdout; everything else (status lines, errors,
suggested next steps, ``--verbose`` debug lines) goes to stderr so piped
output stays parseable.  Rich rendering is used only when stdout is a
terminal and colour is allowed (``NO_COLOR``, ``TERM=dumb`` and
``--no-color`` all turn it off).

Library callers that never install a manager get a default one from
:func:`get_output`, whose debug channel is silent.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """Data formats; ``AUTO`` picks ``RICH`` on a colour TTY, else ``PLAIN``."""

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is set (any value) or ``TERM=dumb``."""
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


def _to_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=str)


class OutputManager:
    """Routes response data to stdout and diagnostics to stderr.

    Args:
        format: Data format; ``AUTO`` is resolved at construction.
        no_color: Disable colour and Rich markup.
        quiet: Drop status lines and suggestions (errors still print).
        verbose: Show debug lines.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose

        if format is OutputFormat.AUTO:
            format = OutputFormat.RICH if _is_tty() and not self._no_color else OutputFormat.PLAIN
        self._format = format

        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format is OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # --- stdout ---

    def format_response(self, data: Any) -> None:
        """Render a response body in the active format."""
        if self._format is OutputFormat.JSON:
            if isinstance(data, str):
                try:
                    data = json.loads(data)
                except ValueError:
                    self._write(data)
                    return
            self._write(_to_json(data))
        elif self._format is OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self._write(line)
        elif isinstance(data, (dict, list)):
            self._stdout.print(Syntax(_to_json(data), "json", theme="monokai", word_wrap=True))
        else:
            self._stdout.print(str(data))

    def print_table(self, headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
        """Print rows as JSON records, tab-separated lines, or a Rich table."""
        if self._format is OutputFormat.JSON:
            self._write(_to_json([dict(zip(headers, row)) for row in rows]))
        elif self._format is OutputFormat.PLAIN:
            for row in [headers, *rows]:
                self._write("\t".join(row))
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*row)
            self._stdout.print(table)

    def _write(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    # --- stderr ---

    def info(self, message: str) -> None:
        """Status line; suppressed by ``--quiet``."""
        if not self._quiet:
            self._diagnostic(message)

    def error(self, message: str) -> None:
        """Error line; always printed."""
        self._diagnostic(message, label="Error: ", style="bold red")

    def suggest(self, message: str) -> None:
        """Suggested next step; suppressed by ``--quiet``."""
        if not self._quiet:
            self._diagnostic(f"→ {message}", style="dim")

    def debug(self, message: str) -> None:
        """Debug line; printed only with ``--verbose``."""
        if self._verbose:
            self._diagnostic(f"[debug] {message}", style="dim")

    def _diagnostic(self, message: str, label: str = "", style: Optional[str] = None) -> None:
        if self._no_color:
            print(f"{label}{message}", file=sys.stderr, flush=True)
            return
        text = escape(message)
        if label:
            text = f"[{style}]{escape(label.rstrip())}[/{style}] {text}"
        elif style:
            text = f"[{style}]{text}[/{style}]"
        self._stderr.print(text)


def _plain_lines(data: Any) -> list[str]:
    if isinstance(data, dict):
        return [f"{key}\t{value}" for key, value in data.items()]
    if isinstance(data, list):
        return [
            "\t".join(str(v) for v in item.values()) if isinstance(item, dict) else str(item)
            for item in data
        ]
    return [str(data)]


# Global instance, installed by the CLI callback.
_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the global :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Drop the global manager; the next :func:`get_output` builds a fresh one."""
    global _output
    _output = None
