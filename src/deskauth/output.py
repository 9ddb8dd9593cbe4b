"""Terminal output with strict stdout/stderr discipline.

Follows `clig.dev <https://clig.dev/>`_ conventions:

* **stdout** -- primary data only (access tokens, JSON status). This is
  what scripts capture, e.g. ``TOKEN=$(deskauth token)``.
* **stderr** -- all diagnostics (progress, status, warnings, errors).
* **Colour control** -- respects ``NO_COLOR``, ``TERM=dumb``, and the
  ``--no-color`` CLI flag.

:class:`OutputManager` holds the preferences and the two Rich consoles; the
module-level helpers (:func:`info`, :func:`error`, ...) delegate to the
instance installed with :func:`set_output`. :func:`configure_logging` routes the
library's :mod:`logging` records through the same manager.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputManager:
    """Route data to stdout and diagnostics to stderr.

    Args:
        no_color: Disable colour and Rich markup.
        quiet: Suppress informational messages on stderr.
        verbose: Show debug messages on stderr.
    """

    def __init__(self, no_color: bool = False, quiet: bool = False, verbose: bool = False) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._stdout = Console(file=sys.stdout, no_color=self._no_color, highlight=False)
        self._stderr = Console(
            file=sys.stderr, no_color=self._no_color, stderr=True, highlight=False
        )

    @property
    def is_quiet(self) -> bool:
        return self._quiet

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # --- stdout ---

    def print_data(self, text: str) -> None:
        """Write *text* to stdout verbatim, bypassing Rich markup."""
        sys.stdout.write(text + "\n")
        sys.stdout.flush()

    def print_json(self, data: Any) -> None:
        self.print_data(json.dumps(data, indent=2, default=str))

    def print_table(self, headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
        table = Table(title=title, show_header=True, header_style="bold")
        for header in headers:
            table.add_column(header)
        for row in rows:
            table.add_row(*row)
        self._stdout.print(table)

    # --- stderr ---

    def info(self, message: str) -> None:
        if not self._quiet:
            self._stderr.print(message, markup=False)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._stderr.print(f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        self._stderr.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self._stderr.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def suggest(self, message: str) -> None:
        if not self._quiet:
            self._stderr.print(f"[dim]{escape(message)}[/dim]")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._stderr.print(f"[dim]debug:[/dim] {escape(message)}")


def _should_disable_color() -> bool:
    if "NO_COLOR" in os.environ:
        return True
    return os.environ.get("TERM") == "dumb"


# --- Global instance ---

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one lazily."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Drop the installed manager so the next call builds a fresh one."""
    global _output
    _output = None


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_json(data: Any) -> None:
    get_output().print_json(data)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().print_table(headers, rows, title=title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def debug(message: str) -> None:
    get_output().debug(message)


# --- Logging bridge ---


class _OutputLogHandler(logging.Handler):
    """Forward ``deskauth`` log records to the installed :class:`OutputManager`."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            if record.levelno >= logging.WARNING:
                get_output().warning(message)
            else:
                get_output().debug(message)
        except Exception:
            self.handleError(record)


def configure_logging(verbose: bool = False) -> None:
    """Show library warnings on stderr, and everything with *verbose*."""
    logger = logging.getLogger("deskauth")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, _OutputLogHandler) for h in logger.handlers):
        logger.addHandler(_OutputLogHandler())
