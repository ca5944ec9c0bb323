"""Result and diagnostic output for the evento CLI.

Two streams, two jobs (see `clig.dev <https://clig.dev/>`_):

* **stdout** carries results.  With ``--format json`` every invocation
  prints exactly one envelope -- ``{"success": true, "data": ...}`` or the
  body built by :meth:`~evento.exceptions.EventoError.to_envelope` -- so
  scripts can parse it without guessing.
* **stderr** carries everything else: prompts, progress notes, warnings,
  debug lines and, in ``text`` format, error messages.

Colour is dropped for ``NO_COLOR``, ``TERM=dumb`` and ``--no-color``.

:class:`OutputManager` is built once per invocation by
:func:`evento.app.main_callback` and installed with :func:`set_output`; the
module-level :func:`info`, :func:`debug` and friends forward to it so deep
layers (the request engine, the refresher) can report progress without
being handed the manager.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax

from evento.exceptions import EventoError


class OutputFormat(str, Enum):
    """Result formats.

    ``AUTO`` becomes ``TEXT`` when stdout is a terminal and ``JSON`` when it
    is piped.
    """

    AUTO = "auto"
    JSON = "json"
    TEXT = "text"


class OutputManager:
    """Routes results to stdout and diagnostics to stderr.

    Args:
        format: Result format; ``AUTO`` is resolved immediately.
        no_color: Plain output without Rich markup.
        quiet: Hide info, success and suggestion lines.
        verbose: Show debug lines.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        if format == OutputFormat.AUTO:
            format = OutputFormat.TEXT if _is_tty() else OutputFormat.JSON
        self._format = format
        self._plain = no_color or _color_disabled_by_env()
        self._quiet = quiet
        self._verbose = verbose

        self._stdout = Console(file=sys.stdout, no_color=self._plain)
        self._stderr = Console(file=sys.stderr, no_color=self._plain, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    # --- results (stdout) ---

    def print_success(self, data: Any, text: Optional[str] = None) -> None:
        """Print a command result.

        JSON format wraps *data* in a success envelope.  Text format prints
        *text* when given, a string result as is, and anything else as
        indented JSON.
        """
        if self._format == OutputFormat.JSON:
            self._write_stdout(json.dumps({"success": True, "data": data}, default=str))
        elif text is not None:
            self._write_stdout(text)
        elif isinstance(data, str):
            self._write_stdout(data)
        else:
            self._print_structured(data)

    def print_failure(self, exc: EventoError) -> int:
        """Report *exc* in the active format and return its exit code."""
        if self._format == OutputFormat.JSON:
            self._write_stdout(json.dumps(exc.to_envelope(), default=str))
        else:
            self.error(exc.message)
            if exc.request_id:
                self.info(f"Request id: {exc.request_id}")
        return exc.exit_code

    # --- diagnostics (stderr) ---

    def info(self, message: str) -> None:
        if not self._quiet:
            self._emit(message, message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._emit(message, f"[green]{message}[/green]")

    def suggest(self, message: str) -> None:
        if not self._quiet:
            self._emit(f"→ {message}", f"[dim]→ {message}[/dim]")

    def warning(self, message: str) -> None:
        """Shown even with ``--quiet``."""
        self._emit(f"Warning: {message}", f"[yellow]Warning:[/yellow] {message}")

    def error(self, message: str) -> None:
        """Shown even with ``--quiet``."""
        self._emit(f"Error: {message}", f"[bold red]Error:[/bold red] {message}")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(f"[debug] {message}", f"[dim]\\[debug] {message}[/dim]")

    def configure_logging(self) -> None:
        """Send ``evento.*`` log records to stderr through Rich.

        The level is DEBUG with ``--verbose`` and WARNING otherwise.
        """
        logger = logging.getLogger("evento")
        logger.handlers.clear()
        logger.addHandler(
            RichHandler(console=self._stderr, show_time=False, show_path=False, markup=False)
        )
        logger.setLevel(logging.DEBUG if self._verbose else logging.WARNING)
        logger.propagate = False

    # --- internals ---

    def _emit(self, plain: str, styled: str) -> None:
        if self._plain:
            print(plain, file=sys.stderr, flush=True)
        else:
            self._stderr.print(styled, highlight=False)

    def _write_stdout(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def _print_structured(self, data: Any) -> None:
        rendered = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if self._plain or not _is_tty():
            self._write_stdout(rendered)
        else:
            self._stdout.print(Syntax(rendered, "json", theme="monokai", word_wrap=True))


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _color_disabled_by_env() -> bool:
    """``NO_COLOR`` (any value) or ``TERM=dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


# --- global instance ---

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one on first use."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager; the next :func:`get_output` builds a fresh one."""
    global _output
    _output = None


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def warning(message: str) -> None:
    get_output().warning(message)


def debug(message: str) -> None:
    get_output().debug(message)
