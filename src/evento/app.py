"""Typer application and CLI entry point for evento.

This module wires together the top-level Typer application and registers the
built-in sub-commands (``auth``, ``user``, ``events``, ``api``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It loads ``.env`` files, installs signal handlers and
invokes the Typer app. Unhandled exceptions are reported as a
``runtime_error`` and their traceback is written to a crash log under
``~/.evento/logs``.

See Also:
    :mod:`evento.config`: Configuration resolution used by every command.
    :mod:`evento.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import os
import signal
import sys
import traceback
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import typer

from evento import __version__
from evento.commands.api import api_command
from evento.commands.auth import auth_app
from evento.commands.events import events_app
from evento.commands.user import user_app
from evento.config import load_env_files, resolve_storage_paths
from evento.exceptions import EventoError
from evento.exit_codes import EXIT_INTERRUPTED
from evento.output import OutputFormat, OutputManager, get_output, info, set_output


class FormatChoice(str, Enum):
    json = "json"
    text = "text"


app = typer.Typer(
    name="evento",
    help="Command-line client for the evento API.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.add_typer(auth_app, name="auth", help="Sign in and manage the stored session.")
app.add_typer(user_app, name="user", help="The signed-in user.")
app.add_typer(events_app, name="events", help="Manage events.")
app.command("api")(api_command)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"evento {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    profile: Optional[str] = typer.Option(
        None, "--profile", "-p", help="Profile name to use."
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="API base URL (overrides env and config)."
    ),
    format: Optional[FormatChoice] = typer.Option(
        None, "--format", help="Output format: json or text (default: text on a TTY)."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Set up output and remember the global options.

    Initialises the global :class:`~evento.output.OutputManager` and stores
    the global options in ``ctx.obj`` for
    :func:`~evento.commands.common.get_config`.  Configuration itself is
    resolved lazily so ``--help`` works even with a broken config file.

    Args:
        ctx: Root context; its ``obj`` dict receives the options.
        version: Handled eagerly by :func:`_version_callback`.
        profile: Profile name, above ``EVENTO_PROFILE`` and ``activeProfile``.
        base_url: API base URL override.
        format: Output format; falls back to ``EVENTO_FORMAT``, then TTY
            detection.
        no_color: Plain stderr without Rich markup.
        quiet: Hide info and suggestion lines.
        verbose: Show debug lines and DEBUG log records.
    """
    fmt_name = format.value if format is not None else os.environ.get("EVENTO_FORMAT")
    fmt = OutputFormat(fmt_name) if fmt_name in ("json", "text") else OutputFormat.AUTO

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    output.configure_logging()

    ctx.ensure_object(dict)
    ctx.obj["profile"] = profile
    ctx.obj["base_url"] = base_url
    ctx.obj["format"] = format.value if format is not None else None
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Exit with status 130 on Ctrl-C instead of printing a traceback."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Save the traceback of *exc* under ``<config_dir>/logs`` and return the file path."""
    paths = resolve_storage_paths(
        os.environ.get("EVENTO_CONFIG_PATH") or None,
        os.environ.get("EVENTO_HOME") or None,
    )
    paths.logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = paths.logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(
        "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    )
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``evento`` console script.

    Performs the following sequence:

    1. Load ``.env.local`` and ``.env`` from the working directory (never
       overriding variables already set).
    2. Install signal handlers for clean Ctrl-C behaviour.
    3. Invoke the Typer application.

    Commands report :class:`~evento.exceptions.EventoError` themselves.
    Anything else is rendered as a ``runtime_error`` failure, with the
    traceback written to a crash log.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    load_env_files([Path.cwd()])
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except Exception as exc:
        try:
            log_path: Optional[str] = _write_crash_log(exc)
        except OSError:
            log_path = None
        output = get_output()
        details = {"crash_log": log_path} if log_path else None
        code = output.print_failure(EventoError("Unexpected runtime error", details=details))
        if log_path and output.format == OutputFormat.TEXT:
            info(f"Debug log: {log_path}")
        sys.exit(code)
