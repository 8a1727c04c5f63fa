"""Typer application factory and CLI entry point for forward-email.

This module wires together the top-level Typer application and registers
the built-in sub-commands (``auth``, ``profile``, ``debug``, ``init``,
``version``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  It installs signal handlers and invokes the Typer app.
:class:`~forwardemail.exceptions.ForwardEmailError` exits with the error's
code; any other exception is written to a crash log under the data
directory.

See Also:
    :mod:`forwardemail.config`: Profile store and environment variables.
    :mod:`forwardemail.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from forwardemail import __version__
from forwardemail.commands.auth import auth_app
from forwardemail.commands.debug import debug_app
from forwardemail.commands.init import init_command
from forwardemail.commands.profile import profile_app
from forwardemail.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="forward-email",
    help="Command-line client for the Forward Email API.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

app.add_typer(auth_app, name="auth", help="Log in, log out and check API keys.")
app.add_typer(profile_app, name="profile", help="Manage connection profiles.")
app.add_typer(debug_app, name="debug", help="Inspect credential resolution.")
app.command("init")(init_command)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"forward-email {__version__}")
        raise typer.Exit()


@app.command("version")
def version_command() -> None:
    """Show the version."""
    typer.echo(f"forward-email {__version__}")


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    profile: Optional[str] = typer.Option(
        None,
        "--profile",
        "-p",
        envvar="FORWARDEMAIL_PROFILE",
        help="Profile to use (default: the current profile).",
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: table, json, yaml, csv (default: the profile's preference).",
    ),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Initialises logging and the global
    :class:`~forwardemail.output.OutputManager` from CLI flags, and stores
    shared options (``profile``, ``force``) in the Typer context so that
    sub-commands can read them via ``ctx.obj``.
    """
    from forwardemail.output import OutputFormat, OutputManager, set_output

    _configure_logging(verbose, no_color)

    fmt = output or _preferred_output(profile)
    try:
        output_format = OutputFormat(fmt)
    except ValueError:
        allowed = ", ".join(f.value for f in OutputFormat)
        raise typer.BadParameter(
            f"must be one of {allowed} (got {fmt!r})", param_hint="--output"
        ) from None

    set_output(
        OutputManager(format=output_format, no_color=no_color, quiet=quiet, verbose=verbose)
    )

    ctx.ensure_object(dict)
    ctx.obj["profile"] = profile
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _preferred_output(profile: Optional[str]) -> str:
    """Output format preferred by the selected profile (``table`` when unknown).

    A broken config file is ignored here; the command reports it when it
    loads the store itself.
    """
    from forwardemail.config import ProfileStore
    from forwardemail.exceptions import ForwardEmailError
    from forwardemail.models import DEFAULT_OUTPUT

    try:
        return ProfileStore.load().get_profile(profile or "").output or DEFAULT_OUTPUT
    except ForwardEmailError:
        return DEFAULT_OUTPUT


def _configure_logging(verbose: bool, no_color: bool) -> None:
    """Route ``forwardemail.*`` log records to stderr through Rich."""
    logger = logging.getLogger("forwardemail")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True, no_color=no_color),
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from forwardemail.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``forward-email`` console script.

    Unhandled :class:`~forwardemail.exceptions.ForwardEmailError`
    instances cause a clean exit with the error's ``exit_code``.  All other
    exceptions produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from forwardemail.exceptions import ForwardEmailError
        from forwardemail.output import error

        if isinstance(exc, ForwardEmailError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
