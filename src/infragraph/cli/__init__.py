"""The ``infragraph`` command line.

Commands live in :mod:`infragraph.cli.commands`; this module owns the Typer
app, the global options and logging setup. Library modules only create
loggers, the CLI is the one place that attaches a handler.
"""

from __future__ import annotations

import logging
import os
import sys

import typer

from infragraph import __version__

app = typer.Typer(
    name="infragraph",
    no_args_is_help=True,
    add_completion=False,
)

LOG_ENV_VAR = "INFRAGRAPH_LOG"

# Apply runs providers on a thread pool, so log lines carry the worker name.
_LOG_FORMAT = "%(levelname)-7s [%(threadName)s] %(name)s: %(message)s"
_VERBOSITY = (logging.WARNING, logging.INFO, logging.DEBUG)


def resolve_log_level(verbose: int, env_value: str | None = None) -> int | None:
    """Pick the package log level, or ``None`` to leave logging untouched.

    ``INFRAGRAPH_LOG`` wins over ``-v`` flags. An unrecognised level name is
    reported on stderr and treated as INFO.
    """
    if env_value:
        name = env_value.strip().upper()
        level = logging.getLevelNamesMapping().get(name)
        if level is None or name in ("NOTSET", "WARN", "FATAL"):
            typer.echo(
                f"WARNING: invalid {LOG_ENV_VAR} level '{name}', "
                "expected one of CRITICAL, DEBUG, ERROR, INFO, WARNING; defaulting to INFO",
                err=True,
            )
            return logging.INFO
        return level
    if verbose <= 0:
        return None
    return _VERBOSITY[min(verbose, len(_VERBOSITY) - 1)]


class _CliHandler(logging.StreamHandler):
    """Marker type so repeated setup replaces the handler instead of stacking."""


def _configure_logging(verbose: int) -> None:
    level = resolve_log_level(verbose, os.environ.get(LOG_ENV_VAR))
    if level is None:
        return
    package_logger = logging.getLogger("infragraph")
    for old in [h for h in package_logger.handlers if isinstance(h, _CliHandler)]:
        package_logger.removeHandler(old)
    handler = _CliHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"infragraph {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Log engine activity to stderr (-v info, -vv debug).",
    ),
) -> None:
    """Plan and apply a declarative graph of cloud resources."""
    _ = version
    _configure_logging(verbose)


from infragraph.cli import commands as _commands  # noqa: E402, F401
