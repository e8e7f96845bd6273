"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer

EXIT_ERROR = 1
EXIT_INVALID_INPUT = 2


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    Invalid declaration files map to exit code 2, everything else to 1.
    No tracebacks are printed.
    """
    from infragraph.config.loader import ConfigError
    from infragraph.config.plugins import PluginError
    from infragraph.engine.errors import (
        ApplyCanceled,
        CycleDetected,
        StalePlanError,
        StateLockError,
        UnresolvedReference,
        ValidationError,
    )

    fg = typer.colors.RED if color else None

    if isinstance(exc, (ConfigError, PluginError)):
        _err(f"Configuration error: {exc}", fg=fg)
        return EXIT_INVALID_INPUT

    if isinstance(exc, ValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, CycleDetected):
        _err(f"Invalid graph: {exc}", fg=fg)
    elif isinstance(exc, UnresolvedReference):
        _err(f"Invalid graph: {exc}", fg=fg)
    elif isinstance(exc, StalePlanError):
        _err(f"Plan is stale: {exc}", fg=fg)
    elif isinstance(exc, StateLockError):
        _err(f"State is locked: {exc}", fg=fg)
    elif isinstance(exc, ApplyCanceled):
        _err("Apply canceled.", fg=fg)
        if exc.result is not None:
            s = exc.result.summary()
            parts = [
                f"{n} {verb}"
                for n, verb in (
                    (s["created"], "added"),
                    (s["updated"], "changed"),
                    (s["deleted"], "destroyed"),
                    (s["canceled"], "not started"),
                )
                if n
            ]
            if parts:
                _err(f"  Partial result: {', '.join(parts)}.", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return EXIT_ERROR
