"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors raised before or around a run map to exit code 1. Per-host
    failures never get here; they are reported per host. No tracebacks are
    printed.
    """
    from fleet_hardener.config.loader import ConfigError
    from fleet_hardener.engine.errors import ApplyCanceled, ConfigValidationError

    fg = typer.colors.RED if color else None

    if isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, ConfigValidationError):
        _err("Validation failed:", fg=fg)
        for e in exc.errors:
            _err(f"  - {e}", fg=fg)
    elif isinstance(exc, ApplyCanceled):
        _err("Run canceled.", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
