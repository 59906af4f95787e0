"""CLI application for fleet-hardener."""

from __future__ import annotations

import logging
import os
import sys

import typer

from fleet_hardener import __version__

app = typer.Typer(
    name="fleet-hardener",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"fleet-hardener {__version__}")
        raise typer.Exit


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_TRANSPORT_LOGGER = "paramiko"


def _resolve_level(verbose: int) -> int | None:
    """Level for the ``fleet_hardener`` logger; ``None`` leaves logging unconfigured.

    ``HARDENER_LOG`` wins over ``-v`` flags. An unknown level name falls back to INFO.
    """
    env_level = os.environ.get("HARDENER_LOG", "").upper()
    if env_level:
        if env_level not in _VALID_LEVELS:
            print(
                f"WARNING: invalid HARDENER_LOG level '{env_level}', "
                f"expected one of {', '.join(sorted(_VALID_LEVELS))}; defaulting to INFO",
                file=sys.stderr,
            )
            return logging.INFO
        return getattr(logging, env_level)
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return None


def _configure_logging(verbose: int) -> None:
    """Set up stdlib logging from ``-v`` flags or the ``HARDENER_LOG`` env var.

    Third-party loggers stay at WARNING, except that ``-vvv`` also turns on
    paramiko's own debug output for SSH troubleshooting.
    """
    level = _resolve_level(verbose)
    if level is None:
        return
    logging.basicConfig(
        level=logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("fleet_hardener").setLevel(level)
    if verbose >= 3:
        logging.getLogger(_TRANSPORT_LOGGER).setLevel(logging.DEBUG)


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
        help="Increase log verbosity (-v info, -vv debug, -vvv also SSH transport debug).",
    ),
) -> None:
    """Converge a fleet's firewall, users, services and sshd to a declared posture."""
    _ = version
    _configure_logging(verbose)


# Register commands after app is created to avoid circular imports.
from fleet_hardener.cli import commands as _commands  # noqa: E402, F401
