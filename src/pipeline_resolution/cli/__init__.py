"""Command-line entry point: ``pipeline-resolution``."""

from __future__ import annotations

import logging
import os
import sys
from typing import Annotated

import typer

from pipeline_resolution import __version__

app = typer.Typer(
    name="pipeline-resolution",
    help="Resolve remote pipeline artifacts through pluggable resolvers.",
    no_args_is_help=True,
    add_completion=False,
)

_LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(threadName)s] %(name)s: %(message)s"

# Indexed by the number of -v flags, capped at the last entry.
_VERBOSITY_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def _level_from_env() -> int | None:
    """Level named by ``RESOLUTION_LOG``, or None when unset."""
    name = os.environ.get("RESOLUTION_LOG", "").strip().upper()
    if not name:
        return None
    level = logging.getLevelName(name)
    if isinstance(level, int):
        return level
    typer.echo(f"ignoring RESOLUTION_LOG={name!r}: not a logging level, using INFO", err=True)
    return logging.INFO


def _configure_logging(verbose: int) -> None:
    """Route ``pipeline_resolution`` records to stderr.

    ``RESOLUTION_LOG`` wins over ``-v``; with neither, only warnings show.
    """
    level = _level_from_env()
    if level is None:
        level = _VERBOSITY_LEVELS[min(verbose, len(_VERBOSITY_LEVELS) - 1)]

    package_logger = logging.getLogger("pipeline_resolution")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False


def _show_version(requested: bool) -> None:
    if requested:
        typer.echo(f"pipeline-resolution {__version__}")
        raise typer.Exit


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="-v for info logs, -vv for debug."),
    ] = 0,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-V",
            callback=_show_version,
            is_eager=True,
            help="Print the version and exit.",
        ),
    ] = False,
) -> None:
    """Resolve remote pipeline artifacts through pluggable resolvers."""
    _ = version
    _configure_logging(verbose)


# Commands register themselves on ``app`` at import time.
from pipeline_resolution.cli import commands as _commands  # noqa: E402, F401
