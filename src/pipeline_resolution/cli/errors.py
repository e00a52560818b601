"""Turn exceptions escaping a command into one stderr line and an exit code."""

from __future__ import annotations

import typer

from pipeline_resolution.config.loader import ConfigError
from pipeline_resolution.framework.errors import (
    ConfigurationError,
    InvalidParamsError,
    ResolutionError,
    StoreError,
)

# First match wins; InvalidParamsError must precede its ResolutionError base.
_PREFIXES: tuple[tuple[type[Exception], str], ...] = (
    (ConfigError, "Configuration error"),
    (InvalidParamsError, "Invalid parameters"),
    (ConfigurationError, "Resolver error"),
    (StoreError, "Store error"),
    (ResolutionError, "Resolution failed"),
)


def describe(exc: Exception) -> str:
    for exc_type, prefix in _PREFIXES:
        if isinstance(exc, exc_type):
            return f"{prefix}: {exc}"
    return f"Error: {exc}"


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Report *exc* on stderr without a traceback; every failure exits 1."""
    message = describe(exc)
    typer.echo(typer.style(message, fg=typer.colors.RED) if color else message, err=True)
    return 1
