"""Subcommands of ``pipeline-resolution``: submit, reconcile, status, get, delete, resolve."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer

from pipeline_resolution.cli import app
from pipeline_resolution.cli.errors import handle_error

if TYPE_CHECKING:
    from pipeline_resolution.config.schema import Config

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Resolution config file (YAML)."),
]

Namespace = Annotated[
    str,
    typer.Option("--namespace", "-n", help="Namespace of the request."),
]

Params = Annotated[
    list[str] | None,
    typer.Option("--param", "-p", help="Resolver parameter as KEY=VALUE (repeatable)."),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Print without ANSI colors."),
]

_DEFAULT_CONFIG = Path("resolution.yaml")


def _use_color(no_color: bool) -> bool:
    """Color unless ``--no-color`` is passed or ``NO_COLOR`` is set."""
    return not (no_color or os.environ.get("NO_COLOR"))


def _parse_params(raw: list[str] | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for item in raw or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--param")
        params[key] = value
    return params


def _load(config: Path) -> Config:
    """Load *config*; the default path may be absent (environment-only settings)."""
    from pipeline_resolution.config import load

    return load(config, missing_ok=config == _DEFAULT_CONFIG)


@app.command()
def submit(
    name: Annotated[str, typer.Argument(help="Name of the new request.")],
    resolver_type: Annotated[
        str, typer.Option("--type", "-t", help="Resolver type label value, e.g. 'git'.")
    ],
    param: Params = None,
    namespace: Namespace = "default",
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Create a resolution request."""
    from pipeline_resolution.config import submit as submit_fn

    color = _use_color(no_color)
    params = _parse_params(param)
    try:
        cfg = _load(config)
        request = submit_fn(
            cfg, name, resolver_type=resolver_type, parameters=params, namespace=namespace
        )
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(f"Created request {request.key}")


@app.command()
def reconcile(
    wait: Annotated[
        bool,
        typer.Option("--wait", "-w", help="Keep reconciling until every request is terminal."),
    ] = False,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Give up waiting after this many seconds."),
    ] = None,
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Reconcile pending requests (one pass, or until done with --wait)."""
    from pipeline_resolution.cli.formatting import format_state, format_summary, summary_counts
    from pipeline_resolution.config import open_store, reconcile_all

    color = _use_color(no_color)
    try:
        cfg = _load(config)
        outcomes = reconcile_all(cfg, timeout=timeout if wait else 0)
        store = open_store(cfg)
        requests = store.list()
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not outcomes:
        typer.echo("No pending requests.")
    by_key = {r.key: r for r in requests}
    for key in dict.fromkeys(o.key for o in outcomes):
        request = by_key.get(key)
        if request is not None:
            typer.echo(f"  {key}: {format_state(request, color=color)}")
    typer.echo(format_summary(summary_counts(requests), color=color))


@app.command()
def status(
    namespace: Annotated[
        str | None,
        typer.Option("--namespace", "-n", help="Only show requests in this namespace."),
    ] = None,
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """List requests and their conditions."""
    from rich.console import Console
    from rich.table import Table

    from pipeline_resolution.cli.formatting import state_style
    from pipeline_resolution.config import open_store

    color = _use_color(no_color)
    try:
        cfg = _load(config)
        requests = open_store(cfg).list(namespace)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not requests:
        typer.echo("No requests found.")
        return

    table = Table(show_edge=False)
    table.add_column("Request")
    table.add_column("Resolver")
    table.add_column("State")
    table.add_column("Reason")
    table.add_column("Message", overflow="fold")
    for r in requests:
        s = state_style(r)
        cond = r.status.get_condition()
        table.add_row(
            r.key,
            r.resolver_type or "",
            f"[{s.color}]{s.label}[/]",
            cond.reason if cond else "",
            cond.message if cond else "",
        )
    Console(no_color=not color).print(table)


@app.command()
def get(
    name: Annotated[str, typer.Argument(help="Name of the request.")],
    data: Annotated[
        bool,
        typer.Option("--data", help="Write the resolved content to stdout."),
    ] = False,
    namespace: Namespace = "default",
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Show one request, or its resolved content with --data."""
    from pipeline_resolution.cli.formatting import format_request
    from pipeline_resolution.config import open_store

    color = _use_color(no_color)
    try:
        cfg = _load(config)
        request = open_store(cfg).get(namespace, name)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    if not data:
        typer.echo(format_request(request, color=color))
        return

    if not request.succeeded():
        typer.echo(f"Request {request.key} has not succeeded.", err=True)
        raise typer.Exit(1)
    typer.echo(request.decoded_data(), nl=False)


@app.command()
def delete(
    name: Annotated[str, typer.Argument(help="Name of the request.")],
    namespace: Namespace = "default",
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Delete a request."""
    from pipeline_resolution.config import open_store

    color = _use_color(no_color)
    try:
        cfg = _load(config)
        open_store(cfg).delete(namespace, name)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(f"Deleted request {namespace}/{name}")


@app.command()
def resolve(
    resolver_type: Annotated[str, typer.Argument(help="Resolver type, e.g. 'git'.")],
    param: Params = None,
    config: ConfigPath = _DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Run a resolver directly and write the content to stdout."""
    from pipeline_resolution.config import resolve_direct

    color = _use_color(no_color)
    params = _parse_params(param)
    try:
        cfg = _load(config)
        resource = resolve_direct(cfg, resolver_type, params)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    for key, value in sorted(resource.annotations().items()):
        typer.echo(f"{key}: {value}", err=True)
    typer.echo(resource.data(), nl=False)
