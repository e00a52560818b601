"""YAML configuration loading and convenience submit/reconcile API."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pipeline_resolution.config.loader import ConfigError, default_config, load_config
from pipeline_resolution.config.registry import default_registry
from pipeline_resolution.config.schema import Config, ControllerConfig
from pipeline_resolution.controller import Controller
from pipeline_resolution.core.request import ResolutionRequest
from pipeline_resolution.core.store import FileRequestStore
from pipeline_resolution.framework.context import ResolutionContext, inject_resolver_config
from pipeline_resolution.framework.reconciler import Reconciler

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pipeline_resolution.controller import ReconcileOutcome
    from pipeline_resolution.core.clock import Clock
    from pipeline_resolution.core.store import RequestStore
    from pipeline_resolution.framework.registry import ResolverRegistry
    from pipeline_resolution.framework.resolver import ResolvedResource

__all__ = [
    "Config",
    "ConfigError",
    "ControllerConfig",
    "build_controller",
    "build_reconciler",
    "load",
    "load_config",
    "open_store",
    "reconcile_all",
    "resolve_direct",
    "submit",
]


def load(path: Path | str, *, missing_ok: bool = False) -> Config:
    """Load a YAML configuration file.

    With *missing_ok*, a missing file yields the environment-only defaults.
    """
    path = Path(path)
    if missing_ok and not path.exists():
        return default_config(path.parent)
    return load_config(path)


def open_store(config: Config) -> FileRequestStore:
    return FileRequestStore(config.store_path)


def build_reconciler(
    config: Config,
    *,
    store: RequestStore | None = None,
    registry: ResolverRegistry | None = None,
    clock: Clock | None = None,
) -> Reconciler:
    """Build a ``Reconciler`` from a ``Config`` instance."""
    ctl = config.controller
    return Reconciler(
        store=store if store is not None else open_store(config),
        registry=registry if registry is not None else default_registry(work_dir=ctl.work_dir),
        clock=clock,
        max_resolution_duration=ctl.max_resolution_duration,
        default_resolution_timeout=ctl.default_resolution_timeout,
        resolver_configs=config.resolvers,
        max_workers=ctl.workers,
    )


def build_controller(config: Config, reconciler: Reconciler, store: RequestStore) -> Controller:
    return Controller(
        reconciler,
        store,
        workers=config.controller.workers,
        retry_interval=config.controller.retry_interval,
    )


def submit(
    config: Config,
    name: str,
    *,
    resolver_type: str,
    parameters: Mapping[str, str],
    namespace: str = "default",
) -> ResolutionRequest:
    """Create a new resolution request in the configured store."""
    request = ResolutionRequest.new(
        name,
        resolver_type=resolver_type,
        parameters=dict(parameters),
        namespace=namespace,
    )
    return open_store(config).create(request)


def reconcile_all(config: Config, *, timeout: float | None = None) -> list[ReconcileOutcome]:
    """Drive every pending request until it is terminal (or *timeout* passes)."""
    store = open_store(config)
    with build_reconciler(config, store=store) as reconciler:
        controller = build_controller(config, reconciler, store)
        if timeout == 0:
            controller.sync()
            return controller.run_once()
        return controller.run_until_idle(timeout=timeout)


def resolve_direct(
    config: Config,
    resolver_type: str,
    parameters: Mapping[str, str],
    *,
    registry: ResolverRegistry | None = None,
) -> ResolvedResource:
    """Run one resolver synchronously, bypassing the store and reconciler."""
    registry = registry if registry is not None else default_registry()
    resolver = registry.by_type(resolver_type)
    ctx = inject_resolver_config(
        ResolutionContext.background(),
        config.resolvers.get(resolver.config_name or resolver.name, {}),
    )
    resolver.validate_params(ctx, parameters)
    timeout = resolver.get_resolution_timeout(ctx, config.controller.default_resolution_timeout)
    call_ctx = ctx.with_timeout(timeout.total_seconds())
    try:
        return resolver.resolve(call_ctx, parameters)
    finally:
        call_ctx.cancel()
