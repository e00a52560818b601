"""Resolver contract, registry and the reconciler that drives resolution requests."""

from pipeline_resolution.framework.errors import (
    AmbiguousResolverError,
    CanceledError,
    ConfigurationError,
    ConflictError,
    DeadlineExceededError,
    GetResourceError,
    InvalidParamsError,
    RequestNotFoundError,
    ResolutionError,
    ResolverNotFoundError,
    StoreError,
    TransientResolutionError,
)
from pipeline_resolution.framework.context import (
    ResolutionContext,
    get_resolver_config,
    inject_resolver_config,
)
from pipeline_resolution.framework.resolver import (
    ResolvedResource,
    Resolver,
    StaticResolvedResource,
)
from pipeline_resolution.framework.registry import ResolverRegistry, selector_matches
from pipeline_resolution.framework.reconciler import ReconcileResult, Reconciler

__all__ = [
    "AmbiguousResolverError",
    "CanceledError",
    "ConfigurationError",
    "ConflictError",
    "DeadlineExceededError",
    "GetResourceError",
    "InvalidParamsError",
    "ReconcileResult",
    "Reconciler",
    "RequestNotFoundError",
    "ResolutionContext",
    "ResolutionError",
    "ResolvedResource",
    "Resolver",
    "ResolverNotFoundError",
    "ResolverRegistry",
    "StaticResolvedResource",
    "StoreError",
    "TransientResolutionError",
    "get_resolver_config",
    "inject_resolver_config",
    "selector_matches",
]
