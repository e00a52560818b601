"""Default resolver registry factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pipeline_resolution.framework.registry import ResolverRegistry
from pipeline_resolution.git.resolver import GitResolver

if TYPE_CHECKING:
    from pathlib import Path


def default_registry(*, work_dir: Path | None = None) -> ResolverRegistry:
    """Create a fresh registry with all built-in resolvers."""
    registry = ResolverRegistry()
    registry.register(GitResolver(work_dir=work_dir))
    return registry
