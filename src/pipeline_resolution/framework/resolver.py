"""Resolver-facing interfaces."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from pipeline_resolution.durations import parse_duration

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import timedelta

    from pipeline_resolution.framework.context import ResolutionContext

logger = logging.getLogger(__name__)

# Key in a resolver's configuration that overrides its resolution timeout.
CONFIG_FIELD_TIMEOUT = "timeout"


class ResolvedResource:
    """Content produced by a resolver on success."""

    def data(self) -> bytes:
        raise NotImplementedError

    def annotations(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True)
class StaticResolvedResource(ResolvedResource):
    """Immutable resolved value: bytes plus annotations."""

    content: bytes
    annotation_map: Mapping[str, str] = field(default_factory=dict)

    def data(self) -> bytes:
        return self.content

    def annotations(self) -> dict[str, str]:
        return dict(self.annotation_map)


class Resolver:
    """Base class for resolver backends.

    A resolver owns every request whose labels contain its selector, checks
    that request's parameters and turns them into content. Subclass and set
    ``name``; override :meth:`get_selector`, :meth:`validate_params` and
    :meth:`resolve`.

    Every method receives a :class:`ResolutionContext`. :meth:`resolve` runs
    under a deadline set by the reconciler and must return promptly (raising
    ``DeadlineExceededError``) once ``ctx.done()`` is set.
    """

    name: ClassVar[str]
    config_name: ClassVar[str] = ""

    def initialize(self, ctx: ResolutionContext) -> None:
        """One-time setup before the resolver starts receiving requests."""
        _ = ctx

    def get_selector(self, ctx: ResolutionContext) -> dict[str, str]:
        """Labels a request must carry for this resolver to own it."""
        raise NotImplementedError

    def validate_params(self, ctx: ResolutionContext, params: Mapping[str, str]) -> None:
        """Raise ``InvalidParamsError`` if *params* cannot be resolved."""
        raise NotImplementedError

    def get_resolution_timeout(self, ctx: ResolutionContext, default: timedelta) -> timedelta:
        """Timeout from the injected resolver config, else *default*. Never blocks."""
        raw = ctx.config.get(CONFIG_FIELD_TIMEOUT)
        if not raw:
            return default
        try:
            timeout = parse_duration(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s timeout %r", self.name, raw)
            return default
        if timeout.total_seconds() <= 0:
            logger.warning("Ignoring non-positive %s timeout %r", self.name, raw)
            return default
        return timeout

    def resolve(self, ctx: ResolutionContext, params: Mapping[str, str]) -> ResolvedResource:
        """Fetch the content described by *params*."""
        raise NotImplementedError
