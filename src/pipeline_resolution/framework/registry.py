"""Resolver registry for selector-based dispatch."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pipeline_resolution.common import LABEL_KEY_RESOLVER_TYPE
from pipeline_resolution.framework.context import ResolutionContext
from pipeline_resolution.framework.errors import AmbiguousResolverError, ResolverNotFoundError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from pipeline_resolution.framework.resolver import Resolver

logger = logging.getLogger(__name__)


def selector_matches(selector: Mapping[str, str], labels: Mapping[str, str]) -> bool:
    """True if every selector label is present in *labels* with the same value."""
    return all(labels.get(k) == v for k, v in selector.items())


class ResolverRegistry:
    """Registry of resolvers keyed by name, routed by selector."""

    def __init__(self) -> None:
        self._resolvers: dict[str, Resolver] = {}
        self._selectors: dict[str, dict[str, str]] = {}

    def register(self, resolver: Resolver, ctx: ResolutionContext | None = None) -> None:
        ctx = ctx or ResolutionContext.background()
        name = getattr(resolver, "name", None)
        if not isinstance(name, str) or not name:
            raise ValueError("Resolver must define a non-empty classvar `name`")
        if name in self._resolvers:
            raise ValueError(f"Resolver already registered: {name}")

        selector = dict(resolver.get_selector(ctx))
        if not selector.get(LABEL_KEY_RESOLVER_TYPE):
            raise ValueError(
                f"Resolver {name} selector must include the {LABEL_KEY_RESOLVER_TYPE} label"
            )
        for other, other_selector in self._selectors.items():
            if other_selector == selector:
                raise ValueError(f"Resolver {name} has the same selector as {other}")

        resolver.initialize(ctx)
        self._resolvers[name] = resolver
        self._selectors[name] = selector
        logger.debug("Registered resolver %s with selector %s", name, selector)

    def get(self, name: str) -> Resolver:
        try:
            return self._resolvers[name]
        except KeyError as e:
            raise ResolverNotFoundError({"name": name}) from e

    def by_type(self, resolver_type: str) -> Resolver:
        """Resolver owning requests labelled with *resolver_type*."""
        return self.match({LABEL_KEY_RESOLVER_TYPE: resolver_type})

    def match(self, labels: Mapping[str, str]) -> Resolver:
        """The single resolver whose selector matches *labels*.

        Raises:
            ResolverNotFoundError: No selector matches.
            AmbiguousResolverError: More than one selector matches.
        """
        names = [n for n, sel in self._selectors.items() if selector_matches(sel, labels)]
        if not names:
            raise ResolverNotFoundError(dict(labels))
        if len(names) > 1:
            raise AmbiguousResolverError(sorted(names))
        return self._resolvers[names[0]]

    def __iter__(self) -> Iterator[Resolver]:
        return iter(self._resolvers.values())

    def __len__(self) -> int:
        return len(self._resolvers)
