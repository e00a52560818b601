"""Cancellable, deadline-aware execution context passed to every resolver call."""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from types import MappingProxyType

from pipeline_resolution.framework.errors import CanceledError, DeadlineExceededError


class ResolutionContext:
    """Explicit replacement for ambient cancellation state.

    A context carries an optional absolute deadline (monotonic clock), a
    cancellation event and the resolver configuration for the request being
    resolved. Child contexts created with :meth:`with_timeout` share the
    parent's cancellation but get their own event, so canceling a child never
    cancels the parent.

    Example:
        ctx = ResolutionContext.background().with_timeout(30)
        while not ctx.done().is_set():
            ...
        ctx.check()  # raises DeadlineExceededError / CanceledError
    """

    def __init__(
        self,
        *,
        deadline: float | None = None,
        config: Mapping[str, str] | None = None,
        parent: ResolutionContext | None = None,
    ) -> None:
        self._deadline = deadline
        self._config: Mapping[str, str] = MappingProxyType(dict(config or {}))
        self._event = threading.Event()
        self._err: Exception | None = None
        self._lock = threading.Lock()
        self._children: list[ResolutionContext] = []
        self._timer: threading.Timer | None = None

        if parent is not None:
            parent_err = parent._adopt(self)
            if parent_err is not None:
                self._finish(type(parent_err)(str(parent_err)))
                return

        if deadline is not None:
            delay = deadline - time.monotonic()
            if delay <= 0:
                self._expire()
                return
            self._timer = threading.Timer(delay, self._expire)
            self._timer.daemon = True
            self._timer.start()

    @classmethod
    def background(cls) -> ResolutionContext:
        """Root context: no deadline, never canceled unless :meth:`cancel` is called."""
        return cls()

    def with_timeout(self, seconds: float) -> ResolutionContext:
        """Child context whose deadline is the earlier of the parent's and now + *seconds*."""
        deadline = time.monotonic() + max(0.0, seconds)
        if self._deadline is not None:
            deadline = min(deadline, self._deadline)
        return ResolutionContext(deadline=deadline, config=self._config, parent=self)

    def with_config(self, config: Mapping[str, str]) -> ResolutionContext:
        """Child context carrying *config* as its resolver configuration."""
        return ResolutionContext(deadline=self._deadline, config=config, parent=self)

    @property
    def config(self) -> Mapping[str, str]:
        return self._config

    @property
    def deadline(self) -> float | None:
        return self._deadline

    def remaining(self) -> float | None:
        """Seconds left before the deadline, ``None`` when there is none."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def done(self) -> threading.Event:
        """Event set once the context is canceled or its deadline passes."""
        return self._event

    def err(self) -> Exception | None:
        with self._lock:
            return self._err

    def check(self) -> None:
        """Raise the context's error if it is done."""
        err = self.err()
        if err is not None:
            raise err

    def wait(self, seconds: float) -> bool:
        """Sleep up to *seconds*; return True if the context finished first."""
        return self._event.wait(seconds)

    def cancel(self) -> None:
        self._finish(CanceledError())

    def _adopt(self, child: ResolutionContext) -> Exception | None:
        """Register *child* for cancellation; return our error if we are already done."""
        with self._lock:
            if self._err is None:
                self._children.append(child)
            return self._err

    def _expire(self) -> None:
        self._finish(DeadlineExceededError())

    def _finish(self, err: Exception) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err
            children, self._children = self._children, []
        if self._timer is not None:
            self._timer.cancel()
        self._event.set()
        for child in children:
            child._finish(type(err)(str(err)))


def inject_resolver_config(
    ctx: ResolutionContext, config: Mapping[str, str]
) -> ResolutionContext:
    """Return a child of *ctx* carrying request-scoped resolver configuration."""
    return ctx.with_config(config)


def get_resolver_config(ctx: ResolutionContext) -> Mapping[str, str]:
    """Resolver configuration carried by *ctx* (empty when none was injected)."""
    return ctx.config
