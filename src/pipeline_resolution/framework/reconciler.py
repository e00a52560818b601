"""Resolver-agnostic reconciler driving resolution requests to a terminal status."""

from __future__ import annotations

import concurrent.futures
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from pipeline_resolution.common import (
    MESSAGE_WAITING_FOR_RESOLVER,
    REASON_RESOLUTION_FAILED,
    REASON_RESOLUTION_TIMED_OUT,
    REASON_RESOLVER_PARAMS_INVALID,
)
from pipeline_resolution.core.clock import SystemClock
from pipeline_resolution.core.request import encode_data
from pipeline_resolution.durations import format_duration
from pipeline_resolution.framework.context import ResolutionContext, inject_resolver_config
from pipeline_resolution.framework.errors import (
    ConfigurationError,
    ConflictError,
    DeadlineExceededError,
    GetResourceError,
    RequestNotFoundError,
    TransientResolutionError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pipeline_resolution.core.clock import Clock
    from pipeline_resolution.core.request import ResolutionRequest
    from pipeline_resolution.core.store import RequestStore
    from pipeline_resolution.framework.registry import ResolverRegistry
    from pipeline_resolution.framework.resolver import ResolvedResource, Resolver

logger = logging.getLogger(__name__)

# Ceiling on how long any request may stay unresolved, independent of the resolver.
DEFAULT_MAXIMUM_RESOLUTION_DURATION = timedelta(minutes=1)

# Per-call resolver timeout used when a resolver's config does not override it.
DEFAULT_RESOLUTION_TIMEOUT = timedelta(minutes=1)


@dataclass(frozen=True)
class ReconcileResult:
    """What the work queue should do with the request next.

    ``requeue_after`` asks to revisit the request after a delay; ``error``
    asks for a rate-limited retry. Neither set means the request needs no
    further work.
    """

    requeue_after: timedelta | None = None
    error: Exception | None = None


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Reconciler:
    """Drives one resolution request per call from pending to a terminal condition.

    The reconciler is written against the :class:`Resolver` contract only.
    Each call is single-pass: "come back later" is returned as
    ``ReconcileResult.requeue_after`` instead of sleeping.
    """

    def __init__(
        self,
        *,
        store: RequestStore,
        registry: ResolverRegistry,
        clock: Clock | None = None,
        max_resolution_duration: timedelta = DEFAULT_MAXIMUM_RESOLUTION_DURATION,
        default_resolution_timeout: timedelta = DEFAULT_RESOLUTION_TIMEOUT,
        resolver_configs: Mapping[str, Mapping[str, str]] | None = None,
        max_workers: int = 4,
    ) -> None:
        self._store = store
        self._registry = registry
        self._clock = clock or SystemClock()
        self._max_duration = max_resolution_duration
        self._default_timeout = default_resolution_timeout
        self._resolver_configs = {k: dict(v) for k, v in (resolver_configs or {}).items()}
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="resolve"
        )

    def close(self) -> None:
        # Resolvers that ignore cancellation may still be running; don't block on them.
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> Reconciler:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    @property
    def max_resolution_duration(self) -> timedelta:
        return self._max_duration

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """Reconcile the stored request and persist any status change."""
        try:
            request = self._store.get(namespace, name)
        except RequestNotFoundError:
            logger.debug("Request %s/%s no longer exists", namespace, name)
            return ReconcileResult()

        before = request.status.model_dump(mode="json")
        result = self.reconcile_request(request)
        if request.status.model_dump(mode="json") == before:
            return result

        try:
            self._store.update_status(request)
        except (ConflictError, RequestNotFoundError) as e:
            logger.info("Status update for %s failed, will retry: %s", request.key, e)
            return ReconcileResult(error=e)
        return result

    def reconcile_request(self, request: ResolutionRequest) -> ReconcileResult:
        """Advance *request*'s status in place."""
        if request.is_done():
            return ReconcileResult()

        status = request.status
        if status.get_condition() is None:
            status.initialize_conditions()
            status.mark_in_progress(MESSAGE_WAITING_FOR_RESOLVER)

        if status.data:
            status.mark_succeeded()
            logger.info("Request %s already carries data, marked succeeded", request.key)
            return ReconcileResult()

        elapsed = self._elapsed(request)
        if elapsed >= self._max_duration:
            message = (
                "resolution took longer than global timeout of "
                f"{format_duration(self._max_duration)}"
            )
            status.mark_failed(REASON_RESOLUTION_TIMED_OUT, message)
            logger.info("Request %s timed out after %s", request.key, elapsed)
            return ReconcileResult()

        try:
            resolver = self._registry.match(request.metadata.labels)
        except ConfigurationError as e:
            status.mark_failed(REASON_RESOLUTION_FAILED, str(e))
            logger.info("Request %s cannot be routed: %s", request.key, e)
            return ReconcileResult()

        return self._resolve_with(resolver, request)

    def _elapsed(self, request: ResolutionRequest) -> timedelta:
        created = _as_utc(request.metadata.creation_timestamp)
        return _as_utc(self._clock.now()) - created

    def _resolve_with(self, resolver: Resolver, request: ResolutionRequest) -> ReconcileResult:
        status = request.status
        params = dict(request.spec.parameters)
        config = self._resolver_configs.get(resolver.config_name or resolver.name, {})
        ctx = inject_resolver_config(ResolutionContext.background(), config)

        try:
            resolver.validate_params(ctx, params)
        except Exception as e:  # any validation failure is an invalid-params outcome
            status.mark_failed(REASON_RESOLVER_PARAMS_INVALID, str(e))
            logger.info("Request %s has invalid params: %s", request.key, e)
            return ReconcileResult()

        remaining = self._max_duration - self._elapsed(request)
        timeout = min(resolver.get_resolution_timeout(ctx, self._default_timeout), remaining)
        logger.debug("Resolving %s with %s (timeout=%s)", request.key, resolver.name, timeout)

        try:
            resource = self._call_resolve(resolver, ctx, params, timeout)
        except DeadlineExceededError as e:
            status.mark_failed(REASON_RESOLUTION_TIMED_OUT, str(e))
            logger.info("Request %s: %s", request.key, e)
            return ReconcileResult()
        except TransientResolutionError as e:
            err = GetResourceError(resolver.name, request.key, e)
            status.mark_in_progress(str(err))
            remaining = self._max_duration - self._elapsed(request)
            logger.warning("Request %s hit a transient error: %s", request.key, e)
            return ReconcileResult(requeue_after=max(remaining, timedelta(0)), error=err)
        except Exception as e:
            err = GetResourceError(resolver.name, request.key, e)
            status.mark_failed(REASON_RESOLUTION_FAILED, str(err))
            logger.info("Request %s failed: %s", request.key, err)
            return ReconcileResult()

        status.data = encode_data(resource.data())
        status.annotations.update(resource.annotations())
        status.mark_succeeded()
        logger.info("Request %s resolved by %s", request.key, resolver.name)
        return ReconcileResult()

    def _call_resolve(
        self,
        resolver: Resolver,
        ctx: ResolutionContext,
        params: dict[str, str],
        timeout: timedelta,
    ) -> ResolvedResource:
        call_ctx = ctx.with_timeout(timeout.total_seconds())
        future = self._executor.submit(resolver.resolve, call_ctx, params)
        try:
            return future.result(timeout=call_ctx.remaining())
        except concurrent.futures.TimeoutError as e:
            if future.done():
                # Finished as the wait gave up, or the resolver raised TimeoutError itself.
                return future.result()
            raise DeadlineExceededError() from e
        finally:
            call_ctx.cancel()
