"""Work queue that repeatedly reconciles stored requests until they are terminal."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from pipeline_resolution.framework.reconciler import ReconcileResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from pipeline_resolution.core.store import RequestStore
    from pipeline_resolution.framework.reconciler import Reconciler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileOutcome:
    key: str
    result: ReconcileResult


class Controller:
    """Schedules reconciles for every non-terminal request in a store.

    Keys are held in a due-time queue, so a request is never reconciled by
    two workers at once. ``requeue_after`` from the reconciler sets the next
    due time; errored reconciles come back after ``retry_interval`` (or
    sooner, if the request's deadline is closer).
    """

    def __init__(
        self,
        reconciler: Reconciler,
        store: RequestStore,
        *,
        workers: int = 4,
        retry_interval: timedelta = timedelta(seconds=5),
        monotonic: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._reconciler = reconciler
        self._store = store
        self._workers = workers
        self._retry_interval = retry_interval
        self._monotonic = monotonic
        self._sleep = sleep
        self._due: dict[str, float] = {}
        self._lock = threading.Lock()

    def enqueue(self, key: str, delay: float = 0.0) -> None:
        """Schedule *key*; an earlier existing due time wins."""
        due = self._monotonic() + max(0.0, delay)
        with self._lock:
            current = self._due.get(key)
            if current is None or due < current:
                self._due[key] = due

    def sync(self) -> int:
        """Enqueue every non-terminal request in the store not already queued."""
        added = 0
        for request in self._store.list():
            if request.is_done():
                continue
            with self._lock:
                if request.key in self._due:
                    continue
            self.enqueue(request.key)
            added += 1
        if added:
            logger.debug("Queued %d pending request(s)", added)
        return added

    def pending(self) -> int:
        with self._lock:
            return len(self._due)

    def next_due_in(self) -> float | None:
        """Seconds until the next queued key is due, ``None`` if the queue is empty."""
        with self._lock:
            if not self._due:
                return None
            return max(0.0, min(self._due.values()) - self._monotonic())

    def _pop_due(self) -> list[str]:
        now = self._monotonic()
        with self._lock:
            keys = sorted(k for k, due in self._due.items() if due <= now)
            for k in keys:
                del self._due[k]
        return keys

    def _reconcile_key(self, key: str) -> ReconcileOutcome:
        namespace, _, name = key.partition("/")
        try:
            result = self._reconciler.reconcile(namespace, name)
        except Exception as e:
            logger.exception("Reconcile of %s raised", key)
            result = ReconcileResult(error=e)
        return ReconcileOutcome(key=key, result=result)

    def _schedule(self, outcome: ReconcileOutcome) -> None:
        result = outcome.result
        if result.error is not None:
            delay = self._retry_interval
            if result.requeue_after is not None:
                delay = min(delay, result.requeue_after)
            logger.info("Retrying %s in %s: %s", outcome.key, delay, result.error)
            self.enqueue(outcome.key, delay.total_seconds())
        elif result.requeue_after is not None:
            self.enqueue(outcome.key, result.requeue_after.total_seconds())

    def run_once(self) -> list[ReconcileOutcome]:
        """Reconcile every key that is currently due."""
        keys = self._pop_due()
        if not keys:
            return []
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self._workers, len(keys)), thread_name_prefix="reconcile"
        ) as pool:
            outcomes = list(pool.map(self._reconcile_key, keys))
        for outcome in outcomes:
            self._schedule(outcome)
        return outcomes

    def run_until_idle(self, *, timeout: float | None = None) -> list[ReconcileOutcome]:
        """Loop until no request needs work, or *timeout* seconds elapse."""
        started = self._monotonic()
        outcomes: list[ReconcileOutcome] = []
        self.sync()
        while True:
            outcomes.extend(self.run_once())
            wait = self.next_due_in()
            if wait is None:
                return outcomes
            if timeout is not None:
                left = timeout - (self._monotonic() - started)
                if left <= 0:
                    logger.info("Stopping with %d request(s) still queued", self.pending())
                    return outcomes
                wait = min(wait, left)
            self._sleep(wait)
