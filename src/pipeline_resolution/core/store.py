"""Request stores: persistence for resolution requests and their status."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from pipeline_resolution.core.request import ResolutionRequest
from pipeline_resolution.framework.errors import (
    AlreadyExistsError,
    ConflictError,
    RequestNotFoundError,
    StoreLockError,
)

if TYPE_CHECKING:
    from collections.abc import Iterator

try:
    import fcntl
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


def _key(namespace: str, name: str) -> str:
    return f"{namespace}/{name}"


class RequestStore:
    """Base class for request stores.

    Subclasses provide ``_transaction``: a context manager yielding the
    mutable ``key -> request`` mapping and persisting it on clean exit.
    Status updates use optimistic concurrency on ``resource_version``.
    """

    def _transaction(self) -> contextlib.AbstractContextManager[dict[str, ResolutionRequest]]:
        raise NotImplementedError

    def get(self, namespace: str, name: str) -> ResolutionRequest:
        key = _key(namespace, name)
        with self._transaction() as requests:
            if key not in requests:
                raise RequestNotFoundError(key)
            return requests[key].model_copy(deep=True)

    def list(self, namespace: str | None = None) -> list[ResolutionRequest]:
        with self._transaction() as requests:
            items = [
                r.model_copy(deep=True)
                for r in requests.values()
                if namespace is None or r.metadata.namespace == namespace
            ]
        return sorted(items, key=lambda r: r.key)

    def create(self, request: ResolutionRequest) -> ResolutionRequest:
        with self._transaction() as requests:
            if request.key in requests:
                raise AlreadyExistsError(request.key)
            stored = request.model_copy(deep=True)
            stored.metadata.resource_version = 1
            requests[stored.key] = stored
            logger.debug("Created request %s", stored.key)
            return stored.model_copy(deep=True)

    def update_status(self, request: ResolutionRequest) -> ResolutionRequest:
        """Write ``request.status``; metadata other than the version and spec are kept."""
        with self._transaction() as requests:
            current = requests.get(request.key)
            if current is None:
                raise RequestNotFoundError(request.key)
            if current.metadata.resource_version != request.metadata.resource_version:
                raise ConflictError(
                    request.key,
                    expected=request.metadata.resource_version,
                    got=current.metadata.resource_version,
                )
            current.status = request.status.model_copy(deep=True)
            current.metadata.resource_version += 1
            logger.debug(
                "Updated status of %s (version=%d)", request.key, current.metadata.resource_version
            )
            return current.model_copy(deep=True)

    def delete(self, namespace: str, name: str) -> None:
        key = _key(namespace, name)
        with self._transaction() as requests:
            if requests.pop(key, None) is None:
                raise RequestNotFoundError(key)
            logger.debug("Deleted request %s", key)


class InMemoryRequestStore(RequestStore):
    """Process-local store."""

    def __init__(self) -> None:
        self._requests: dict[str, ResolutionRequest] = {}
        self._lock = threading.Lock()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[dict[str, ResolutionRequest]]:
        with self._lock:
            yield self._requests


class _StoreDocument(BaseModel):
    version: int = 1
    requests: dict[str, ResolutionRequest] = Field(default_factory=dict)


@contextlib.contextmanager
def _file_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive ``flock`` on ``<path>.lock``."""
    lock_path = Path(str(path) + ".lock")
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as f:
        if fcntl is None:  # pragma: no cover
            raise StoreLockError("Store locking is not supported on this platform")
        try:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
        except OSError as e:
            raise StoreLockError(str(e)) from e
        try:
            yield
        finally:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)


class FileRequestStore(RequestStore):
    """JSON-file store shareable between processes.

    - Each operation holds an exclusive file lock for its read-modify-write
    - Writes are atomic (temp file + rename) and keep a ``.backup`` copy
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> _StoreDocument:
        if not self._path.exists():
            return _StoreDocument()
        return _StoreDocument.model_validate_json(self._path.read_text(encoding="utf-8"))

    def _save(self, doc: _StoreDocument) -> None:
        path = self._path
        path.parent.mkdir(parents=True, exist_ok=True)

        backup_path = Path(str(path) + ".backup")
        with contextlib.suppress(FileNotFoundError):
            backup_path.write_bytes(path.read_bytes())

        content = json.dumps(doc.model_dump(mode="json"), indent=2, sort_keys=True) + "\n"
        fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        tmp_file = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            tmp_file.replace(path)
        finally:
            with contextlib.suppress(FileNotFoundError):
                tmp_file.unlink()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[dict[str, ResolutionRequest]]:
        with self._lock, _file_lock(self._path):
            doc = self._load()
            before = doc.model_dump(mode="json")
            yield doc.requests
            if doc.model_dump(mode="json") != before:
                self._save(doc)
                logger.debug("Store saved: %d requests path=%s", len(doc.requests), self._path)
