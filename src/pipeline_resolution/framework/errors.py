"""Resolution error types."""

from __future__ import annotations


class ResolutionError(Exception):
    """Base exception for resolution errors."""


class InvalidParamsError(ResolutionError):
    """A resolver rejected the parameters of a request."""


class ConfigurationError(ResolutionError):
    """The resolver set-up cannot route a request."""


class ResolverNotFoundError(ConfigurationError):
    """No registered resolver selector matches a request's labels."""

    def __init__(self, labels: dict[str, str]) -> None:
        rendered = ", ".join(f"{k}={v}" for k, v in sorted(labels.items())) or "<none>"
        super().__init__(f"no resolver matches labels {rendered}")
        self.labels = labels


class AmbiguousResolverError(ConfigurationError):
    """More than one resolver selector matches a request's labels."""

    def __init__(self, names: list[str]) -> None:
        super().__init__(f"multiple resolvers match request: {', '.join(names)}")
        self.names = names


class DeadlineExceededError(ResolutionError):
    """The execution context's deadline passed before the work completed."""

    def __init__(self, message: str = "context deadline exceeded") -> None:
        super().__init__(message)


class CanceledError(ResolutionError):
    """The execution context was canceled before the work completed."""

    def __init__(self, message: str = "context canceled") -> None:
        super().__init__(message)


class TransientResolutionError(ResolutionError):
    """A failure that may succeed on retry (e.g., a remote was unreachable)."""


class GetResourceError(ResolutionError):
    """A resolver failed to fetch the content of a request.

    The original exception is chained via ``__cause__``.
    """

    def __init__(self, resolver_name: str, key: str, cause: BaseException) -> None:
        super().__init__(f'error getting "{resolver_name}" "{key}": {cause}')
        self.__cause__ = cause
        self.resolver_name = resolver_name
        self.key = key


class StoreError(Exception):
    """Base exception for request store errors."""


class RequestNotFoundError(StoreError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Resolution request not found: {key}")
        self.key = key


class AlreadyExistsError(StoreError):
    def __init__(self, key: str) -> None:
        super().__init__(f"Resolution request already exists: {key}")
        self.key = key


class ConflictError(StoreError):
    """Raised when a status update was computed against a stale version."""

    def __init__(self, key: str, expected: int, got: int) -> None:
        super().__init__(
            f"Conflict updating {key}: stored version is {got}, update was based on {expected}"
        )
        self.key = key
        self.expected = expected
        self.got = got


class StoreLockError(StoreError):
    """Raised when the store lock cannot be acquired or released."""
