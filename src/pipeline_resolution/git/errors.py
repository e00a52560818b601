"""Git resolver error types.

Messages are part of the request status consumers parse, so their wording
is fixed.
"""

from __future__ import annotations

from pipeline_resolution.framework.errors import ResolutionError, TransientResolutionError


class GitError(ResolutionError):
    """Base exception for git resolution failures."""


class CloneError(GitError):
    """Fetching the repository or one of its refs failed."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"clone error: {detail}")
        self.detail = detail


class RefNotFoundError(CloneError):
    def __init__(self, ref: str) -> None:
        super().__init__(f'couldn\'t find remote ref "{ref}"')
        self.ref = ref


class RemoteUnavailableError(CloneError, TransientResolutionError):
    """The remote could not be reached (network, DNS, auth), so a retry may succeed."""


class CheckoutError(GitError):
    """The requested object id could not be checked out."""

    def __init__(self, detail: str = "object not found") -> None:
        super().__init__(f"checkout error: {detail}")
        self.detail = detail


class FileNotFoundInRepoError(GitError):
    def __init__(self, path: str) -> None:
        super().__init__(f'error opening file "{path}": file does not exist')
        self.path = path


class GitCommandError(GitError):
    """A git subprocess exited non-zero for an unexpected reason."""

    def __init__(self, *, command: list[str], returncode: int, stderr: str) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        self.stderr = stderr
        message = f"git command failed ({returncode}): {' '.join(command)}"
        if stderr.strip():
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)
