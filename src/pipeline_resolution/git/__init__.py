"""Git resolver backend."""

from pipeline_resolution.git.errors import (
    CheckoutError,
    CloneError,
    FileNotFoundInRepoError,
    GitCommandError,
    GitError,
    RefNotFoundError,
    RemoteUnavailableError,
)
from pipeline_resolution.git.repository import BareRepository
from pipeline_resolution.git.resolver import (
    BRANCH_PARAM,
    COMMIT_PARAM,
    CONFIG_MAP_NAME,
    LABEL_VALUE_GIT_RESOLVER_TYPE,
    PATH_PARAM,
    URL_PARAM,
    GitResolver,
    ResolvedGitResource,
)

__all__ = [
    "BRANCH_PARAM",
    "COMMIT_PARAM",
    "CONFIG_MAP_NAME",
    "LABEL_VALUE_GIT_RESOLVER_TYPE",
    "PATH_PARAM",
    "URL_PARAM",
    "BareRepository",
    "CheckoutError",
    "CloneError",
    "FileNotFoundInRepoError",
    "GitCommandError",
    "GitError",
    "GitResolver",
    "RefNotFoundError",
    "RemoteUnavailableError",
    "ResolvedGitResource",
]
