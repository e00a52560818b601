"""Git resolver: fetch one file from a git remote at a branch, commit or default HEAD."""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from pipeline_resolution.common import ANNOTATION_KEY_CONTENT_TYPE, LABEL_KEY_RESOLVER_TYPE
from pipeline_resolution.framework.errors import InvalidParamsError
from pipeline_resolution.framework.resolver import ResolvedResource, Resolver
from pipeline_resolution.git.repository import BareRepository

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pipeline_resolution.framework.context import ResolutionContext

logger = logging.getLogger(__name__)

LABEL_VALUE_GIT_RESOLVER_TYPE = "git"

URL_PARAM = "url"
PATH_PARAM = "path"
COMMIT_PARAM = "commit"
BRANCH_PARAM = "branch"

CONFIG_MAP_NAME = "git-resolver-config"

ANNOTATION_KEY_GIT_COMMIT = "git.resolution.pipeline.dev/commit"
ANNOTATION_KEY_GIT_URL = "git.resolution.pipeline.dev/url"
ANNOTATION_KEY_GIT_PATH = "git.resolution.pipeline.dev/path"

YAML_CONTENT_TYPE = "application/x-yaml"


@dataclass(frozen=True)
class ResolvedGitResource(ResolvedResource):
    """File content at a resolved commit; ``commit`` is always the full hex id."""

    content: bytes
    commit: str
    url: str = ""
    path: str = ""

    def data(self) -> bytes:
        return self.content

    def annotations(self) -> dict[str, str]:
        annotations = {
            ANNOTATION_KEY_CONTENT_TYPE: YAML_CONTENT_TYPE,
            ANNOTATION_KEY_GIT_COMMIT: self.commit,
        }
        if self.url:
            annotations[ANNOTATION_KEY_GIT_URL] = self.url
        if self.path:
            annotations[ANNOTATION_KEY_GIT_PATH] = self.path
        return annotations


class GitResolver(Resolver):
    """Resolves ``url`` + ``path`` (+ optional ``branch`` or ``commit``) to file content.

    Each call clones into its own temporary directory, so two requests for
    the same repository never share a clone.
    """

    name: ClassVar[str] = "Git"
    config_name: ClassVar[str] = CONFIG_MAP_NAME

    def __init__(self, *, git_binary: str = "git", work_dir: Path | str | None = None) -> None:
        self._git_binary = git_binary
        self._work_dir = Path(work_dir) if work_dir is not None else None

    def initialize(self, ctx: ResolutionContext) -> None:
        _ = ctx
        if self._work_dir is not None:
            self._work_dir.mkdir(parents=True, exist_ok=True)

    def get_selector(self, ctx: ResolutionContext) -> dict[str, str]:
        _ = ctx
        return {LABEL_KEY_RESOLVER_TYPE: LABEL_VALUE_GIT_RESOLVER_TYPE}

    def validate_params(self, ctx: ResolutionContext, params: Mapping[str, str]) -> None:
        _ = ctx
        missing = [p for p in (URL_PARAM, PATH_PARAM) if not params.get(p)]
        if missing:
            raise InvalidParamsError(f"missing required git resolver params: {', '.join(missing)}")
        if COMMIT_PARAM in params and BRANCH_PARAM in params:
            raise InvalidParamsError(
                f"supplied both {COMMIT_PARAM!r} and {BRANCH_PARAM!r}, only one may be set"
            )

    def resolve(self, ctx: ResolutionContext, params: Mapping[str, str]) -> ResolvedGitResource:
        self.validate_params(ctx, params)
        url = params[URL_PARAM]
        path = params[PATH_PARAM]
        commit = params.get(COMMIT_PARAM, "")
        branch = params.get(BRANCH_PARAM, "")

        with tempfile.TemporaryDirectory(prefix="git-resolver-", dir=self._work_dir) as tmp:
            repo = BareRepository.clone(
                ctx, url, Path(tmp) / "repo.git", git_binary=self._git_binary
            )
            if commit:
                sha = repo.resolve_commit(ctx, commit)
            elif branch:
                sha = repo.resolve_branch(ctx, branch)
            else:
                sha = repo.head(ctx)
            content = repo.read_file(ctx, sha, path)

        logger.debug("Resolved %s:%s at %s (%d bytes)", url, path, sha, len(content))
        return ResolvedGitResource(content=content, commit=sha, url=url, path=path)
