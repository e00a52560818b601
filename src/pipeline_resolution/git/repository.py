"""Context-aware wrapper around the git CLI for read-only repository access."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from pipeline_resolution.git.errors import (
    CheckoutError,
    CloneError,
    FileNotFoundInRepoError,
    GitCommandError,
    RefNotFoundError,
    RemoteUnavailableError,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pipeline_resolution.framework.context import ResolutionContext

logger = logging.getLogger(__name__)

_OBJECT_ID_RE = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")

# How often a running git process checks for cancellation.
_POLL_INTERVAL = 0.05


@dataclass(frozen=True, slots=True)
class CommandResult:
    command: tuple[str, ...]
    returncode: int
    stdout: bytes
    stderr: str


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    # Never block on credential prompts; fail fast instead.
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_ASKPASS", "true")
    env["LC_ALL"] = "C"
    return env


def run_git(
    ctx: ResolutionContext,
    args: Sequence[str],
    *,
    git_binary: str = "git",
    check: bool = True,
) -> CommandResult:
    """Run git under *ctx*; the process is killed once the context is done.

    Raises:
        DeadlineExceededError / CanceledError: The context finished first.
        GitCommandError: ``check`` is set and git exited non-zero.
    """
    ctx.check()
    command = [git_binary, *args]
    logger.debug("Running %s", " ".join(command))
    proc = subprocess.Popen(
        command,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=_git_env(),
    )
    while True:
        try:
            stdout, stderr_bytes = proc.communicate(timeout=_POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if ctx.done().is_set():
                proc.kill()
                proc.communicate()
                logger.debug("Killed %s: %s", " ".join(command), ctx.err())
                ctx.check()

    stderr = stderr_bytes.decode("utf-8", errors="replace")
    result = CommandResult(
        command=tuple(command), returncode=proc.returncode, stdout=stdout, stderr=stderr
    )
    if check and proc.returncode != 0:
        raise GitCommandError(command=command, returncode=proc.returncode, stderr=stderr)
    return result


# git clone stderr for a remote that answered but has no repository at the URL.
_MISSING_REPO_RE = re.compile(
    r"does not appear to be a git repository"
    r"|repository '[^']*' (?:does not exist|not found)"
    r"|repository not found",
    re.IGNORECASE,
)


def clone_failure(stderr: str, returncode: int) -> CloneError:
    """Classify a failed clone: a missing repository is final, anything else transient."""
    detail = stderr.strip() or f"git clone exited {returncode}"
    if _MISSING_REPO_RE.search(stderr):
        return CloneError(detail)
    return RemoteUnavailableError(detail)


def normalize_repo_path(path: str) -> str | None:
    """Repo-relative POSIX path, or None if *path* cannot name a file in the tree."""
    parts = [p for p in PurePosixPath(path.replace("\\", "/")).parts if p not in ("/", ".")]
    if not parts or ".." in parts:
        return None
    return "/".join(parts)


class BareRepository:
    """A bare clone of a remote, read through content-addressed git plumbing.

    No working tree is ever checked out, so concurrent reads of different
    commits cannot interfere with each other.
    """

    def __init__(self, git_dir: Path, *, git_binary: str = "git") -> None:
        self._git_dir = Path(git_dir)
        self._git_binary = git_binary

    @property
    def git_dir(self) -> Path:
        return self._git_dir

    @classmethod
    def clone(
        cls, ctx: ResolutionContext, url: str, dest: Path, *, git_binary: str = "git"
    ) -> BareRepository:
        """Bare-clone *url* into *dest*, fetching every branch and tag."""
        result = run_git(
            ctx,
            ["clone", "--bare", "--quiet", "--", url, str(dest)],
            git_binary=git_binary,
            check=False,
        )
        if result.returncode != 0:
            raise clone_failure(result.stderr, result.returncode)
        logger.debug("Cloned %s into %s", url, dest)
        return cls(dest, git_binary=git_binary)

    def _git(self, ctx: ResolutionContext, *args: str, check: bool = True) -> CommandResult:
        return run_git(
            ctx,
            ["--git-dir", str(self._git_dir), *args],
            git_binary=self._git_binary,
            check=check,
        )

    def _rev_parse(self, ctx: ResolutionContext, rev: str) -> str | None:
        result = self._git(ctx, "rev-parse", "--verify", "--quiet", rev, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.decode("ascii").strip().lower()

    def head(self, ctx: ResolutionContext) -> str:
        """Commit id at the tip of the remote's default branch."""
        sha = self._rev_parse(ctx, "HEAD^{commit}")
        if sha is None:
            raise CloneError("remote repository is empty")
        return sha

    def resolve_branch(self, ctx: ResolutionContext, branch: str) -> str:
        """Commit at the tip of exactly ``refs/heads/<branch>``.

        Revision syntax in *branch* (``main~1``, ``main^``, ``main@{1}``) names
        no ref, so it is reported as missing rather than evaluated.
        """
        ref = f"refs/heads/{branch}"
        found = self._git(ctx, "show-ref", "--verify", "--hash", ref, check=False)
        tip = found.stdout.decode("ascii").strip().lower()
        if found.returncode != 0 or not _OBJECT_ID_RE.match(tip):
            raise RefNotFoundError(ref)
        sha = self._rev_parse(ctx, f"{tip}^{{commit}}")
        if sha is None:
            raise RefNotFoundError(ref)
        return sha

    def resolve_commit(self, ctx: ResolutionContext, object_id: str) -> str:
        """Full commit id for *object_id*; only complete hex ids are accepted."""
        candidate = object_id.strip().lower()
        if not _OBJECT_ID_RE.match(candidate):
            raise CheckoutError()
        sha = self._rev_parse(ctx, f"{candidate}^{{commit}}")
        if sha is None:
            raise CheckoutError()
        return sha

    def read_file(self, ctx: ResolutionContext, commit: str, path: str) -> bytes:
        """Exact bytes of the blob at *path* in *commit*."""
        rel = normalize_repo_path(path)
        if rel is None:
            raise FileNotFoundInRepoError(path)

        spec = f"{commit}:{rel}"
        kind = self._git(ctx, "cat-file", "-t", spec, check=False)
        if kind.returncode != 0 or kind.stdout.decode("ascii").strip() != "blob":
            raise FileNotFoundInRepoError(path)
        return self._git(ctx, "cat-file", "blob", spec).stdout
