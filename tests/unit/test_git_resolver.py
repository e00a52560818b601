"""Tests for the git resolver against real on-disk repositories."""

from __future__ import annotations

import os
import sys
import textwrap
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

import pytest

from pipeline_resolution.common import LABEL_KEY_RESOLVER_TYPE
from pipeline_resolution.framework.context import ResolutionContext, inject_resolver_config
from pipeline_resolution.framework.errors import (
    CanceledError,
    DeadlineExceededError,
    InvalidParamsError,
    TransientResolutionError,
)
from pipeline_resolution.git.errors import (
    CheckoutError,
    CloneError,
    FileNotFoundInRepoError,
    RefNotFoundError,
    RemoteUnavailableError,
)
from pipeline_resolution.git.repository import clone_failure, normalize_repo_path, run_git
from pipeline_resolution.git.resolver import (
    ANNOTATION_KEY_GIT_COMMIT,
    ANNOTATION_KEY_GIT_PATH,
    ANNOTATION_KEY_GIT_URL,
    GitResolver,
    ResolvedGitResource,
)


@dataclass
class HangingGit:
    script: Path
    pid_file: Path

    def is_gone(self) -> bool:
        pid = int(self.pid_file.read_text())
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        return False


@pytest.fixture
def hanging_git(tmp_path: Path) -> HangingGit:
    """A stand-in git binary that records its pid and then never exits."""
    if sys.platform == "win32":
        pytest.skip("needs a POSIX shell")
    pid_file = tmp_path / "git.pid"
    script = tmp_path / "fake-git"
    script.write_text(
        textwrap.dedent(
            f"""\
            #!/bin/sh
            echo $$ > "{pid_file}"
            exec sleep 60
            """
        )
    )
    script.chmod(0o755)
    return HangingGit(script=script, pid_file=pid_file)


@pytest.fixture
def resolver() -> GitResolver:
    return GitResolver()


@pytest.fixture
def ctx() -> ResolutionContext:
    return ResolutionContext.background().with_timeout(30)


class TestContract:
    def test_selector(self, resolver: GitResolver, ctx: ResolutionContext) -> None:
        assert resolver.get_selector(ctx) == {LABEL_KEY_RESOLVER_TYPE: "git"}
        assert resolver.name == "Git"
        assert resolver.config_name == "git-resolver-config"

    def test_valid_params(self, resolver: GitResolver, ctx: ResolutionContext) -> None:
        resolver.validate_params(ctx, {"url": "u", "path": "p"})
        resolver.validate_params(ctx, {"url": "u", "path": "p", "branch": "b"})
        resolver.validate_params(ctx, {"url": "u", "path": "p", "commit": "c"})

    @pytest.mark.parametrize(
        ("params", "missing"),
        [
            ({"path": "p"}, "url"),
            ({"url": "u"}, "path"),
            ({"url": "", "path": "p"}, "url"),
            ({"branch": "b"}, "url, path"),
        ],
    )
    def test_missing_required_params(
        self, resolver: GitResolver, ctx: ResolutionContext, params: dict[str, str], missing: str
    ) -> None:
        expected = f"missing required git resolver params: {missing}$"
        with pytest.raises(InvalidParamsError, match=expected):
            resolver.validate_params(ctx, params)

    @pytest.mark.parametrize(
        "extra",
        [{}, {"foo": "bar"}, {"url": "u2"}, {"commit": ""}, {"branch": ""}],
    )
    def test_commit_and_branch_exclusive(
        self, resolver: GitResolver, ctx: ResolutionContext, extra: dict[str, str]
    ) -> None:
        params = {"url": "u", "path": "p", "commit": "abc", "branch": "main", **extra}
        with pytest.raises(InvalidParamsError, match="supplied both 'commit' and 'branch'"):
            resolver.validate_params(ctx, params)

    def test_default_timeout(self, resolver: GitResolver, ctx: ResolutionContext) -> None:
        assert resolver.get_resolution_timeout(ctx, timedelta(minutes=1)) == timedelta(minutes=1)

    def test_configured_timeout(self, resolver: GitResolver, ctx: ResolutionContext) -> None:
        configured = inject_resolver_config(ctx, {"timeout": "2m"})
        assert resolver.get_resolution_timeout(configured, timedelta(minutes=1)) == timedelta(
            minutes=2
        )

    @pytest.mark.parametrize("raw", ["soon", "-5s", "0"])
    def test_bad_configured_timeout_falls_back(
        self, resolver: GitResolver, ctx: ResolutionContext, raw: str
    ) -> None:
        configured = inject_resolver_config(ctx, {"timeout": raw})
        assert resolver.get_resolution_timeout(configured, timedelta(minutes=1)) == timedelta(
            minutes=1
        )

    def test_initialize_creates_work_dir(self, tmp_path: Path, ctx: ResolutionContext) -> None:
        work_dir = tmp_path / "work"
        GitResolver(work_dir=work_dir).initialize(ctx)
        assert work_dir.is_dir()

    def test_resource_annotations(self) -> None:
        resource = ResolvedGitResource(content=b"x", commit="a" * 40, url="u", path="p")
        assert resource.data() == b"x"
        assert resource.annotations() == {
            "content-type": "application/x-yaml",
            ANNOTATION_KEY_GIT_COMMIT: "a" * 40,
            ANNOTATION_KEY_GIT_URL: "u",
            ANNOTATION_KEY_GIT_PATH: "p",
        }


class TestResolve:
    def test_default_branch(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([("foo/bar/somefile", "some content")])

        resource = resolver.resolve(ctx, {"url": repo.url, "path": "foo/bar/somefile"})

        assert resource.data() == b"some content"
        assert resource.commit == repo.tip()
        assert resource.annotations()[ANNOTATION_KEY_GIT_COMMIT] == repo.tip()

    def test_branch(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo(
            [
                ("foo/bar/somefile", "wrong content"),
                ("foo/bar/somefile", "some content", "other-branch"),
            ]
        )

        resource = resolver.resolve(
            ctx, {"url": repo.url, "path": "foo/bar/somefile", "branch": "other-branch"}
        )

        assert resource.data() == b"some content"
        assert resource.commit == repo.tip("other-branch")
        assert resource.commit != repo.tip("main")

    def test_earlier_commit(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo(
            [
                ("foo/bar/somefile", "some content"),
                ("foo/bar/somefile", "different content"),
            ]
        )
        first = repo.commits["main"][0]

        resource = resolver.resolve(
            ctx, {"url": repo.url, "path": "foo/bar/somefile", "commit": first}
        )

        assert resource.data() == b"some content"
        assert resource.commit == first

    def test_commit_id_case_insensitive(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([("a.yaml", "kind: Task\n")])

        resource = resolver.resolve(
            ctx, {"url": repo.url, "path": "a.yaml", "commit": repo.tip().upper()}
        )

        assert resource.commit == repo.tip()

    def test_exact_bytes(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([("task.yaml", "line one\r\nline two\n\n")])

        resource = resolver.resolve(ctx, {"url": repo.url, "path": "./task.yaml"})

        assert resource.data() == b"line one\r\nline two\n\n"

    def test_missing_path(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([("foo/bar/somefile", "some content")])

        with pytest.raises(FileNotFoundInRepoError) as exc_info:
            resolver.resolve(ctx, {"url": repo.url, "path": "foo/bar/other"})
        assert str(exc_info.value) == 'error opening file "foo/bar/other": file does not exist'

    def test_directory_path_not_found(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([("foo/bar/somefile", "some content")])

        with pytest.raises(FileNotFoundInRepoError, match='"foo/bar"'):
            resolver.resolve(ctx, {"url": repo.url, "path": "foo/bar"})

    def test_missing_branch(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([("foo/bar/somefile", "some content")])

        with pytest.raises(RefNotFoundError) as exc_info:
            resolver.resolve(ctx, {"url": repo.url, "path": "foo/bar/somefile", "branch": "nope"})
        assert str(exc_info.value) == 'clone error: couldn\'t find remote ref "refs/heads/nope"'

    @pytest.mark.parametrize("commit", ["0" * 40, "abc123", "not-a-sha"])
    def test_missing_commit(self, make_git_repo, resolver: GitResolver, ctx, commit: str) -> None:
        repo = make_git_repo([("foo/bar/somefile", "some content")])

        with pytest.raises(CheckoutError) as exc_info:
            resolver.resolve(ctx, {"url": repo.url, "path": "foo/bar/somefile", "commit": commit})
        assert str(exc_info.value) == "checkout error: object not found"

    @pytest.mark.parametrize("branch", ["main~1", "main^", "main@{1}", "HEAD", "mai*"])
    def test_branch_name_is_not_a_revision(
        self, make_git_repo, resolver: GitResolver, ctx, branch: str
    ) -> None:
        repo = make_git_repo([("a.yaml", "first"), ("a.yaml", "second")])

        with pytest.raises(RefNotFoundError) as exc_info:
            resolver.resolve(ctx, {"url": repo.url, "path": "a.yaml", "branch": branch})
        assert exc_info.value.ref == f"refs/heads/{branch}"
        assert str(exc_info.value).endswith(f'remote ref "refs/heads/{branch}"')

    def test_nested_branch_name(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([("a.yaml", "main"), ("a.yaml", "feature", "feature/x")])

        resource = resolver.resolve(ctx, {"url": repo.url, "path": "a.yaml", "branch": "feature/x"})

        assert resource.data() == b"feature"
        assert resource.commit == repo.tip("feature/x")

    def test_missing_repository_is_terminal(
        self, make_git_repo, resolver: GitResolver, ctx, tmp_path: Path
    ) -> None:
        make_git_repo([])  # ensures git is available

        with pytest.raises(CloneError) as exc_info:
            resolver.resolve(ctx, {"url": str(tmp_path / "does-not-exist"), "path": "a"})
        assert not isinstance(exc_info.value, TransientResolutionError)
        assert "does-not-exist" in str(exc_info.value)
        assert str(exc_info.value).startswith("clone error: ")

    def test_unreachable_remote_is_transient(
        self, make_git_repo, resolver: GitResolver, ctx
    ) -> None:
        make_git_repo([])  # ensures git is available

        with pytest.raises(RemoteUnavailableError) as exc_info:
            resolver.resolve(ctx, {"url": "https://127.0.0.1:1/repo.git", "path": "a"})
        assert isinstance(exc_info.value, CloneError)
        assert isinstance(exc_info.value, TransientResolutionError)
        assert str(exc_info.value).startswith("clone error: ")

    def test_empty_remote(self, make_git_repo, resolver: GitResolver, ctx) -> None:
        repo = make_git_repo([])

        with pytest.raises(CloneError, match="remote repository is empty"):
            resolver.resolve(ctx, {"url": repo.url, "path": "a"})

    def test_expired_context(self, make_git_repo, resolver: GitResolver) -> None:
        repo = make_git_repo([("a.yaml", "x")])
        expired = ResolutionContext.background().with_timeout(0)

        with pytest.raises(DeadlineExceededError):
            resolver.resolve(expired, {"url": repo.url, "path": "a.yaml"})

    def test_deadline_kills_hanging_clone(self, hanging_git, ctx) -> None:
        resolver = GitResolver(git_binary=str(hanging_git.script))
        started = time.monotonic()

        with pytest.raises(DeadlineExceededError):
            resolver.resolve(ctx.with_timeout(0.2), {"url": "u", "path": "a.yaml"})

        assert time.monotonic() - started < 5
        assert hanging_git.is_gone()

    def test_clones_are_removed(self, make_git_repo, ctx, tmp_path: Path) -> None:
        repo = make_git_repo([("a.yaml", "x")])
        work_dir = tmp_path / "work"
        resolver = GitResolver(work_dir=work_dir)
        resolver.initialize(ctx)

        resolver.resolve(ctx, {"url": repo.url, "path": "a.yaml"})

        assert list(work_dir.iterdir()) == []


class TestRunGit:
    def test_deadline_kills_process(self, hanging_git) -> None:
        ctx = ResolutionContext.background().with_timeout(0.2)
        started = time.monotonic()

        with pytest.raises(DeadlineExceededError):
            run_git(ctx, ["fetch"], git_binary=str(hanging_git.script))

        assert time.monotonic() - started < 5
        assert hanging_git.is_gone()

    def test_cancel_kills_process(self, hanging_git) -> None:
        ctx = ResolutionContext.background()
        threading.Timer(0.2, ctx.cancel).start()

        with pytest.raises(CanceledError):
            run_git(ctx, ["fetch"], git_binary=str(hanging_git.script))

        assert hanging_git.is_gone()


@pytest.mark.parametrize(
    ("stderr", "transient"),
    [
        ("fatal: repository '/tmp/nope' does not exist\n", False),
        ("remote: Repository not found.\nfatal: repository 'https://h/r/' not found\n", False),
        ("fatal: 'r' does not appear to be a git repository\n", False),
        ("fatal: unable to access 'https://h/r/': Could not resolve host: h\n", True),
        ("fatal: Authentication failed for 'https://h/r/'\n", True),
        ("", True),
    ],
)
def test_clone_failure_classification(stderr: str, transient: bool) -> None:
    err = clone_failure(stderr, 128)

    assert isinstance(err, CloneError)
    assert isinstance(err, TransientResolutionError) is transient
    assert str(err) == f"clone error: {stderr.strip() or 'git clone exited 128'}"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("foo/bar", "foo/bar"),
        ("./foo//bar", "foo/bar"),
        ("/foo/bar", "foo/bar"),
        ("foo\\bar", "foo/bar"),
        ("", None),
        (".", None),
        ("../etc/passwd", None),
        ("foo/../bar", None),
    ],
)
def test_normalize_repo_path(path: str, expected: str | None) -> None:
    assert normalize_repo_path(path) == expected
