"""Shared fixtures for unit tests."""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, ClassVar

import pytest

from pipeline_resolution.common import LABEL_KEY_RESOLVER_TYPE
from pipeline_resolution.config import load
from pipeline_resolution.core.clock import FakeClock
from pipeline_resolution.core.store import InMemoryRequestStore
from pipeline_resolution.framework.errors import InvalidParamsError, ResolutionError
from pipeline_resolution.framework.reconciler import Reconciler
from pipeline_resolution.framework.registry import ResolverRegistry
from pipeline_resolution.framework.resolver import Resolver, StaticResolvedResource

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping
    from pathlib import Path

    from pipeline_resolution.config.schema import Config
    from pipeline_resolution.framework.context import ResolutionContext

_RESOLUTION_ENV_VARS = (
    "RESOLUTION_STORE_PATH",
    "RESOLUTION_MAX_RESOLUTION_DURATION",
    "RESOLUTION_DEFAULT_RESOLUTION_TIMEOUT",
    "RESOLUTION_RETRY_INTERVAL",
    "RESOLUTION_WORKERS",
    "RESOLUTION_WORK_DIR",
    "RESOLUTION_LOG",
)

FAKE_RESOLVER_TYPE = "fake"
FAKE_PARAM = "fake-key"
FAKE_CONFIG_NAME = "fake-resolver-config"

START = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def _clean_resolution_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove RESOLUTION_* env vars so unit tests don't leak host config."""
    for var in _RESOLUTION_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., Config]:
    """Factory fixture: write YAML + optional .env, return loaded Config."""

    def _make(yaml_str: str, *, dotenv: str | None = None) -> Config:
        (tmp_path / "config.yaml").write_text(yaml_str)
        if dotenv is not None:
            (tmp_path / ".env").write_text(dotenv)
        return load(tmp_path / "config.yaml")

    return _make


# --- fake resolver -------------------------------------------------------------


@dataclass
class _FakeResource:
    content: str = ""
    annotations: dict[str, str] = field(default_factory=dict)
    error: Exception | None = None
    wait_for: float = 0.0


class FakeResolver(Resolver):
    """Resolves ``fake-key`` values from an in-memory table."""

    name: ClassVar[str] = "Fake"
    config_name: ClassVar[str] = FAKE_CONFIG_NAME

    def __init__(self) -> None:
        self.resources: dict[str, _FakeResource] = {}
        self.calls = 0
        self.initialized = False

    def add(
        self,
        value: str,
        *,
        content: str = "",
        annotations: dict[str, str] | None = None,
        error: Exception | None = None,
        wait_for: float = 0.0,
    ) -> None:
        self.resources[value] = _FakeResource(content, dict(annotations or {}), error, wait_for)

    def initialize(self, ctx: ResolutionContext) -> None:
        self.initialized = True

    def get_selector(self, ctx: ResolutionContext) -> dict[str, str]:
        return {LABEL_KEY_RESOLVER_TYPE: FAKE_RESOLVER_TYPE}

    def validate_params(self, ctx: ResolutionContext, params: Mapping[str, str]) -> None:
        if not params.get(FAKE_PARAM):
            raise InvalidParamsError(f"missing {FAKE_PARAM}")

    def resolve(self, ctx: ResolutionContext, params: Mapping[str, str]) -> StaticResolvedResource:
        self.calls += 1
        value = params[FAKE_PARAM]
        res = self.resources.get(value)
        if res is None:
            raise ResolutionError(f"couldn't find resource for param value {value}")
        if res.wait_for and ctx.wait(res.wait_for):
            ctx.check()
        if res.error is not None:
            raise res.error
        return StaticResolvedResource(res.content.encode(), res.annotations)


@pytest.fixture
def fake_resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def registry(fake_resolver: FakeResolver) -> ResolverRegistry:
    reg = ResolverRegistry()
    reg.register(fake_resolver)
    return reg


@pytest.fixture
def store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START)


@pytest.fixture
def make_reconciler(
    store: InMemoryRequestStore, registry: ResolverRegistry, clock: FakeClock
) -> Iterator[Callable[..., Reconciler]]:
    """Factory fixture: reconciler over the in-memory store and fake registry."""
    created: list[Reconciler] = []

    def _make(**kwargs: object) -> Reconciler:
        kwargs.setdefault("store", store)
        kwargs.setdefault("registry", registry)
        kwargs.setdefault("clock", clock)
        reconciler = Reconciler(**kwargs)  # type: ignore[arg-type]
        created.append(reconciler)
        return reconciler

    yield _make
    for reconciler in created:
        reconciler.close()


# --- git repositories ----------------------------------------------------------


def _git(repo_root: Path, *args: str) -> str:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_CONFIG_NOSYSTEM", "1")
    result = subprocess.run(
        [
            "git",
            "-c",
            "user.name=Resolution Test",
            "-c",
            "user.email=resolution-test@example.com",
            "-c",
            "commit.gpgsign=false",
            *args,
        ],
        cwd=repo_root,
        env=env,
        check=False,
        text=True,
        capture_output=True,
    )
    if result.returncode != 0:
        detail = result.stderr.strip() or result.stdout.strip()
        raise RuntimeError(f"git command failed: git {' '.join(args)}: {detail}")
    return result.stdout.strip()


@dataclass(frozen=True)
class _GitCommit:
    path: str
    content: str
    branch: str = "main"


@dataclass
class GitRepo:
    path: Path
    commits: dict[str, list[str]]

    @property
    def url(self) -> str:
        return str(self.path)

    def tip(self, branch: str = "main") -> str:
        return self.commits[branch][-1]


@pytest.fixture
def make_git_repo(tmp_path: Path) -> Callable[[list[tuple[str, ...]]], GitRepo]:
    """Factory fixture: build an on-disk repository from a list of commits.

    Each commit is ``(path, content)`` or ``(path, content, branch)`` and
    writes one file on that branch; new branches fork from the
    current one. The default branch is ``main``, which is checked out again
    at the end so clones see it as ``HEAD``.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    counter = 0

    def _make(commits: list[tuple[str, ...]]) -> GitRepo:
        nonlocal counter
        counter += 1
        root = tmp_path / f"remote-{counter}"
        root.mkdir()
        _git(root, "init", "--quiet")
        _git(root, "symbolic-ref", "HEAD", "refs/heads/main")

        hashes: dict[str, list[str]] = {}
        current = "main"
        for raw in commits:
            commit = _GitCommit(*raw)
            if commit.branch != current:
                if commit.branch in hashes:
                    _git(root, "checkout", "--quiet", commit.branch)
                else:
                    _git(root, "checkout", "--quiet", "-b", commit.branch)
                current = commit.branch
            target = root / commit.path
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(commit.content)
            _git(root, "add", "--", commit.path)
            _git(root, "commit", "--quiet", "-m", f"write {commit.path}")
            hashes.setdefault(commit.branch, []).append(_git(root, "rev-parse", "HEAD"))

        if current != "main" and "main" in hashes:
            _git(root, "checkout", "--quiet", "main")
        return GitRepo(path=root, commits=hashes)

    return _make
