"""
Pytest configuration and shared fixtures.

Provides real git repositories (plain repos, bare remotes and clones of
them) with gitrack initialized, and keeps tests isolated from the user's
own gitrack configuration.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest

from gitrack.core.config import write_project_config
from gitrack.core.context import CommandContext
from gitrack.core.git import GitCliBackend
from gitrack.core.sync.protocol import SyncProtocol
from gitrack.core.worktree import SyncWorktreeManager


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        check=True,
        text=True,
    )
    return result.stdout.strip()


def _configure_user(repo: Path) -> None:
    _git(repo, "config", "user.email", "test@example.com")
    _git(repo, "config", "user.name", "Test User")


# ==============================================================================
# Environment Isolation
# ==============================================================================


@pytest.fixture(autouse=True)
def isolate_config(tmp_path_factory, monkeypatch):
    """Point XDG_CONFIG_HOME at an empty directory and clear GITRACK_* overrides."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path_factory.mktemp("xdg")))
    for name in ("GITRACK_ID_PREFIX", "GITRACK_SYNC_BRANCH", "GITRACK_SYNC_REMOTE"):
        monkeypatch.delenv(name, raising=False)


# ==============================================================================
# Git Fixtures
# ==============================================================================


@pytest.fixture
def run_git() -> Callable[..., str]:
    """Run a git command in a directory and return its stripped stdout."""
    return _git


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with an initial commit."""
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init")
    _configure_user(repo)

    (repo / "README.md").write_text("# Test Repo\n")
    _git(repo, "add", "README.md")
    _git(repo, "commit", "-m", "Initial commit")
    return repo


@pytest.fixture
def remote_repo(tmp_path: Path) -> Path:
    """Create a bare repository holding one commit on the default branch."""
    remote = tmp_path / "remote.git"
    _git(tmp_path, "init", "--bare", str(remote))

    seed = tmp_path / "seed"
    seed.mkdir()
    _git(seed, "init")
    _configure_user(seed)
    (seed / "README.md").write_text("# Shared Repo\n")
    _git(seed, "add", "README.md")
    _git(seed, "commit", "-m", "Initial commit")
    _git(seed, "push", str(remote), "HEAD")
    return remote


@pytest.fixture
def make_clone(tmp_path: Path, remote_repo: Path) -> Callable[[str], Path]:
    """Factory cloning ``remote_repo`` into ``tmp_path/<name>``."""

    def _clone(name: str) -> Path:
        path = tmp_path / name
        _git(tmp_path, "clone", "-q", str(remote_repo), str(path))
        _configure_user(path)
        return path

    return _clone


# ==============================================================================
# Gitrack Fixtures
# ==============================================================================


@pytest.fixture
def init_gitrack() -> Callable[..., CommandContext]:
    """Factory initializing gitrack in a repository and returning its context."""

    def _init(root: Path, prefix: str = "test") -> CommandContext:
        write_project_config(root, {"display": {"id_prefix": prefix}})
        SyncWorktreeManager(root, GitCliBackend()).repair()
        return CommandContext.load(root)

    return _init


@pytest.fixture
def project(git_repo: Path, init_gitrack) -> CommandContext:
    """A git repository with gitrack initialized and no remote."""
    return init_gitrack(git_repo)


@pytest.fixture
def protocol_for() -> Callable[[CommandContext], SyncProtocol]:
    """Build a SyncProtocol from a command context."""

    def _protocol(ctx: CommandContext) -> SyncProtocol:
        return SyncProtocol(ctx.project_root, ctx.backend, ctx.worktree_manager, ctx.config)

    return _protocol


@pytest.fixture
def two_clones(make_clone, init_gitrack, protocol_for) -> tuple[Path, Path]:
    """
    Two clones of one remote sharing a published sync branch.

    The first clone creates and pushes the sync branch; the second one
    picks it up from the remote during init.
    """
    alice = make_clone("alice")
    result = protocol_for(init_gitrack(alice)).sync()
    assert result.success, result.error

    bob = make_clone("bob")
    init_gitrack(bob)
    return alice, bob
