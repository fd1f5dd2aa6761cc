"""
Tests for SyncWorktreeManager.

Tests cover:
- Validation states (healthy, missing, corrupted) are exclusive
- require_healthy fails fast with repair guidance
- Sync branch layout checks
- Repair from local, remote and new branches
- Repair is idempotent and backs up corrupted worktrees
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gitrack.core.errors import (
    SyncBranchInvalidError,
    WorktreeCorruptedError,
    WorktreeMissingError,
)
from gitrack.core.git import GitCliBackend, GitError
from gitrack.core.layout import backups_path, worktree_path
from gitrack.core.worktree import SyncWorktreeManager, WorktreeStatus


@pytest.fixture
def manager(git_repo: Path) -> SyncWorktreeManager:
    return SyncWorktreeManager(git_repo, GitCliBackend())


class TestValidate:
    def test_missing_before_repair(self, manager: SyncWorktreeManager) -> None:
        health = manager.validate()
        assert health.status is WorktreeStatus.MISSING
        assert health.path == worktree_path(manager.project_root)

    def test_healthy_after_repair(self, manager: SyncWorktreeManager) -> None:
        manager.repair()
        health = manager.validate()
        assert health.status is WorktreeStatus.HEALTHY
        assert health.healthy

    def test_plain_directory_is_corrupted(self, manager: SyncWorktreeManager) -> None:
        worktree_path(manager.project_root).mkdir(parents=True)
        health = manager.validate()
        assert health.status is WorktreeStatus.CORRUPTED
        assert ".git link file is missing" in health.reason

    def test_dangling_gitdir_is_corrupted(self, manager: SyncWorktreeManager, tmp_path) -> None:
        path = worktree_path(manager.project_root)
        path.mkdir(parents=True)
        (path / ".git").write_text(f"gitdir: {tmp_path / 'nowhere'}\n")
        assert manager.validate().status is WorktreeStatus.CORRUPTED

    def test_wrong_branch_is_corrupted(self, manager: SyncWorktreeManager, run_git) -> None:
        manager.repair()
        path = worktree_path(manager.project_root)
        run_git(path, "checkout", "-q", "-b", "elsewhere")

        health = manager.validate()
        assert health.status is WorktreeStatus.CORRUPTED
        assert "refs/heads/elsewhere" in health.reason

    def test_detached_head_is_corrupted(self, manager: SyncWorktreeManager, run_git) -> None:
        manager.repair()
        path = worktree_path(manager.project_root)
        run_git(path, "checkout", "-q", "--detach")
        assert "detached" in manager.validate().reason

    def test_states_are_exclusive(self, manager: SyncWorktreeManager) -> None:
        for setup in (lambda: None, manager.repair):
            setup()
            health = manager.validate()
            flags = [health.status is s for s in WorktreeStatus]
            assert flags.count(True) == 1


class TestRequireHealthy:
    def test_missing(self, manager: SyncWorktreeManager) -> None:
        with pytest.raises(WorktreeMissingError) as exc_info:
            manager.require_healthy()
        assert str(exc_info.value).endswith("Run 'gitrack doctor --fix' to repair.")

    def test_corrupted(self, manager: SyncWorktreeManager) -> None:
        worktree_path(manager.project_root).mkdir(parents=True)
        with pytest.raises(WorktreeCorruptedError) as exc_info:
            manager.require_healthy()
        assert str(exc_info.value).startswith("Sync worktree is corrupted:")

    def test_healthy(self, manager: SyncWorktreeManager) -> None:
        manager.repair()
        assert manager.require_healthy() == worktree_path(manager.project_root)


class TestCheckSyncBranch:
    def test_valid_layout(self, manager: SyncWorktreeManager) -> None:
        manager.repair()
        assert manager.check_sync_branch() == 1

    def test_missing_meta(self, manager: SyncWorktreeManager) -> None:
        manager.repair()
        (worktree_path(manager.project_root) / "meta.yml").unlink()
        with pytest.raises(SyncBranchInvalidError, match="meta.yml is missing"):
            manager.check_sync_branch()

    def test_unsupported_schema(self, manager: SyncWorktreeManager) -> None:
        manager.repair()
        (worktree_path(manager.project_root) / "meta.yml").write_text("schema_version: 99\n")
        with pytest.raises(SyncBranchInvalidError, match="unsupported schema_version 99"):
            manager.check_sync_branch()


class TestRepair:
    def test_creates_new_branch_with_layout(self, manager: SyncWorktreeManager, run_git) -> None:
        result = manager.repair()

        assert result.action == "created"
        assert result.source == "new"
        assert "meta.yml" in result.layout_created
        path = worktree_path(manager.project_root)
        assert (path / "mappings" / "ids.yml").read_text() == "{}\n"
        assert run_git(path, "status", "--porcelain") == ""
        gitignore = (manager.project_root / ".gitrack" / ".gitignore").read_text()
        assert "data-sync-worktree/" in gitignore

    def test_idempotent(self, manager: SyncWorktreeManager, run_git) -> None:
        manager.repair()
        path = worktree_path(manager.project_root)
        head = run_git(path, "rev-parse", "HEAD")

        result = manager.repair()

        assert result.action == "none"
        assert not result.changed
        assert run_git(path, "rev-parse", "HEAD") == head

    def test_recreates_deleted_worktree_from_local_branch(
        self, manager: SyncWorktreeManager, run_git
    ) -> None:
        manager.repair()
        path = worktree_path(manager.project_root)
        head = run_git(path, "rev-parse", "HEAD")
        run_git(manager.project_root, "worktree", "remove", "--force", str(path))

        result = manager.repair()

        assert result.action == "created"
        assert result.source == "local"
        assert run_git(path, "rev-parse", "HEAD") == head

    def test_backs_up_corrupted_worktree(self, manager: SyncWorktreeManager) -> None:
        path = worktree_path(manager.project_root)
        path.mkdir(parents=True)
        (path / "stray.txt").write_text("keep me")

        result = manager.repair()

        assert result.action == "recreated"
        assert result.backup_path.parent == backups_path(manager.project_root)
        assert (result.backup_path / "stray.txt").read_text() == "keep me"
        assert manager.validate().healthy

    def test_uses_remote_branch(self, two_clones, run_git) -> None:
        alice, bob = two_clones
        alice_head = run_git(worktree_path(alice), "rev-parse", "HEAD")
        assert run_git(worktree_path(bob), "rev-parse", "HEAD") == alice_head


class TestRepairWithMockBackend:
    def test_fetch_failure_falls_back_to_new_branch(self, tmp_path: Path) -> None:
        backend = MagicMock()
        backend.branch_exists.return_value = False
        backend.fetch.side_effect = GitError("fetch failed", stderr="Could not resolve host")
        backend.remote_branch_exists.return_value = False
        backend.create_root_commit.return_value = "a" * 40

        def fake_worktree_add(repo: Path, path: Path, branch: str) -> None:
            path.mkdir(parents=True)
            (path / "meta.yml").write_text("schema_version: 1\n")

        backend.worktree_add.side_effect = fake_worktree_add

        manager = SyncWorktreeManager(tmp_path, backend)
        result = manager.repair()

        assert result.source == "new"
        backend.create_branch.assert_called_once_with(tmp_path, "gitrack-sync", "a" * 40)
        backend.commit_all.assert_not_called()

    def test_remote_branch_is_tracked(self, tmp_path: Path) -> None:
        backend = MagicMock()
        backend.branch_exists.return_value = False
        backend.fetch.return_value = True
        backend.remote_branch_exists.return_value = True
        backend.worktree_add.side_effect = lambda repo, path, branch: path.mkdir(parents=True)

        manager = SyncWorktreeManager(tmp_path, backend, branch="issues", remote="upstream")
        result = manager.repair()

        assert result.source == "remote"
        backend.create_branch.assert_called_once_with(
            tmp_path, "issues", "refs/remotes/upstream/issues"
        )
        # Remote branch had no layout yet
        assert "meta.yml" in result.layout_created
        backend.commit_all.assert_called_once()
