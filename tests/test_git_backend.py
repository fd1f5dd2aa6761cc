"""
Tests for the git CLI backend, run against real repositories.
"""

from pathlib import Path

import pytest

from gitrack.core.git import GitBackend, GitCliBackend, GitError


@pytest.fixture
def backend() -> GitCliBackend:
    return GitCliBackend()


class TestGitError:
    def test_str_includes_stderr(self):
        error = GitError("Git command failed: git push", stderr="fatal: denied")
        assert str(error) == "Git command failed: git push: fatal: denied"

    def test_str_without_stderr(self):
        assert str(GitError("boom")) == "boom"


class TestGitCliBackend:
    def test_satisfies_protocol(self, backend):
        assert isinstance(backend, GitBackend)

    def test_branches_and_refs(self, backend, git_repo: Path, run_git):
        head = run_git(git_repo, "rev-parse", "HEAD")
        assert backend.rev_parse(git_repo, "HEAD") == head
        assert backend.rev_parse(git_repo, "refs/heads/nope") is None

        assert not backend.branch_exists(git_repo, "side")
        backend.create_branch(git_repo, "side", head)
        assert backend.branch_exists(git_repo, "side")

    def test_common_dir(self, backend, git_repo: Path):
        assert backend.common_dir(git_repo) == (git_repo / ".git").resolve()

    def test_root_commit_has_no_parent(self, backend, git_repo: Path, run_git):
        sha = backend.create_root_commit(git_repo, "root")
        assert run_git(git_repo, "rev-list", "--count", sha) == "1"
        assert backend.merge_base(git_repo, sha, "HEAD") is None

    def test_commit_all(self, backend, git_repo: Path):
        assert backend.commit_all(git_repo, "nothing") is None
        assert not backend.has_changes(git_repo)

        (git_repo / "new.txt").write_text("content\n")
        assert backend.has_changes(git_repo)
        sha = backend.commit_all(git_repo, "add new")

        assert sha == backend.rev_parse(git_repo, "HEAD")
        assert backend.show_file(git_repo, "HEAD", "new.txt") == "content\n"
        assert backend.show_file(git_repo, "HEAD", "absent.txt") is None

    def test_ancestry_and_counts(self, backend, git_repo: Path):
        first = backend.rev_parse(git_repo, "HEAD")
        (git_repo / "a.txt").write_text("a\n")
        second = backend.commit_all(git_repo, "a")

        assert backend.is_ancestor(git_repo, first, second)
        assert not backend.is_ancestor(git_repo, second, first)
        assert backend.count_commits(git_repo, first, second) == 1
        assert backend.changed_paths(git_repo, first, second) == {"a.txt"}
        assert backend.changed_paths(git_repo, None, second) == {"README.md", "a.txt"}

    def test_failed_command_raises(self, backend, git_repo: Path):
        with pytest.raises(GitError) as exc_info:
            backend.fast_forward(git_repo, "refs/heads/does-not-exist")
        assert exc_info.value.status != 0
        assert exc_info.value.command[:2] == ["git", "merge"]

    def test_fetch_missing_branch(self, backend, make_clone):
        clone = make_clone("fetcher")
        assert backend.fetch(clone, "origin", "gitrack-sync") is False
        assert not backend.remote_branch_exists(clone, "origin", "gitrack-sync")

    def test_fetch_unknown_remote(self, backend, git_repo: Path):
        with pytest.raises(GitError):
            backend.fetch(git_repo, "origin", "gitrack-sync")
