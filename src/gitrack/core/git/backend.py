"""
VCS backend protocol and the GitPython-based implementation.

The worktree manager and the sync protocol only talk to git through the
GitBackend protocol, so both can be exercised against a MagicMock in
tests. GitCliBackend runs real git commands through GitPython's
``Git.execute`` command runner.

Fetch and push are blocking calls without an internal timeout.
``GIT_TERMINAL_PROMPT=0`` keeps git from ever waiting on a credential
prompt, so an unauthenticated remote fails instead of hanging.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from git import Git

logger = logging.getLogger(__name__)

# Environment applied to every git invocation
GIT_ENV = {
    "GIT_TERMINAL_PROMPT": "0",
}


class GitError(Exception):
    """Exception raised when a git command fails."""

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        stderr: str = "",
        status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.command = command
        self.stderr = stderr
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        if self.stderr:
            return f"{base}: {self.stderr}"
        return base


@runtime_checkable
class GitBackend(Protocol):
    """
    Protocol for the git operations gitrack depends on.

    All paths are absolute. ``repo`` is the main checkout (or any path
    inside it); ``worktree`` is the sync worktree directory.
    """

    def common_dir(self, repo: Path) -> Path:
        """Return the repository's common git directory (``.git`` of the main checkout)."""
        ...

    def branch_exists(self, repo: Path, branch: str) -> bool:
        """Check whether ``refs/heads/<branch>`` exists."""
        ...

    def remote_branch_exists(self, repo: Path, remote: str, branch: str) -> bool:
        """Check whether the remote-tracking ref ``refs/remotes/<remote>/<branch>`` exists."""
        ...

    def rev_parse(self, cwd: Path, ref: str) -> str | None:
        """Resolve ``ref`` to a commit SHA, or None if it does not exist."""
        ...

    def symbolic_head(self, worktree: Path) -> str | None:
        """
        Return the ref HEAD is attached to (``refs/heads/...``).

        Returns None when HEAD is detached.

        Raises:
            GitError: If HEAD cannot be read at all.
        """
        ...

    def fetch(self, repo: Path, remote: str, branch: str) -> bool:
        """
        Fetch ``refs/heads/<branch>`` into ``refs/remotes/<remote>/<branch>``.

        Returns:
            True if the branch was fetched, False if the remote has no such branch.

        Raises:
            GitError: On any other failure (network, auth, ...).
        """
        ...

    def push(self, worktree: Path, remote: str, branch: str) -> None:
        """Push the local sync branch to the remote branch of the same name."""
        ...

    def worktree_add(self, repo: Path, path: Path, branch: str) -> None:
        """Check out an existing local ``branch`` into a new worktree at ``path``."""
        ...

    def worktree_prune(self, repo: Path) -> None:
        """Drop registrations of worktrees whose directories no longer exist."""
        ...

    def create_branch(self, repo: Path, branch: str, start: str) -> None:
        """Create (or move) ``refs/heads/<branch>`` to ``start``."""
        ...

    def create_root_commit(self, repo: Path, message: str) -> str:
        """Create a parentless commit with an empty tree and return its SHA."""
        ...

    def merge_base(self, cwd: Path, a: str, b: str) -> str | None:
        """Return the best common ancestor of two commits, or None for unrelated histories."""
        ...

    def is_ancestor(self, cwd: Path, ancestor: str, descendant: str) -> bool:
        """Check whether ``ancestor`` is reachable from ``descendant``."""
        ...

    def changed_paths(self, cwd: Path, base: str | None, ref: str) -> set[str]:
        """Paths that differ between ``base`` and ``ref`` (every path of ``ref`` if base is None)."""
        ...

    def show_file(self, cwd: Path, ref: str, path: str) -> str | None:
        """Content of ``path`` at ``ref``, or None if the file does not exist there."""
        ...

    def has_changes(self, worktree: Path) -> bool:
        """Check whether the worktree has uncommitted changes (tracked or untracked)."""
        ...

    def commit_all(self, worktree: Path, message: str) -> str | None:
        """Stage everything and commit. Returns the new SHA, or None if nothing changed."""
        ...

    def commit_merge(self, worktree: Path, message: str, parents: list[str]) -> str:
        """Stage everything and commit the current tree with explicit ``parents``."""
        ...

    def fast_forward(self, worktree: Path, ref: str) -> None:
        """Fast-forward the checked out branch to ``ref``."""
        ...

    def reset(self, worktree: Path, ref: str, mode: str = "mixed") -> None:
        """Run ``git reset --<mode> <ref>``."""
        ...

    def clean(self, worktree: Path) -> None:
        """Remove untracked files and directories."""
        ...

    def count_commits(self, cwd: Path, base: str | None, ref: str) -> int:
        """Number of commits reachable from ``ref`` but not from ``base``."""
        ...


class GitCliBackend:
    """
    GitBackend implementation running the git CLI through GitPython.

    Example:
        >>> backend = GitCliBackend()
        >>> backend.branch_exists(Path("."), "gitrack-sync")
        False
    """

    def _run(
        self,
        cwd: Path,
        args: list[str],
        *,
        check: bool = True,
        strip: bool = True,
    ) -> tuple[int, str, str]:
        """
        Run a git command and return ``(status, stdout, stderr)``.

        Raises:
            GitError: If the command fails and ``check`` is True.
        """
        cmd = ["git", *args]
        logger.debug("Running git command in %s: %s", cwd, " ".join(cmd))

        runner = Git(str(cwd))
        status, stdout, stderr = runner.execute(
            cmd,
            with_extended_output=True,
            with_exceptions=False,
            strip_newline_in_stdout=strip,
            env=GIT_ENV,
        )
        stdout = _as_text(stdout)
        stderr = _as_text(stderr).strip()

        if check and status != 0:
            raise GitError(
                f"Git command failed: {' '.join(cmd)}",
                command=cmd,
                stderr=stderr,
                status=status,
            )
        return status, stdout, stderr

    def _out(self, cwd: Path, args: list[str]) -> str:
        return self._run(cwd, args)[1].strip()

    def common_dir(self, repo: Path) -> Path:
        raw = Path(self._out(repo, ["rev-parse", "--git-common-dir"]))
        if not raw.is_absolute():
            raw = repo / raw
        return raw.resolve()

    def branch_exists(self, repo: Path, branch: str) -> bool:
        status, _, _ = self._run(
            repo, ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], check=False
        )
        return status == 0

    def remote_branch_exists(self, repo: Path, remote: str, branch: str) -> bool:
        status, _, _ = self._run(
            repo,
            ["show-ref", "--verify", "--quiet", f"refs/remotes/{remote}/{branch}"],
            check=False,
        )
        return status == 0

    def rev_parse(self, cwd: Path, ref: str) -> str | None:
        status, stdout, _ = self._run(
            cwd, ["rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}"], check=False
        )
        if status != 0:
            return None
        return stdout.strip() or None

    def symbolic_head(self, worktree: Path) -> str | None:
        status, stdout, stderr = self._run(worktree, ["symbolic-ref", "-q", "HEAD"], check=False)
        if status == 0:
            return stdout.strip()
        if status == 1 and not stderr:
            # Detached HEAD
            return None
        raise GitError(
            "Cannot read HEAD",
            command=["git", "symbolic-ref", "-q", "HEAD"],
            stderr=stderr,
            status=status,
        )

    def fetch(self, repo: Path, remote: str, branch: str) -> bool:
        refspec = f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"
        try:
            self._run(repo, ["fetch", "--no-tags", remote, refspec])
        except GitError as e:
            if "couldn't find remote ref" in e.stderr.lower():
                logger.debug("Remote %s has no branch %s", remote, branch)
                return False
            raise
        return True

    def push(self, worktree: Path, remote: str, branch: str) -> None:
        self._run(worktree, ["push", remote, f"refs/heads/{branch}:refs/heads/{branch}"])

    def worktree_add(self, repo: Path, path: Path, branch: str) -> None:
        self._run(repo, ["worktree", "add", str(path), branch])

    def worktree_prune(self, repo: Path) -> None:
        self._run(repo, ["worktree", "prune"])

    def create_branch(self, repo: Path, branch: str, start: str) -> None:
        self._run(repo, ["update-ref", f"refs/heads/{branch}", start])

    def create_root_commit(self, repo: Path, message: str) -> str:
        empty_tree = self._out(repo, ["hash-object", "-w", "-t", "tree", "/dev/null"])
        return self._out(repo, ["commit-tree", empty_tree, "-m", message])

    def merge_base(self, cwd: Path, a: str, b: str) -> str | None:
        status, stdout, _ = self._run(cwd, ["merge-base", a, b], check=False)
        if status != 0:
            return None
        return stdout.strip() or None

    def is_ancestor(self, cwd: Path, ancestor: str, descendant: str) -> bool:
        status, _, stderr = self._run(
            cwd, ["merge-base", "--is-ancestor", ancestor, descendant], check=False
        )
        if status in (0, 1):
            return status == 0
        raise GitError(
            "Git command failed: git merge-base --is-ancestor",
            command=["git", "merge-base", "--is-ancestor", ancestor, descendant],
            stderr=stderr,
            status=status,
        )

    def changed_paths(self, cwd: Path, base: str | None, ref: str) -> set[str]:
        if base is None:
            output = self._out(cwd, ["ls-tree", "-r", "--name-only", ref])
        else:
            output = self._out(cwd, ["diff", "--name-only", "--no-renames", base, ref])
        return {line for line in output.splitlines() if line}

    def show_file(self, cwd: Path, ref: str, path: str) -> str | None:
        status, stdout, _ = self._run(cwd, ["show", f"{ref}:{path}"], check=False, strip=False)
        if status != 0:
            return None
        return stdout

    def has_changes(self, worktree: Path) -> bool:
        return bool(self._out(worktree, ["status", "--porcelain", "--untracked-files=all"]))

    def commit_all(self, worktree: Path, message: str) -> str | None:
        self._run(worktree, ["add", "-A"])
        status, _, _ = self._run(worktree, ["diff", "--cached", "--quiet"], check=False)
        if status == 0:
            return None
        self._run(worktree, ["commit", "--no-verify", "-q", "-m", message])
        return self._out(worktree, ["rev-parse", "HEAD"])

    def commit_merge(self, worktree: Path, message: str, parents: list[str]) -> str:
        self._run(worktree, ["add", "-A"])
        tree = self._out(worktree, ["write-tree"])
        args = ["commit-tree", tree]
        for parent in parents:
            args += ["-p", parent]
        sha = self._out(worktree, [*args, "-m", message])
        self._run(worktree, ["update-ref", "HEAD", sha])
        return sha

    def fast_forward(self, worktree: Path, ref: str) -> None:
        self._run(worktree, ["merge", "--ff-only", "-q", ref])

    def reset(self, worktree: Path, ref: str, mode: str = "mixed") -> None:
        self._run(worktree, ["reset", f"--{mode}", "-q", ref])

    def clean(self, worktree: Path) -> None:
        self._run(worktree, ["clean", "-fdq"])

    def count_commits(self, cwd: Path, base: str | None, ref: str) -> int:
        spec = ref if base is None else f"{base}..{ref}"
        return int(self._out(cwd, ["rev-list", "--count", spec]) or 0)


def _as_text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value
