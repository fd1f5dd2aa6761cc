"""
Sync worktree manager.

All issue edits happen in a dedicated git worktree with HEAD attached to
the sync branch, so the user's own checkout is never touched. This module
locates that worktree, checks its health and repairs it.

Commands call ``require_healthy()`` and fail fast with repair guidance;
only ``repair()`` (``gitrack doctor --fix``) ever changes anything on disk.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

import yaml

from gitrack.core.errors import (
    SyncBranchInvalidError,
    WorktreeCorruptedError,
    WorktreeMissingError,
)
from gitrack.core.git.backend import GitBackend, GitError
from gitrack.core.layout import (
    META_FILE,
    SCHEMA_VERSION,
    backups_path,
    ensure_gitignore,
    worktree_path,
    write_branch_layout,
)

logger = logging.getLogger(__name__)


class WorktreeStatus(str, Enum):
    """Health of the sync worktree. Exactly one applies at any time."""

    HEALTHY = "healthy"
    MISSING = "missing"
    CORRUPTED = "corrupted"


@dataclass
class WorktreeHealth:
    """
    Result of validating the sync worktree.

    Attributes:
        status: HEALTHY, MISSING or CORRUPTED
        path: Worktree directory that was checked
        reason: Why the worktree is corrupted (None otherwise)
    """

    status: WorktreeStatus
    path: Path
    reason: str | None = None

    @property
    def healthy(self) -> bool:
        return self.status is WorktreeStatus.HEALTHY


@dataclass
class RepairResult:
    """
    Outcome of ``SyncWorktreeManager.repair()``.

    Attributes:
        action: "none" if the worktree was already healthy, "created" or "recreated"
        path: Worktree directory
        source: Where the branch came from: "local", "remote" or "new"
        backup_path: Where a corrupted directory was moved to
        layout_created: Files added to complete the branch layout
    """

    action: str
    path: Path
    source: str | None = None
    backup_path: Path | None = None
    layout_created: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.action != "none" or bool(self.layout_created)


class SyncWorktreeManager:
    """
    Locate, validate and repair the sync worktree.

    Example:
        >>> manager = SyncWorktreeManager(project_root, GitCliBackend())
        >>> manager.validate().status
        <WorktreeStatus.HEALTHY: 'healthy'>
        >>> path = manager.require_healthy()
    """

    def __init__(
        self,
        project_root: Path,
        backend: GitBackend,
        branch: str = "gitrack-sync",
        remote: str = "origin",
    ) -> None:
        self.project_root = project_root
        self.backend = backend
        self.branch = branch
        self.remote = remote

    @property
    def branch_ref(self) -> str:
        return f"refs/heads/{self.branch}"

    def resolve(self) -> Path:
        """Path where the sync worktree lives (whether or not it exists)."""
        return worktree_path(self.project_root)

    def validate(self, path: Path | None = None) -> WorktreeHealth:
        """
        Check the worktree at ``path`` (default: ``resolve()``).

        The worktree is MISSING exactly when its directory does not exist.
        It is CORRUPTED when the ``.git`` link file is absent or unreadable,
        points at a directory that does not exist or that is not one of
        this repository's worktree registrations, or when HEAD cannot be
        read or is not attached to the sync branch.
        """
        path = path or self.resolve()

        if not path.exists():
            return WorktreeHealth(WorktreeStatus.MISSING, path)

        reason = self._corruption_reason(path)
        if reason is not None:
            logger.debug("Sync worktree at %s is corrupted: %s", path, reason)
            return WorktreeHealth(WorktreeStatus.CORRUPTED, path, reason)

        return WorktreeHealth(WorktreeStatus.HEALTHY, path)

    def _corruption_reason(self, path: Path) -> str | None:
        if not path.is_dir():
            return f"{path} is not a directory"

        link = path / ".git"
        if not link.exists():
            return ".git link file is missing"
        if not link.is_file():
            return ".git is not a worktree link file"

        try:
            content = link.read_text().strip()
        except OSError as e:
            return f".git link file cannot be read ({e})"
        if not content.startswith("gitdir:"):
            return ".git link file has no gitdir pointer"

        gitdir = Path(content[len("gitdir:") :].strip())
        if not gitdir.is_absolute():
            gitdir = path / gitdir
        gitdir = gitdir.resolve()
        if not gitdir.is_dir():
            return f"gitdir {gitdir} does not exist"

        try:
            common = self.backend.common_dir(self.project_root)
        except GitError as e:
            return f"cannot locate the parent repository ({e})"
        if gitdir.parent != (common / "worktrees").resolve():
            return f"gitdir {gitdir} is not registered in {common / 'worktrees'}"

        try:
            head = self.backend.symbolic_head(path)
        except GitError as e:
            return f"HEAD cannot be read ({e})"
        if head is None:
            return f"HEAD is detached, expected {self.branch_ref}"
        if head != self.branch_ref:
            return f"HEAD is on {head}, expected {self.branch_ref}"

        return None

    def require_healthy(self) -> Path:
        """
        Return the worktree path, failing fast if it is not healthy.

        Raises:
            WorktreeMissingError: If the directory does not exist.
            WorktreeCorruptedError: If it exists but is not usable.
        """
        health = self.validate()
        if health.status is WorktreeStatus.MISSING:
            raise WorktreeMissingError(health.path)
        if health.status is WorktreeStatus.CORRUPTED:
            raise WorktreeCorruptedError(health.reason or "unknown problem")
        return health.path

    def check_sync_branch(self, path: Path | None = None) -> int:
        """
        Check the sync branch layout in a healthy worktree.

        Returns:
            The schema version found in meta.yml

        Raises:
            SyncBranchInvalidError: If meta.yml is missing, malformed or of
                an unsupported schema version.
        """
        path = path or self.resolve()
        meta_path = path / META_FILE
        if not meta_path.exists():
            raise SyncBranchInvalidError(self.branch, f"{META_FILE} is missing")

        try:
            meta = yaml.safe_load(meta_path.read_text())
        except yaml.YAMLError as e:
            raise SyncBranchInvalidError(self.branch, f"{META_FILE} is not valid YAML") from e

        version = meta.get("schema_version") if isinstance(meta, dict) else None
        if not isinstance(version, int):
            raise SyncBranchInvalidError(self.branch, f"{META_FILE} has no schema_version")
        if version != SCHEMA_VERSION:
            raise SyncBranchInvalidError(
                self.branch,
                f"unsupported schema_version {version} (expected {SCHEMA_VERSION})",
            )
        return version

    def repair(self) -> RepairResult:
        """
        Bring the worktree back to a healthy state. Idempotent.

        A healthy worktree with a valid branch is left untouched. Otherwise
        any existing directory is moved to ``.gitrack/backups/``, stale
        registrations are pruned and the worktree is re-created from the
        local sync branch, else the remote one, else a new empty root
        commit. A branch without ``meta.yml`` gets the standard layout
        committed.

        Raises:
            GitError: If git cannot create the worktree.
            SyncBranchInvalidError: If the branch uses an unsupported schema.
        """
        ensure_gitignore(self.project_root)
        health = self.validate()

        if health.healthy:
            result = RepairResult(action="none", path=health.path)
        else:
            result = self._recreate(health)

        if not (result.path / META_FILE).exists():
            result.layout_created = write_branch_layout(result.path)
            self.backend.commit_all(result.path, "Initialize gitrack sync branch")
            logger.info("Wrote sync branch layout: %s", ", ".join(result.layout_created))

        self.check_sync_branch(result.path)
        return result

    def _recreate(self, health: WorktreeHealth) -> RepairResult:
        path = health.path
        backup: Path | None = None

        if health.status is WorktreeStatus.CORRUPTED:
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
            backup = backups_path(self.project_root) / f"worktree-{stamp}"
            backup.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(path), str(backup))
            logger.warning("Moved corrupted sync worktree to %s (%s)", backup, health.reason)

        self.backend.worktree_prune(self.project_root)
        source = self._ensure_branch()

        path.parent.mkdir(parents=True, exist_ok=True)
        self.backend.worktree_add(self.project_root, path, self.branch)
        logger.info("Created sync worktree at %s from %s branch", path, source)

        return RepairResult(
            action="recreated" if backup is not None else "created",
            path=path,
            source=source,
            backup_path=backup,
        )

    def _ensure_branch(self) -> str:
        if self.backend.branch_exists(self.project_root, self.branch):
            return "local"

        try:
            self.backend.fetch(self.project_root, self.remote, self.branch)
        except GitError as e:
            logger.warning("Could not fetch %s from %s: %s", self.branch, self.remote, e)

        if self.backend.remote_branch_exists(self.project_root, self.remote, self.branch):
            self.backend.create_branch(
                self.project_root, self.branch, f"refs/remotes/{self.remote}/{self.branch}"
            )
            return "remote"

        root = self.backend.create_root_commit(self.project_root, "Initialize gitrack sync branch")
        self.backend.create_branch(self.project_root, self.branch, root)
        return "new"
