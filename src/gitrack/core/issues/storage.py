"""
One-file-per-issue storage inside the sync worktree.

Files live at ``issues/<internal-id>.md``. Writes go through a temp file
and an atomic rename so a crash never leaves a half-written issue.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from gitrack.core.errors import NotFoundError
from gitrack.core.ids.models import is_internal_id
from gitrack.core.issues.models import Issue
from gitrack.core.issues.parser import IssueParseError, parse_issue, serialize_issue

logger = logging.getLogger(__name__)

ISSUES_DIR = "issues"


def issue_path(internal_id: str) -> str:
    """Path of an issue file relative to the worktree root."""
    return f"{ISSUES_DIR}/{internal_id}.md"


def internal_id_from_path(path: str) -> str | None:
    """Inverse of issue_path; None for paths that are not issue files."""
    if not path.startswith(f"{ISSUES_DIR}/") or not path.endswith(".md"):
        return None
    candidate = path[len(ISSUES_DIR) + 1 : -len(".md")]
    return candidate if is_internal_id(candidate) else None


class IssueStore:
    """
    Read and write issue files under a data directory.

    Example:
        >>> store = IssueStore(worktree)
        >>> store.write(issue)
        >>> store.read(issue.id).title
        'Fix login'
    """

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = data_dir

    @property
    def issues_dir(self) -> Path:
        return self.data_dir / ISSUES_DIR

    def path_for(self, internal_id: str) -> Path:
        return self.data_dir / issue_path(internal_id)

    def exists(self, internal_id: str) -> bool:
        return self.path_for(internal_id).exists()

    def read(self, internal_id: str) -> Issue:
        """
        Read one issue.

        Raises:
            NotFoundError: If no file exists for the ID.
            IssueParseError: If the file is malformed.
        """
        path = self.path_for(internal_id)
        if not path.exists():
            raise NotFoundError(internal_id)
        try:
            return parse_issue(path.read_text())
        except IssueParseError as e:
            raise IssueParseError(f"{e} ({path})") from e

    def write(self, issue: Issue) -> Path:
        """Write an issue atomically and return its path."""
        path = self.path_for(issue.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(serialize_issue(issue))
            temp_path.replace(path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise
        logger.debug("Wrote issue %s", issue.id)
        return path

    def delete(self, internal_id: str) -> None:
        """
        Remove an issue file.

        Raises:
            NotFoundError: If no file exists for the ID.
        """
        path = self.path_for(internal_id)
        if not path.exists():
            raise NotFoundError(internal_id)
        path.unlink()

    def ids(self) -> list[str]:
        """Internal IDs of all stored issues, sorted (and so by creation time)."""
        if not self.issues_dir.exists():
            return []
        return sorted(
            p.stem for p in self.issues_dir.glob("*.md") if is_internal_id(p.stem)
        )

    def list_issues(self) -> Iterator[Issue]:
        """Yield every readable issue; malformed files are logged and skipped."""
        for internal_id in self.ids():
            try:
                yield self.read(internal_id)
            except IssueParseError as e:
                logger.warning("Skipping malformed issue file %s: %s", internal_id, e)
