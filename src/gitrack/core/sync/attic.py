"""
The attic: where losing versions of conflicting edits are kept.

Nothing a merge discards is lost. When both sides changed the same issue
field, the merged issue keeps one value and the attic receives an entry
with every conflicting field (kept and lost value) plus the complete
losing version of the issue file:

    attic/conflicts/<internal-id>/<timestamp>-<suffix>.yml

Non-issue files that diverged keep the local copy; the remote copy goes
to ``attic/files/``.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_core import to_jsonable_python

from gitrack.core.issues.merge import IssueMergeResult
from gitrack.core.issues.parser import serialize_issue

logger = logging.getLogger(__name__)

ATTIC_DIR = "attic"
CONFLICTS_DIR = f"{ATTIC_DIR}/conflicts"
FILES_DIR = f"{ATTIC_DIR}/files"


class AtticField(BaseModel):
    """One conflicting field: the value kept and the value set aside."""

    field: str
    winner_value: Any = None
    lost_value: Any = None


class AtticEntry(BaseModel):
    """
    A preserved losing version of an issue.

    Example:
        >>> entry = AtticEntry.from_merge(result)
        >>> entry.loser_source
        'remote'
    """

    issue_id: str = Field(description="Internal ID of the issue")
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    winner_source: str = Field(description="Side whose values were kept")
    loser_source: str = Field(description="Side whose values were set aside")
    lost_version: int = Field(description="Version number of the losing issue")
    fields: list[AtticField] = Field(default_factory=list)
    lost_document: str = Field(description="Complete losing issue file")

    @classmethod
    def from_merge(cls, result: IssueMergeResult) -> AtticEntry:
        return cls(
            issue_id=result.merged.id,
            winner_source=result.winner_source,
            loser_source=result.loser_source,
            lost_version=result.loser.version,
            fields=[
                AtticField(
                    field=c.field,
                    winner_value=to_jsonable_python(c.winner_value),
                    lost_value=to_jsonable_python(c.lost_value),
                )
                for c in result.conflicts
            ],
            lost_document=serialize_issue(result.loser),
        )

    def filename(self) -> str:
        stamp = self.recorded_at.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S")
        millis = f"{self.recorded_at.microsecond // 1000:03d}"
        suffix = hashlib.blake2b(self.lost_document.encode(), digest_size=4).hexdigest()
        return f"{stamp}{millis}Z-{suffix}.yml"


class AtticFile(BaseModel):
    """A diverged non-issue file whose remote copy was set aside."""

    path: str
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "remote"
    lost_content: str


class Attic:
    """Read and write attic entries inside a sync worktree."""

    def __init__(self, worktree: Path) -> None:
        self.worktree = worktree

    def entry_dir(self, issue_id: str) -> Path:
        return self.worktree / CONFLICTS_DIR / issue_id

    def record(self, entry: AtticEntry) -> str:
        """
        Write an entry and return its path relative to the worktree.

        An existing file is never overwritten.
        """
        directory = self.entry_dir(entry.issue_id)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / entry.filename()
        counter = 1
        while path.exists():
            path = directory / f"{path.stem}-{counter}.yml"
            counter += 1
        path.write_text(_dump(entry))
        logger.warning(
            "Conflict on %s (%s): kept %s values, %s version saved to %s",
            entry.issue_id,
            ", ".join(f.field for f in entry.fields),
            entry.winner_source,
            entry.loser_source,
            path.relative_to(self.worktree),
        )
        return path.relative_to(self.worktree).as_posix()

    def record_file(self, path: str, lost_content: str) -> str:
        """Preserve the remote copy of a diverged non-issue file."""
        entry = AtticFile(path=path, lost_content=lost_content)
        stamp = entry.recorded_at.strftime("%Y%m%dT%H%M%S")
        safe = path.replace("/", "__")
        target = self.worktree / FILES_DIR / f"{stamp}-{safe}.yml"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(_dump(entry))
        logger.warning("Diverged file %s: kept local copy, remote saved to attic", path)
        return target.relative_to(self.worktree).as_posix()

    def entries(self, issue_id: str) -> list[AtticEntry]:
        """All attic entries of one issue, oldest first."""
        directory = self.entry_dir(issue_id)
        if not directory.exists():
            return []
        entries = [
            AtticEntry.model_validate(yaml.safe_load(p.read_text()))
            for p in sorted(directory.glob("*.yml"))
        ]
        return sorted(entries, key=lambda e: e.recorded_at)


def _dump(model: BaseModel) -> str:
    return yaml.safe_dump(model.model_dump(mode="json"), sort_keys=False, allow_unicode=True)
