"""
Data models for the sync protocol.

Defines Pydantic models for sync phases, failure records, persisted sync
state and the result of one sync run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class SyncPhase(str, Enum):
    """
    Phase of one sync cycle.

    IDLE -> FETCHING -> MERGING -> (CONFLICT) -> PUSHING -> DONE, where
    FETCHING, MERGING and PUSHING may end in FAILED instead.
    """

    IDLE = "idle"
    FETCHING = "fetching"
    MERGING = "merging"
    CONFLICT = "conflict"
    PUSHING = "pushing"
    DONE = "done"
    FAILED = "failed"


class SyncErrorKind(str, Enum):
    """Classification of a sync failure."""

    PERMANENT = "permanent"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class Recovery(str, Enum):
    """What the user should do after a failed sync."""

    PERSIST = "persist"
    RETRY = "retry"
    PERSIST_OR_RETRY = "persist_or_retry"

    @classmethod
    def for_kind(cls, kind: SyncErrorKind) -> Recovery:
        return {
            SyncErrorKind.PERMANENT: cls.PERSIST,
            SyncErrorKind.TRANSIENT: cls.RETRY,
            SyncErrorKind.UNKNOWN: cls.PERSIST_OR_RETRY,
        }[kind]


class SyncFailure(BaseModel):
    """Durable record of the last failed sync."""

    phase: SyncPhase = Field(description="Phase the cycle was in when it failed")
    kind: SyncErrorKind = Field(description="Classifier verdict")
    message: str = Field(description="Error text including git's stderr")
    at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the failure happened",
    )
    unpushed_commits: int = Field(
        default=0,
        description="Local sync branch commits not on the remote",
    )
    outbox_path: str | None = Field(
        default=None,
        description="Where unpushed changes were saved, if they were",
    )


class SyncState(BaseModel):
    """
    Persistent sync state stored in `.gitrack/state/sync-state.json`.

    Example:
        >>> state = SyncState(branch="gitrack-sync", remote="origin")
        >>> state.mark_pushed("abc123")
        >>> state.last_push_sha
        'abc123'
    """

    branch: str = Field(default="gitrack-sync", description="Name of the sync branch")
    remote: str = Field(default="origin", description="Remote synced with")

    last_sync_at: datetime | None = Field(
        default=None,
        description="Timestamp of the last successful sync",
    )
    last_push_sha: str | None = Field(
        default=None,
        description="SHA the remote branch pointed to after the last successful sync",
    )
    last_push_at: datetime | None = Field(
        default=None,
        description="Timestamp of the last successful push",
    )
    last_failure: SyncFailure | None = Field(
        default=None,
        description="Most recent failure; cleared by the next success",
    )

    def mark_pushed(self, sha: str, pushed: bool = True) -> None:
        """Update state after a successful sync."""
        now = datetime.now(timezone.utc)
        self.last_sync_at = now
        self.last_push_sha = sha
        if pushed:
            self.last_push_at = now
        self.last_failure = None

    def mark_failed(self, failure: SyncFailure) -> None:
        self.last_failure = failure


class SyncConflict(BaseModel):
    """
    A field-level conflict found while merging an issue.

    The winning value is in the merged issue; the losing version was
    written to the attic.
    """

    issue_id: str = Field(description="Internal ID of the conflicting issue")
    fields: list[str] = Field(default_factory=list, description="Fields edited on both sides")
    winner_source: str = Field(description="Which side's values were kept (local or remote)")
    attic_path: str | None = Field(
        default=None,
        description="Attic entry holding the losing version, relative to the worktree",
    )


class SyncResult(BaseModel):
    """
    Result of one sync run.

    Provides detailed feedback about what happened, or why it failed and
    how to recover.
    """

    success: bool = Field(description="Whether local and remote now agree")
    phase: SyncPhase = Field(default=SyncPhase.IDLE, description="Final phase")

    commit_sha: str | None = Field(
        default=None,
        description="Sync branch head after the run",
    )
    message: str = Field(default="", description="Human-readable result message")

    committed_local: bool = Field(
        default=False,
        description="Whether pending worktree edits were committed",
    )
    fast_forwarded: bool = Field(default=False, description="Remote changes applied by fast-forward")
    merged: bool = Field(default=False, description="A merge commit was created")
    pushed: bool = Field(default=False, description="Local commits were pushed")
    push_attempts: int = Field(default=0, description="Number of push attempts")

    issues_updated: int = Field(default=0, description="Issue files taken from or merged with remote")
    conflicts: list[SyncConflict] = Field(
        default_factory=list,
        description="Conflicts preserved in the attic",
    )
    renames: dict[str, str] = Field(
        default_factory=dict,
        description="Short codes that changed during the mapping merge (old -> new)",
    )

    # Failure details
    error_kind: SyncErrorKind | None = Field(default=None)
    recovery: Recovery | None = Field(default=None)
    error: str | None = Field(default=None, description="Error text including stderr")
    outbox_path: str | None = Field(default=None, description="Where changes were saved")
    outbox_imported: int = Field(default=0, description="Outbox issues merged into this sync")

    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)

    @property
    def duration_seconds(self) -> float | None:
        """Calculate operation duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def summary(self) -> str:
        """Generate a human-readable summary of the result."""
        if not self.success:
            kind = self.error_kind.value if self.error_kind else "unknown"
            return f"sync failed during {self.phase.value} ({kind}): {self.error or self.message}"

        parts = ["sync succeeded"]
        if self.commit_sha:
            parts.append(f"at {self.commit_sha[:8]}")
        if self.issues_updated:
            parts.append(f"{self.issues_updated} issues updated")
        if self.conflicts:
            parts.append(f"{len(self.conflicts)} conflicts preserved in attic")
        if self.pushed:
            parts.append("pushed")
        if self.message:
            parts.append(self.message)
        return ", ".join(parts)
