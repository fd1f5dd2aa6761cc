"""
Issue data models for gitrack.

An issue is stored as one Markdown file with YAML front matter on the
sync branch. Front matter carries the structured fields; the body holds
the description, followed by an optional ``## Notes`` section.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gitrack.core.ids.models import is_internal_id


def utc_now() -> datetime:
    """Current time in UTC, truncated to milliseconds."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    """ISO 8601 in UTC with a ``Z`` suffix and millisecond precision."""
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


class IssueStatus(str, Enum):
    """Issue status values."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CLOSED = "closed"


class IssueKind(str, Enum):
    """Issue kind values."""

    BUG = "bug"
    FEATURE = "feature"
    TASK = "task"
    EPIC = "epic"
    CHORE = "chore"


class Dependency(BaseModel):
    """A dependency on another issue, by internal ID."""

    type: Literal["blocks"] = "blocks"
    target: str

    model_config = ConfigDict(frozen=True)

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str) -> str:
        if not is_internal_id(v):
            raise ValueError(f"Dependency target must be an internal ID, got '{v}'")
        return v


class Issue(BaseModel):
    """
    An issue in the gitrack system.

    Example:
        >>> issue = Issue(id="is-01hq3k5v7w8x9y0z1a2b3c4d5e", title="Fix login")
        >>> issue.status
        <IssueStatus.OPEN: 'open'>
    """

    # Identity
    type: Literal["is"] = Field(default="is", description="Entity type marker")
    id: str = Field(..., description="Internal ID (is-<ulid>)")
    version: int = Field(default=1, ge=1, description="Incremented on every change")

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    updated_at: datetime = Field(default_factory=utc_now, description="Last modification time")
    created_by: str | None = Field(default=None, description="Who created the issue")

    # Content
    title: str = Field(..., min_length=1, max_length=500, description="Issue title")
    description: str | None = Field(default=None, description="Markdown description")
    notes: str | None = Field(default=None, description="Working notes")

    # Classification
    kind: IssueKind = Field(default=IssueKind.TASK, description="Issue kind")
    status: IssueStatus = Field(default=IssueStatus.OPEN, description="Current status")
    priority: int = Field(default=2, ge=0, le=4, description="0 (critical) to 4 (backlog)")
    assignee: str | None = Field(default=None, description="Advisory claim")
    labels: list[str] = Field(default_factory=list, description="Free-form labels")
    dependencies: list[Dependency] = Field(default_factory=list, description="Blocking edges")
    parent_id: str | None = Field(default=None, description="Parent issue internal ID")

    # Lifecycle
    closed_at: datetime | None = Field(default=None, description="When the issue was closed")
    close_reason: str | None = Field(default=None, description="Why it was closed")
    needs_review: bool = Field(
        default=False,
        description="Set when a merge kept one of two conflicting values",
    )

    extensions: dict[str, Any] = Field(
        default_factory=dict,
        description="Fields owned by integrations; merged last-write-wins",
    )

    model_config = ConfigDict(
        use_enum_values=False,
        validate_assignment=True,
    )

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        v = v.lower()
        if not is_internal_id(v):
            raise ValueError(f"Invalid internal ID: '{v}'")
        return v

    @field_validator("parent_id")
    @classmethod
    def validate_parent(cls, v: str | None) -> str | None:
        if v is not None and not is_internal_id(v):
            raise ValueError(f"parent_id must be an internal ID, got '{v}'")
        return v

    @field_validator("priority", mode="before")
    @classmethod
    def validate_priority(cls, v: int | str) -> int | str:
        """Accept ``P2`` as well as ``2``."""
        if isinstance(v, str) and v.upper().startswith("P"):
            return v[1:]
        return v

    @property
    def filename(self) -> str:
        return f"{self.id}.md"

    def touch(self) -> None:
        """Record a modification: bump version and updated_at."""
        self.version += 1
        self.updated_at = utc_now()

    def metadata(self) -> dict[str, Any]:
        """Front matter fields in a YAML-friendly form, sorted by key."""
        data = self.model_dump(mode="json", exclude={"description", "notes"})
        data["created_at"] = format_timestamp(self.created_at)
        data["updated_at"] = format_timestamp(self.updated_at)
        if self.closed_at is not None:
            data["closed_at"] = format_timestamp(self.closed_at)
        return dict(sorted(data.items()))
