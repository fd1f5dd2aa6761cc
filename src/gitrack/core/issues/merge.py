"""
Field-level three-way merge for issues.

Each field follows a fixed strategy:

    immutable  type, id, created_at, created_by (base value kept)
    max        version, updated_at
    union      labels, dependencies (deduplicated, order preserved)
    lww        everything else, decided by updated_at (ties go to local)

A field changed on only one side takes that side's value. A field changed
on both sides applies its strategy; two different edits to an lww field
are a conflict: one value is kept, the other is reported so the caller
can preserve the losing version in the attic.

Without a merge base (the same issue appeared independently on both
sides) every differing field is treated as changed on both sides.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from gitrack.core.issues.models import Issue

Side = Literal["local", "remote"]


class MergeStrategy(str, Enum):
    """How a field is reconciled when both sides changed it."""

    IMMUTABLE = "immutable"
    MAX = "max"
    UNION = "union"
    LWW = "lww"


FIELD_STRATEGIES: dict[str, MergeStrategy] = {
    "type": MergeStrategy.IMMUTABLE,
    "id": MergeStrategy.IMMUTABLE,
    "created_at": MergeStrategy.IMMUTABLE,
    "created_by": MergeStrategy.IMMUTABLE,
    "version": MergeStrategy.MAX,
    "updated_at": MergeStrategy.MAX,
    "labels": MergeStrategy.UNION,
    "dependencies": MergeStrategy.UNION,
}

# Bookkeeping fields that never produce conflicts on their own
_UNTRACKED = {"version", "updated_at", "needs_review"}


def strategy_for(field_name: str) -> MergeStrategy:
    return FIELD_STRATEGIES.get(field_name, MergeStrategy.LWW)


@dataclass
class FieldConflict:
    """One lww field edited differently on both sides."""

    field: str
    winner_value: Any
    lost_value: Any


@dataclass
class IssueMergeResult:
    """Outcome of merging two versions of one issue."""

    merged: Issue
    winner_source: Side
    loser: Issue
    conflicts: list[FieldConflict] = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    @property
    def loser_source(self) -> Side:
        return "remote" if self.winner_source == "local" else "local"


def _union(first: list[Any], second: list[Any]) -> list[Any]:
    result: list[Any] = []
    for item in [*first, *second]:
        if item not in result:
            result.append(item)
    return result


def merge_issues(base: Issue | None, local: Issue, remote: Issue) -> IssueMergeResult:
    """
    Merge two versions of the same issue.

    Args:
        base: Common ancestor version, or None when there is none
        local: Version on the local sync branch
        remote: Version on the remote sync branch

    Returns:
        IssueMergeResult with the merged issue, the side whose lww values
        won, the full losing version and any field conflicts

    Example:
        >>> result = merge_issues(base, local, remote)
        >>> result.merged.title
        'Fix login flow'
    """
    remote_newer = remote.updated_at > local.updated_at
    winner_source: Side = "remote" if remote_newer else "local"
    loser = local if remote_newer else remote

    if local == remote:
        return IssueMergeResult(merged=local.model_copy(), winner_source="local", loser=remote)

    base_values = base.model_dump() if base is not None else None
    local_values = local.model_dump()
    remote_values = remote.model_dump()
    winner_values, loser_values = (
        (remote_values, local_values) if remote_newer else (local_values, remote_values)
    )

    merged_values: dict[str, Any] = {}
    conflicts: list[FieldConflict] = []

    for name in Issue.model_fields:
        lval = local_values[name]
        rval = remote_values[name]

        if lval == rval:
            merged_values[name] = lval
            continue

        if base_values is not None:
            bval = base_values[name]
            if lval == bval:
                merged_values[name] = rval
                continue
            if rval == bval:
                merged_values[name] = lval
                continue

        strategy = strategy_for(name)
        if strategy is MergeStrategy.IMMUTABLE:
            if base_values is not None:
                merged_values[name] = base_values[name]
            elif name == "created_at":
                merged_values[name] = min(lval, rval)
            else:
                merged_values[name] = lval
        elif strategy is MergeStrategy.MAX:
            merged_values[name] = max(lval, rval)
        elif strategy is MergeStrategy.UNION:
            merged_values[name] = _union(lval, rval)
        else:
            kept = winner_values[name]
            lost = loser_values[name]
            merged_values[name] = kept
            if name not in _UNTRACKED:
                conflicts.append(FieldConflict(field=name, winner_value=kept, lost_value=lost))

    merged = Issue.model_validate(merged_values)
    merged.version = max(local.version, remote.version) + 1
    merged.updated_at = max(local.updated_at, remote.updated_at)
    if conflicts:
        merged.needs_review = True

    return IssueMergeResult(
        merged=merged,
        winner_source=winner_source,
        loser=loser,
        conflicts=conflicts,
    )
