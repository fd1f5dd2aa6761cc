"""
Issue operations used by the CLI.

Each operation resolves identifiers through the IdMapper, changes exactly
one issue file in the sync worktree, flushes the mapping table and
commits the change on the sync branch locally. Nothing is pushed;
that is the job of ``gitrack sync``.
"""

from __future__ import annotations

import getpass
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gitrack.core.errors import AtticError
from gitrack.core.ids.models import InternalId
from gitrack.core.issues.models import Dependency, Issue, IssueKind, IssueStatus, utc_now
from gitrack.core.issues.storage import IssueStore
from gitrack.core.sync.attic import Attic

if TYPE_CHECKING:
    from gitrack.core.context import CommandContext

logger = logging.getLogger(__name__)


@dataclass
class IssueChange:
    """Field updates requested by ``gitrack update``; None means unchanged."""

    title: str | None = None
    description: str | None = None
    notes: str | None = None
    kind: IssueKind | None = None
    status: IssueStatus | None = None
    priority: int | None = None
    assignee: str | None = None
    parent: str | None = None
    close_reason: str | None = None
    add_labels: tuple[str, ...] = ()
    remove_labels: tuple[str, ...] = ()
    add_blocks: tuple[str, ...] = ()
    # Raw field values, e.g. from the attic, validated onto the issue
    restore_fields: dict[str, Any] = field(default_factory=dict)


def _commit(ctx: CommandContext, message: str) -> str | None:
    ctx.id_mapper.flush()
    sha = ctx.backend.commit_all(ctx.worktree, message)
    if sha:
        logger.debug("Committed %s as %s", message, sha[:8])
    return sha


def _current_user() -> str | None:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return None


def create_issue(
    ctx: CommandContext,
    title: str,
    *,
    kind: IssueKind = IssueKind.TASK,
    priority: int = 2,
    description: str | None = None,
    labels: list[str] | None = None,
    assignee: str | None = None,
    parent: str | None = None,
) -> Issue:
    """
    Create a new issue and give it a short code.

    Raises:
        NotFoundError, AmbiguousIdError: If ``parent`` cannot be resolved.
        WorktreeMissingError, WorktreeCorruptedError: If the worktree is unhealthy.
    """
    store = IssueStore(ctx.worktree)
    parent_id = ctx.id_mapper.resolve_to_internal_id(parent) if parent else None

    issue = Issue(
        id=str(InternalId.new()),
        title=title,
        kind=kind,
        priority=priority,
        description=description,
        labels=labels or [],
        assignee=assignee,
        parent_id=parent_id,
        created_by=_current_user(),
    )
    ctx.id_mapper.mint(issue.id)
    store.write(issue)
    display = ctx.id_mapper.format_display_id(issue.id)
    _commit(ctx, f"gitrack: create {display}")
    logger.info("Created %s", ctx.id_mapper.format_debug_id(issue.id))
    return issue


def update_issue(
    ctx: CommandContext,
    ref: str,
    change: IssueChange,
    message: str = "update",
) -> Issue:
    """
    Apply ``change`` to the issue ``ref`` resolves to.

    A change that leaves every field as it was is not written or committed,
    so it cannot win a later last-write-wins merge.

    Raises:
        NotFoundError, AmbiguousIdError: If an identifier cannot be resolved.
    """
    store = IssueStore(ctx.worktree)
    internal_id = ctx.id_mapper.resolve_to_internal_id(ref)
    original = store.read(internal_id)
    issue = original.model_copy(deep=True)

    for name in ("title", "description", "notes", "kind", "priority", "assignee", "close_reason"):
        value = getattr(change, name)
        if value is not None:
            setattr(issue, name, value)

    if change.status is not None and change.status != issue.status:
        issue.status = change.status
        issue.closed_at = utc_now() if change.status is IssueStatus.CLOSED else None

    if change.parent is not None:
        issue.parent_id = ctx.id_mapper.resolve_to_internal_id(change.parent)

    labels = [label for label in issue.labels if label not in change.remove_labels]
    labels += [label for label in change.add_labels if label not in labels]
    issue.labels = labels

    for target in change.add_blocks:
        dep = Dependency(target=ctx.id_mapper.resolve_to_internal_id(target))
        if dep not in issue.dependencies:
            issue.dependencies = [*issue.dependencies, dep]

    if change.restore_fields:
        issue = Issue.model_validate({**issue.model_dump(), **change.restore_fields})

    if issue == original:
        logger.info("No changes to %s", ctx.id_mapper.format_display_id(issue.id))
        return original

    issue.touch()
    store.write(issue)
    _commit(ctx, f"gitrack: {message} {ctx.id_mapper.format_display_id(issue.id)}")
    return issue


def delete_issue(ctx: CommandContext, ref: str) -> str:
    """
    Delete an issue file and retire its short codes.

    Returns:
        The internal ID of the deleted issue
    """
    store = IssueStore(ctx.worktree)
    internal_id = ctx.id_mapper.resolve_to_internal_id(ref)
    display = ctx.id_mapper.format_display_id(internal_id)
    store.delete(internal_id)
    ctx.id_mapper.mark_deleted(internal_id)
    _commit(ctx, f"gitrack: delete {display}")
    logger.info("Deleted %s", display)
    return internal_id


def restore_from_attic(
    ctx: CommandContext,
    ref: str,
    *,
    entry: int | None = None,
    fields: tuple[str, ...] = (),
) -> Issue:
    """
    Write lost values from an attic entry back onto the issue.

    Args:
        entry: 1-based entry number as listed by ``gitrack attic list``
            (default: the most recent entry)
        fields: Restrict the restore to these fields (default: every
            conflicting field of the entry)

    Raises:
        AtticError: If the entry or a requested field does not exist.
    """
    internal_id = ctx.id_mapper.resolve_to_internal_id(ref)
    display = ctx.id_mapper.format_display_id(internal_id)
    entries = Attic(ctx.worktree).entries(internal_id)
    if not entries:
        raise AtticError(f"No conflicts recorded for {display}")

    number = len(entries) if entry is None else entry
    if not 1 <= number <= len(entries):
        raise AtticError(f"{display} has no attic entry {number} (1-{len(entries)})")

    lost = {f.field: f.lost_value for f in entries[number - 1].fields}
    if fields:
        missing = [name for name in fields if name not in lost]
        if missing:
            raise AtticError(
                f"Attic entry {number} of {display} has no conflict on: {', '.join(missing)}"
            )
        lost = {name: lost[name] for name in fields}

    logger.info("Restoring %s of %s from attic entry %d", ", ".join(lost), display, number)
    return update_issue(ctx, internal_id, IssueChange(restore_fields=lost), message="restore")
