"""
Gitrack CLI - Issue commands.

Create, update, delete and look up issues. Every command accepts issue
references as display IDs (``proj-a7k2``), bare short codes or unique
prefixes of them (``a7``), or internal IDs (``is-01hq...``).
"""

import typer
from rich.console import Console

from gitrack.cli.errors import exit_with_error
from gitrack.core.context import CommandContext
from gitrack.core.errors import GitrackError
from gitrack.core.issues import IssueKind, IssueStatus
from gitrack.core.issues.service import IssueChange, create_issue, delete_issue, update_issue

console = Console()


def create(
    title: str = typer.Argument(..., help="Issue title"),
    kind: IssueKind = typer.Option(IssueKind.TASK, "--kind", "-k", help="Issue kind"),
    priority: int = typer.Option(2, "--priority", "-p", min=0, max=4, help="Priority (0-4)"),
    description: str | None = typer.Option(
        None, "--description", "-d", help="Issue description"
    ),
    label: list[str] = typer.Option([], "--label", "-l", help="Label (repeatable)"),
    assignee: str | None = typer.Option(None, "--assignee", "-a", help="Assignee"),
    parent: str | None = typer.Option(None, "--parent", help="Parent issue"),
) -> None:
    """
    Create an issue.

    Examples:
        gitrack create "Fix login timeout"
        gitrack create "Dark mode" --kind feature -l ui -p 1
    """
    try:
        ctx = CommandContext.load()
        issue = create_issue(
            ctx,
            title,
            kind=kind,
            priority=priority,
            description=description,
            labels=label,
            assignee=assignee,
            parent=parent,
        )
        display = ctx.id_mapper.format_display_id(issue.id)
    except GitrackError as e:
        raise exit_with_error(e) from e

    console.print(f"[green]✓[/green] Created [bold]{display}[/bold]: {issue.title}")


def update(
    issue_ref: str = typer.Argument(..., help="Issue to update"),
    title: str | None = typer.Option(None, "--title", help="New title"),
    status: IssueStatus | None = typer.Option(None, "--status", "-s", help="New status"),
    kind: IssueKind | None = typer.Option(None, "--kind", "-k", help="New kind"),
    priority: int | None = typer.Option(None, "--priority", "-p", min=0, max=4),
    description: str | None = typer.Option(None, "--description", "-d"),
    notes: str | None = typer.Option(None, "--notes", help="Replace working notes"),
    assignee: str | None = typer.Option(None, "--assignee", "-a"),
    parent: str | None = typer.Option(None, "--parent", help="New parent issue"),
    reason: str | None = typer.Option(None, "--reason", help="Close reason"),
    add_label: list[str] = typer.Option([], "--add-label", help="Add a label"),
    remove_label: list[str] = typer.Option([], "--remove-label", help="Remove a label"),
    blocks: list[str] = typer.Option([], "--blocks", help="Mark as blocking another issue"),
) -> None:
    """
    Update fields of an issue.

    Examples:
        gitrack update a7k2 --status in_progress
        gitrack update proj-a7k2 --status closed --reason "fixed in 1.2"
    """
    change = IssueChange(
        title=title,
        description=description,
        notes=notes,
        kind=kind,
        status=status,
        priority=priority,
        assignee=assignee,
        parent=parent,
        close_reason=reason,
        add_labels=tuple(add_label),
        remove_labels=tuple(remove_label),
        add_blocks=tuple(blocks),
    )
    try:
        ctx = CommandContext.load()
        issue = update_issue(ctx, issue_ref, change)
        display = ctx.id_mapper.format_display_id(issue.id)
    except GitrackError as e:
        raise exit_with_error(e) from e

    console.print(f"[green]✓[/green] Updated [bold]{display}[/bold] (version {issue.version})")


def delete(
    issue_ref: str = typer.Argument(..., help="Issue to delete"),
) -> None:
    """
    Delete an issue.

    Its short code is retired: it is never given to another issue and
    still resolves to the deleted ID.
    """
    try:
        ctx = CommandContext.load()
        internal_id = delete_issue(ctx, issue_ref)
        display = ctx.id_mapper.format_display_id(internal_id)
    except GitrackError as e:
        raise exit_with_error(e) from e

    console.print(f"[green]✓[/green] Deleted [bold]{display}[/bold]")


def resolve(
    issue_ref: str = typer.Argument(..., help="Display ID, short code prefix or internal ID"),
    debug_id: bool = typer.Option(
        False,
        "--debug-id",
        help="Show display ID and internal ID together",
    ),
) -> None:
    """
    Resolve an issue reference to its internal ID.

    Examples:
        gitrack resolve a7         # is-01hq3k5v7w8x9y0z1a2b3c4d5e
        gitrack resolve a7 --debug-id
    """
    try:
        ctx = CommandContext.load()
        internal_id = ctx.id_mapper.resolve_to_internal_id(issue_ref)
        output = ctx.id_mapper.format_debug_id(internal_id) if debug_id else internal_id
    except GitrackError as e:
        raise exit_with_error(e) from e

    console.print(output, highlight=False)
