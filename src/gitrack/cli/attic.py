"""
Gitrack CLI - Attic commands.

The attic keeps the losing side of every conflicting edit merged by
``gitrack sync``. These commands list those versions and write lost
values back onto an issue.
"""

import typer
from rich.console import Console
from rich.table import Table

from gitrack.cli.errors import exit_with_error
from gitrack.core.context import CommandContext
from gitrack.core.errors import AtticError, GitrackError
from gitrack.core.issues.service import restore_from_attic
from gitrack.core.sync.attic import Attic, AtticEntry

app = typer.Typer(
    name="attic",
    help="Inspect and restore values lost in sync conflicts",
    no_args_is_help=True,
)

console = Console()


def _load_entries(issue_ref: str) -> tuple[str, list[AtticEntry]]:
    try:
        ctx = CommandContext.load()
        internal_id = ctx.id_mapper.resolve_to_internal_id(issue_ref)
        display = ctx.id_mapper.format_display_id(internal_id)
        entries = Attic(ctx.worktree).entries(internal_id)
    except GitrackError as e:
        raise exit_with_error(e) from e
    return display, entries


@app.command(name="list")
def list_entries(
    issue_ref: str = typer.Argument(..., help="Issue whose conflict history to show"),
) -> None:
    """
    List the conflicts recorded for an issue.

    Examples:
        gitrack attic list a7k2
    """
    display, entries = _load_entries(issue_ref)
    if not entries:
        console.print(f"[green]✓[/green] No conflicts recorded for {display}")
        return

    table = Table(title=f"Attic: {display}", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("Recorded")
    table.add_column("Kept")
    table.add_column("Field")
    table.add_column("Kept value")
    table.add_column("Lost value")
    for number, entry in enumerate(entries, start=1):
        for f in entry.fields:
            table.add_row(
                str(number),
                entry.recorded_at.strftime("%Y-%m-%d %H:%M:%S"),
                entry.winner_source,
                f.field,
                repr(f.winner_value),
                repr(f.lost_value),
            )
    console.print(table)


@app.command()
def show(
    issue_ref: str = typer.Argument(..., help="Issue whose lost versions to print"),
    entry: int | None = typer.Option(None, "--entry", "-e", help="Entry number (default: all)"),
) -> None:
    """
    Print losing versions of an issue in full.

    Examples:
        gitrack attic show a7k2
        gitrack attic show a7k2 --entry 2
    """
    display, entries = _load_entries(issue_ref)
    numbered = list(enumerate(entries, start=1))
    if entry is not None:
        numbered = [(n, e) for n, e in numbered if n == entry]
        if not numbered:
            raise exit_with_error(AtticError(f"{display} has no attic entry {entry}"))

    for number, item in numbered:
        console.print(
            f"\n[bold]#{number} {item.loser_source} version {item.lost_version}[/bold]"
        )
        console.print(item.lost_document, highlight=False, markup=False)


@app.command()
def restore(
    issue_ref: str = typer.Argument(..., help="Issue to restore values onto"),
    entry: int | None = typer.Option(
        None, "--entry", "-e", help="Entry number (default: most recent)"
    ),
    field: list[str] = typer.Option(
        [], "--field", "-f", help="Field to restore (repeatable, default: all)"
    ),
) -> None:
    """
    Write lost values from the attic back onto an issue.

    The restore is a normal edit: it bumps the version, is committed on
    the sync branch and travels with the next 'gitrack sync'.

    Examples:
        gitrack attic restore a7k2
        gitrack attic restore a7k2 --entry 1 --field title
    """
    try:
        ctx = CommandContext.load()
        issue = restore_from_attic(ctx, issue_ref, entry=entry, fields=tuple(field))
        display = ctx.id_mapper.format_display_id(issue.id)
    except GitrackError as e:
        raise exit_with_error(e) from e

    console.print(f"[green]✓[/green] Restored [bold]{display}[/bold] (version {issue.version})")
