"""
Gitrack CLI - Doctor command.

Diagnose and optionally repair the sync worktree and sync branch.
"""

import typer
from rich.console import Console

from gitrack.cli.errors import ExitCode, exit_with_error, print_error
from gitrack.core.context import CommandContext
from gitrack.core.errors import GitrackError, SyncBranchInvalidError
from gitrack.core.git import GitError
from gitrack.core.worktree import WorktreeStatus

app = typer.Typer(
    name="doctor",
    help="Diagnose and fix sync worktree issues",
    no_args_is_help=False,
)

console = Console()


@app.callback(invoke_without_command=True)
def doctor(
    ctx: typer.Context,
    fix: bool = typer.Option(
        False,
        "--fix",
        help="Repair the sync worktree (moves a corrupted one to .gitrack/backups/)",
    ),
) -> None:
    """
    Check the sync worktree and sync branch.

    Examples:
        gitrack doctor          # Report problems
        gitrack doctor --fix    # Repair them
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        command = CommandContext.load()
    except GitrackError as e:
        raise exit_with_error(e) from e
    manager = command.worktree_manager

    if fix:
        try:
            result = manager.repair()
        except GitrackError as e:
            raise exit_with_error(e) from e
        except GitError as e:
            print_error("Repair failed", reason=str(e))
            raise typer.Exit(ExitCode.GENERAL_ERROR) from e

        if not result.changed:
            console.print("[green]✓[/green] Sync worktree is healthy, nothing to repair")
            return
        if result.backup_path:
            console.print(f"[yellow]Moved corrupted worktree to {result.backup_path}[/yellow]")
        if result.action != "none":
            console.print(
                f"[green]✓[/green] Sync worktree {result.action} at {result.path} "
                f"from {result.source} branch"
            )
        if result.layout_created:
            console.print(
                f"[green]✓[/green] Wrote sync branch layout: {', '.join(result.layout_created)}"
            )
        return

    health = manager.validate()
    problems = 0
    if health.status is WorktreeStatus.HEALTHY:
        console.print(f"[green]✓[/green] Sync worktree is healthy ({health.path})")
        try:
            version = manager.check_sync_branch(health.path)
            console.print(f"[green]✓[/green] Sync branch schema version {version}")
        except SyncBranchInvalidError as e:
            console.print(f"[red]✗[/red] {e.message}")
            problems += 1
    elif health.status is WorktreeStatus.MISSING:
        console.print(f"[red]✗[/red] Sync worktree not found at {health.path}")
        problems += 1
    else:
        console.print(f"[red]✗[/red] Sync worktree is corrupted: {health.reason}")
        problems += 1

    if problems:
        console.print("\n[dim]→ Run [bold]gitrack doctor --fix[/bold] to repair[/dim]")
        raise typer.Exit(ExitCode.GENERAL_ERROR)
