"""
Gitrack CLI - Sync command.

Runs one fetch/merge/push cycle of the sync branch and reports what
happened, or why it failed and how to recover.
"""

import typer
from rich.console import Console

from gitrack.cli.errors import ExitCode, exit_with_error, print_error
from gitrack.core.context import CommandContext
from gitrack.core.errors import GitrackError, SyncError
from gitrack.core.git import GitError
from gitrack.core.ids.mapping import MappingFormatError
from gitrack.core.issues.parser import IssueParseError
from gitrack.core.sync import Recovery, SyncResult
from gitrack.core.sync.protocol import SyncProtocol

console = Console()
app = typer.Typer(
    name="sync",
    help="Sync issues with the remote sync branch",
    no_args_is_help=False,
)


def _print_success(ctx: CommandContext, result: SyncResult) -> None:
    if result.pushed:
        console.print(f"[green]✓[/green] Synced and pushed ({(result.commit_sha or '')[:8]})")
    elif result.fast_forwarded or result.merged:
        console.print("[green]✓[/green] Pulled remote changes")
    else:
        console.print("[green]✓[/green] Already up to date")

    if result.issues_updated:
        console.print(f"  {result.issues_updated} issue(s) updated from remote")
    if result.outbox_imported:
        console.print(f"  {result.outbox_imported} issue(s) imported from outbox")
    for old, new in sorted(result.renames.items()):
        console.print(
            f"[yellow]  Short code {old} was taken on the remote; "
            f"now {ctx.config.display.id_prefix}-{new}[/yellow]"
        )
    for conflict in result.conflicts:
        console.print(
            f"[yellow]  Conflict in {ctx.id_mapper.format_display_id(conflict.issue_id)} "
            f"({', '.join(conflict.fields)}): kept {conflict.winner_source} values, "
            f"other version in {conflict.attic_path}[/yellow]"
        )
    if result.message:
        console.print(f"[yellow]  {result.message}[/yellow]")


def _print_failure(result: SyncResult) -> None:
    kind = result.error_kind.value if result.error_kind else "unknown"
    reason = f"{kind} error: {result.error}"

    if result.recovery is Recovery.PERSIST:
        if result.outbox_path:
            solution = (
                f"commit {result.outbox_path} to your branch; "
                "it is merged back by the next successful 'gitrack sync'"
            )
        else:
            solution = "check your access to the remote, then run 'gitrack sync --save'"
        print_error(f"Sync failed during {result.phase.value}", reason=reason, solution=solution)
    elif result.recovery is Recovery.RETRY:
        print_error(
            f"Sync failed during {result.phase.value}",
            reason=reason,
            solution="gitrack sync  # retry when the connection is back",
        )
    else:
        solution = "gitrack sync  # to retry, or 'gitrack sync --save' to keep changes in the outbox"
        if result.outbox_path:
            solution = f"commit {result.outbox_path} to your branch, or retry with 'gitrack sync'"
        print_error(f"Sync failed during {result.phase.value}", reason=reason, solution=solution)


@app.callback(invoke_without_command=True)
def sync(
    ctx: typer.Context,
    fix: bool = typer.Option(
        False,
        "--fix",
        help="Repair the sync worktree before syncing",
    ),
    auto_save: bool | None = typer.Option(
        None,
        "--auto-save/--no-auto-save",
        help="Save unpushed changes to the outbox on a permanent failure",
    ),
    outbox: bool = typer.Option(
        True,
        "--outbox/--no-outbox",
        help="Merge a pending outbox after a successful sync",
    ),
    save: bool = typer.Option(
        False,
        "--save",
        help="Save unpushed changes to the outbox on any failure",
    ),
) -> None:
    """
    Sync issues with the remote.

    Commits pending edits, fetches the remote sync branch, merges it
    issue by issue (conflicting values are kept in the attic) and pushes.

    Examples:
        gitrack sync                 # Full sync
        gitrack sync --fix           # Repair the worktree first
        gitrack sync --save          # Keep unpushed changes in the outbox if it fails
    """
    if ctx.invoked_subcommand is not None:
        return

    try:
        command = CommandContext.load()
        if fix:
            command.worktree_manager.repair()
        protocol = SyncProtocol(
            command.project_root,
            command.backend,
            command.worktree_manager,
            command.config,
        )
        result = protocol.sync(auto_save=auto_save, use_outbox=outbox, force_save=save)
    except (MappingFormatError, IssueParseError) as e:
        raise exit_with_error(
            SyncError(f"Sync branch data could not be read: {e}", exit_code=ExitCode.SYNC_FAILED)
        ) from e
    except GitrackError as e:
        raise exit_with_error(e) from e
    except GitError as e:
        print_error("Git command failed", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR) from e

    if not result.success:
        _print_failure(result)
        raise typer.Exit(ExitCode.SYNC_FAILED)

    _print_success(command, result)


@app.command()
def status() -> None:
    """
    Show the state recorded by the last sync.
    """
    try:
        command = CommandContext.load()
    except GitrackError as e:
        raise exit_with_error(e) from e

    protocol = SyncProtocol(
        command.project_root,
        command.backend,
        command.worktree_manager,
        command.config,
    )
    state = protocol.state_store.load()

    console.print(f"Branch: [bold]{state.branch}[/bold] on [bold]{state.remote}[/bold]")
    if state.last_sync_at:
        console.print(f"Last sync: {state.last_sync_at:%Y-%m-%d %H:%M:%S} UTC")
    else:
        console.print("[dim]Never synced[/dim]")
    if state.last_push_sha:
        console.print(f"Last push: {state.last_push_sha[:8]}")
    if not protocol.outbox.is_empty():
        console.print(
            f"[yellow]Outbox holds {len(protocol.outbox.files())} file(s) at "
            f"{protocol.outbox.path}[/yellow]"
        )

    failure = state.last_failure
    if failure is not None:
        console.print(
            f"[red]Last failure[/red] ({failure.kind.value}, during {failure.phase.value}, "
            f"{failure.at:%Y-%m-%d %H:%M:%S}): {failure.message}"
        )
        if failure.unpushed_commits:
            console.print(f"  {failure.unpushed_commits} commit(s) were not pushed")
