"""
Gitrack CLI - Main application entry point.

This module sets up the Typer CLI application with all subcommands.
"""

import logging
import sys

import typer

from gitrack import __version__
from gitrack.cli import attic, doctor, init_cmd, issues, sync

PANEL_ISSUES = "Work with Issues"
PANEL_SYNC = "Sync and Repair"

app = typer.Typer(
    name="gitrack",
    help="Issue tracking stored in your git repository",
    no_args_is_help=False,
    invoke_without_command=True,
    context_settings={"help_option_names": ["--help", "-h"]},
)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output with detailed logging",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
    ),
) -> None:
    """
    Gitrack - issues that travel with your code.

    Issues live on a dedicated sync branch, edited through a private
    worktree, and are shared with 'gitrack sync'.

    Quick Start:
        1. gitrack init                 # Set up the sync branch
        2. gitrack create "Title"       # Create an issue
        3. gitrack sync                 # Share it
    """
    if version:
        typer.echo(f"gitrack {__version__}")
        raise typer.Exit()

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    ctx.obj = {"debug": debug}

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


app.command(name="init")(init_cmd.main)
app.command(name="create", rich_help_panel=PANEL_ISSUES)(issues.create)
app.command(name="update", rich_help_panel=PANEL_ISSUES)(issues.update)
app.command(name="delete", rich_help_panel=PANEL_ISSUES)(issues.delete)
app.command(name="resolve", rich_help_panel=PANEL_ISSUES)(issues.resolve)
app.add_typer(attic.app, name="attic", rich_help_panel=PANEL_ISSUES)
app.add_typer(sync.app, name="sync", rich_help_panel=PANEL_SYNC)
app.add_typer(doctor.app, name="doctor", rich_help_panel=PANEL_SYNC)


def cli_main() -> None:
    app()


__all__ = ["app", "cli_main"]
