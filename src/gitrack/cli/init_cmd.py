"""
Gitrack CLI - Init command.

Set up gitrack in an existing git repository: the ``.gitrack/``
directory, the project configuration and the sync worktree.
"""

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from gitrack.cli.errors import ExitCode, exit_with_error, print_error
from gitrack.core.config import load_config, write_project_config
from gitrack.core.config.loader import get_project_config_path, load_yaml_file
from gitrack.core.config.models import DisplayConfig
from gitrack.core.errors import GitrackError
from gitrack.core.git import GitCliBackend, GitError
from gitrack.core.layout import gitrack_dir
from gitrack.core.worktree import SyncWorktreeManager
from gitrack.utils.project import find_git_root

console = Console()


def _saved_prefix(config_path: Path) -> str | None:
    display = (load_yaml_file(config_path) or {}).get("display")
    if isinstance(display, dict) and display.get("id_prefix"):
        return str(display["id_prefix"])
    return None


def main(
    prefix: str | None = typer.Option(
        None,
        "--prefix",
        "-p",
        help="Display ID prefix (default: project directory name)",
    ),
) -> None:
    """
    Initialize gitrack in the current git repository.

    Creates .gitrack/config.yml, the sync branch (taken from the remote if
    it already exists there) and its worktree. Safe to run again.

    Examples:
        gitrack init
        gitrack init --prefix proj
    """
    git_root = find_git_root(Path.cwd())
    if git_root is None:
        print_error("Not inside a git repository", solution="git init")
        raise typer.Exit(ExitCode.USER_ERROR)

    config_path = get_project_config_path(git_root)
    values: dict[str, dict[str, str]] = {}
    if prefix is not None:
        try:
            values = {"display": {"id_prefix": DisplayConfig(id_prefix=prefix).id_prefix}}
        except ValidationError as e:
            print_error(f"Invalid prefix '{prefix}'", reason=str(e.errors()[0]["msg"]))
            raise typer.Exit(ExitCode.USER_ERROR) from e
    elif _saved_prefix(config_path) is None:
        # Display IDs must not depend on the name of each clone's directory
        values = {"display": {"id_prefix": load_config(git_root).display.id_prefix}}

    gitrack_dir(git_root).mkdir(exist_ok=True)
    if values or not config_path.exists():
        write_project_config(git_root, values)

    config = load_config(git_root)
    manager = SyncWorktreeManager(
        git_root,
        GitCliBackend(),
        branch=config.sync.branch,
        remote=config.sync.remote,
    )

    try:
        result = manager.repair()
    except GitrackError as e:
        raise exit_with_error(e) from e
    except GitError as e:
        print_error("Could not create the sync worktree", reason=str(e))
        raise typer.Exit(ExitCode.GENERAL_ERROR) from e

    console.print(f"[green]✓[/green] Initialized gitrack in {git_root}")
    console.print(f"  Prefix: [bold]{config.display.id_prefix}[/bold]")
    console.print(f"  Sync branch: [bold]{config.sync.branch}[/bold]", end="")
    if result.source:
        console.print(f" ({result.source})")
    else:
        console.print()
    console.print(f"  Worktree: {result.path}")
    console.print("[dim]Commit .gitrack/config.yml and .gitrack/.gitignore to share them.[/dim]")
