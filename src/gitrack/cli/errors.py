"""
Standardized error handling and exit codes for the gitrack CLI.

Every command reports failures the same way: a red problem line, an
optional dim reason and a "Try" line naming the command that fixes it.
"""

from enum import IntEnum

import typer
from rich.console import Console

from gitrack.core.errors import REPAIR_HINT, GitrackError

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Standard exit codes for gitrack CLI operations."""

    SUCCESS = 0
    """Operation completed successfully."""

    GENERAL_ERROR = 1
    """Generic error."""

    USER_ERROR = 2
    """User configuration or input error (actionable by user)."""

    SYNC_FAILED = 3
    """A sync cycle did not complete; see the recovery advice."""

    SIGINT = 130
    """Terminated by SIGINT (Ctrl+C) - Unix standard."""


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print an error to stderr.

    Args:
        problem: What failed
        reason: Underlying cause, usually the error text
        solution: Command the user should run next

    Example:
        >>> print_error(
        ...     "Sync worktree not found",
        ...     solution="gitrack doctor --fix",
        ... )
    """
    console.print(f"[red]Error:[/red] {problem}", markup=True, highlight=False)

    if reason:
        console.print(f"[dim]{reason}[/dim]", highlight=False)

    if solution:
        console.print(f"[cyan]→ Try:[/cyan] {solution}", highlight=False)


def exit_with_error(error: GitrackError) -> typer.Exit:
    """
    Print a GitrackError and build the matching typer.Exit.

    Usage:
        except GitrackError as e:
            raise exit_with_error(e) from e
    """
    message = error.message
    solution = None
    if message.endswith(REPAIR_HINT):
        solution = "gitrack doctor --fix"
    print_error(message, solution=solution)
    return typer.Exit(error.exit_code)
