"""
Project root discovery utilities for gitrack.

A gitrack project is any directory containing a ``.gitrack/`` directory.
Commands may be run from any subdirectory, so discovery walks upward.
"""

from pathlib import Path

from gitrack.core.errors import NotInitializedError

# Directory marking an initialized project
PROJECT_MARKER = ".gitrack"

# Marker for a plain git checkout (used by `gitrack init`)
GIT_MARKER = ".git"


def _walk_up(start: Path, marker: str, *, want_dir: bool) -> Path | None:
    current = start.resolve()
    while True:
        candidate = current / marker
        if candidate.is_dir() if want_dir else candidate.exists():
            return current
        if current == current.parent:
            return None
        current = current.parent


def find_project_root(start: Path | None = None) -> Path | None:
    """
    Find the project root by searching upward for a ``.gitrack/`` directory.

    Args:
        start: Directory to start searching from. Defaults to current working directory.

    Returns:
        Path to the project root directory, or None if not found.

    Example:
        >>> find_project_root(Path("/project/deep/nested/dir"))
        PosixPath('/project')
    """
    return _walk_up(start or Path.cwd(), PROJECT_MARKER, want_dir=True)


def get_project_root(start: Path | None = None) -> Path:
    """
    Get the project root directory, raising if the project is not initialized.

    Raises:
        NotInitializedError: If no ``.gitrack/`` directory is found.
    """
    root = find_project_root(start)
    if root is None:
        raise NotInitializedError()
    return root


def find_git_root(start: Path | None = None) -> Path | None:
    """Find the top of the enclosing git checkout, or None outside of one."""
    return _walk_up(start or Path.cwd(), GIT_MARKER, want_dir=False)
