"""
Error taxonomy for gitrack.

Every user-facing failure derives from GitrackError, which carries the
message shown to the user and the process exit code the CLI should use.
Messages for the worktree and sync branch errors always end with the
repair command so the user knows how to recover.
"""

from __future__ import annotations

from pathlib import Path

REPAIR_HINT = "Run 'gitrack doctor --fix' to repair."


class GitrackError(Exception):
    """Base exception for gitrack operations."""

    exit_code: int = 1

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


class NotInitializedError(GitrackError):
    """Raised when no .gitrack/ directory can be found."""

    exit_code = 2

    def __init__(self) -> None:
        super().__init__("Not a gitrack repository (run 'gitrack init' first)")


class NotFoundError(GitrackError):
    """Raised when an identifier resolves to no issue."""

    exit_code = 2

    def __init__(self, input_id: str) -> None:
        super().__init__(f"Issue not found: {input_id}")
        self.input_id = input_id


class AmbiguousIdError(GitrackError):
    """Raised when an identifier prefix matches more than one issue."""

    exit_code = 2

    def __init__(self, input_id: str, candidates: list[str]) -> None:
        super().__init__(f"Ambiguous issue ID '{input_id}' matches: {', '.join(candidates)}")
        self.input_id = input_id
        self.candidates = candidates


class ShortCodeCollisionError(GitrackError):
    """Raised when every candidate short code for an ID is already taken."""

    def __init__(self, internal_id: str, max_length: int) -> None:
        super().__init__(
            f"Could not mint a short code for {internal_id}: "
            f"all candidates up to length {max_length} are taken"
        )
        self.internal_id = internal_id


class WorktreeMissingError(GitrackError):
    """Raised when the sync worktree directory does not exist."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Sync worktree not found at {path}. {REPAIR_HINT}")
        self.path = path


class WorktreeCorruptedError(GitrackError):
    """Raised when the sync worktree exists but is not usable."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Sync worktree is corrupted: {reason}. {REPAIR_HINT}")
        self.reason = reason


class SyncBranchInvalidError(GitrackError):
    """Raised when the sync branch content does not have the expected layout."""

    def __init__(self, branch: str, reason: str) -> None:
        super().__init__(f"Sync branch '{branch}' is invalid: {reason}. {REPAIR_HINT}")
        self.branch = branch
        self.reason = reason


class AtticError(GitrackError):
    """Raised when a requested attic entry or field does not exist."""

    exit_code = 2


class SyncError(GitrackError):
    """Raised at the CLI boundary when a sync cycle did not complete."""
