"""
Sync worktree management.

The sync worktree is a git worktree checked out on the sync branch at
``.gitrack/data-sync-worktree``. Issue files are edited there.
"""

from gitrack.core.worktree.manager import (
    RepairResult,
    SyncWorktreeManager,
    WorktreeHealth,
    WorktreeStatus,
)

__all__ = [
    "RepairResult",
    "SyncWorktreeManager",
    "WorktreeHealth",
    "WorktreeStatus",
]
