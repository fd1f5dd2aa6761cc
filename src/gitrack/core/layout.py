"""
On-disk layout of a gitrack project and of the sync branch.

Project side (main working tree):

    .gitrack/
        config.yml              project configuration (committed)
        .gitignore              keeps local-only directories out of git
        outbox/                 changes saved after a permanent push failure
        data-sync-worktree/     sync worktree (ignored)
        backups/                worktrees moved aside by repair (ignored)
        state/sync-state.json   per-clone sync state (ignored)

Sync branch:

    meta.yml                    schema_version
    issues/<internal-id>.md
    mappings/ids.yml
    attic/conflicts/<internal-id>/
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import yaml

GITRACK_DIR = ".gitrack"
WORKTREE_DIR = "data-sync-worktree"
BACKUPS_DIR = "backups"
OUTBOX_DIR = "outbox"
STATE_DIR = "state"
STATE_FILE = "sync-state.json"

META_FILE = "meta.yml"
SCHEMA_VERSION = 1

GITIGNORE_ENTRIES = [f"{WORKTREE_DIR}/", f"{STATE_DIR}/", f"{BACKUPS_DIR}/"]

# Directories that must exist on the sync branch; git does not track empty ones
_BRANCH_DIRS = ["issues", "mappings", "attic/conflicts"]


def gitrack_dir(project_root: Path) -> Path:
    return project_root / GITRACK_DIR


def worktree_path(project_root: Path) -> Path:
    return project_root / GITRACK_DIR / WORKTREE_DIR


def backups_path(project_root: Path) -> Path:
    return project_root / GITRACK_DIR / BACKUPS_DIR


def outbox_path(project_root: Path) -> Path:
    return project_root / GITRACK_DIR / OUTBOX_DIR


def state_file_path(project_root: Path) -> Path:
    return project_root / GITRACK_DIR / STATE_DIR / STATE_FILE


def ensure_gitignore(project_root: Path) -> Path:
    """Create or extend ``.gitrack/.gitignore`` with the local-only entries."""
    path = gitrack_dir(project_root) / ".gitignore"
    path.parent.mkdir(parents=True, exist_ok=True)
    existing = path.read_text().splitlines() if path.exists() else []
    missing = [entry for entry in GITIGNORE_ENTRIES if entry not in existing]
    if missing:
        path.write_text("\n".join([*existing, *missing]) + "\n")
    return path


def write_branch_layout(worktree: Path) -> list[str]:
    """
    Create the sync branch skeleton inside a worktree.

    Existing files are left alone.

    Returns:
        Paths (relative to the worktree) that were created
    """
    created: list[str] = []

    meta = worktree / META_FILE
    if not meta.exists():
        meta.write_text(
            yaml.safe_dump(
                {
                    "schema_version": SCHEMA_VERSION,
                    "created_at": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
                },
                sort_keys=False,
            )
        )
        created.append(META_FILE)

    for directory in _BRANCH_DIRS:
        keep = worktree / directory / ".gitkeep"
        if not keep.exists():
            keep.parent.mkdir(parents=True, exist_ok=True)
            keep.touch()
            created.append(f"{directory}/.gitkeep")

    ids = worktree / "mappings" / "ids.yml"
    if not ids.exists():
        ids.write_text("{}\n")
        created.append("mappings/ids.yml")

    return created
