"""
Persistence of SyncState in ``.gitrack/state/sync-state.json``.

The file is per clone (ignored by git) and written atomically.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from gitrack.core.sync.models import SyncState

logger = logging.getLogger(__name__)


class SyncStateStore:
    """Load and save the sync state file."""

    def __init__(self, path: Path, branch: str = "gitrack-sync", remote: str = "origin") -> None:
        self.path = path
        self.branch = branch
        self.remote = remote

    def load(self) -> SyncState:
        """Load sync state from file or return a fresh default state."""
        if self.path.exists():
            try:
                return SyncState.model_validate_json(self.path.read_text())
            except (json.JSONDecodeError, ValidationError) as e:
                logger.warning("Failed to load sync state from %s: %s", self.path, e)
        return SyncState(branch=self.branch, remote=self.remote)

    def save(self, state: SyncState) -> None:
        """Save sync state to file atomically."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        try:
            temp_path.write_text(state.model_dump_json(indent=2))
            temp_path.replace(self.path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise
