"""
Per-invocation command context.

A CommandContext is built once per CLI invocation and passed explicitly
to everything that needs project state: the project root, the loaded
configuration, the git backend, the worktree manager and (lazily) the
IdMapper. There are no module-level singletons.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from gitrack.core.config.loader import load_config
from gitrack.core.config.models import GitrackConfig
from gitrack.core.git.backend import GitBackend, GitCliBackend
from gitrack.core.ids.mapper import IdMapper
from gitrack.core.worktree.manager import SyncWorktreeManager
from gitrack.utils.project import get_project_root

logger = logging.getLogger(__name__)


@dataclass
class CommandContext:
    """
    Everything a command needs, resolved once.

    Example:
        >>> ctx = CommandContext.load()
        >>> ctx.id_mapper.resolve_to_internal_id("a7k2")
        'is-01hq3k5v7w8x9y0z1a2b3c4d5e'
    """

    project_root: Path
    config: GitrackConfig
    backend: GitBackend
    worktree_manager: SyncWorktreeManager
    _worktree: Path | None = field(default=None, repr=False)
    _id_mapper: IdMapper | None = field(default=None, repr=False)

    @classmethod
    def load(cls, cwd: Path | None = None, backend: GitBackend | None = None) -> CommandContext:
        """
        Build a context for the project containing ``cwd``.

        Raises:
            NotInitializedError: If no ``.gitrack/`` directory is found.
            ValidationError: If the configuration is invalid.
        """
        root = get_project_root(cwd)
        config = load_config(root)
        backend = backend or GitCliBackend()
        manager = SyncWorktreeManager(
            root,
            backend,
            branch=config.sync.branch,
            remote=config.sync.remote,
        )
        logger.debug("Loaded context for project at %s", root)
        return cls(project_root=root, config=config, backend=backend, worktree_manager=manager)

    @property
    def worktree(self) -> Path:
        """
        The healthy sync worktree.

        Raises:
            WorktreeMissingError, WorktreeCorruptedError: If it is not healthy.
        """
        if self._worktree is None:
            self._worktree = self.worktree_manager.require_healthy()
        return self._worktree

    @property
    def id_mapper(self) -> IdMapper:
        """IdMapper over the worktree's mapping table, created on first use."""
        if self._id_mapper is None:
            self._id_mapper = IdMapper.for_worktree(
                self.worktree,
                self.config.display.id_prefix,
                self.config.ids.min_code_length,
            )
        return self._id_mapper
