"""
Outbox: local preservation of changes that could not be pushed.

When a push fails permanently (no permission, protected branch, ...) the
files touched by the unpushed commits are copied to ``.gitrack/outbox/``
in the main working tree, mirroring the sync branch layout:

    .gitrack/outbox/
        issues/<internal-id>.md
        mappings/ids.yml

The outbox is meant to be committed to the user's own branch so the work
survives even if the clone is lost. After a later successful sync the
outbox is merged back into the sync worktree and cleared.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from gitrack.core.ids.mapper import MAPPING_FILE, IdMapper
from gitrack.core.ids.mapping import IdMapping, merge_mappings
from gitrack.core.issues.merge import merge_issues
from gitrack.core.issues.storage import IssueStore, internal_id_from_path
from gitrack.core.sync.attic import Attic, AtticEntry

logger = logging.getLogger(__name__)


@dataclass
class OutboxImport:
    """What importing the outbox changed in the worktree."""

    imported: int = 0
    conflicts: list[str] = field(default_factory=list)
    renames: dict[str, str] = field(default_factory=dict)


class Outbox:
    """
    The outbox directory of one project.

    Example:
        >>> outbox = Outbox(project_root / ".gitrack" / "outbox")
        >>> outbox.save({"issues/is-01hq....md": "---\\n..."})
        >>> outbox.is_empty()
        False
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def is_empty(self) -> bool:
        if not self.path.exists():
            return True
        return not any(p.is_file() for p in self.path.rglob("*"))

    def files(self) -> list[str]:
        """Relative paths of everything in the outbox, sorted."""
        if not self.path.exists():
            return []
        return sorted(
            p.relative_to(self.path).as_posix() for p in self.path.rglob("*") if p.is_file()
        )

    def save(self, contents: dict[str, str]) -> Path:
        """
        Write ``{relative path: content}`` into the outbox.

        An issue already in the outbox is replaced by the newer copy; the
        mapping table is merged with the one already there.
        """
        for rel_path, content in contents.items():
            target = self.path / rel_path
            target.parent.mkdir(parents=True, exist_ok=True)
            if rel_path == MAPPING_FILE and target.exists():
                merged, _ = merge_mappings(
                    IdMapping.from_yaml(target.read_text()),
                    IdMapping.from_yaml(content),
                )
                content = merged.to_yaml()
            target.write_text(content)
        logger.warning("Saved %d file(s) to outbox at %s", len(contents), self.path)
        return self.path

    def import_into(
        self,
        worktree: Path,
        mapper: IdMapper,
        min_code_length: int = 4,
    ) -> OutboxImport:
        """
        Merge outbox contents into the sync worktree.

        Issues present on both sides are merged without a base; conflicts
        go to the worktree's attic. The worktree is modified but not
        committed; the caller commits and pushes.
        """
        result = OutboxImport()
        store = IssueStore(worktree)
        outbox_store = IssueStore(self.path)
        attic = Attic(worktree)

        for rel_path in self.files():
            internal_id = internal_id_from_path(rel_path)
            if internal_id is None:
                continue
            incoming = outbox_store.read(internal_id)
            if not store.exists(internal_id):
                store.write(incoming)
                result.imported += 1
                continue

            current = store.read(internal_id)
            if current == incoming:
                continue
            merged = merge_issues(None, incoming, current)
            store.write(merged.merged)
            result.imported += 1
            if merged.has_conflicts:
                result.conflicts.append(attic.record(AtticEntry.from_merge(merged)))

        outbox_mapping = self.path / MAPPING_FILE
        if outbox_mapping.exists():
            table, renames = merge_mappings(
                mapper.table,
                IdMapping.from_yaml(outbox_mapping.read_text()),
                min_code_length,
            )
            mapper.replace_table(table)
            result.renames = {r.old_code: r.new_code for r in renames}

        mapper.reconcile(store.ids())
        mapper.flush()
        logger.info("Imported %d issue(s) from outbox", result.imported)
        return result

    def clear(self) -> None:
        """Remove the outbox directory."""
        if self.path.exists():
            shutil.rmtree(self.path)
            logger.info("Cleared outbox at %s", self.path)
