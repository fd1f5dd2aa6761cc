"""
Identity mapper: translation between internal IDs and display IDs.

The mapper owns the mapping table of one sync worktree. It is loaded
lazily on first use and written back with ``flush()``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from gitrack.core.errors import AmbiguousIdError, NotFoundError
from gitrack.core.ids import codes
from gitrack.core.ids.mapping import IdMapping, reconcile_mappings
from gitrack.core.ids.models import CODE_RE, INTERNAL_PREFIX, DisplayId, InternalId, is_ulid

logger = logging.getLogger(__name__)

MAPPING_FILE = "mappings/ids.yml"


class IdMapper:
    """
    Resolve user input to internal IDs and format IDs for display.

    Example:
        >>> mapper = IdMapper(worktree / "mappings" / "ids.yml", prefix="proj")
        >>> code = mapper.mint("is-01hq3k5v7w8x9y0z1a2b3c4d5e")
        >>> mapper.format_display_id("is-01hq3k5v7w8x9y0z1a2b3c4d5e")
        'proj-a7k2'
        >>> mapper.resolve_to_internal_id("a7")
        'is-01hq3k5v7w8x9y0z1a2b3c4d5e'
    """

    def __init__(
        self,
        mapping_path: Path,
        prefix: str,
        min_code_length: int = codes.DEFAULT_CODE_LENGTH,
    ) -> None:
        self.mapping_path = mapping_path
        self.prefix = prefix
        self.min_code_length = min_code_length
        self._table: IdMapping | None = None
        self._dirty = False

    @classmethod
    def for_worktree(
        cls,
        worktree: Path,
        prefix: str,
        min_code_length: int = codes.DEFAULT_CODE_LENGTH,
    ) -> IdMapper:
        return cls(worktree / MAPPING_FILE, prefix, min_code_length)

    @property
    def table(self) -> IdMapping:
        if self._table is None:
            self._table = IdMapping.load(self.mapping_path)
            logger.debug("Loaded %d mapping entries from %s", len(self._table), self.mapping_path)
        return self._table

    def reload(self) -> None:
        """Drop the cached table so the next access re-reads the file."""
        self._table = None
        self._dirty = False

    def resolve_to_internal_id(self, value: str) -> str:
        """
        Resolve any accepted identifier form to an internal ID.

        Accepted forms, case-insensitive: ``is-<ulid>``, a bare ULID,
        ``<prefix>-<code>`` (any letter prefix), a bare code, or a unique
        prefix of a code. An exact code match always beats prefix matches,
        and deleted codes only resolve on an exact match.

        Raises:
            NotFoundError: If nothing matches.
            AmbiguousIdError: If a prefix matches more than one issue.
        """
        text = value.strip().lower()
        if not text:
            raise NotFoundError(value)

        if text.startswith(INTERNAL_PREFIX) or is_ulid(text):
            try:
                internal = InternalId.parse(text)
            except ValueError:
                raise NotFoundError(value) from None
            if not self.table.has_ulid(internal.ulid):
                raise NotFoundError(value)
            return str(internal)

        try:
            code = DisplayId.parse(text).code
        except ValueError:
            code = text
        if not CODE_RE.match(code):
            raise NotFoundError(value)

        entry = self.table.get(code)
        if entry is not None:
            return entry.internal_id

        matches = self.table.prefix_matches(code)
        if not matches:
            raise NotFoundError(value)
        if len(matches) > 1:
            candidates = sorted(self._display_for_ulid(ulid) for ulid in matches)
            raise AmbiguousIdError(value, candidates)
        return f"{INTERNAL_PREFIX}{matches.pop()}"

    def format_display_id(self, internal_id: str) -> str:
        """
        Format ``<prefix>-<code>`` for an internal ID.

        Raises:
            NotFoundError: If the ID has no mapping entry.
        """
        ulid = self._ulid_of(internal_id)
        if not self.table.has_ulid(ulid):
            raise NotFoundError(internal_id)
        return self._display_for_ulid(ulid)

    def format_debug_id(self, internal_id: str) -> str:
        """Format ``<prefix>-<code> (<internal_id>)``."""
        return f"{self.format_display_id(internal_id)} ({INTERNAL_PREFIX}{self._ulid_of(internal_id)})"

    def mint(self, internal_id: str) -> str:
        """
        Return the short code of ``internal_id``, minting one when needed.

        Raises:
            ShortCodeCollisionError: If every candidate code is taken.
        """
        ulid = self._ulid_of(internal_id)
        had_code = bool(self.table.codes_for(ulid))
        code = self.table.mint(ulid, self.min_code_length)
        if not had_code:
            self._dirty = True
            logger.debug("Minted short code %s for %s", code, internal_id)
        return code

    def mark_deleted(self, internal_id: str) -> None:
        """Flag all codes of ``internal_id`` as deleted; the rows stay."""
        if self.table.mark_deleted(self._ulid_of(internal_id)):
            self._dirty = True

    def reconcile(
        self,
        internal_ids: Iterable[str],
        historical: IdMapping | None = None,
    ) -> dict[str, str]:
        """
        Ensure every internal ID has a mapping entry.

        Returns:
            Dict of internal ID -> code for entries that were added
        """
        added = reconcile_mappings(
            self.table,
            (self._ulid_of(i) for i in internal_ids),
            historical,
            self.min_code_length,
        )
        if added:
            self._dirty = True
        return {f"{INTERNAL_PREFIX}{ulid}": code for ulid, code in added.items()}

    def replace_table(self, table: IdMapping) -> None:
        """Swap in a new table (the result of a merge) and mark it for writing."""
        self._table = table
        self._dirty = True

    def flush(self) -> bool:
        """
        Write the table if it changed since it was loaded.

        Returns:
            True if the file was written
        """
        if not self._dirty or self._table is None:
            return False
        self._table.save(self.mapping_path)
        self._dirty = False
        logger.debug("Wrote %d mapping entries to %s", len(self._table), self.mapping_path)
        return True

    def _display_for_ulid(self, ulid: str) -> str:
        return str(DisplayId(prefix=self.prefix, code=self.table.primary_code(ulid)))

    @staticmethod
    def _ulid_of(internal_id: str) -> str:
        try:
            return InternalId.parse(internal_id).ulid
        except ValueError:
            raise NotFoundError(internal_id) from None
