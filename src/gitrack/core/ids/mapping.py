"""
The short code mapping table (``mappings/ids.yml``).

The file maps each short code to a ULID. Live entries are written as
``code: ulid``; entries whose issue was deleted keep their row as
``code: {ulid: ..., deleted: true}`` so the code is never handed out
again. Rows are never removed.

A ULID may own several codes (aliases left behind by merges). Its primary
code, used for display, is the lexicographically smallest live one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import yaml

from gitrack.core.errors import GitrackError, ShortCodeCollisionError
from gitrack.core.ids import codes
from gitrack.core.ids.models import CODE_RE, INTERNAL_PREFIX, CodeRename, MappingEntry, is_ulid

logger = logging.getLogger(__name__)


class MappingFormatError(GitrackError, ValueError):
    """Raised when ids.yml cannot be parsed as a mapping table."""


class IdMapping:
    """
    In-memory mapping table with lookups in both directions.

    Example:
        >>> table = IdMapping()
        >>> code = table.mint("01hq3k5v7w8x9y0z1a2b3c4d5e")
        >>> table.primary_code("01hq3k5v7w8x9y0z1a2b3c4d5e") == code
        True
    """

    def __init__(self, entries: Iterable[MappingEntry] = ()) -> None:
        self._entries: dict[str, MappingEntry] = {}
        self._by_ulid: dict[str, set[str]] = {}
        for entry in entries:
            self._put(entry)

    # ------------------------------------------------------------------
    # (de)serialization
    # ------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, text: str | None) -> IdMapping:
        """
        Parse ids.yml content. Empty or missing content yields an empty table.

        Raises:
            MappingFormatError: If the content is not a mapping of codes to ULIDs.
        """
        if not text or not text.strip():
            return cls()
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise MappingFormatError(f"ids.yml is not valid YAML: {e}") from e
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise MappingFormatError("ids.yml must be a mapping of short codes to ULIDs")

        entries = []
        for key, value in data.items():
            code = str(key).lower()
            if not CODE_RE.match(code):
                raise MappingFormatError(f"Invalid short code in ids.yml: '{key}'")
            entries.append(_parse_value(code, value))
        return cls(entries)

    @classmethod
    def load(cls, path: Path) -> IdMapping:
        """Load the table from ``path``; a missing file is an empty table."""
        if not path.exists():
            return cls()
        try:
            return cls.from_yaml(path.read_text())
        except MappingFormatError as e:
            raise MappingFormatError(f"{e} ({path})") from e

    def to_yaml(self) -> str:
        """Serialize with codes in sorted order so diffs stay stable."""
        data: dict[str, Any] = {}
        for code in sorted(self._entries):
            entry = self._entries[code]
            if entry.deleted:
                data[code] = {"ulid": entry.ulid, "deleted": True}
            else:
                data[code] = entry.ulid
        if not data:
            return "{}\n"
        return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)

    def save(self, path: Path) -> None:
        """Write the table atomically via a temp file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(self.to_yaml())
            temp_path.replace(path)
        except OSError:
            if temp_path.exists():
                temp_path.unlink()
            raise

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, code: object) -> bool:
        return code in self._entries

    def __iter__(self) -> Iterator[MappingEntry]:
        for code in sorted(self._entries):
            yield self._entries[code]

    def get(self, code: str) -> MappingEntry | None:
        return self._entries.get(code)

    def has_ulid(self, ulid: str) -> bool:
        return ulid in self._by_ulid

    def ulids(self) -> set[str]:
        return set(self._by_ulid)

    def codes_for(self, ulid: str, *, include_deleted: bool = False) -> list[str]:
        """All codes bound to ``ulid``, sorted."""
        found = self._by_ulid.get(ulid, set())
        return sorted(
            code for code in found if include_deleted or not self._entries[code].deleted
        )

    def primary_code(self, ulid: str) -> str | None:
        """
        The code used to display ``ulid``.

        The smallest live code wins; a fully deleted issue falls back to its
        smallest code so it can still be shown.
        """
        live = self.codes_for(ulid)
        if live:
            return live[0]
        every = self.codes_for(ulid, include_deleted=True)
        return every[0] if every else None

    def prefix_matches(self, prefix: str) -> set[str]:
        """ULIDs of live entries whose code starts with ``prefix``."""
        return {
            entry.ulid
            for code, entry in self._entries.items()
            if not entry.deleted and code.startswith(prefix)
        }

    # ------------------------------------------------------------------
    # mutation
    # ------------------------------------------------------------------

    def _put(self, entry: MappingEntry) -> None:
        previous = self._entries.get(entry.code)
        if previous is not None and previous.ulid != entry.ulid:
            self._by_ulid[previous.ulid].discard(entry.code)
            if not self._by_ulid[previous.ulid]:
                del self._by_ulid[previous.ulid]
        self._entries[entry.code] = entry
        self._by_ulid.setdefault(entry.ulid, set()).add(entry.code)

    def add(self, code: str, ulid: str) -> None:
        """
        Bind ``code`` to ``ulid``.

        Raises:
            ValueError: If the code is already bound to another ULID.
        """
        existing = self._entries.get(code)
        if existing is not None and existing.ulid != ulid:
            raise ValueError(f"Short code '{code}' is already bound to {existing.ulid}")
        if existing is None:
            self._put(MappingEntry(code=code, ulid=ulid))

    def mint(self, ulid: str, min_length: int = codes.DEFAULT_CODE_LENGTH) -> str:
        """
        Return the primary code of ``ulid``, minting one if it has none.

        Raises:
            ShortCodeCollisionError: If every candidate length is taken.
        """
        existing = self.primary_code(ulid) if self.has_ulid(ulid) else None
        if existing is not None and not self._entries[existing].deleted:
            return existing

        for candidate in codes.candidate_codes(ulid, len(self._entries), min_length):
            if candidate not in self._entries:
                self._put(MappingEntry(code=candidate, ulid=ulid))
                return candidate
            logger.debug("Short code %s taken, extending", candidate)

        raise ShortCodeCollisionError(f"{INTERNAL_PREFIX}{ulid}", codes.MAX_CODE_LENGTH)

    def mark_deleted(self, ulid: str) -> int:
        """Flag every code of ``ulid`` as deleted. Returns how many rows changed."""
        changed = 0
        for code in self.codes_for(ulid):
            self._put(MappingEntry(code=code, ulid=ulid, deleted=True))
            changed += 1
        return changed

    def revive(self, ulid: str) -> str:
        """Clear the deleted flag on every code of ``ulid``. Returns its primary code."""
        for code in self.codes_for(ulid, include_deleted=True):
            self._put(MappingEntry(code=code, ulid=ulid))
        code = self.primary_code(ulid)
        if code is None:
            raise KeyError(ulid)
        return code

    def copy(self) -> IdMapping:
        return IdMapping(self._entries.values())


def _parse_value(code: str, value: Any) -> MappingEntry:
    if isinstance(value, str):
        ulid, deleted = value, False
    elif isinstance(value, dict) and isinstance(value.get("ulid"), str):
        ulid, deleted = value["ulid"], bool(value.get("deleted", False))
    else:
        raise MappingFormatError(f"Invalid entry for short code '{code}' in ids.yml")

    ulid = ulid.lower()
    if ulid.startswith(INTERNAL_PREFIX):
        ulid = ulid[len(INTERNAL_PREFIX) :]
    if not is_ulid(ulid):
        raise MappingFormatError(f"Invalid ULID for short code '{code}' in ids.yml: '{ulid}'")
    return MappingEntry(code=code, ulid=ulid, deleted=deleted)


def merge_mappings(
    local: IdMapping,
    remote: IdMapping,
    min_length: int = codes.DEFAULT_CODE_LENGTH,
) -> tuple[IdMapping, list[CodeRename]]:
    """
    Merge two mapping tables.

    The result is the union of both. When the same code is bound to two
    different ULIDs, the older ULID (smaller value) keeps it and the other
    is re-minted; each such re-mint is reported as a rename. Deleted flags
    of identical rows are OR-ed. The outcome does not depend on which side
    is local, so two clones merging the same pair converge.

    Returns:
        Tuple of (merged table, renames)
    """
    merged: dict[str, MappingEntry] = {}
    losers: dict[str, str] = {}

    for entry in [*local, *remote]:
        current = merged.get(entry.code)
        if current is None:
            merged[entry.code] = entry
        elif current.ulid == entry.ulid:
            if entry.deleted and not current.deleted:
                merged[entry.code] = entry
        else:
            keep, lose = (current, entry) if current.ulid < entry.ulid else (entry, current)
            merged[entry.code] = keep
            losers.setdefault(lose.ulid, lose.code)

    result = IdMapping(merged.values())
    renames: list[CodeRename] = []
    for ulid in sorted(losers):
        old_code = losers[ulid]
        live = result.codes_for(ulid)
        new_code = live[0] if live else result.mint(ulid, min_length)
        logger.warning(
            "Short code collision on '%s': %s%s is now '%s'",
            old_code,
            INTERNAL_PREFIX,
            ulid,
            new_code,
        )
        renames.append(CodeRename(ulid=ulid, old_code=old_code, new_code=new_code))

    return result, renames


def reconcile_mappings(
    table: IdMapping,
    ulids: Iterable[str],
    historical: IdMapping | None = None,
    min_length: int = codes.DEFAULT_CODE_LENGTH,
) -> dict[str, str]:
    """
    Give every ULID in ``ulids`` a mapping entry.

    A ULID missing from ``table`` first tries to recover its code from
    ``historical`` (usually the other side of a merge), provided that code
    is still free; otherwise a new code is minted.

    Returns:
        Dict of ulid -> code for every entry that was added
    """
    added: dict[str, str] = {}
    for ulid in sorted(ulids):
        if table.has_ulid(ulid):
            if not table.codes_for(ulid):
                # Deleted on one side, modified on the other: the issue lives on
                added[ulid] = table.revive(ulid)
            continue
        recovered = None
        if historical is not None:
            for code in historical.codes_for(ulid):
                if code not in table:
                    recovered = code
                    break
        if recovered is not None:
            table.add(recovered, ulid)
            added[ulid] = recovered
        else:
            added[ulid] = table.mint(ulid, min_length)
        logger.info("Reconciled mapping for %s%s -> %s", INTERNAL_PREFIX, ulid, added[ulid])
    return added
