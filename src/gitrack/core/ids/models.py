"""
ID models for issue identification.

Every issue has two identifiers:

    - Internal ID: ``is-<ulid>``, assigned once at creation and never changed.
      The ULID is 26 lowercase Crockford base32 characters, so internal IDs
      sort by creation time.
    - Display ID: ``<prefix>-<code>``, the short form humans type. The code is
      derived from the ULID and recorded in the mapping table; the prefix is
      a project setting.

ID Format Examples:
    - Internal: is-01hq3k5v7w8x9y0z1a2b3c4d5e
    - Display:  proj-a7k2
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, field_validator
from ulid import ULID

INTERNAL_PREFIX = "is-"

ULID_RE = re.compile(r"^[0-9a-hjkmnp-tv-z]{26}$")
CODE_RE = re.compile(r"^[0-9a-z]+$")
DISPLAY_RE = re.compile(r"^([a-z]+)-([0-9a-z]+)$")


def is_ulid(value: str) -> bool:
    """Check whether ``value`` is a lowercase ULID string."""
    return bool(ULID_RE.match(value))


def is_internal_id(value: str) -> bool:
    """Check whether ``value`` has the ``is-<ulid>`` shape."""
    return value.startswith(INTERNAL_PREFIX) and is_ulid(value[len(INTERNAL_PREFIX) :])


class InternalId(BaseModel):
    """
    Internal ID: ``is-{ulid}``.

    Immutable; used for file names, references between issues and the
    mapping table.
    """

    ulid: str

    model_config = ConfigDict(frozen=True)

    @field_validator("ulid")
    @classmethod
    def validate_ulid(cls, v: str) -> str:
        """Validate and normalize the ULID to lowercase."""
        v = v.lower()
        if not is_ulid(v):
            raise ValueError(f"Invalid ULID: '{v}'")
        return v

    @classmethod
    def new(cls) -> InternalId:
        """Generate a fresh, time-sortable internal ID."""
        return cls(ulid=str(ULID()).lower())

    @classmethod
    def parse(cls, value: str) -> InternalId:
        """
        Parse ``is-<ulid>`` (or a bare ULID).

        Raises:
            ValueError: If the value is not a valid internal ID.
        """
        value = value.strip().lower()
        if value.startswith(INTERNAL_PREFIX):
            value = value[len(INTERNAL_PREFIX) :]
        return cls(ulid=value)

    def __str__(self) -> str:
        """Format as is-{ulid}"""
        return f"{INTERNAL_PREFIX}{self.ulid}"


class DisplayId(BaseModel):
    """Display ID: ``{prefix}-{code}`` → proj-a7k2"""

    prefix: str
    code: str

    model_config = ConfigDict(frozen=True)

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Validate the code is lowercase base36."""
        if not CODE_RE.match(v):
            raise ValueError(f"Invalid short code: '{v}'")
        return v

    def __str__(self) -> str:
        """Format as {prefix}-{code}"""
        return f"{self.prefix}-{self.code}"

    @classmethod
    def parse(cls, value: str) -> DisplayId:
        """Parse ``prefix-code``, case-insensitive; any letter prefix is accepted."""
        match = DISPLAY_RE.match(value.strip().lower())
        if match is None:
            raise ValueError(f"Invalid display ID: '{value}'")
        return cls(prefix=match.group(1), code=match.group(2))


class MappingEntry(BaseModel):
    """One row of the mapping table: a short code bound to a ULID."""

    code: str
    ulid: str
    deleted: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def internal_id(self) -> str:
        return f"{INTERNAL_PREFIX}{self.ulid}"


class CodeRename(BaseModel):
    """A ULID that lost its short code in a mapping merge and received a new one."""

    ulid: str
    old_code: str
    new_code: str

    model_config = ConfigDict(frozen=True)
