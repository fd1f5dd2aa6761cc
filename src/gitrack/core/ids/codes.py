"""
Short code derivation.

A ULID's candidate codes are prefixes of one base36 string computed from a
BLAKE2b digest of the ULID. Minting starts at the shortest allowed length
and grows one character at a time until a free code is found, so a
collision never truncates or reuses a code that is already taken.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterator

BASE36_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

DEFAULT_CODE_LENGTH = 4
LARGE_TABLE_CODE_LENGTH = 5
LARGE_TABLE_THRESHOLD = 50_000
MAX_CODE_LENGTH = 16

# 128-bit digest -> at most 25 base36 digits
_DIGEST_SIZE = 16
_DIGEST_WIDTH = 25


def to_base36(value: int) -> str:
    """Encode a non-negative integer in lowercase base36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def code_digest(ulid: str) -> str:
    """Deterministic base36 digest of a ULID, zero-padded to a fixed width."""
    raw = hashlib.blake2b(ulid.lower().encode("ascii"), digest_size=_DIGEST_SIZE).digest()
    return to_base36(int.from_bytes(raw, "big")).rjust(_DIGEST_WIDTH, "0")


def start_length(entry_count: int, min_length: int = DEFAULT_CODE_LENGTH) -> int:
    """
    Length of the first candidate code.

    Tables with 50,000 entries or more start one character longer to keep
    the collision rate low.
    """
    base = LARGE_TABLE_CODE_LENGTH if entry_count >= LARGE_TABLE_THRESHOLD else DEFAULT_CODE_LENGTH
    return min(max(base, min_length), MAX_CODE_LENGTH)


def candidate_codes(
    ulid: str,
    entry_count: int = 0,
    min_length: int = DEFAULT_CODE_LENGTH,
) -> Iterator[str]:
    """
    Yield the candidate codes for ``ulid`` from shortest to longest.

    Example:
        >>> codes = list(candidate_codes("01hq3k5v7w8x9y0z1a2b3c4d5e"))
        >>> [len(c) for c in codes][:3]
        [4, 5, 6]
    """
    digest = code_digest(ulid)
    for length in range(start_length(entry_count, min_length), MAX_CODE_LENGTH + 1):
        yield digest[:length]
