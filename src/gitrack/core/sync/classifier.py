"""
Sync error classification.

Decides whether a failed fetch or push is worth retrying:

    permanent  retrying cannot help (auth, permissions, branch protection,
               server-side hooks); local changes should be preserved
    transient  network or server hiccup; retrying later should work
    unknown    neither; the user is offered both options

Classification is pure: structured exception types are checked first,
then the message and captured stderr are matched against the pattern
table below, permanent patterns before transient ones. Bump
PATTERN_TABLE_VERSION whenever the table changes.
"""

from __future__ import annotations

import re
import subprocess

from gitrack.core.sync.models import SyncErrorKind

PATTERN_TABLE_VERSION = 1

PERMANENT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\b40[13]\b",
        r"forbidden",
        r"permission denied",
        r"authentication failed",
        r"protected branch",
        r"remote rejected",
        r"hook declined",
        r"push declined",
        r"not allowed to push",
    )
)

TRANSIENT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"timed out",
        r"timeout",
        r"connection (refused|reset|closed)",
        r"network is unreachable",
        r"could not resolve host",
        r"\bdns\b",
        r"\b50[0-4]\b",
        r"server error",
        r"temporarily unavailable",
        r"try again",
        r"no route to host",
    )
)

NON_FAST_FORWARD_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"non-fast-forward",
        r"\(fetch first\)",
        r"updates were rejected because the (remote contains|tip of)",
        r"! \[rejected\]",
    )
)

TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    subprocess.TimeoutExpired,
)


def error_text(error: BaseException | str) -> str:
    """Message plus any captured stderr, as one string."""
    if isinstance(error, str):
        return error
    parts = [str(error)]
    stderr = getattr(error, "stderr", None)
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    if isinstance(stderr, str) and stderr and stderr not in parts[0]:
        parts.append(stderr)
    return "\n".join(parts)


def classify(error: BaseException | str) -> SyncErrorKind:
    """
    Classify a sync failure.

    Example:
        >>> classify("HTTP 403 Forbidden")
        <SyncErrorKind.PERMANENT: 'permanent'>
        >>> classify(TimeoutError("read timed out"))
        <SyncErrorKind.TRANSIENT: 'transient'>
        >>> classify("Something went wrong")
        <SyncErrorKind.UNKNOWN: 'unknown'>
    """
    if isinstance(error, TRANSIENT_EXCEPTIONS):
        return SyncErrorKind.TRANSIENT

    text = error_text(error)
    if any(p.search(text) for p in PERMANENT_PATTERNS):
        return SyncErrorKind.PERMANENT
    if any(p.search(text) for p in TRANSIENT_PATTERNS):
        return SyncErrorKind.TRANSIENT
    return SyncErrorKind.UNKNOWN


def is_non_fast_forward(error: BaseException | str) -> bool:
    """Check whether a push was rejected only because the remote moved ahead."""
    text = error_text(error)
    if any(p.search(text) for p in PERMANENT_PATTERNS):
        return False
    return any(p.search(text) for p in NON_FAST_FORWARD_PATTERNS)
