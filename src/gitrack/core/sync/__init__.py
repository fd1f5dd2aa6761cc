"""
Sync of the issue branch with a remote.

The protocol itself lives in ``gitrack.core.sync.protocol``; this package
exports the models and the error classifier.
"""

from gitrack.core.sync.models import (
    Recovery,
    SyncConflict,
    SyncErrorKind,
    SyncFailure,
    SyncPhase,
    SyncResult,
    SyncState,
)
from gitrack.core.sync.classifier import PATTERN_TABLE_VERSION, classify, is_non_fast_forward

__all__ = [
    "PATTERN_TABLE_VERSION",
    "Recovery",
    "SyncConflict",
    "SyncErrorKind",
    "SyncFailure",
    "SyncPhase",
    "SyncResult",
    "SyncState",
    "classify",
    "is_non_fast_forward",
]
