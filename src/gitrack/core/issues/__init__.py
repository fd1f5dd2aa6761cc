"""Issues: the model, its file format, storage and field-level merge."""

from gitrack.core.issues.merge import FieldConflict, IssueMergeResult, MergeStrategy, merge_issues
from gitrack.core.issues.models import Dependency, Issue, IssueKind, IssueStatus
from gitrack.core.issues.parser import IssueParseError, parse_issue, serialize_issue
from gitrack.core.issues.storage import IssueStore

__all__ = [
    "Dependency",
    "FieldConflict",
    "Issue",
    "IssueKind",
    "IssueMergeResult",
    "IssueParseError",
    "IssueStatus",
    "IssueStore",
    "MergeStrategy",
    "merge_issues",
    "parse_issue",
    "serialize_issue",
]
