"""
gitrack - git-native issue tracking.

Issues live as Markdown files on a dedicated sync branch, staged in an
isolated git worktree and exchanged with collaborators through plain
fetch and push.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
