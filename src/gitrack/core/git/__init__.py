"""Git access for gitrack: the backend protocol and its GitPython implementation."""

from gitrack.core.git.backend import GitBackend, GitCliBackend, GitError

__all__ = ["GitBackend", "GitCliBackend", "GitError"]
