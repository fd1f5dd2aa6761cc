"""Utility helpers shared by the CLI and core modules."""

from gitrack.utils.project import find_git_root, find_project_root, get_project_root

__all__ = ["find_git_root", "find_project_root", "get_project_root"]
