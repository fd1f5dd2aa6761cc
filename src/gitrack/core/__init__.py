"""Core domain logic for gitrack (IDs, issues, worktree, sync)."""
