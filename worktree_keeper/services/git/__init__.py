"""Git-related services for worktree-keeper."""

from .worktrees import GitWorktreeService, parse_worktree_porcelain

__all__ = [
    "GitWorktreeService",
    "parse_worktree_porcelain",
]
