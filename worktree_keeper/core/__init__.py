"""Core orchestration for worktree-keeper."""

from worktree_keeper.core.worktree_keeper import SyncResult, WorktreeKeeper

__all__ = ["SyncResult", "WorktreeKeeper"]
