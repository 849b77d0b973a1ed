"""Data models for worktree-keeper."""

from .worktree import WorktreeInfo, WorktreeRecord
from .pr import PRInfo, PRState, CACHE_MAX_AGE
from .cache import CacheDocument, WorktreeEntry, make_worktree_key, mark_removed_by_key
from .issue import FixAction, Issue, IssueCategory, IssueStats

__all__ = [
    "WorktreeInfo",
    "WorktreeRecord",
    "PRInfo",
    "PRState",
    "CACHE_MAX_AGE",
    "CacheDocument",
    "WorktreeEntry",
    "make_worktree_key",
    "mark_removed_by_key",
    "FixAction",
    "Issue",
    "IssueCategory",
    "IssueStats",
]
