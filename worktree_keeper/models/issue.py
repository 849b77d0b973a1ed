"""Doctor issue models and related enums"""
from dataclasses import dataclass
from enum import Enum


class IssueCategory(Enum):
    """Groups issues by type."""
    CACHE = "cache"    # Problems with cache data
    GIT = "git"        # Problems with git worktree links
    ORPHAN = "orphan"  # Untracked worktrees or ghost entries


class FixAction(Enum):
    """What a repair pass does about an issue."""
    MARK_REMOVED = "mark_removed"
    UPDATE_PATH = "update_path"
    UPDATE_METADATA = "update_metadata"
    REASSIGN_ID = "reassign_id"
    REPAIR = "repair"
    PRUNE = "prune"
    ADD_TO_CACHE = "add_to_cache"
    REPAIR_AND_ADD = "repair_and_add"
    REMOVE_ORPHAN_DIR = "remove_orphan_dir"  # Reported only, never deleted


UNTRACKED_ACTIONS = frozenset({
    FixAction.ADD_TO_CACHE,
    FixAction.REPAIR_AND_ADD,
    FixAction.REMOVE_ORPHAN_DIR,
})


@dataclass
class Issue:
    """A problem detected by the doctor."""
    key: str  # Cache key or directory name
    description: str
    fix_action: FixAction
    category: IssueCategory = IssueCategory.CACHE
    repo_path: str = ""  # Repository used by git repairs

    def __str__(self) -> str:
        return f"{self.key}: {self.description}"


@dataclass
class IssueStats:
    """Issue counts by category."""
    cache_valid: int = 0
    cache_issues: int = 0
    git_healthy: int = 0
    git_repairable: int = 0
    git_unrepairable: int = 0
    git_prunable: int = 0
    orphan_untracked: int = 0
    orphan_ghost: int = 0
