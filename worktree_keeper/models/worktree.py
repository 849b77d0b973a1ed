"""Worktree data models."""

from dataclasses import dataclass


@dataclass
class WorktreeInfo:
    """Live information about a worktree, used to sync the cache.

    Only ``path`` is required; the other fields are kept as metadata so a
    broken worktree can be repaired later.
    """

    path: str
    repo_path: str = ""
    branch: str = ""
    origin_url: str = ""

    def __str__(self) -> str:
        """String representation of worktree."""
        branch = self.branch or "?"
        return f"{branch} @ {self.path}"


@dataclass
class WorktreeRecord:
    """A worktree as reported by ``git worktree list --porcelain``."""

    path: str
    branch_name: str
    commit_sha: str
    is_main: bool  # Is this the main working tree?
    prunable: bool = False  # Git considers the reference stale

    def __str__(self) -> str:
        """String representation of worktree."""
        status = "prunable" if self.prunable else "active"
        main_marker = " (main)" if self.is_main else ""
        return f"{self.branch_name} @ {self.path}{main_marker} [{status}]"
