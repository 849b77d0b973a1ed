"""Cache document model: worktree identities and embedded PR metadata."""
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.pr import PRInfo, format_timestamp, parse_timestamp, utcnow
from worktree_keeper.models.worktree import WorktreeInfo

logger = get_logger(__name__)


def make_worktree_key(path: str) -> str:
    """Create a cache key from a worktree path (its folder name).

    Trailing separators are ignored, so "/wt/repo-feat/" and "/wt/repo-feat"
    share the key "repo-feat". Two worktrees with the same folder name in
    different directories collide.
    """
    trimmed = path.rstrip("/" + os.sep)
    return os.path.basename(trimmed) if trimmed else ""


@dataclass
class WorktreeEntry:
    """One tracked worktree."""
    id: int
    path: str
    branch: str = ""
    origin_url: str = ""
    repo_path: str = ""
    removed_at: Optional[datetime] = None  # Set when the worktree disappeared
    pr: Optional[PRInfo] = None

    @property
    def is_removed(self) -> bool:
        return self.removed_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "branch": self.branch,
            "origin_url": self.origin_url,
            "repo_path": self.repo_path,
            "removed_at": format_timestamp(self.removed_at),
            "pr": self.pr.to_dict() if self.pr is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorktreeEntry":
        """Build an entry from its cached dictionary form.

        Raises:
            ValueError: If the entry is not an object or lacks an integer id
        """
        if not isinstance(data, dict):
            raise ValueError(f"entry must be an object, got {type(data).__name__}")
        entry_id = data.get("id")
        if not isinstance(entry_id, int) or isinstance(entry_id, bool):
            raise ValueError(f"entry id must be an integer, got {entry_id!r}")
        pr = None
        pr_data = data.get("pr")
        if pr_data:
            try:
                pr = PRInfo.from_dict(pr_data)
            except (ValueError, TypeError) as e:
                # The entry and its ID survive; PR info is refetched later
                logger.warning(f"Discarding invalid PR data for entry {entry_id}: {e}")
        return cls(
            id=entry_id,
            path=data.get("path") or "",
            branch=data.get("branch") or "",
            origin_url=data.get("origin_url") or "",
            repo_path=data.get("repo_path") or "",
            removed_at=parse_timestamp(data.get("removed_at")),
            pr=pr,
        )


@dataclass
class CacheDocument:
    """The persisted cache: worktree entries keyed by folder name plus the ID counter.

    Entries are never deleted by normal operation, only marked removed, so
    IDs stay stable when a worktree disappears and comes back.
    """
    worktrees: Dict[str, WorktreeEntry] = field(default_factory=dict)
    next_id: int = 1
    # Pre-migration PR data (origin -> branch -> PR); never written back
    legacy_prs: Optional[Dict[str, Dict[str, Any]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worktrees": {key: entry.to_dict() for key, entry in self.worktrees.items()},
            "next_id": self.next_id,
        }

    # --- identity registry -------------------------------------------------

    def get_or_assign_id(self, info: WorktreeInfo) -> int:
        """Return the ID for a worktree, assigning the next free one if it is new.

        An existing entry has its metadata overwritten with ``info`` and its
        removed marker cleared.
        """
        key = make_worktree_key(info.path)

        entry = self.worktrees.get(key)
        if entry is not None:
            entry.path = info.path
            entry.repo_path = info.repo_path
            entry.branch = info.branch
            entry.origin_url = info.origin_url
            entry.removed_at = None
            return entry.id

        entry_id = self.next_id
        self.next_id += 1
        self.worktrees[key] = WorktreeEntry(
            id=entry_id,
            path=info.path,
            repo_path=info.repo_path,
            branch=info.branch,
            origin_url=info.origin_url,
        )
        return entry_id

    def get_by_id(self, worktree_id: int) -> Tuple[str, bool, bool]:
        """Look up a worktree path by ID.

        Returns:
            Tuple of (path, found, removed)
        """
        for entry in self.worktrees.values():
            if entry.id == worktree_id:
                return entry.path, True, entry.is_removed
        return "", False, False

    def get_branch_by_id(self, worktree_id: int) -> Tuple[str, str, bool, bool]:
        """Look up a worktree branch by ID.

        Returns:
            Tuple of (branch, path, found, removed)
        """
        for entry in self.worktrees.values():
            if entry.id == worktree_id:
                return entry.branch, entry.path, True, entry.is_removed
        return "", "", False, False

    def mark_removed(self, key: str) -> None:
        """Mark an entry as removed; unknown or already-removed keys are left alone."""
        entry = self.worktrees.get(key)
        if entry is not None and entry.removed_at is None:
            entry.removed_at = utcnow()

    def sync_worktrees(self, worktrees: List[WorktreeInfo]) -> Dict[str, int]:
        """Update the cache with the current set of worktrees.

        Live worktrees are created or refreshed; active entries missing from
        the list are marked removed (never deleted).

        Returns:
            Mapping of worktree path to its ID
        """
        current_keys = set()
        path_to_id: Dict[str, int] = {}

        for info in worktrees:
            current_keys.add(make_worktree_key(info.path))
            path_to_id[info.path] = self.get_or_assign_id(info)

        now = utcnow()
        for key, entry in self.worktrees.items():
            if key not in current_keys and entry.removed_at is None:
                entry.removed_at = now

        return path_to_id

    def reset(self) -> None:
        """Drop every entry and restart IDs at 1."""
        self.legacy_prs = None
        self.worktrees = {}
        self.next_id = 1

    def active_entries(self) -> Iterator[Tuple[str, WorktreeEntry]]:
        """Iterate over (key, entry) pairs that are not marked removed."""
        for key, entry in self.worktrees.items():
            if entry.removed_at is None:
                yield key, entry

    def count_active(self) -> int:
        return sum(1 for _ in self.active_entries())

    # --- PR metadata index -------------------------------------------------

    def get_branch_by_pr_number(self, origin_url: str, pr_number: int) -> str:
        """Return the branch whose fresh cached PR has this number, or "" if none."""
        for entry in self.worktrees.values():
            pr = entry.pr
            if pr is None or pr.number != pr_number or pr.is_stale():
                continue
            if entry.origin_url == origin_url:
                return entry.branch
        return ""

    def get_pr_for_branch(self, key: str) -> Optional[PRInfo]:
        entry = self.worktrees.get(key)
        return entry.pr if entry is not None else None

    def set_pr_for_branch(self, key: str, pr: Optional[PRInfo]) -> None:
        """Store PR info on an entry by key; unknown keys are ignored."""
        entry = self.worktrees.get(key)
        if entry is not None:
            entry.pr = pr

    def get_pr_by_origin_and_branch(self, origin_url: str, branch: str) -> Optional[PRInfo]:
        for entry in self.worktrees.values():
            if entry.origin_url == origin_url and entry.branch == branch:
                return entry.pr
        return None

    def set_pr_by_origin_and_branch(self, origin_url: str, branch: str, pr: Optional[PRInfo]) -> None:
        """Store PR info on the first entry matching both origin and branch."""
        for entry in self.worktrees.values():
            if entry.origin_url == origin_url and entry.branch == branch:
                entry.pr = pr
                return


def mark_removed_by_key(doc: CacheDocument, key: str) -> None:
    """Mark a cache entry as removed. Used by the doctor repair pass."""
    doc.mark_removed(key)
