"""Core functionality for worktree-keeper"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from worktree_keeper.config import Config
from worktree_keeper.exceptions import WorktreeKeeperError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.cache import CacheDocument, WorktreeEntry
from worktree_keeper.services.cache_service import CacheService
from worktree_keeper.services.display_service import DisplayService
from worktree_keeper.services.git import GitWorktreeService
from worktree_keeper.services.pr_service import PRService

logger = get_logger(__name__)


@dataclass
class SyncResult:
    """Outcome of a sync: live worktree IDs and PR refresh counts."""
    path_to_id: Dict[str, int]
    removed: int = 0
    prs_fetched: int = 0
    prs_failed: int = 0


class WorktreeKeeper:
    """Keeps the worktree cache in step with the worktrees on disk."""

    def __init__(
        self,
        config: Union[Config, dict],
        git_service: Optional[GitWorktreeService] = None,
        pr_service: Optional[PRService] = None,
        display: Optional[DisplayService] = None,
    ):
        if isinstance(config, dict):
            config = Config.from_dict(config)
        self.config = config
        self.worktree_dir = config.abs_worktree_dir()
        self.git_service = git_service or GitWorktreeService()
        self.pr_service = pr_service or PRService(config)
        self.cache_service = CacheService(self.worktree_dir)
        self.display = display

    def sync(self, refresh_prs: Optional[bool] = None) -> SyncResult:
        """Register live worktrees, mark vanished ones removed and save.

        Raises:
            GitOperationError: If the worktree directory can't be scanned
            LockAcquisitionError: If the cache lock can't be taken
            CacheIOError: If the cache can't be read or saved
        """
        if refresh_prs is None:
            refresh_prs = self.config.refresh_prs

        with self.cache_service.locked() as doc:
            worktrees = self.git_service.scan_worktrees(self.worktree_dir)
            active_before = {key for key, _ in doc.active_entries()}
            path_to_id = doc.sync_worktrees(worktrees)
            active_after = {key for key, _ in doc.active_entries()}
            result = SyncResult(path_to_id=path_to_id, removed=len(active_before - active_after))

            if refresh_prs:
                result.prs_fetched, result.prs_failed = self.pr_service.refresh(doc)

            self.cache_service.save(doc)

        logger.info(
            f"Synced {len(path_to_id)} worktrees ({result.removed} marked removed)"
        )
        return result

    def show(self, worktree_id: int) -> Tuple[str, WorktreeEntry]:
        """Return (key, entry) for a worktree ID.

        Raises:
            WorktreeKeeperError: If no entry has the ID
        """
        doc = self.cache_service.load()
        for key, entry in doc.worktrees.items():
            if entry.id == worktree_id:
                return key, entry
        raise WorktreeKeeperError(f"No worktree with ID {worktree_id}")

    def refresh_prs(self, force: bool = False) -> Tuple[int, int]:
        """Refresh cached PR info under the cache lock and save.

        Returns:
            Tuple of (fetched, failed)
        """
        with self.cache_service.locked() as doc:
            fetched, failed = self.pr_service.refresh(doc, force=force)
            if fetched:
                self.cache_service.save(doc)
        return fetched, failed

    def load(self) -> CacheDocument:
        return self.cache_service.load()
