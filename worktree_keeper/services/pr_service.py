"""Keeps the PR metadata embedded in the worktree cache up to date."""

import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple, Union

from worktree_keeper.exceptions import ForgeError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.cache import CacheDocument, WorktreeEntry
from worktree_keeper.models.pr import PRInfo, PRState
from worktree_keeper.services.forge import Forge, detect_forge

if TYPE_CHECKING:
    from worktree_keeper.config import Config

logger = get_logger(__name__)

# Cap on parallel forge requests, to stay clear of API rate limits
MAX_CONCURRENT_FETCHES = 10


def needs_pr_fetch(entry: WorktreeEntry, force: bool = False) -> bool:
    """Check whether an entry's PR info should be fetched again.

    Removed entries and entries without an origin are never fetched. A merged
    PR is final and is kept even when stale.
    """
    if entry.is_removed or not entry.origin_url or not entry.branch:
        return False
    pr = entry.pr
    if pr is not None and pr.fetched and pr.state == PRState.MERGED:
        return False
    if force:
        return True
    return pr is None or not pr.fetched or pr.is_stale()


class PRService:
    """Fetches PR info from the forges and stores it in the cache document."""

    def __init__(
        self,
        config: Union["Config", dict],
        forge_factory: Optional[Callable[[str], Forge]] = None,
    ):
        self.config = config
        self.default_forge = config.get("forge", "github")
        self.github_token = config.get("github_token")
        self.workers = config.get("workers")
        self._forge_factory = forge_factory or self._detect
        self._forges: Dict[str, Forge] = {}

    def _detect(self, origin_url: str) -> Forge:
        return detect_forge(origin_url, default=self.default_forge, github_token=self.github_token)

    def forge_for(self, origin_url: str) -> Forge:
        if origin_url not in self._forges:
            self._forges[origin_url] = self._forge_factory(origin_url)
        return self._forges[origin_url]

    def _fetch_single(self, key: str, origin_url: str, branch: str) -> Tuple[str, Optional[PRInfo]]:
        """Fetch PR data for one worktree. Returns (key, pr_info or None on failure)."""
        try:
            return key, self.forge_for(origin_url).get_pr_for_branch(origin_url, branch)
        except ForgeError as e:
            logger.debug(f"PR fetch failed for {key} ({branch}): {e}")
            return key, None
        except Exception as e:
            logger.warning(f"Unexpected error fetching PR for {key} ({branch}): {e}")
            return key, None

    def refresh(self, doc: CacheDocument, force: bool = False) -> Tuple[int, int]:
        """Fetch PR info for every worktree that needs it.

        Results are written into ``doc`` on the calling thread.

        Returns:
            Tuple of (fetched, failed)
        """
        items = [
            (key, entry.origin_url, entry.branch)
            for key, entry in doc.worktrees.items()
            if needs_pr_fetch(entry, force)
        ]
        if not items:
            logger.debug("No PR info needs refreshing")
            return 0, 0

        # Resolve forges up front so worker threads only read the mapping
        for _, origin_url, _ in items:
            self.forge_for(origin_url)

        max_workers = min(MAX_CONCURRENT_FETCHES, self.workers or os.cpu_count() or 1, len(items))
        logger.debug(f"Fetching PR data for {len(items)} worktrees using {max_workers} workers")

        results: List[Tuple[str, Optional[PRInfo]]] = []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(self._fetch_single, *item) for item in items]
            for future in as_completed(futures):
                results.append(future.result())

        fetched = failed = 0
        for key, pr in results:
            if pr is None:
                failed += 1
                continue
            doc.set_pr_for_branch(key, pr)
            fetched += 1

        logger.debug(f"Fetched PR data for {fetched} worktrees, {failed} failed")
        return fetched, failed

    def resolve_pr_branch(self, doc: CacheDocument, origin_url: str, number: int) -> str:
        """Return the branch of a PR, from the cache when fresh, else from the forge.

        Raises:
            ForgeError: If the forge lookup fails
        """
        branch = doc.get_branch_by_pr_number(origin_url, number)
        if branch:
            logger.debug(f"PR #{number} resolved from cache: {branch}")
            return branch
        return self.forge_for(origin_url).get_pr_branch(origin_url, number)
