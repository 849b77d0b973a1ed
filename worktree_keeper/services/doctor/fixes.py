"""Repair executor applying doctor fixes to the cache and git."""
import os
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import git

from worktree_keeper.exceptions import GitOperationError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.cache import CacheDocument, mark_removed_by_key
from worktree_keeper.models.issue import FixAction, Issue
from worktree_keeper.services.cache_service import CacheService
from worktree_keeper.services.git import GitWorktreeService

logger = get_logger(__name__)


@dataclass
class FixOutcome:
    """Result of applying one issue's fix."""
    issue: Issue
    success: bool
    message: str


@dataclass
class FixResult:
    """Counts and per-issue messages of a repair pass."""
    fixed: int = 0
    failed: int = 0
    outcomes: List[FixOutcome] = field(default_factory=list)

    @property
    def messages(self) -> List[str]:
        return [outcome.message for outcome in self.outcomes]

    def record(self, issue: Issue, success: bool, message: str) -> None:
        if success:
            self.fixed += 1
        else:
            self.failed += 1
        self.outcomes.append(FixOutcome(issue, success, message))


class FixFailed(Exception):
    """Raised by a fix handler when its issue could not be fixed."""


class RepairExecutor:
    """Applies each issue's FixAction to an in-memory cache document.

    Handlers return a success message or raise FixFailed; a failure never
    stops the remaining issues. Saving is left to the caller.
    """

    def __init__(self, git_service: GitWorktreeService, scan_path: str):
        self.git_service = git_service
        self.scan_path = scan_path
        self._handlers: Dict[FixAction, Callable[[CacheDocument, Issue], str]] = {
            FixAction.MARK_REMOVED: self._mark_removed,
            FixAction.UPDATE_PATH: self._update_path,
            FixAction.UPDATE_METADATA: self._update_metadata,
            FixAction.REASSIGN_ID: self._reassign_id,
            FixAction.REPAIR: self._repair,
            FixAction.PRUNE: self._prune,
            FixAction.ADD_TO_CACHE: self._add_to_cache,
            FixAction.REPAIR_AND_ADD: self._repair_and_add,
            FixAction.REMOVE_ORPHAN_DIR: self._remove_orphan_dir,
        }
        missing = set(FixAction) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No fix handler for {sorted(a.value for a in missing)}")

    def apply(self, doc: CacheDocument, issues: List[Issue]) -> FixResult:
        result = FixResult()
        for issue in issues:
            handler = self._handlers[issue.fix_action]
            try:
                message = handler(doc, issue)
            except FixFailed as e:
                logger.debug(f"Fix {issue.fix_action.value} failed for {issue.key}: {e}")
                result.record(issue, False, str(e))
                continue
            except (GitOperationError, git.exc.GitError, OSError) as e:
                logger.warning(f"Fix {issue.fix_action.value} errored for {issue.key}: {e}")
                result.record(issue, False, f"Failed to fix '{issue.key}': {e}")
                continue
            logger.debug(f"Fix {issue.fix_action.value} applied to {issue.key}")
            result.record(issue, True, message)
        return result

    def _entry(self, doc: CacheDocument, issue: Issue):
        entry = doc.worktrees.get(issue.key)
        if entry is None:
            raise FixFailed(f"Cannot fix '{issue.key}': entry no longer in cache")
        return entry

    def _worktree_path(self, issue: Issue) -> str:
        return os.path.join(self.scan_path, issue.key)

    # --- cache fixes -------------------------------------------------------

    def _mark_removed(self, doc: CacheDocument, issue: Issue) -> str:
        mark_removed_by_key(doc, issue.key)
        return f"Marked '{issue.key}' as removed"

    def _update_path(self, doc: CacheDocument, issue: Issue) -> str:
        entry = self._entry(doc, issue)
        entry.path = self._worktree_path(issue)
        return f"Updated path for '{issue.key}'"

    def _update_metadata(self, doc: CacheDocument, issue: Issue) -> str:
        entry = self._entry(doc, issue)
        if not entry.path:
            raise FixFailed(f"Cannot update metadata for '{issue.key}': no path")

        try:
            entry.repo_path = self.git_service.get_main_repo_path(entry.path)
        except GitOperationError as e:
            logger.debug(f"Could not resolve repo for {entry.path}: {e}")
        try:
            entry.branch = self.git_service.get_current_branch(entry.path)
        except GitOperationError as e:
            logger.debug(f"Could not read branch for {entry.path}: {e}")
        if entry.repo_path:
            try:
                entry.origin_url = self.git_service.get_origin_url(entry.repo_path)
            except GitOperationError:
                entry.origin_url = ""
        return f"Updated metadata for '{issue.key}'"

    def _reassign_id(self, doc: CacheDocument, issue: Issue) -> str:
        entry = self._entry(doc, issue)
        # Strictly above the counter value seen before the repair
        doc.next_id += 1
        entry.id = doc.next_id
        doc.next_id += 1
        return f"Reassigned ID for '{issue.key}' (now {entry.id})"

    # --- git fixes ---------------------------------------------------------

    def _run_repair(self, repo_path: str, worktree_path: str, key: str) -> None:
        success, error_msg = self.git_service.repair_worktree(repo_path, worktree_path)
        if not success:
            raise FixFailed(f"Failed to repair '{key}': {error_msg}")

    def _repair(self, doc: CacheDocument, issue: Issue) -> str:
        if not issue.repo_path:
            raise FixFailed(f"Cannot repair '{issue.key}': missing repo path")
        entry = self._entry(doc, issue)
        if not entry.path:
            raise FixFailed(f"Cannot repair '{issue.key}': no path")

        self._run_repair(issue.repo_path, entry.path, issue.key)

        if entry.repo_path == issue.repo_path:
            return f"Repaired git links for '{issue.key}'"

        entry.repo_path = issue.repo_path
        try:
            entry.origin_url = self.git_service.get_origin_url(issue.repo_path)
        except GitOperationError as e:
            logger.debug(f"Keeping old origin for {issue.key}: {e}")
        return f"Repaired git links for '{issue.key}' (updated repo path)"

    def _prune(self, doc: CacheDocument, issue: Issue) -> str:
        if not issue.repo_path:
            raise FixFailed(f"Cannot prune '{issue.key}': missing repo path")
        success, error_msg = self.git_service.prune_worktrees(issue.repo_path)
        if not success:
            raise FixFailed(f"Failed to prune '{issue.key}': {error_msg}")
        return f"Pruned stale reference '{issue.key}'"

    # --- orphan fixes ------------------------------------------------------

    def _register(self, doc: CacheDocument, path: str, key: str, failure_prefix: str) -> int:
        try:
            info = self.git_service.get_worktree_info(path)
        except GitOperationError as e:
            raise FixFailed(f"{failure_prefix} '{key}': {e}") from e
        return doc.get_or_assign_id(info)

    def _add_to_cache(self, doc: CacheDocument, issue: Issue) -> str:
        path = self._worktree_path(issue)
        worktree_id = self._register(doc, path, issue.key, "Failed to get info for")
        return f"Added '{issue.key}' to cache (ID {worktree_id})"

    def _repair_and_add(self, doc: CacheDocument, issue: Issue) -> str:
        if not issue.repo_path:
            raise FixFailed(f"Cannot repair '{issue.key}': missing repo path")
        path = self._worktree_path(issue)
        self._run_repair(issue.repo_path, path, issue.key)
        worktree_id = self._register(doc, path, issue.key, "Repaired but failed to get info for")
        return f"Repaired and added '{issue.key}' to cache (ID {worktree_id})"

    def _remove_orphan_dir(self, doc: CacheDocument, issue: Issue) -> str:
        path = self._worktree_path(issue)
        raise FixFailed(f"Cannot fix '{issue.key}': repo not found. Delete manually: rm -rf {path}")


def fix_all_issues(
    doc: CacheDocument,
    issues: List[Issue],
    scan_path: str,
    git_service: GitWorktreeService,
    cache_service: Optional[CacheService] = None,
) -> FixResult:
    """Apply fixes for every issue, then save the document once.

    Raises:
        CacheIOError: If the final save fails; earlier persisted state is kept
    """
    result = RepairExecutor(git_service, scan_path).apply(doc, issues)
    (cache_service or CacheService(scan_path)).save(doc)
    logger.info(f"Fixed {result.fixed} issues, {result.failed} failed")
    return result
