"""Doctor checks comparing the worktree cache with the filesystem and git.

Checks only read state: they never modify the cache document or the disk.
A failing git query skips the affected entry instead of aborting the scan.
"""
import os
from collections import defaultdict
from typing import Dict, List, Optional, Set

from worktree_keeper.exceptions import GitOperationError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.cache import CacheDocument
from worktree_keeper.models.issue import FixAction, Issue, IssueCategory
from worktree_keeper.services.git import GitWorktreeService

logger = get_logger(__name__)


def path_missing(path: str) -> bool:
    """True only when the path is known not to exist (other stat errors are not proof)."""
    try:
        os.stat(path)
    except (FileNotFoundError, NotADirectoryError):
        return True
    except OSError as e:
        logger.debug(f"Could not stat {path}: {e}")
    return False


def repo_search_dirs(scan_path: str, repo_dir: Optional[str]) -> List[str]:
    """Directories searched, in order, for a repository that has moved."""
    search_dirs = []
    if repo_dir:
        search_dirs.append(repo_dir)
    if scan_path != repo_dir:
        search_dirs.append(scan_path)
    return search_dirs


def check_cache_issues(doc: CacheDocument, scan_path: str) -> List[Issue]:
    """Find stale paths, moved folders, missing metadata and duplicate IDs.

    The first three checks are exclusive per entry, in that order. Duplicate
    IDs are checked across all active entries; the first entry seen keeps
    its ID.
    """
    issues: List[Issue] = []

    for key, entry in doc.active_entries():
        if entry.path and path_missing(entry.path):
            issues.append(Issue(
                key=key,
                description=f"path no longer exists: {entry.path}",
                fix_action=FixAction.MARK_REMOVED,
                category=IssueCategory.CACHE,
            ))
            continue

        expected_path = os.path.join(scan_path, key)
        if entry.path and entry.path != expected_path and os.path.exists(expected_path):
            issues.append(Issue(
                key=key,
                description=f"path mismatch: cached {entry.path}, actual {expected_path}",
                fix_action=FixAction.UPDATE_PATH,
                category=IssueCategory.CACHE,
            ))
            continue

        if entry.path and not entry.repo_path and os.path.exists(entry.path):
            issues.append(Issue(
                key=key,
                description="missing repo_path metadata",
                fix_action=FixAction.UPDATE_METADATA,
                category=IssueCategory.CACHE,
            ))
            continue

    keys_by_id: Dict[int, List[str]] = defaultdict(list)
    for key, entry in doc.active_entries():
        keys_by_id[entry.id].append(key)

    for entry_id, keys in keys_by_id.items():
        for key in keys[1:]:
            issues.append(Issue(
                key=key,
                description=f"duplicate ID {entry_id}",
                fix_action=FixAction.REASSIGN_ID,
                category=IssueCategory.CACHE,
            ))

    logger.debug(f"Cache check found {len(issues)} issues")
    return issues


def check_git_link_issues(
    doc: CacheDocument,
    scan_path: str,
    git_service: GitWorktreeService,
    repo_dir: Optional[str] = None,
) -> List[Issue]:
    """Find broken links between cached worktrees and their repositories.

    Also reports stale worktree references once per healthy repository.
    """
    issues: List[Issue] = []
    checked_repos: Dict[str, None] = {}
    search_dirs = repo_search_dirs(scan_path, repo_dir)

    for key, entry in doc.active_entries():
        # Missing paths are reported by the cache check
        if not entry.path or path_missing(entry.path):
            continue

        git_file = os.path.join(entry.path, ".git")
        if not os.path.lexists(git_file):
            issues.append(Issue(
                key=key,
                description=".git file missing",
                fix_action=FixAction.MARK_REMOVED,
                category=IssueCategory.GIT,
                repo_path=entry.repo_path,
            ))
            continue

        if os.path.isdir(git_file):
            issues.append(Issue(
                key=key,
                description="not a worktree (has .git directory)",
                fix_action=FixAction.MARK_REMOVED,
                category=IssueCategory.GIT,
                repo_path=entry.repo_path,
            ))
            continue

        if not git_service.is_worktree_link_valid(entry.path):
            repo_path = entry.repo_path
            repo_moved = False

            if repo_path and not git_service.is_main_repo(repo_path):
                repo_name = git_service.get_repo_name_from_worktree(entry.path)
                found_repo = git_service.find_repo_in_dirs(repo_name, *search_dirs) if repo_name else ""
                if found_repo:
                    repo_path = found_repo
                    repo_moved = True
                else:
                    repo_path = ""

            if repo_path and git_service.can_repair_worktree(entry.path):
                description = "broken bidirectional link (repairable)"
                if repo_moved:
                    description = f"broken link, repo moved to {repo_path} (repairable)"
                issues.append(Issue(
                    key=key,
                    description=description,
                    fix_action=FixAction.REPAIR,
                    category=IssueCategory.GIT,
                    repo_path=repo_path,
                ))
            else:
                description = "broken git link (unrepairable)"
                if not repo_path:
                    repo_name = git_service.get_repo_name_from_worktree(entry.path)
                    if repo_name:
                        description = f"broken git link (repo '{repo_name}' not found)"
                issues.append(Issue(
                    key=key,
                    description=description,
                    fix_action=FixAction.MARK_REMOVED,
                    category=IssueCategory.GIT,
                    repo_path=entry.repo_path,
                ))
            continue

        if entry.repo_path:
            checked_repos[entry.repo_path] = None

    for repo_path in checked_repos:
        try:
            prunable = git_service.list_prunable_worktrees(repo_path)
        except GitOperationError as e:
            logger.debug(f"Skipping prune check for {repo_path}: {e}")
            continue
        for reference in prunable:
            issues.append(Issue(
                key=reference,
                description=f"stale git reference in {os.path.basename(repo_path)}",
                fix_action=FixAction.PRUNE,
                category=IssueCategory.GIT,
                repo_path=repo_path,
            ))

    logger.debug(f"Git link check found {len(issues)} issues")
    return issues


def check_orphan_issues(
    doc: CacheDocument,
    scan_path: str,
    git_service: GitWorktreeService,
    repo_dir: Optional[str] = None,
) -> List[Issue]:
    """Find worktrees on disk missing from the cache, and ghost cache entries."""
    issues: List[Issue] = []

    cached_paths: Set[str] = {entry.path for _, entry in doc.active_entries() if entry.path}
    search_dirs = repo_search_dirs(scan_path, repo_dir)

    try:
        names = sorted(os.listdir(scan_path))
    except OSError as e:
        logger.debug(f"Could not scan {scan_path}: {e}")
        names = []

    for name in names:
        path = os.path.join(scan_path, name)
        if not os.path.isdir(path) or not git_service.is_worktree(path):
            continue
        if path in cached_paths:
            continue

        if git_service.is_worktree_link_valid(path):
            issues.append(Issue(
                key=name,
                description="worktree not in cache",
                fix_action=FixAction.ADD_TO_CACHE,
                category=IssueCategory.ORPHAN,
            ))
            continue

        repo_name = git_service.get_repo_name_from_worktree(path)
        if not repo_name:
            issues.append(Issue(
                key=name,
                description="orphan worktree (cannot parse .git file)",
                fix_action=FixAction.REMOVE_ORPHAN_DIR,
                category=IssueCategory.ORPHAN,
            ))
            continue

        found_repo = git_service.find_repo_in_dirs(repo_name, *search_dirs)
        if found_repo:
            issues.append(Issue(
                key=name,
                description=f"broken link (repo found at {found_repo})",
                fix_action=FixAction.REPAIR_AND_ADD,
                category=IssueCategory.ORPHAN,
                repo_path=found_repo,
            ))
        else:
            issues.append(Issue(
                key=name,
                description=f"orphan worktree (repo '{repo_name}' not found)",
                fix_action=FixAction.REMOVE_ORPHAN_DIR,
                category=IssueCategory.ORPHAN,
            ))

    # Ghost entries: git no longer lists the worktree, e.g. it was removed
    # outside this tool
    known_by_repo: Dict[str, Optional[Set[str]]] = {}
    for key, entry in doc.active_entries():
        if not entry.path or not entry.repo_path or path_missing(entry.path):
            continue

        if entry.repo_path not in known_by_repo:
            try:
                records = git_service.list_worktrees_from_repo(entry.repo_path)
                known_by_repo[entry.repo_path] = {record.path for record in records}
            except GitOperationError as e:
                logger.debug(f"Skipping ghost check for {entry.repo_path}: {e}")
                known_by_repo[entry.repo_path] = None

        known = known_by_repo[entry.repo_path]
        if known is None:
            continue
        if entry.path not in known:
            issues.append(Issue(
                key=key,
                description="ghost entry (git doesn't recognize worktree)",
                fix_action=FixAction.MARK_REMOVED,
                category=IssueCategory.ORPHAN,
            ))

    logger.debug(f"Orphan check found {len(issues)} issues")
    return issues
