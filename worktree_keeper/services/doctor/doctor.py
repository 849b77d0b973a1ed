"""Doctor: diagnose and repair the worktree cache."""
from dataclasses import dataclass, field
from typing import List, Optional, Union

from worktree_keeper.config import Config
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.cache import CacheDocument
from worktree_keeper.models.issue import UNTRACKED_ACTIONS, FixAction, Issue, IssueCategory, IssueStats
from worktree_keeper.services.cache_service import CacheService
from worktree_keeper.services.display_service import DisplayService
from worktree_keeper.services.doctor.checks import (
    check_cache_issues,
    check_git_link_issues,
    check_orphan_issues,
)
from worktree_keeper.services.doctor.fixes import FixResult, fix_all_issues
from worktree_keeper.services.git import GitWorktreeService

logger = get_logger(__name__)


@dataclass
class DiagnosisReport:
    """Issues found by one doctor pass, with their summary counts."""
    issues: List[Issue] = field(default_factory=list)
    stats: IssueStats = field(default_factory=IssueStats)
    fix_result: Optional[FixResult] = None

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)

    def by_category(self, category: IssueCategory) -> List[Issue]:
        return [issue for issue in self.issues if issue.category == category]


class Doctor:
    """Runs the cache, git-link and orphan checks and applies their fixes."""

    def __init__(
        self,
        config: Union[Config, dict],
        git_service: Optional[GitWorktreeService] = None,
        display: Optional[DisplayService] = None,
    ):
        if isinstance(config, dict):
            config = Config.from_dict(config)
        self.config = config
        self.worktree_dir = config.abs_worktree_dir()
        self.repo_dir = config.abs_repo_dir()
        self.git_service = git_service or GitWorktreeService()
        self.cache_service = CacheService(self.worktree_dir)
        self.display = display

    def _progress(self, message: str) -> None:
        logger.debug(message)
        if self.display:
            self.display.display_progress(message)

    def diagnose(self, doc: CacheDocument) -> DiagnosisReport:
        """Run all checks against a loaded document. Never modifies it."""
        stats = IssueStats()
        active = doc.count_active()

        self._progress("Checking cache integrity...")
        cache_issues = check_cache_issues(doc, self.worktree_dir)
        for issue in cache_issues:
            issue.category = IssueCategory.CACHE
        stats.cache_issues = len(cache_issues)
        stats.cache_valid = active - stats.cache_issues

        self._progress("Checking git links...")
        git_issues = check_git_link_issues(doc, self.worktree_dir, self.git_service, self.repo_dir)
        for issue in git_issues:
            issue.category = IssueCategory.GIT
            if issue.fix_action == FixAction.REPAIR:
                stats.git_repairable += 1
            elif issue.fix_action == FixAction.PRUNE:
                stats.git_prunable += 1
            else:
                stats.git_unrepairable += 1
        stats.git_healthy = active - len(git_issues) - stats.cache_issues

        self._progress("Checking for orphans...")
        orphan_issues = check_orphan_issues(doc, self.worktree_dir, self.git_service, self.repo_dir)
        for issue in orphan_issues:
            issue.category = IssueCategory.ORPHAN
            if issue.fix_action in UNTRACKED_ACTIONS:
                stats.orphan_untracked += 1
            else:
                stats.orphan_ghost += 1

        issues = cache_issues + git_issues + orphan_issues
        logger.debug(f"Diagnosis found {len(issues)} issues")
        return DiagnosisReport(issues=issues, stats=stats)

    def run(self, fix: bool = False) -> DiagnosisReport:
        """Diagnose the cache under its lock and optionally repair it.

        With ``fix`` the repaired document is saved once after every fix has
        been attempted; without it nothing is written.

        Raises:
            LockAcquisitionError: If the cache lock can't be taken
            CacheIOError: If the cache can't be read or saved
        """
        with self.cache_service.locked() as doc:
            report = self.diagnose(doc)
            if self.display:
                self.display.display_diagnosis(report, fix=fix)

            if fix and report.has_issues:
                report.fix_result = fix_all_issues(
                    doc, report.issues, self.worktree_dir, self.git_service, self.cache_service
                )
                if self.display:
                    self.display.display_fix_result(report.fix_result)

        return report

    def reset(self) -> int:
        """Rebuild the cache from the worktrees on disk, with IDs from 1.

        Returns:
            Number of worktrees in the rebuilt cache

        Raises:
            GitOperationError: If the worktree directory can't be scanned
        """
        self._progress("Rebuilding cache from scratch...")
        with self.cache_service.locked() as doc:
            worktrees = self.git_service.scan_worktrees(self.worktree_dir)
            doc.reset()
            for info in worktrees:
                doc.get_or_assign_id(info)
            self.cache_service.save(doc)

        logger.info(f"Cache rebuilt with {len(worktrees)} worktrees")
        if self.display:
            self.display.display_reset(len(worktrees))
        return len(worktrees)
