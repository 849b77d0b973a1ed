"""Diagnosis and repair of the worktree cache."""

from worktree_keeper.services.doctor.checks import (
    check_cache_issues,
    check_git_link_issues,
    check_orphan_issues,
)
from worktree_keeper.services.doctor.doctor import DiagnosisReport, Doctor
from worktree_keeper.services.doctor.fixes import FixOutcome, FixResult, RepairExecutor, fix_all_issues

__all__ = [
    "DiagnosisReport",
    "Doctor",
    "FixOutcome",
    "FixResult",
    "RepairExecutor",
    "check_cache_issues",
    "check_git_link_issues",
    "check_orphan_issues",
    "fix_all_issues",
]
