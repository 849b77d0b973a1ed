"""Display and formatting service for doctor reports and worktree listings"""
from typing import TYPE_CHECKING, Dict, List, Optional

from rich.console import Console
from rich.table import Table

from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.cache import CacheDocument
from worktree_keeper.models.issue import Issue, IssueCategory, IssueStats
from worktree_keeper.models.pr import PRState
from worktree_keeper.services.forge.base import STATE_SYMBOLS

if TYPE_CHECKING:
    from worktree_keeper.services.doctor.doctor import DiagnosisReport
    from worktree_keeper.services.doctor.fixes import FixResult

logger = get_logger(__name__)

CATEGORY_TITLES = {
    IssueCategory.CACHE: "Cache issues",
    IssueCategory.GIT: "Git link issues",
    IssueCategory.ORPHAN: "Orphan issues",
}

PR_STATE_COLORS = {
    PRState.OPEN: "green",
    PRState.DRAFT: "dim",
    PRState.MERGED: "magenta",
    PRState.CLOSED: "red",
}


class DisplayService:
    def __init__(self, console: Optional[Console] = None, verbose: bool = False):
        self.console = console or Console()
        self.verbose = verbose

    def display_progress(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def display_summary(self, stats: IssueStats) -> None:
        """Print the per-category counts of a diagnosis."""
        print_ = self.console.print
        print_()
        print_(f"  [green]✓[/green] {stats.cache_valid} cache entries valid")
        if stats.cache_issues:
            print_(f"  [yellow]⚠[/yellow] {stats.cache_issues} cache issues")

        if stats.git_healthy > 0:
            print_(f"  [green]✓[/green] {stats.git_healthy} worktrees healthy")
        if stats.git_repairable:
            print_(f"  [yellow]⚠[/yellow] {stats.git_repairable} repairable (broken links)")
        if stats.git_prunable:
            print_(f"  [yellow]⚠[/yellow] {stats.git_prunable} stale git references (prunable)")
        if stats.git_unrepairable:
            print_(f"  [red]✗[/red] {stats.git_unrepairable} unrepairable")

        if stats.orphan_untracked:
            print_(f"  [yellow]⚠[/yellow] {stats.orphan_untracked} untracked worktrees found")
        if stats.orphan_ghost:
            print_(f"  [yellow]⚠[/yellow] {stats.orphan_ghost} ghost entries (in cache but not in git)")

    def display_issues(self, issues: List[Issue]) -> None:
        """Print issues grouped by category."""
        by_category: Dict[IssueCategory, List[Issue]] = {}
        for issue in issues:
            by_category.setdefault(issue.category, []).append(issue)

        for category in IssueCategory:
            category_issues = by_category.get(category)
            if not category_issues:
                continue
            self.console.print(f"\n[bold]{CATEGORY_TITLES[category]}:[/bold]")
            for issue in category_issues:
                line = f"  • {issue.key}: {issue.description}"
                if self.verbose:
                    line += f" [dim]({issue.fix_action.value})[/dim]"
                self.console.print(line, highlight=False)

    def display_diagnosis(self, report: "DiagnosisReport", fix: bool = False) -> None:
        self.display_summary(report.stats)

        if not report.issues:
            self.console.print("\n[green]✓ No issues found[/green]")
            return

        self.console.print(f"\nFound {len(report.issues)} issues:")
        self.display_issues(report.issues)

        if not fix:
            self.console.print("\nRun 'worktree-keeper doctor --fix' to repair.")

    def display_fix_result(self, result: "FixResult") -> None:
        self.console.print()
        for outcome in result.outcomes:
            marker = "[green]✓[/green]" if outcome.success else "[red]✗[/red]"
            self.console.print(f"  {marker} {outcome.message}", highlight=False)

        if result.failed:
            self.console.print(f"\nFixed {result.fixed} issues, {result.failed} failed.")
        else:
            self.console.print(f"\nFixed {result.fixed} issues.")

    def display_reset(self, count: int) -> None:
        self.console.print(f"[green]✓ Cache rebuilt with {count} worktrees (IDs reset from 1)[/green]")

    def display_worktree_table(self, doc: CacheDocument, show_removed: bool = False) -> None:
        """Display tracked worktrees with their IDs and cached PR state."""
        table = Table()
        for column in ("ID", "Worktree", "Branch", "PR", "Path"):
            table.add_column(column)

        entries = sorted(doc.worktrees.items(), key=lambda item: item[1].id)
        for key, entry in entries:
            if entry.is_removed and not show_removed:
                continue
            table.add_row(
                str(entry.id),
                key,
                entry.branch,
                self._format_pr(entry.pr),
                entry.path,
                style="dim" if entry.is_removed else None,
            )

        self.console.print(table)

    @staticmethod
    def _format_pr(pr) -> str:
        if pr is None or not pr.fetched:
            return "?"
        if not pr.exists:
            return "-"
        color = PR_STATE_COLORS.get(pr.state, "white")
        symbol = STATE_SYMBOLS.get(pr.state, "")
        text = f"[{color}]{symbol} #{pr.number}[/{color}]"
        if pr.is_approved:
            text += " [green]✓[/green]"
        if pr.url:
            text = f"[link={pr.url}]{text}[/link]"
        return text
