"""Command-line interface for worktree-keeper"""

import sys
from rich.console import Console
from .args import parse_args
from worktree_keeper.config import Config
from worktree_keeper.core import WorktreeKeeper
from worktree_keeper.logging_config import setup_logging
from worktree_keeper.services.display_service import DisplayService
from worktree_keeper.services.doctor import Doctor

console = Console()


def run_doctor(config: Config, display: DisplayService, reset: bool) -> int:
    doctor = Doctor(config, display=display)
    if reset:
        doctor.reset()
        return 0
    doctor.run(fix=config.fix)
    return 0


def run_sync(keeper: WorktreeKeeper) -> int:
    result = keeper.sync()
    console.print(f"[green]✓[/green] {len(result.path_to_id)} worktrees tracked")
    if result.removed:
        console.print(f"[yellow]⚠[/yellow] {result.removed} marked removed")
    if result.prs_fetched or result.prs_failed:
        console.print(f"PR info: {result.prs_fetched} fetched, {result.prs_failed} failed")
    return 0


def run_show(keeper: WorktreeKeeper, worktree_id: int) -> int:
    key, entry = keeper.show(worktree_id)
    console.print(f"[bold]{key}[/bold] (ID {entry.id})", highlight=False)
    console.print(f"  Path:   {entry.path}", highlight=False)
    console.print(f"  Branch: {entry.branch}", highlight=False)
    console.print(f"  Repo:   {entry.repo_path}", highlight=False)
    console.print(f"  Origin: {entry.origin_url}", highlight=False)
    if entry.is_removed:
        console.print(f"  [yellow]Removed at {entry.removed_at.isoformat()}[/yellow]")
    if entry.pr is not None and entry.pr.exists:
        console.print(f"  PR:     #{entry.pr.number} {entry.pr.state.value} {entry.pr.url}", highlight=False)
    return 0


def run_prs(keeper: WorktreeKeeper, display: DisplayService, refresh: bool, force: bool, show_all: bool) -> int:
    if refresh:
        fetched, failed = keeper.refresh_prs(force=force)
        console.print(f"PR info: {fetched} fetched, {failed} failed")
    display.display_worktree_table(keeper.load(), show_removed=show_all)
    return 0


def main(argv=None):
    """Main entry point for the application."""
    parsed_args = None
    try:
        # Parse command line arguments
        parsed_args = parse_args(argv)

        # Setup logging before creating any services
        setup_logging(verbose=parsed_args.verbose, debug=parsed_args.debug)

        config = Config(
            worktree_dir=parsed_args.worktree_dir,
            repo_dir=parsed_args.repo_dir,
            verbose=parsed_args.verbose,
            debug=parsed_args.debug,
            fix=getattr(parsed_args, "fix", False),
            forge=parsed_args.forge,
            refresh_prs=getattr(parsed_args, "refresh_prs", False),
            workers=parsed_args.workers,
        )

        if parsed_args.debug:
            console.print("[yellow]Debug mode enabled[/yellow]")
            console.print("[yellow]Configuration:[/yellow]")
            for key, value in config.to_dict().items():
                if key == "github_token" and value:
                    value = "***"
                console.print(f"  {key}: {value}")

        display = DisplayService(console=console, verbose=parsed_args.verbose)

        if parsed_args.command == "doctor":
            return run_doctor(config, display, reset=parsed_args.reset)

        keeper = WorktreeKeeper(config, display=display)
        if parsed_args.command == "sync":
            return run_sync(keeper)
        if parsed_args.command == "show":
            return run_show(keeper, parsed_args.id)
        if parsed_args.command == "prs":
            return run_prs(keeper, display, parsed_args.refresh, parsed_args.force, parsed_args.all)

        console.print(f"[red]Error: unknown command {parsed_args.command}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        return 1
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        if parsed_args is not None and parsed_args.debug:
            console.print_exception()
        return 1


if __name__ == "__main__":
    sys.exit(main())
