"""Command-line argument parsing for worktree-keeper."""

import argparse
from worktree_keeper.__version__ import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="worktree-keeper",
        description="Stable IDs, cached metadata and health checks for git worktrees",
        epilog="PR lookups on GitHub use the GITHUB_TOKEN environment variable when set; "
        "GitLab lookups require the glab CLI.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument(
        "--debug", action="store_true", help="Show debug information for troubleshooting"
    )
    parser.add_argument("--version", action="version", version=f"worktree-keeper {__version__}")
    parser.add_argument(
        "-d",
        "--dir",
        dest="worktree_dir",
        required=True,
        metavar="DIR",
        help="Directory holding the worktrees and the cache file",
    )
    parser.add_argument(
        "--repo-dir",
        metavar="DIR",
        help="Directory holding the main repositories (searched when a repo has moved)",
    )
    parser.add_argument(
        "--forge",
        choices=["github", "gitlab"],
        default="github",
        help="Forge used when it can't be detected from the origin URL (default: github)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        metavar="N",
        help="Number of parallel PR fetch workers (default: auto)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.required = True

    doctor = subparsers.add_parser("doctor", help="Diagnose and repair the worktree cache")
    doctor.add_argument("--fix", action="store_true", help="Repair the issues found")
    doctor.add_argument(
        "--reset",
        action="store_true",
        help="Rebuild the cache from scratch (IDs are reassigned from 1)",
    )

    sync = subparsers.add_parser("sync", help="Register worktrees on disk in the cache")
    sync.add_argument("--refresh-prs", action="store_true", help="Also refresh PR info")

    show = subparsers.add_parser("show", help="Show the cached entry for a worktree ID")
    show.add_argument("id", type=int, help="Worktree ID")

    prs = subparsers.add_parser("prs", help="List worktrees with their cached PR state")
    prs.add_argument("--refresh", action="store_true", help="Fetch PR info that is missing or stale")
    prs.add_argument("--force", action="store_true", help="With --refresh, fetch even fresh PR info")
    prs.add_argument("--all", action="store_true", help="Include removed worktrees")

    return parser


def parse_args(argv=None):
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)
