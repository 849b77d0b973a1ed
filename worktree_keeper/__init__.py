"""
worktree-keeper - Stable IDs and health checks for git worktrees
"""

from .__version__ import __version__
from .core import WorktreeKeeper
from .services.doctor import Doctor

__all__ = ["Doctor", "WorktreeKeeper", "__version__"]
