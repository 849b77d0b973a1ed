"""Configuration handling for worktree-keeper"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class Config:
    """Configuration for worktree-keeper with validation."""

    # Directory holding the tracked worktrees (and the cache file)
    worktree_dir: str = ""
    # Directory holding the main repositories, searched when a repo has moved
    repo_dir: Optional[str] = None

    # Execution modes
    verbose: bool = False
    debug: bool = False
    fix: bool = False

    # Forge integration
    forge: str = "github"  # github, gitlab
    github_token: Optional[str] = None
    refresh_prs: bool = False
    workers: Optional[int] = None  # Number of parallel PR fetch workers (None = auto)

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_worktree_dir()
        self._validate_repo_dir()
        self._validate_forge()
        self._validate_workers()
        if not self.github_token:
            self.github_token = os.environ.get("GITHUB_TOKEN")

    def _validate_worktree_dir(self):
        """Validate worktree_dir is not empty."""
        if not self.worktree_dir or not str(self.worktree_dir).strip():
            raise ValueError("worktree_dir cannot be empty")
        self.worktree_dir = str(self.worktree_dir).strip()

    def _validate_repo_dir(self):
        """Normalize an empty repo_dir to None."""
        if self.repo_dir is not None and not str(self.repo_dir).strip():
            self.repo_dir = None

    def _validate_forge(self):
        """Validate forge is one of allowed values."""
        allowed = ["github", "gitlab"]
        self.forge = (self.forge or "").lower()
        if self.forge not in allowed:
            raise ValueError(f"forge must be one of {allowed}, got '{self.forge}'")

    def _validate_workers(self):
        """Validate workers is positive when set."""
        if self.workers is not None and self.workers <= 0:
            raise ValueError(f"workers must be positive, got {self.workers}")

    def abs_worktree_dir(self) -> str:
        """Return the absolute, user-expanded worktree directory."""
        return str(Path(self.worktree_dir).expanduser().resolve())

    def abs_repo_dir(self) -> Optional[str]:
        """Return the absolute repo directory, or None when unset."""
        if not self.repo_dir:
            return None
        return str(Path(self.repo_dir).expanduser().resolve())

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "worktree_dir": self.worktree_dir,
            "repo_dir": self.repo_dir,
            "verbose": self.verbose,
            "debug": self.debug,
            "fix": self.fix,
            "forge": self.forge,
            "github_token": self.github_token,
            "refresh_prs": self.refresh_prs,
            "workers": self.workers,
        }

    def get(self, key: str, default=None):
        """Get config value by key, dict style."""
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Create Config from dictionary."""
        known_fields = {
            "worktree_dir",
            "repo_dir",
            "verbose",
            "debug",
            "fix",
            "forge",
            "github_token",
            "refresh_prs",
            "workers",
        }

        filtered = {k: v for k, v in config_dict.items() if k in known_fields}
        return cls(**filtered)
