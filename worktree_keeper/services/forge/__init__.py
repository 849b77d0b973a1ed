"""Forge (GitHub, GitLab) services for worktree-keeper."""

from .base import Forge, parse_remote_url
from .detect import detect_forge, forge_by_name, is_github_url, is_gitlab_url
from .github import GitHubForge
from .gitlab import GitLabForge

__all__ = [
    "Forge",
    "GitHubForge",
    "GitLabForge",
    "detect_forge",
    "forge_by_name",
    "is_github_url",
    "is_gitlab_url",
    "parse_remote_url",
]
