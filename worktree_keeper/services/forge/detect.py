"""Pick the forge implementation for a remote."""

from typing import Optional

from worktree_keeper.services.forge.base import Forge
from worktree_keeper.services.forge.github import GitHubForge
from worktree_keeper.services.forge.gitlab import GitLabForge


def is_gitlab_url(url: str) -> bool:
    """Check if a URL points to gitlab.com or a self-hosted GitLab."""
    url = url.lower()
    return "gitlab." in url or "/gitlab/" in url


def is_github_url(url: str) -> bool:
    return "github.com" in url.lower()


def forge_by_name(name: str, github_token: Optional[str] = None) -> Forge:
    """Return a forge by name ("github" or "gitlab"); GitHub for anything else."""
    if (name or "").lower() == "gitlab":
        return GitLabForge()
    return GitHubForge(github_token)


def detect_forge(remote_url: str, default: str = "github", github_token: Optional[str] = None) -> Forge:
    """Return the forge for a remote URL.

    Recognizable GitHub and GitLab hosts win; other hosts use ``default``.
    """
    if is_github_url(remote_url):
        return GitHubForge(github_token)
    if is_gitlab_url(remote_url):
        return GitLabForge()
    return forge_by_name(default, github_token)
