"""Common contract for code forges (GitHub, GitLab)."""

from abc import ABC, abstractmethod
from typing import Tuple
from urllib.parse import urlparse

from worktree_keeper.models.pr import PRInfo, PRState

STATE_SYMBOLS = {
    PRState.OPEN: "○",
    PRState.DRAFT: "◌",
    PRState.MERGED: "●",
    PRState.CLOSED: "✗",
    PRState.NONE: "",
}


def parse_remote_url(remote_url: str) -> Tuple[str, str]:
    """Split a remote URL into (host, "owner/repo").

    Handles SSH (git@host:org/repo.git), ssh:// and HTTPS URLs. Nested
    GitLab groups are kept in the path.

    Raises:
        ValueError: If no repository path can be found
    """
    url = remote_url.strip()
    if "://" not in url and "@" in url and ":" in url:
        # SCP-like SSH: git@github.com:org/repo.git
        user_host, path = url.split(":", 1)
        host = user_host.split("@", 1)[1]
    else:
        parsed = urlparse(url)
        host = parsed.hostname or ""
        path = parsed.path

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    if "/" not in path:
        raise ValueError(f"cannot parse repository from remote URL '{remote_url}'")
    return host, path


class Forge(ABC):
    """A git hosting service the PR cache can be filled from."""

    name: str = ""

    @abstractmethod
    def get_pr_for_branch(self, origin_url: str, branch: str) -> PRInfo:
        """Fetch the most recent PR for a branch.

        Returns a PRInfo with ``fetched=True``; when the branch has no PR the
        info has number 0 and state NONE.

        Raises:
            ForgeError: If the forge can't be queried
        """

    @abstractmethod
    def get_pr_branch(self, origin_url: str, number: int) -> str:
        """Return the source branch of a PR.

        Raises:
            ForgeError: If the PR can't be found or comes from a fork
        """

    def format_state(self, state: PRState) -> str:
        """Short symbol for a PR state."""
        return STATE_SYMBOLS.get(state, "")
