"""GitHub API integration service"""

import os
from typing import TYPE_CHECKING, Dict, Optional

from github import Auth, Github, GithubException

from worktree_keeper.exceptions import ForgeError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.pr import PRInfo, PRState, utcnow
from worktree_keeper.services.forge.base import Forge, parse_remote_url

if TYPE_CHECKING:
    from github.PullRequest import PullRequest
    from github.Repository import Repository

logger = get_logger(__name__)


class GitHubForge(Forge):
    """Fetches pull request metadata through the GitHub API."""

    name = "github"

    def __init__(self, github_token: Optional[str] = None):
        self.github_token = github_token or os.environ.get("GITHUB_TOKEN")
        self.github: Optional[Github] = None
        self._repos: Dict[str, "Repository"] = {}

    def _client(self) -> Github:
        if self.github is None:
            if self.github_token:
                self.github = Github(auth=Auth.Token(self.github_token))
            else:
                logger.debug("[GitHub] No token configured, using anonymous access")
                self.github = Github()
        return self.github

    def _get_repo(self, origin_url: str) -> "Repository":
        try:
            _, slug = parse_remote_url(origin_url)
        except ValueError as e:
            raise ForgeError("get_repo", str(e)) from e

        if slug not in self._repos:
            try:
                self._repos[slug] = self._client().get_repo(slug)
            except GithubException as e:
                raise ForgeError("get_repo", f"{slug}: {e}") from e
            except Exception as e:
                # Connection errors and timeouts from the underlying HTTP client
                raise ForgeError("get_repo", f"{slug}: {e}") from e
            logger.debug(f"[GitHub] Connected to {slug}")
        return self._repos[slug]

    @staticmethod
    def _to_pr_info(pr: "PullRequest") -> PRInfo:
        if pr.merged:
            state = PRState.MERGED
        elif pr.state == "open":
            state = PRState.DRAFT if pr.draft else PRState.OPEN
        else:
            state = PRState.CLOSED

        reviews = list(pr.get_reviews())
        return PRInfo(
            number=pr.number,
            state=state,
            is_draft=bool(pr.draft),
            url=pr.html_url,
            author=pr.user.login if pr.user else "",
            comment_count=pr.comments,
            has_reviews=bool(reviews),
            is_approved=any(review.state == "APPROVED" for review in reviews),
            cached_at=utcnow(),
            fetched=True,
        )

    def get_pr_for_branch(self, origin_url: str, branch: str) -> PRInfo:
        repo = self._get_repo(origin_url)
        owner = repo.full_name.split("/")[0]
        try:
            pulls = repo.get_pulls(state="all", head=f"{owner}:{branch}")
            latest = next(iter(pulls), None)
            if latest is None:
                logger.debug(f"[GitHub] No PR for branch {branch}")
                return PRInfo(fetched=True, cached_at=utcnow())
            info = self._to_pr_info(latest)
        except GithubException as e:
            raise ForgeError("get_pr_for_branch", f"{branch}: {e}") from e
        except Exception as e:
            raise ForgeError("get_pr_for_branch", f"{branch}: {e}") from e

        logger.debug(f"[GitHub] Branch {branch} has PR #{info.number} ({info.state.value})")
        return info

    def get_pr_branch(self, origin_url: str, number: int) -> str:
        repo = self._get_repo(origin_url)
        try:
            pr = repo.get_pull(number)
        except GithubException as e:
            raise ForgeError("get_pr_branch", f"PR #{number}: {e}") from e
        except Exception as e:
            raise ForgeError("get_pr_branch", f"PR #{number}: {e}") from e

        head_repo = pr.head.repo
        if head_repo is None or head_repo.full_name != repo.full_name:
            raise ForgeError(
                "get_pr_branch",
                f"PR #{number} is from a fork - cross-repository PRs are not supported",
            )
        if not pr.head.ref:
            raise ForgeError("get_pr_branch", f"PR #{number} has no head branch")
        return pr.head.ref

    def close(self) -> None:
        """Close the GitHub API connection to clean up resources."""
        if self.github:
            try:
                self.github.close()
                logger.debug("[GitHub] Closed GitHub API connection")
            except Exception as e:
                logger.debug(f"[GitHub] Error closing GitHub API connection: {e}")
            self.github = None
