"""GitLab merge request lookups through the glab CLI."""

import json
import shutil
import subprocess
from typing import Any, List

from worktree_keeper.exceptions import ForgeError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.pr import PRInfo, PRState, utcnow
from worktree_keeper.services.forge.base import Forge, parse_remote_url

logger = get_logger(__name__)


class GitLabForge(Forge):
    """Fetches merge request metadata with ``glab``."""

    name = "gitlab"

    def __init__(self, executable: str = "glab", timeout: float = 30.0):
        self.executable = executable
        self.timeout = timeout

    def _repo_arg(self, origin_url: str) -> str:
        try:
            host, path = parse_remote_url(origin_url)
        except ValueError as e:
            raise ForgeError("parse_remote", str(e)) from e
        return f"{host}/{path}" if host else path

    def _run_json(self, operation: str, args: List[str]) -> Any:
        if shutil.which(self.executable) is None:
            raise ForgeError(operation, f"{self.executable} not found: please install the GitLab CLI")

        try:
            result = subprocess.run(
                [self.executable, *args],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ForgeError(operation, str(e)) from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise ForgeError(operation, stderr or f"{self.executable} exited with {result.returncode}")

        try:
            return json.loads(result.stdout or "null")
        except json.JSONDecodeError as e:
            raise ForgeError(operation, f"failed to parse {self.executable} output: {e}") from e

    def get_pr_for_branch(self, origin_url: str, branch: str) -> PRInfo:
        mrs = self._run_json(
            "get_pr_for_branch",
            ["mr", "list", "-R", self._repo_arg(origin_url), "--source-branch", branch,
             "--all", "--per-page", "1", "-F", "json"],
        )
        if not mrs:
            logger.debug(f"[GitLab] No MR for branch {branch}")
            return PRInfo(fetched=True, cached_at=utcnow())

        mr = mrs[0]
        state = PRState.parse(mr.get("state"))
        is_draft = bool(mr.get("draft") or mr.get("work_in_progress"))
        if state == PRState.OPEN and is_draft:
            state = PRState.DRAFT

        author = mr.get("author") or {}
        return PRInfo(
            number=int(mr.get("iid") or 0),
            state=state,
            is_draft=is_draft,
            url=mr.get("web_url") or "",
            author=author.get("username", ""),
            comment_count=int(mr.get("user_notes_count") or 0),
            has_reviews=bool(mr.get("reviewers")),
            is_approved=False,  # not reported by "mr list"
            cached_at=utcnow(),
            fetched=True,
        )

    def get_pr_branch(self, origin_url: str, number: int) -> str:
        mr = self._run_json(
            "get_pr_branch",
            ["mr", "view", str(number), "-R", self._repo_arg(origin_url), "-F", "json"],
        ) or {}

        if mr.get("source_project_id") != mr.get("target_project_id"):
            raise ForgeError(
                "get_pr_branch",
                f"MR !{number} is from a fork - cross-project MRs are not supported",
            )
        branch = mr.get("source_branch") or ""
        if not branch:
            raise ForgeError("get_pr_branch", f"MR !{number} has no source branch")
        return branch
