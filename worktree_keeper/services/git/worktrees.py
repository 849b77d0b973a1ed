"""Worktree operations service for worktree-keeper."""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import git

from worktree_keeper.exceptions import GitOperationError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.worktree import WorktreeInfo, WorktreeRecord

logger = get_logger(__name__)

DETACHED_BRANCH = "(detached)"


def _describe_git_error(command: str, e: Exception) -> str:
    """Build a readable message from a failed git command."""
    stderr = (getattr(e, "stderr", None) or str(e)).strip()
    status = getattr(e, "status", None) or "unknown"

    if stderr:
        return f"{command} failed (exit {status}): {stderr}"
    return f"{command} failed with exit code {status}"


def parse_worktree_porcelain(output: str) -> List[WorktreeRecord]:
    """Parse ``git worktree list --porcelain`` output.

    Format:
        worktree /path/to/worktree
        HEAD commit_sha
        branch refs/heads/branch-name   (or "detached")
        prunable gitdir file points to non-existent location   (optional)
        (blank line between worktrees)
    """
    records: List[WorktreeRecord] = []
    current: Dict[str, Any] = {}

    def flush():
        if current.get("path"):
            records.append(
                WorktreeRecord(
                    path=current["path"],
                    branch_name=current.get("branch", ""),
                    commit_sha=current.get("HEAD", ""),
                    # First worktree in list is always the main one
                    is_main=not records,
                    prunable=current.get("prunable", False),
                )
            )

    for line in output.split("\n"):
        line = line.strip()

        if not line:
            flush()
            current = {}
            continue

        if line.startswith("worktree "):
            current["path"] = line.split(" ", 1)[1]
        elif line.startswith("HEAD "):
            current["HEAD"] = line.split(" ", 1)[1]
        elif line.startswith("branch "):
            branch_ref = line.split(" ", 1)[1]
            if branch_ref.startswith("refs/heads/"):
                current["branch"] = branch_ref[len("refs/heads/"):]
            else:
                current["branch"] = ""
        elif line == "detached":
            current["branch"] = DETACHED_BRANCH
        elif line == "prunable" or line.startswith("prunable "):
            current["prunable"] = True

    # Handle last entry if no trailing blank line
    flush()
    return records


class GitWorktreeService:
    """Service answering git questions about worktrees and repairing their links."""

    def _get_repo(self, repo_path: str) -> git.Repo:
        """Open a repository.

        Raises:
            GitOperationError: If the path is not a git repository
        """
        try:
            return git.Repo(repo_path)
        except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
            raise GitOperationError("open_repo", repo_path, f"not a git repository: {e}") from e

    def _git_at(self, path: str) -> git.Git:
        """Git command runner with its working directory set to path."""
        return git.Git(path)

    # --- queries -----------------------------------------------------------

    def list_worktrees_from_repo(self, repo_path: str) -> List[WorktreeRecord]:
        """List every worktree git knows about for a repository.

        Raises:
            GitOperationError: If the listing fails
        """
        repo = self._get_repo(repo_path)
        try:
            output = repo.git.worktree("list", "--porcelain")
        except git.exc.GitCommandError as e:
            raise GitOperationError(
                "worktree_list", repo_path, _describe_git_error("git worktree list", e)
            ) from e

        records = parse_worktree_porcelain(output)
        logger.debug(f"Found {len(records)} worktrees in {repo_path}")
        for record in records:
            logger.debug(f"  {record}")
        return records

    def list_prunable_worktrees(self, repo_path: str) -> List[str]:
        """Return paths of worktree references git considers stale.

        Raises:
            GitOperationError: If the listing fails
        """
        return [r.path for r in self.list_worktrees_from_repo(repo_path) if r.prunable]

    @staticmethod
    def is_worktree(path: str) -> bool:
        """A linked worktree has a ``.git`` file, not a directory."""
        return os.path.isfile(os.path.join(path, ".git"))

    @staticmethod
    def is_main_repo(path: str) -> bool:
        """A main repository has a ``.git`` directory."""
        return os.path.isdir(os.path.join(path, ".git"))

    @staticmethod
    def read_gitdir(worktree_path: str) -> Optional[Path]:
        """Return the admin directory a worktree's ``.git`` file points to.

        Only the first line of the file matters. Relative paths are resolved
        against the worktree. Returns None if the file is missing or malformed.
        """
        git_file = Path(worktree_path) / ".git"
        try:
            content = git_file.read_text()
        except (OSError, UnicodeDecodeError):
            return None

        lines = content.strip().splitlines()
        line = lines[0].strip() if lines else ""
        if not line.startswith("gitdir:"):
            return None
        gitdir = line[len("gitdir:"):].strip()
        if not gitdir:
            return None

        gitdir_path = Path(gitdir)
        if not gitdir_path.is_absolute():
            gitdir_path = Path(worktree_path) / gitdir_path
        return Path(os.path.normpath(gitdir_path))

    def get_main_repo_path(self, worktree_path: str) -> str:
        """Derive the main repository path from a worktree's ``.git`` file.

        ``/path/to/repo/.git/worktrees/name`` yields ``/path/to/repo``.

        Raises:
            GitOperationError: If the file is missing, malformed or has no .git component
        """
        gitdir = self.read_gitdir(worktree_path)
        if gitdir is None:
            raise GitOperationError(
                "main_repo_path", worktree_path, "invalid .git file: expected 'gitdir: <path>'"
            )

        for candidate in [gitdir, *gitdir.parents]:
            if candidate.name == ".git":
                return str(candidate.parent)

        raise GitOperationError(
            "main_repo_path", worktree_path, f"could not find main repo path from gitdir: {gitdir}"
        )

    def get_repo_name_from_worktree(self, worktree_path: str) -> str:
        """Return the folder name of the worktree's repository, or "" if unknown."""
        try:
            return os.path.basename(self.get_main_repo_path(worktree_path))
        except GitOperationError:
            return ""

    def is_worktree_link_valid(self, worktree_path: str) -> bool:
        """Check both directions of the link between a worktree and its repo.

        The ``.git`` file must point at an existing admin directory, and that
        directory's ``gitdir`` file must point back at this worktree.
        """
        gitdir = self.read_gitdir(worktree_path)
        if gitdir is None or not gitdir.is_dir():
            return False

        back_link = gitdir / "gitdir"
        try:
            target = back_link.read_text().strip()
        except OSError:
            return False
        if not target:
            return False

        expected = Path(worktree_path) / ".git"
        try:
            return Path(target).resolve() == expected.resolve()
        except OSError:
            return False

    def can_repair_worktree(self, worktree_path: str) -> bool:
        """True if the ``.git`` file names an admin directory that git can relink."""
        gitdir = self.read_gitdir(worktree_path)
        return gitdir is not None and gitdir.parent.name == "worktrees"

    def find_repo_in_dirs(self, repo_name: str, *search_dirs: str) -> str:
        """Search directories (in order) for a main repository named repo_name."""
        if not repo_name:
            return ""
        for directory in search_dirs:
            if not directory:
                continue
            candidate = os.path.join(directory, repo_name)
            if self.is_main_repo(candidate):
                logger.debug(f"Found repo '{repo_name}' at {candidate}")
                return candidate
        return ""

    def get_current_branch(self, path: str) -> str:
        """Return the checked-out branch, or "(detached)" for a detached HEAD.

        Raises:
            GitOperationError: If git can't read the branch
        """
        try:
            branch = self._git_at(path).branch("--show-current").strip()
        except (git.exc.GitError, OSError) as e:
            raise GitOperationError("current_branch", path, _describe_git_error("git branch", e)) from e
        return branch or DETACHED_BRANCH

    def get_origin_url(self, repo_path: str) -> str:
        """Return the origin remote URL.

        Raises:
            GitOperationError: If there is no origin remote
        """
        try:
            return self._git_at(repo_path).remote("get-url", "origin").strip()
        except (git.exc.GitError, OSError) as e:
            raise GitOperationError("origin_url", repo_path, _describe_git_error("git remote get-url", e)) from e

    def get_worktree_info(self, worktree_path: str) -> WorktreeInfo:
        """Collect the cache metadata for a live worktree.

        The origin URL is left empty for repositories without an origin.

        Raises:
            GitOperationError: If the repository or branch can't be resolved
        """
        repo_path = self.get_main_repo_path(worktree_path)
        branch = self.get_current_branch(worktree_path)
        try:
            origin_url = self.get_origin_url(repo_path)
        except GitOperationError as e:
            logger.debug(f"No origin for {repo_path}: {e}")
            origin_url = ""

        return WorktreeInfo(
            path=worktree_path,
            repo_path=repo_path,
            branch=branch,
            origin_url=origin_url,
        )

    def scan_worktrees(self, scan_dir: str) -> List[WorktreeInfo]:
        """Find linked worktrees directly inside scan_dir.

        Directories whose metadata can't be resolved are skipped.

        Raises:
            GitOperationError: If scan_dir can't be read
        """
        try:
            names = sorted(os.listdir(scan_dir))
        except OSError as e:
            raise GitOperationError("scan", scan_dir, e.strerror or str(e)) from e

        worktrees = []
        for name in names:
            path = os.path.join(scan_dir, name)
            if not os.path.isdir(path) or not self.is_worktree(path):
                continue
            try:
                worktrees.append(self.get_worktree_info(path))
            except GitOperationError as e:
                logger.debug(f"Skipping {path}: {e}")

        logger.debug(f"Scanned {len(worktrees)} worktrees in {scan_dir}")
        return worktrees

    # --- mutations ---------------------------------------------------------

    def repair_worktree(self, repo_path: str, worktree_path: str) -> tuple[bool, Optional[str]]:
        """Repair the links between a repository and one of its worktrees.

        Returns:
            Tuple of (success, error_message). error_message is None on success.
        """
        try:
            repo = self._get_repo(repo_path)
            repo.git.worktree("repair", worktree_path)
            logger.info(f"Repaired worktree links for {worktree_path}")
            return True, None
        except GitOperationError as e:
            logger.error(f"Failed to repair worktree at {worktree_path}: {e}")
            return False, str(e)
        except git.exc.GitCommandError as e:
            error_msg = _describe_git_error("git worktree repair", e)
            logger.error(f"Failed to repair worktree at {worktree_path}: {error_msg}")
            return False, error_msg
        except (git.exc.GitError, OSError) as e:
            logger.error(f"Failed to repair worktree at {worktree_path}: {e}")
            return False, str(e)

    def prune_worktrees(self, repo_path: str) -> tuple[bool, Optional[str]]:
        """Prune stale worktree metadata.

        Returns:
            Tuple of (success, error_message). error_message is None on success.
        """
        try:
            repo = self._get_repo(repo_path)
            repo.git.worktree("prune")
            logger.info(f"Pruned stale worktree metadata in {repo_path}")
            return True, None
        except GitOperationError as e:
            logger.error(f"Failed to prune worktrees: {e}")
            return False, str(e)
        except git.exc.GitCommandError as e:
            error_msg = _describe_git_error("git worktree prune", e)
            logger.error(f"Failed to prune worktrees: {error_msg}")
            return False, error_msg
        except (git.exc.GitError, OSError) as e:
            logger.error(f"Failed to prune worktrees: {e}")
            return False, str(e)
