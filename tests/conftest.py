"""Pytest fixtures for worktree-keeper tests"""
import tempfile
from pathlib import Path
from unittest.mock import Mock
import pytest
import git

from worktree_keeper.models.cache import CacheDocument, WorktreeEntry
from worktree_keeper.models.pr import PRInfo, PRState, utcnow
from worktree_keeper.services.git import GitWorktreeService


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing (symlinks resolved)."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def repo_dir(temp_dir):
    """Directory holding main repositories."""
    path = temp_dir / "repos"
    path.mkdir()
    return path


@pytest.fixture
def worktree_root(temp_dir):
    """Directory holding worktrees and the cache file."""
    path = temp_dir / "worktrees"
    path.mkdir()
    return path


def init_repo(path: Path, origin_url: str = "git@github.com:test/myrepo.git") -> git.Repo:
    """Initialize a repository with one commit on main and an origin remote."""
    path.mkdir(parents=True, exist_ok=True)
    repo = git.Repo.init(path)

    # Configure git user for commits
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")
        writer.set_value("commit", "gpgsign", "false")

    readme = path / "README.md"
    readme.write_text("# Test Repository\n")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")
    repo.git.branch("-M", "main")

    if origin_url:
        repo.create_remote("origin", origin_url)
    return repo


@pytest.fixture
def git_repo(repo_dir):
    """Create a real Git repository named 'myrepo' for testing."""
    repo = init_repo(repo_dir / "myrepo")
    yield repo
    repo.close()


@pytest.fixture
def make_worktree(git_repo, worktree_root):
    """Factory adding a linked worktree on a new branch under worktree_root."""

    def _make(name: str, branch: str = None, repo: git.Repo = None) -> Path:
        repo = repo or git_repo
        path = worktree_root / name
        repo.git.worktree("add", "-b", branch or name, str(path))
        return path

    return _make


@pytest.fixture
def git_service():
    return GitWorktreeService()


@pytest.fixture
def mock_git_service():
    """Create a mock GitWorktreeService with healthy defaults."""
    service = Mock(spec=GitWorktreeService)
    service.is_worktree_link_valid = Mock(return_value=True)
    service.is_main_repo = Mock(return_value=True)
    service.can_repair_worktree = Mock(return_value=True)
    service.find_repo_in_dirs = Mock(return_value="")
    service.get_repo_name_from_worktree = Mock(return_value="")
    service.list_prunable_worktrees = Mock(return_value=[])
    service.list_worktrees_from_repo = Mock(return_value=[])
    service.repair_worktree = Mock(return_value=(True, None))
    service.prune_worktrees = Mock(return_value=(True, None))
    return service


@pytest.fixture
def sample_document():
    """A cache document with two active entries and one removed entry."""
    fresh_pr = PRInfo(
        number=42,
        state=PRState.OPEN,
        url="https://github.com/test/myrepo/pull/42",
        author="octocat",
        cached_at=utcnow(),
        fetched=True,
    )
    doc = CacheDocument(next_id=4)
    doc.worktrees = {
        "myrepo-feature": WorktreeEntry(
            id=1,
            path="/worktrees/myrepo-feature",
            branch="feature",
            origin_url="git@github.com:test/myrepo.git",
            repo_path="/repos/myrepo",
            pr=fresh_pr,
        ),
        "myrepo-bugfix": WorktreeEntry(
            id=2,
            path="/worktrees/myrepo-bugfix",
            branch="bugfix",
            origin_url="git@github.com:test/myrepo.git",
            repo_path="/repos/myrepo",
        ),
        "myrepo-old": WorktreeEntry(
            id=3,
            path="/worktrees/myrepo-old",
            branch="old",
            origin_url="git@github.com:test/myrepo.git",
            repo_path="/repos/myrepo",
            removed_at=utcnow(),
        ),
    }
    return doc
