"""Tests for GitWorktreeService"""
import os
import shutil
from unittest.mock import patch

import git
import pytest

from worktree_keeper.exceptions import GitOperationError
from worktree_keeper.services.git import GitWorktreeService, parse_worktree_porcelain


class TestParseWorktreePorcelain:
    """Test parsing `git worktree list --porcelain`."""

    def test_parse_multiple_worktrees(self):
        output = (
            "worktree /repos/myrepo\n"
            "HEAD abc123\n"
            "branch refs/heads/main\n"
            "\n"
            "worktree /worktrees/myrepo-feature\n"
            "HEAD def456\n"
            "branch refs/heads/feature/x\n"
            "\n"
            "worktree /worktrees/myrepo-detached\n"
            "HEAD 789abc\n"
            "detached\n"
            "\n"
            "worktree /worktrees/gone\n"
            "HEAD 000111\n"
            "branch refs/heads/gone\n"
            "prunable gitdir file points to non-existent location\n"
        )
        records = parse_worktree_porcelain(output)

        assert [r.path for r in records] == [
            "/repos/myrepo",
            "/worktrees/myrepo-feature",
            "/worktrees/myrepo-detached",
            "/worktrees/gone",
        ]
        assert records[0].is_main
        assert not any(r.is_main for r in records[1:])
        assert records[1].branch_name == "feature/x"
        assert records[2].branch_name == "(detached)"
        assert records[3].prunable
        assert not records[1].prunable

    def test_parse_empty(self):
        assert parse_worktree_porcelain("") == []


class TestWorktreePredicates:
    """Test filesystem-level checks on real worktrees."""

    def test_is_worktree_and_main_repo(self, git_service, git_repo, make_worktree):
        worktree = make_worktree("myrepo-feature")
        assert git_service.is_worktree(str(worktree))
        assert not git_service.is_main_repo(str(worktree))
        assert git_service.is_main_repo(git_repo.working_dir)
        assert not git_service.is_worktree(git_repo.working_dir)

    def test_get_main_repo_path(self, git_service, git_repo, make_worktree):
        worktree = make_worktree("myrepo-feature")
        assert git_service.get_main_repo_path(str(worktree)) == git_repo.working_dir
        assert git_service.get_repo_name_from_worktree(str(worktree)) == "myrepo"

    def test_get_main_repo_path_invalid_file(self, git_service, temp_dir):
        wt = temp_dir / "bad"
        wt.mkdir()
        (wt / ".git").write_text("not a gitdir line\n")
        with pytest.raises(GitOperationError):
            git_service.get_main_repo_path(str(wt))
        assert git_service.get_repo_name_from_worktree(str(wt)) == ""

    def test_relative_gitdir_resolved(self, git_service, temp_dir):
        admin = temp_dir / "repo" / ".git" / "worktrees" / "wt"
        admin.mkdir(parents=True)
        wt = temp_dir / "wt"
        wt.mkdir()
        (wt / ".git").write_text("gitdir: ../repo/.git/worktrees/wt\n")
        assert git_service.get_main_repo_path(str(wt)) == str(temp_dir / "repo")

    def test_link_valid_for_fresh_worktree(self, git_service, make_worktree):
        worktree = make_worktree("myrepo-feature")
        assert git_service.is_worktree_link_valid(str(worktree))
        assert git_service.can_repair_worktree(str(worktree))

    def test_link_invalid_after_repo_moved(self, git_service, git_repo, make_worktree, temp_dir):
        worktree = make_worktree("myrepo-feature")
        shutil.move(git_repo.working_dir, str(temp_dir / "elsewhere"))
        assert not git_service.is_worktree_link_valid(str(worktree))
        assert git_service.can_repair_worktree(str(worktree))

    def test_link_invalid_after_worktree_moved(self, git_service, make_worktree, temp_dir):
        worktree = make_worktree("myrepo-feature")
        moved = temp_dir / "moved-feature"
        shutil.move(str(worktree), str(moved))
        assert not git_service.is_worktree_link_valid(str(moved))

    def test_find_repo_in_dirs(self, git_service, git_repo, repo_dir, temp_dir):
        assert git_service.find_repo_in_dirs("myrepo", str(temp_dir), str(repo_dir)) == str(repo_dir / "myrepo")
        assert git_service.find_repo_in_dirs("missing", str(repo_dir)) == ""
        assert git_service.find_repo_in_dirs("", str(repo_dir)) == ""


class TestWorktreeQueries:
    """Test git queries against real repositories."""

    def test_list_worktrees_from_repo(self, git_service, git_repo, make_worktree):
        worktree = make_worktree("myrepo-feature", branch="feature")
        records = git_service.list_worktrees_from_repo(git_repo.working_dir)

        assert records[0].is_main
        assert records[0].path == git_repo.working_dir
        assert records[1].path == str(worktree)
        assert records[1].branch_name == "feature"

    def test_list_worktrees_not_a_repo(self, git_service, temp_dir):
        with pytest.raises(GitOperationError):
            git_service.list_worktrees_from_repo(str(temp_dir))

    def test_prunable_after_worktree_deleted(self, git_service, git_repo, make_worktree):
        worktree = make_worktree("myrepo-feature")
        shutil.rmtree(worktree)
        assert git_service.list_prunable_worktrees(git_repo.working_dir) == [str(worktree)]

        success, error = git_service.prune_worktrees(git_repo.working_dir)
        assert success
        assert error is None
        assert git_service.list_prunable_worktrees(git_repo.working_dir) == []

    def test_get_worktree_info(self, git_service, git_repo, make_worktree):
        worktree = make_worktree("myrepo-feature", branch="feature")
        info = git_service.get_worktree_info(str(worktree))

        assert info.path == str(worktree)
        assert info.repo_path == git_repo.working_dir
        assert info.branch == "feature"
        assert info.origin_url == "git@github.com:test/myrepo.git"

    def test_get_worktree_info_without_origin(self, git_service, git_repo, make_worktree):
        git_repo.git.remote("remove", "origin")
        worktree = make_worktree("myrepo-feature")
        assert git_service.get_worktree_info(str(worktree)).origin_url == ""

    def test_get_current_branch_detached(self, git_service, git_repo, make_worktree):
        worktree = make_worktree("myrepo-feature")
        git.Repo(worktree).git.checkout("--detach")
        assert git_service.get_current_branch(str(worktree)) == "(detached)"

    def test_get_origin_url_missing(self, git_service, git_repo):
        git_repo.git.remote("remove", "origin")
        with pytest.raises(GitOperationError):
            git_service.get_origin_url(git_repo.working_dir)

    def test_scan_worktrees(self, git_service, make_worktree, worktree_root):
        make_worktree("myrepo-b")
        make_worktree("myrepo-a")
        (worktree_root / "plain-dir").mkdir()
        (worktree_root / "file.txt").write_text("x")

        infos = git_service.scan_worktrees(str(worktree_root))
        assert [os.path.basename(i.path) for i in infos] == ["myrepo-a", "myrepo-b"]

    def test_scan_missing_dir(self, git_service, temp_dir):
        with pytest.raises(GitOperationError):
            git_service.scan_worktrees(str(temp_dir / "missing"))


class TestWorktreeRepair:
    """Test repairing broken links."""

    def test_repair_after_repo_moved(self, git_service, git_repo, make_worktree, temp_dir):
        worktree = make_worktree("myrepo-feature")
        new_repo = temp_dir / "moved" / "myrepo"
        new_repo.parent.mkdir()
        shutil.move(git_repo.working_dir, str(new_repo))

        success, error = git_service.repair_worktree(str(new_repo), str(worktree))

        assert success, error
        assert git_service.is_worktree_link_valid(str(worktree))
        assert git_service.get_main_repo_path(str(worktree)) == str(new_repo)

    def test_repair_reports_missing_repo(self, git_service, temp_dir):
        success, error = git_service.repair_worktree(str(temp_dir / "nope"), str(temp_dir))
        assert not success
        assert "not a git repository" in error

    def test_repair_reports_git_failure(self, git_service, git_repo):
        with patch.object(git.cmd.Git, "execute", side_effect=git.exc.GitCommandError("worktree", 128, "fatal: bad")):
            success, error = git_service.repair_worktree(git_repo.working_dir, "/nowhere")
        assert not success
        assert "git worktree repair" in error

    def test_repair_reports_missing_git_binary(self, git_service, git_repo):
        with patch.object(git.cmd.Git, "execute", side_effect=git.exc.GitCommandNotFound("git", "not installed")):
            success, error = git_service.repair_worktree(git_repo.working_dir, "/nowhere")
        assert not success
        assert error

    def test_prune_reports_missing_git_binary(self, git_service, git_repo):
        with patch.object(git.cmd.Git, "execute", side_effect=git.exc.GitCommandNotFound("git", "not installed")):
            success, error = git_service.prune_worktrees(git_repo.working_dir)
        assert not success
        assert error
