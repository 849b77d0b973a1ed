"""Tests for CacheService load/save behaviour"""
import json
import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from worktree_keeper.exceptions import CacheIOError
from worktree_keeper.models.cache import CacheDocument, WorktreeEntry
from worktree_keeper.models.pr import PRInfo, PRState, utcnow
from worktree_keeper.models.worktree import WorktreeInfo
from worktree_keeper.services.cache_service import (
    CACHE_FILENAME,
    LOCK_FILENAME,
    CacheService,
    cache_path,
    lock_path,
)


def write_cache(directory: Path, data) -> None:
    text = data if isinstance(data, str) else json.dumps(data)
    (directory / CACHE_FILENAME).write_text(text)


class TestCachePaths:
    """Test cache and lock file locations."""

    def test_paths(self, temp_dir):
        assert cache_path(str(temp_dir)) == temp_dir / ".wt-cache.json"
        assert lock_path(str(temp_dir)) == temp_dir / ".wt-cache.lock"
        assert CACHE_FILENAME == ".wt-cache.json"
        assert LOCK_FILENAME == ".wt-cache.lock"


class TestCacheLoad:
    """Test loading and normalising cache files."""

    def test_load_missing_file(self, temp_dir):
        """Test a missing file yields a fresh document."""
        doc = CacheService(str(temp_dir)).load()
        assert doc.next_id == 1
        assert doc.worktrees == {}
        assert doc.legacy_prs is None

    def test_load_corrupted_file(self, temp_dir):
        """Test corrupted JSON behaves like a missing file."""
        write_cache(temp_dir, "{not json")
        doc = CacheService(str(temp_dir)).load()
        assert doc.next_id == 1
        assert doc.worktrees == {}

    def test_load_non_object(self, temp_dir):
        """Test a JSON array is discarded."""
        write_cache(temp_dir, [1, 2, 3])
        doc = CacheService(str(temp_dir)).load()
        assert doc.next_id == 1
        assert doc.worktrees == {}

    def test_load_legacy_format(self, temp_dir):
        """Test legacy origin -> branch -> PR data is discarded."""
        legacy = {
            "git@github.com:test/myrepo.git": {
                "feature": {"number": 12, "state": "OPEN", "fetched": True},
            }
        }
        write_cache(temp_dir, legacy)

        doc = CacheService(str(temp_dir)).load()
        assert doc.worktrees == {}
        assert doc.next_id == 1
        assert doc.legacy_prs == legacy

    def test_legacy_data_not_written_back(self, temp_dir):
        """Test saving a migrated document drops the legacy data."""
        write_cache(temp_dir, {"git@github.com:test/myrepo.git": {"feature": {}}})
        service = CacheService(str(temp_dir))
        service.save(service.load())

        saved = json.loads((temp_dir / CACHE_FILENAME).read_text())
        assert saved == {"worktrees": {}, "next_id": 1}

    def test_load_null_worktrees(self, temp_dir):
        """Test null worktrees become an empty mapping."""
        write_cache(temp_dir, {"worktrees": None, "next_id": 5})
        doc = CacheService(str(temp_dir)).load()
        assert doc.worktrees == {}
        assert doc.next_id == 5

    @pytest.mark.parametrize("next_id", [0, -3, "7", None])
    def test_load_invalid_next_id(self, temp_dir, next_id):
        """Test an out-of-range or non-integer counter resets to 1."""
        write_cache(temp_dir, {"worktrees": {}, "next_id": next_id})
        doc = CacheService(str(temp_dir)).load()
        assert doc.next_id == 1

    def test_load_next_id_below_existing_ids(self, temp_dir):
        """Test the counter is raised above the highest stored ID."""
        write_cache(temp_dir, {
            "worktrees": {"a": {"id": 7, "path": "/wt/a"}},
            "next_id": 2,
        })
        doc = CacheService(str(temp_dir)).load()
        assert doc.next_id == 8

    def test_load_drops_invalid_entries(self, temp_dir):
        """Test malformed entries are dropped and valid ones kept."""
        write_cache(temp_dir, {
            "worktrees": {
                "good": {"id": 1, "path": "/wt/good"},
                "no-id": {"path": "/wt/no-id"},
                "not-object": "oops",
            },
            "next_id": 2,
        })
        doc = CacheService(str(temp_dir)).load()
        assert list(doc.worktrees) == ["good"]

    @pytest.mark.parametrize("pr_data", ["garbage", {"number": "x"}, {"number": 3, "comment_count": "many"}])
    def test_load_keeps_entry_with_invalid_pr(self, temp_dir, pr_data):
        """Test bad PR data is discarded without losing the entry or its ID."""
        write_cache(temp_dir, {
            "worktrees": {"repo-a": {"id": 1, "path": "/wt/repo-a", "branch": "a", "pr": pr_data}},
            "next_id": 2,
        })
        doc = CacheService(str(temp_dir)).load()

        entry = doc.worktrees["repo-a"]
        assert entry.id == 1
        assert entry.branch == "a"
        assert entry.pr is None
        assert doc.get_or_assign_id(WorktreeInfo(path="/wt/repo-a", branch="a")) == 1
        assert doc.next_id == 2

    def test_load_ignores_stale_prs_key(self, temp_dir):
        """Test an old top-level 'prs' key is not carried over."""
        write_cache(temp_dir, {"worktrees": {}, "next_id": 2, "prs": {"x": {}}})
        doc = CacheService(str(temp_dir)).load()
        assert doc.next_id == 2
        assert doc.legacy_prs is None
        assert "prs" not in doc.to_dict()

    def test_load_unreadable_file_raises(self, temp_dir):
        """Test I/O errors other than 'not found' propagate."""
        write_cache(temp_dir, {"worktrees": {}, "next_id": 1})
        with patch.object(Path, "read_text", side_effect=PermissionError(13, "Permission denied")):
            with pytest.raises(CacheIOError, match="Permission denied"):
                CacheService(str(temp_dir)).load()


class TestCacheSave:
    """Test atomic saving."""

    def test_save_then_load_reproduces_document(self, temp_dir):
        """Test a saved document loads back with the same fields."""
        cached_at = utcnow().replace(microsecond=0)
        doc = CacheDocument(next_id=3)
        doc.worktrees["myrepo-feature"] = WorktreeEntry(
            id=1,
            path="/wt/myrepo-feature",
            branch="feature",
            origin_url="git@github.com:test/myrepo.git",
            repo_path="/repos/myrepo",
            pr=PRInfo(number=5, state=PRState.MERGED, url="u", cached_at=cached_at, fetched=True),
        )
        doc.worktrees["myrepo-gone"] = WorktreeEntry(id=2, path="/wt/myrepo-gone", removed_at=cached_at)

        service = CacheService(str(temp_dir))
        service.save(doc)
        loaded = service.load()

        assert loaded.next_id == 3
        assert loaded.worktrees == doc.worktrees

    def test_save_empty_document(self, temp_dir):
        service = CacheService(str(temp_dir))
        service.save(CacheDocument())
        loaded = service.load()
        assert loaded.worktrees == {}
        assert loaded.next_id == 1

    def test_save_writes_expected_json(self, temp_dir):
        """Test the on-disk layout of an entry."""
        doc = CacheDocument(next_id=2)
        doc.worktrees["a"] = WorktreeEntry(id=1, path="/wt/a", branch="main")
        CacheService(str(temp_dir)).save(doc)

        saved = json.loads((temp_dir / CACHE_FILENAME).read_text())
        assert saved == {
            "worktrees": {
                "a": {
                    "id": 1,
                    "path": "/wt/a",
                    "branch": "main",
                    "origin_url": "",
                    "repo_path": "",
                    "removed_at": None,
                    "pr": None,
                }
            },
            "next_id": 2,
        }

    def test_save_leaves_no_temp_file_and_restricts_mode(self, temp_dir):
        """Test the temp file is gone and the cache is owner-only."""
        CacheService(str(temp_dir)).save(CacheDocument())
        cache_file = temp_dir / CACHE_FILENAME
        assert not (temp_dir / (CACHE_FILENAME + ".tmp")).exists()
        assert stat.S_IMODE(os.stat(cache_file).st_mode) & 0o077 == 0

    def test_save_creates_directory(self, temp_dir):
        target = temp_dir / "new" / "worktrees"
        CacheService(str(target)).save(CacheDocument())
        assert (target / CACHE_FILENAME).exists()

    def test_failed_save_keeps_previous_file(self, temp_dir):
        """Test a failed rename raises and leaves the old cache untouched."""
        service = CacheService(str(temp_dir))
        first = CacheDocument(next_id=9)
        service.save(first)
        before = (temp_dir / CACHE_FILENAME).read_text()

        with patch("worktree_keeper.services.cache_service.os.replace", side_effect=OSError(28, "No space left on device")):
            with pytest.raises(CacheIOError, match="No space left"):
                service.save(CacheDocument(next_id=42))

        assert (temp_dir / CACHE_FILENAME).read_text() == before
        assert not (temp_dir / (CACHE_FILENAME + ".tmp")).exists()


class TestCacheLocking:
    """Test load_with_lock and the locked() context manager."""

    def test_load_with_lock_returns_release(self, temp_dir):
        service = CacheService(str(temp_dir))
        doc, release = service.load_with_lock()
        try:
            assert doc.next_id == 1
            assert (temp_dir / LOCK_FILENAME).exists()
        finally:
            release()
        release()

    def test_load_with_lock_creates_directory(self, temp_dir):
        target = temp_dir / "fresh"
        doc, release = CacheService(str(target)).load_with_lock()
        release()
        assert target.is_dir()

    def test_load_with_lock_releases_on_load_error(self, temp_dir):
        """Test the lock is released when loading fails."""
        service = CacheService(str(temp_dir))
        with patch.object(service, "load", side_effect=CacheIOError("read", "x", "denied")):
            with patch("worktree_keeper.services.cache_service.FileLock.release") as release:
                with pytest.raises(CacheIOError):
                    service.load_with_lock()
        release.assert_called_once()

    def test_locked_context_manager(self, temp_dir):
        service = CacheService(str(temp_dir))
        with service.locked() as doc:
            doc.next_id = 5
            service.save(doc)
        assert service.load().next_id == 5
