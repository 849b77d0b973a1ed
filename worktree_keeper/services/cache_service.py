"""Cache service for storing worktree identities and metadata."""
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Tuple

from worktree_keeper.exceptions import CacheIOError
from worktree_keeper.logging_config import get_logger
from worktree_keeper.models.cache import CacheDocument, WorktreeEntry, make_worktree_key
from worktree_keeper.services.file_lock import FileLock

logger = get_logger(__name__)

CACHE_FILENAME = ".wt-cache.json"
LOCK_FILENAME = ".wt-cache.lock"

__all__ = [
    "CACHE_FILENAME",
    "LOCK_FILENAME",
    "CacheService",
    "cache_path",
    "lock_path",
    "make_worktree_key",
]


def cache_path(directory: str) -> Path:
    """Return the path to the cache file for a directory."""
    return Path(directory) / CACHE_FILENAME


def lock_path(directory: str) -> Path:
    """Return the path to the lock file for a directory."""
    return Path(directory) / LOCK_FILENAME


class CacheService:
    """Loads and saves the worktree cache kept in a worktree directory."""

    def __init__(self, directory: str):
        """Initialize cache service for a worktree directory.

        Args:
            directory: Directory holding the worktrees and the cache file
        """
        self.directory = Path(directory)
        self.cache_file = cache_path(directory)
        self.lock_file = lock_path(directory)

    def _parse_document(self, data: Any) -> CacheDocument:
        """Turn decoded JSON into a document, migrating or discarding bad data."""
        if not isinstance(data, dict):
            logger.warning("Cache data is not an object, starting fresh")
            return CacheDocument()

        if "worktrees" not in data and "next_id" not in data:
            if all(isinstance(branches, dict) for branches in data.values()):
                # Legacy origin -> branch -> PR map. It has no worktree key to
                # correlate with, so it is carried along once and never saved.
                if data:
                    logger.info(f"Migrating legacy PR cache ({len(data)} origins discarded)")
                return CacheDocument(legacy_prs=data)
            logger.warning("Unrecognized cache format, starting fresh")
            return CacheDocument()

        raw_worktrees = data.get("worktrees")
        if raw_worktrees is None:
            raw_worktrees = {}
        if not isinstance(raw_worktrees, dict):
            logger.warning("Cache 'worktrees' is not an object, starting fresh")
            return CacheDocument()

        worktrees: Dict[str, WorktreeEntry] = {}
        for key, raw_entry in raw_worktrees.items():
            try:
                worktrees[key] = WorktreeEntry.from_dict(raw_entry)
            except (ValueError, TypeError) as e:
                logger.warning(f"Dropping invalid cache entry '{key}': {e}")

        next_id = data.get("next_id")
        if not isinstance(next_id, int) or isinstance(next_id, bool) or next_id < 1:
            next_id = 1

        highest = max((entry.id for entry in worktrees.values()), default=0)
        if next_id <= highest:
            logger.warning(f"Cache next_id {next_id} is not above highest ID {highest}, correcting")
            next_id = highest + 1

        return CacheDocument(worktrees=worktrees, next_id=next_id)

    def load(self) -> CacheDocument:
        """Load the cache document from disk.

        A missing, corrupted or legacy-format file yields a fresh document.

        Raises:
            CacheIOError: If the file exists but can't be read
        """
        try:
            raw = self.cache_file.read_text()
        except FileNotFoundError:
            logger.debug("No cache file found")
            return CacheDocument()
        except OSError as e:
            raise CacheIOError("read", str(self.cache_file), e.strerror or str(e)) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in cache file, starting fresh: {e}")
            return CacheDocument()

        doc = self._parse_document(data)
        logger.debug(f"Loaded cache with {len(doc.worktrees)} worktrees (next_id={doc.next_id})")
        return doc

    def save(self, doc: CacheDocument) -> None:
        """Save the cache document using an atomic write.

        The document is written to a sibling temp file which is then renamed
        over the cache file, so readers never see a partial write.

        Raises:
            CacheIOError: If the file can't be written
        """
        temp_file = self.cache_file.with_name(self.cache_file.name + ".tmp")
        payload = json.dumps(doc.to_dict(), indent=2)

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd = os.open(temp_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())

            # Atomic rename (POSIX systems guarantee atomicity)
            os.replace(temp_file, self.cache_file)
        except OSError as e:
            raise CacheIOError("write", str(self.cache_file), e.strerror or str(e)) from e
        finally:
            if temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_error:
                    logger.debug(f"Error removing temp file {temp_file}: {cleanup_error}")

        logger.debug(f"Saved cache with {len(doc.worktrees)} worktrees")

    def load_with_lock(self) -> Tuple[CacheDocument, Callable[[], None]]:
        """Acquire the cache lock and load the document.

        The caller must call the returned release function on every path.

        Raises:
            LockAcquisitionError: If the lock can't be acquired
            CacheIOError: If the cache can't be read
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError("create", str(self.directory), e.strerror or str(e)) from e

        lock = FileLock(str(self.lock_file))
        lock.acquire()

        try:
            doc = self.load()
        except BaseException:
            lock.release()
            raise

        return doc, lock.release

    @contextmanager
    def locked(self) -> Iterator[CacheDocument]:
        """Context manager holding the cache lock around a loaded document.

        Saving is left to the caller; the lock is released on exit.
        """
        doc, release = self.load_with_lock()
        try:
            yield doc
        finally:
            release()
