"""Advisory file lock guarding the worktree cache."""
import fcntl
import os
from typing import IO, Optional

from worktree_keeper.exceptions import LockAcquisitionError
from worktree_keeper.logging_config import get_logger

logger = get_logger(__name__)


class FileLock:
    """Exclusive, blocking flock on a single file.

    Only processes that take the same lock are excluded; it does not stop a
    process that writes the cache without locking.
    """

    def __init__(self, path: str):
        """Create a lock for the given path.

        The lock file is created on acquire if it doesn't exist.

        Args:
            path: Path of the lock file
        """
        self.path = str(path)
        self._handle: Optional[IO] = None

    @property
    def locked(self) -> bool:
        return self._handle is not None

    def acquire(self) -> None:
        """Block until an exclusive lock is held.

        Raises:
            LockAcquisitionError: If the file can't be opened or locked
        """
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o600)
        except OSError as e:
            raise LockAcquisitionError(self.path, e.strerror or str(e)) from e

        handle = os.fdopen(fd, "r+")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        except OSError as e:
            handle.close()
            raise LockAcquisitionError(self.path, e.strerror or str(e)) from e

        self._handle = handle
        logger.debug(f"Acquired lock {self.path}")

    def release(self) -> None:
        """Release the lock and close the handle. Safe to call twice."""
        if self._handle is None:
            return

        handle = self._handle
        self._handle = None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            logger.debug(f"Released lock {self.path}")
        finally:
            handle.close()

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
