"""Custom exceptions for worktree-keeper"""

from typing import Optional


class WorktreeKeeperError(Exception):
    """Base exception for all worktree-keeper errors."""
    pass


class CacheError(WorktreeKeeperError):
    """Base exception for cache persistence errors."""
    pass


class CacheIOError(CacheError):
    """Exception raised when the cache file cannot be read or written."""

    def __init__(self, operation: str, path: str, message: Optional[str] = None):
        self.operation = operation
        self.path = path
        self.message = message

        error_msg = f"Cache {operation} failed for '{path}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class LockAcquisitionError(CacheError):
    """Exception raised when the cache lock cannot be acquired."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        self.message = message

        error_msg = f"Failed to acquire lock '{path}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class GitOperationError(WorktreeKeeperError):
    """Exception raised for errors in Git operations."""

    def __init__(self, operation: str, path: Optional[str] = None, message: Optional[str] = None):
        self.operation = operation
        self.path = path
        self.message = message

        error_msg = f"Git operation '{operation}' failed"
        if path:
            error_msg += f" for '{path}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class ForgeError(WorktreeKeeperError):
    """Exception raised for errors talking to a code forge (GitHub, GitLab)."""

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        self.message = message

        error_msg = f"Forge operation '{operation}' failed"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)
