"""Logging configuration for worktree-keeper"""
import copy
import logging
import sys
from pathlib import Path

DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
SHORT_FORMAT = '[%(name)s] %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Library loggers kept at WARNING unless debugging
NOISY_LOGGERS = ('git.cmd', 'github', 'urllib3')


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name when stderr is a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        color = self.LEVEL_COLORS.get(record.levelno)
        if color and sys.stderr.isatty():
            # Other handlers share the record
            record = copy.copy(record)
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def get_log_file() -> Path:
    """Return the path of the debug log file."""
    return Path.home() / '.worktree-keeper' / 'worktree-keeper.log'


def _file_handler() -> logging.Handler:
    log_file = get_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, mode='w')
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=DETAILED_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _console_handler(level: int, detailed: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if detailed:
        handler.setFormatter(ColoredFormatter(fmt=DETAILED_FORMAT, datefmt=DATE_FORMAT))
    else:
        handler.setFormatter(ColoredFormatter(fmt=SHORT_FORMAT))
    return handler


def setup_logging(verbose: bool = False, debug: bool = False) -> None:
    """
    Configure logging for the application.

    Args:
        verbose: If True, show INFO level messages
        debug: If True, show DEBUG level messages and also write them to
            ~/.worktree-keeper/worktree-keeper.log (overwritten each run)
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if debug:
        root_logger.addHandler(_file_handler())
    root_logger.addHandler(_console_handler(level, detailed=debug))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the specified module.

    Args:
        name: Name of the module (typically __name__)

    Returns:
        Logger instance
    """
    # "worktree_keeper.services.doctor.fixes" logs as "doctor.fixes"
    for prefix in ('worktree_keeper.', 'services.'):
        if name.startswith(prefix):
            name = name[len(prefix):]
    return logging.getLogger(name)
