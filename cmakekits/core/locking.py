"""
Cross-process locking for CMakeKits files.

Several hosts (editor windows, command line invocations) may share the
user-global kits file. Writes are serialized with a ``filelock`` lock stored
next to the file.

Usage:
    from cmakekits.core.locking import file_lock

    with file_lock(kits_path, timeout=10):
        atomic_write(kits_path, content)
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout as LockTimeout

logger = logging.getLogger(__name__)


def lock_path_for(path: Path) -> Path:
    """Lock file guarding ``path``."""
    path = Path(path)
    return path.parent / f".{path.name}.lock"


@contextmanager
def file_lock(path: Path, timeout: float = 10):
    """
    Acquire the lock guarding writes to ``path``.

    Args:
        path: File being protected
        timeout: Maximum wait time in seconds

    Raises:
        LockTimeout: If the lock can't be acquired within timeout
    """
    lock_file = lock_path_for(path)
    lock_file.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(lock_file, timeout=timeout)

    try:
        with lock:
            logger.debug(f"Acquired lock: {lock_file}")
            yield
            logger.debug(f"Released lock: {lock_file}")
    except LockTimeout as e:
        logger.error(
            f"Could not acquire lock for {path} after {timeout}s. "
            "Another CMakeKits process may be writing it."
        )
        raise LockTimeout(
            f"Could not acquire lock for {path} after {timeout}s."
        ) from e


__all__ = ["file_lock", "lock_path_for", "LockTimeout"]
