"""
Workspace lock: only one embed or harvest run at a time.

A second run fails fast with AlreadyRunning instead of waiting. Recall
never takes the lock.
"""

import logging
from contextlib import contextmanager
from pathlib import Path

from filelock import FileLock, Timeout

from .errors import AlreadyRunning

logger = logging.getLogger(__name__)


@contextmanager
def workspace_lock(lock_path: Path):
    """
    Hold the advisory lock for the duration of the block.

    Args:
        lock_path: Lock file, normally <memory_dir>/.profundo.lock

    Raises:
        AlreadyRunning: If another process holds the lock
    """
    lock_path = Path(lock_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(lock_path), timeout=0)
    try:
        lock.acquire()
    except Timeout as e:
        raise AlreadyRunning(lock_path) from e

    logger.debug(f"Acquired workspace lock {lock_path}")
    try:
        yield lock
    finally:
        lock.release()
        logger.debug(f"Released workspace lock {lock_path}")
