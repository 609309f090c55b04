"""
Host-wide run lock for the shutdown sequence.

Uses an advisory ``flock`` on a lock file. The lock belongs to the open
file description, so the kernel drops it when the holding process exits
for any reason, including being killed.
"""

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


class AlreadyRunningError(Exception):
    """Raised when another shutdown run holds the lock."""
    pass


class RunLock:
    """
    Non-blocking, non-reentrant exclusive lock.

    ``acquire()`` never waits: it returns False immediately when another
    run holds the lock.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> bool:
        if self._fd is not None:
            raise RuntimeError(f"Run lock {self.path} is already held by this instance")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            logger.debug("Run lock %s is held by another process", self.path)
            return False
        except OSError:
            os.close(fd)
            raise

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug("Acquired run lock %s", self.path)
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug("Released run lock %s", self.path)

    def __enter__(self) -> "RunLock":
        if not self.acquire():
            raise AlreadyRunningError(f"Another shutdown run holds {self.path}")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
