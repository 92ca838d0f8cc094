"""Non-blocking advisory lock on an existing lock file.

Uses fcntl.flock(), so it works on Linux and macOS only.
"""

import fcntl
import os
from pathlib import Path
from typing import Optional, Union


class FinalizeLock:
    """Exclusive, non-blocking lock held on a pre-existing lock file.

    The lock file is never created here: a missing file means the guarded
    state is already gone. The holder may delete the lock file while it
    still holds the lock (POSIX unlink-while-open semantics). Another
    process that opened the file before the unlink can then acquire the
    lock on the orphaned inode, so acquire() compares inodes and refuses
    such a lock.

    Usage:
        lock = FinalizeLock(lock_path)
        if lock.acquire():
            try:
                ...
            finally:
                lock.release()
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._fd: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> bool:
        """Try to take the lock without waiting.

        Returns:
            True if the lock is now held, False if another holder has it or
            the lock file no longer exists
        """
        if self._fd is not None:
            return True

        try:
            fd = os.open(self.path, os.O_RDWR)
        except FileNotFoundError:
            return False

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False
        except OSError:
            os.close(fd)
            raise

        # The file may have been unlinked (and maybe recreated) since open()
        try:
            current = os.stat(self.path)
        except FileNotFoundError:
            current = None
        opened = os.fstat(fd)
        if current is None or (current.st_dev, current.st_ino) != (opened.st_dev, opened.st_ino):
            os.close(fd)
            return False

        self._fd = fd
        return True

    def release(self) -> None:
        """Release the lock by closing the descriptor.

        Safe to call after the lock file was deleted.
        """
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        os.close(fd)

    def __enter__(self) -> "FinalizeLock":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
