"""
Launcher Lock - Serializes broker launch sequences across processes.

fcntl-based exclusive lock on a well-known file, acquired with a
timeout. Only one `ensure` run at a time may inspect the PID file
and spawn a broker.
"""

import fcntl
import os
import time
from pathlib import Path

__all__ = ["FileLock", "LockTimeout"]

POLL_INTERVAL = 0.05


class LockTimeout(Exception):
    """Raised when lock acquisition times out."""


class FileLock:
    """Context manager for an exclusive lock file.

    Example:
        with FileLock(config.lock_file, timeout=10):
            ...  # check, clean up, spawn

    Raises:
        LockTimeout: If the lock cannot be acquired within ``timeout``
    """

    def __init__(self, path: Path | str, timeout: float = 10.0) -> None:
        self.path = Path(path)
        self.timeout = timeout
        self.fd: int | None = None

    @property
    def locked(self) -> bool:
        return self.fd is not None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_CREAT | os.O_RDWR, 0o644)

        deadline = time.monotonic() + self.timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except OSError:
                if time.monotonic() >= deadline:
                    os.close(fd)
                    raise LockTimeout(
                        f"Could not acquire lock on {self.path} after {self.timeout}s"
                    ) from None
                time.sleep(POLL_INTERVAL)

        self.fd = fd

    def release(self) -> None:
        if self.fd is not None:
            fcntl.flock(self.fd, fcntl.LOCK_UN)
            os.close(self.fd)
            self.fd = None

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, *args) -> None:
        self.release()
