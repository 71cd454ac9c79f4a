"""
PID File - How the launcher finds the broker process.

Exclusion comes from the port bind, not from this file. The broker
records itself once it owns the port; `stop` and `ensure` read it to
signal the process or to drop a file left behind by a crash.
"""

import os
import signal
from pathlib import Path

import structlog

__all__ = ["PIDFile", "process_exists"]

logger = structlog.get_logger(__name__)


def process_exists(pid: int) -> bool:
    """Signal-0 probe. EPERM still means the process is there."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class PIDFile:
    """The broker's PID file at ``path``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def write(self) -> int:
        """Record this process, replacing whatever the file held.

        Written to a sibling temp file and renamed into place, so a
        reader never sees a partial PID.
        """
        pid = os.getpid()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.path.with_name(f".{self.path.name}.{pid}")
        staging.write_text(f"{pid}\n")
        os.replace(staging, self.path)
        logger.info("pid_file_written", path=str(self.path), pid=pid)
        return pid

    def read(self) -> int | None:
        try:
            text = self.path.read_text()
        except FileNotFoundError:
            return None
        try:
            return int(text.strip())
        except ValueError:
            return None

    def remove(self) -> bool:
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info("pid_file_removed", path=str(self.path))
        return True

    def is_running(self) -> bool:
        """True if the recorded process is alive. A stale file is removed."""
        pid = self.read()
        if pid is None:
            return False
        if process_exists(pid):
            return True
        logger.warning("stale_pid_file", path=str(self.path), pid=pid)
        self.remove()
        return False

    def signal(self, sig: signal.Signals) -> bool:
        """Deliver ``sig`` to the recorded process.

        Returns:
            False if there is no live process to signal
        """
        pid = self.read()
        if pid is None or not process_exists(pid):
            logger.warning("broker_not_found", path=str(self.path), pid=pid)
            return False
        try:
            os.kill(pid, sig)
        except OSError as e:
            logger.error("signal_failed", pid=pid, signal=sig.name, error=str(e))
            return False
        logger.info("signal_sent", pid=pid, signal=sig.name)
        return True
