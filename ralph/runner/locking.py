"""
Daemon mutual exclusion.

One flock per workspace run directory, held for the daemon's lifetime. The
kernel drops it when the process dies, so a crashed daemon never leaves the
workspace locked. run.pid is informational only.
"""

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path

from ralph.lib.constants import RUN_LOCK_FILE


class DaemonAlreadyRunning(Exception):
    """Another daemon holds the workspace lock."""

    def __init__(self, run_dir: Path, holder: str = ""):
        self.run_dir = run_dir
        msg = f"a daemon is already running for {run_dir}"
        if holder:
            msg += f" (PID {holder})"
        super().__init__(msg)


def is_locked(run_dir: Path) -> bool:
    """True if some process holds the daemon lock."""
    lock_file = run_dir / RUN_LOCK_FILE
    if not lock_file.exists():
        return False
    with open(lock_file, "r") as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
    return False


@contextmanager
def daemon_lock(run_dir: Path):
    """
    Acquire the workspace's daemon lock without waiting, yield, release on exit.

    Raises:
        DaemonAlreadyRunning: If another process holds it
    """
    run_dir.mkdir(parents=True, exist_ok=True)
    lock_file = run_dir / RUN_LOCK_FILE
    # Lock files are never deleted: deleting lets two processes hold
    # "exclusive" locks on different inodes at the same path.
    fd = open(lock_file, "a+")
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            fd.seek(0)
            raise DaemonAlreadyRunning(run_dir, fd.read().strip()) from None

        fd.seek(0)
        fd.truncate()
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            fd.close()
