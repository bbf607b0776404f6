"""Atomic file writes and advisory file locks."""

import fcntl
import json
import os
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path


class LockTimeout(Exception):
    """Lock acquisition timed out."""
    pass


def atomic_write_text(path: Path, content: str) -> None:
    """Write content to a temp file in the same directory, then rename over path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def atomic_write_json(path: Path, data) -> None:
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")


@contextmanager
def file_lock(path: Path, timeout: float = 10.0):
    """
    Hold an exclusive flock on a sidecar lock file for the duration of a
    read-modify-write.

    Lock files are never deleted: removing one lets two processes lock
    different inodes under the same path.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = open(path, "a")
    start = time.monotonic()
    try:
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                break
            except BlockingIOError:
                if time.monotonic() - start > timeout:
                    raise LockTimeout(f"Could not acquire {path} within {timeout}s")
                time.sleep(0.05)
        yield
    finally:
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            fd.close()
