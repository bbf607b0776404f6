"""
Run state: run.pid (liveness) and run.status.json (terminal outcome).

is_running() is self-healing: a PID file naming a dead process is deleted as
a side effect of the check.
"""

import errno
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from ralph.lib.constants import PID_FILE, STATUS_FILE
from ralph.lib.fileio import atomic_write_json, atomic_write_text
from ralph.lib.validate import ValidationError, validate, validate_before_write

logger = logging.getLogger(__name__)

RESULT_SUCCESS = "success"
RESULT_FAILED = "failed"
RESULT_CANCELLED = "cancelled"


class ProcessLiveness(Protocol):
    def is_alive(self, pid: int) -> bool: ...

    def signal(self, pid: int, sig: int) -> None: ...


class PosixLiveness:
    """Signal-0 existence check that also reaps our own exited children."""

    def is_alive(self, pid: int) -> bool:
        if pid <= 0:
            return False
        # A zombie child of ours still answers signal 0; reap it first.
        try:
            reaped, _ = os.waitpid(pid, os.WNOHANG)
        except ChildProcessError:
            reaped = 0
        if reaped == pid:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists, owned by someone else.
            return True
        except OSError as e:
            return e.errno == errno.EPERM
        return True

    def signal(self, pid: int, sig: int) -> None:
        os.kill(pid, sig)


_default_liveness = PosixLiveness()


@dataclass
class RunStatus:
    result: str
    timestamp: datetime
    error: str = ""

    def to_dict(self) -> dict:
        data = {"result": self.result, "timestamp": self.timestamp.isoformat(timespec="seconds")}
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, d: dict) -> "RunStatus":
        return cls(
            result=d["result"],
            timestamp=datetime.fromisoformat(d["timestamp"]),
            error=d.get("error", ""),
        )


def pid_path(run_dir: Path) -> Path:
    return run_dir / PID_FILE


def status_path(run_dir: Path) -> Path:
    return run_dir / STATUS_FILE


def write_pid(run_dir: Path, pid: int | None = None) -> None:
    run_dir.mkdir(parents=True, exist_ok=True)
    atomic_write_text(pid_path(run_dir), f"{pid if pid is not None else os.getpid()}\n")


def read_pid(run_dir: Path) -> int | None:
    try:
        text = pid_path(run_dir).read_text().strip()
    except FileNotFoundError:
        return None
    try:
        return int(text)
    except ValueError:
        logger.warning(f"[daemon] ignoring malformed PID file in {run_dir}: {text!r}")
        return None


def clear_pid(run_dir: Path) -> None:
    pid_path(run_dir).unlink(missing_ok=True)


def is_running(run_dir: Path, liveness: ProcessLiveness | None = None) -> bool:
    """Whether the daemon recorded in run.pid is alive.

    Deletes a stale or malformed PID file as a side effect. Repeated calls are
    idempotent.
    """
    liveness = liveness or _default_liveness
    if not pid_path(run_dir).exists():
        return False
    pid = read_pid(run_dir)
    if pid is not None and liveness.is_alive(pid):
        return True
    logger.debug(f"[daemon] removing stale PID file in {run_dir}")
    clear_pid(run_dir)
    return False


def write_status(run_dir: Path, status: RunStatus) -> None:
    path = status_path(run_dir)
    data = status.to_dict()
    validate_before_write(data, "run_status", path)
    atomic_write_json(path, data)


def read_status(run_dir: Path) -> RunStatus | None:
    path = status_path(run_dir)
    try:
        data = json.loads(path.read_text())
        validate(data, "run_status")
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        logger.warning(f"[daemon] unreadable status file {path}: {e}")
        return None
    return RunStatus.from_dict(data)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
