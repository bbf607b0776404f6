"""
Starting and stopping workspace daemons from the foreground CLI.
"""

import logging
import os
import signal
import subprocess
import sys
import threading
from pathlib import Path
from typing import Protocol

from ralph.lib.clock import Clock, SystemClock
from ralph.lib.constants import (
    DAEMON_START_POLL_SECONDS,
    DAEMON_START_TIMEOUT_SECONDS,
    STOP_GRACEFUL_TIMEOUT_SECONDS,
    STOP_KILL_TIMEOUT_SECONDS,
    STOP_POLL_SECONDS,
)
from ralph.runner.runstate import ProcessLiveness, PosixLiveness, is_running, read_pid

logger = logging.getLogger(__name__)


class DaemonStartTimeout(Exception):
    pass


class DaemonStopError(Exception):
    def __init__(self, pid: int):
        self.pid = pid
        super().__init__(f"failed to stop workspace daemon (PID {pid})")


class DaemonNotRunning(Exception):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Workspace {name} is not running")


class DaemonSpawner(Protocol):
    def spawn(self, workspace: str, max_iterations: int, config_path: Path | None = None) -> int: ...


class SubprocessSpawner:
    """Launch `ralph _daemon` in a new session so it outlives this process."""

    def spawn(self, workspace: str, max_iterations: int, config_path: Path | None = None) -> int:
        cmd = [sys.executable, "-m", "ralph.cli"]
        if config_path is not None:
            cmd += ["--config", str(config_path)]
        cmd += ["_daemon", "--workspace", workspace, "--max-iterations", str(max_iterations)]
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
            close_fds=True,
            env=os.environ.copy(),
        )
        # Reap the child when it exits so a stop from this process sees it gone.
        threading.Thread(target=proc.wait, name=f"reap-{proc.pid}", daemon=True).start()
        logger.debug(f"[daemon] spawned PID {proc.pid} for {workspace}")
        return proc.pid


def _poll_until(predicate, timeout: float, interval: float, clock: Clock) -> bool:
    """Poll predicate until it is true or timeout elapses. Returns the last value."""
    deadline = clock.monotonic() + timeout
    while True:
        if predicate():
            return True
        if clock.monotonic() >= deadline:
            return False
        clock.sleep(interval)


def wait_for_start(
    run_dir: Path,
    timeout: float = DAEMON_START_TIMEOUT_SECONDS,
    liveness: ProcessLiveness | None = None,
    clock: Clock | None = None,
) -> None:
    """
    Raises:
        DaemonStartTimeout: If no live daemon appears within timeout
    """
    liveness = liveness or PosixLiveness()
    clock = clock or SystemClock()
    if not _poll_until(lambda: is_running(run_dir, liveness), timeout, DAEMON_START_POLL_SECONDS, clock):
        raise DaemonStartTimeout(f"daemon did not start within {timeout:g}s")


def stop_and_wait(
    run_dir: Path,
    timeout: float = STOP_GRACEFUL_TIMEOUT_SECONDS,
    kill_timeout: float = STOP_KILL_TIMEOUT_SECONDS,
    liveness: ProcessLiveness | None = None,
    clock: Clock | None = None,
) -> bool:
    """
    Stop the workspace daemon: SIGTERM, wait, then SIGKILL if still alive.

    Returns:
        False if no daemon was running, True once it has exited

    Raises:
        DaemonStopError: If it survives SIGKILL
    """
    liveness = liveness or PosixLiveness()
    clock = clock or SystemClock()

    if not is_running(run_dir, liveness):
        return False
    pid = read_pid(run_dir)
    if pid is None:
        return False

    def alive() -> bool:
        return liveness.is_alive(pid)

    def dead() -> bool:
        return not alive()

    logger.info(f"[daemon] sending SIGTERM to {pid}")
    try:
        liveness.signal(pid, signal.SIGTERM)
    except ProcessLookupError:
        return True

    if _poll_until(dead, timeout, STOP_POLL_SECONDS, clock):
        return True

    if alive():
        logger.warning(f"[daemon] {pid} ignored SIGTERM for {timeout:g}s, sending SIGKILL")
        try:
            liveness.signal(pid, signal.SIGKILL)
        except ProcessLookupError:
            return True
        if _poll_until(dead, kill_timeout, STOP_POLL_SECONDS, clock):
            return True
        raise DaemonStopError(pid)
    return True
