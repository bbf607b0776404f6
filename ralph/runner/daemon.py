"""
Daemon host: runs the loop for one workspace, detached from the terminal.

Lifecycle:
    lock run.lock -> write run.pid -> run loop under a cancel token
    -> write run.status.json -> remove run.pid -> release lock -> notify

SIGTERM and SIGINT set the cancel token; the loop notices at its next check
and the run is recorded as cancelled.
"""

import logging
import os
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Protocol

from ralph.events.models import EventHandler, LogMessage
from ralph.events.writer import FileHandler
from ralph.lib.clock import Clock, SystemClock
from ralph.lib.constants import DAEMON_LOG_FILE
from ralph.notifications import notify_run_finished
from ralph.runner.locking import daemon_lock
from ralph.runner.runstate import (
    RESULT_CANCELLED,
    RESULT_FAILED,
    RESULT_SUCCESS,
    RunStatus,
    clear_pid,
    write_pid,
    write_status,
)
from ralph.workflow.loop import LoopCancelled, LoopConfig
from ralph.workspace.paths import WorkContext

logger = logging.getLogger(__name__)


class DaemonError(Exception):
    pass


class LoopRunner(Protocol):
    def run(self, config: LoopConfig, cancel: threading.Event) -> None: ...


def detach_from_terminal() -> None:
    """New session, stdio on the null device."""
    try:
        os.setsid()
    except OSError:
        # Already a session leader (spawned with start_new_session).
        pass
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    if devnull > 2:
        os.close(devnull)


@contextmanager
def cancel_on_signals(cancel: threading.Event):
    """Set cancel on SIGTERM/SIGINT while inside the block.

    Handlers can only be installed from the main thread; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def handler(signum, _frame):
        logger.info(f"[daemon] received signal {signum}, cancelling")
        cancel.set()

    original_sigterm = signal.signal(signal.SIGTERM, handler)
    original_sigint = signal.signal(signal.SIGINT, handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, original_sigterm)
        signal.signal(signal.SIGINT, original_sigint)


@contextmanager
def file_logging(logs_dir: Path):
    """Route this process's log records to logs/daemon.log."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(logs_dir / DAEMON_LOG_FILE)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root = logging.getLogger()
    previous_level = root.level
    root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > logging.INFO:
        root.setLevel(logging.INFO)
    try:
        yield
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)
        handler.close()


class DaemonHost:
    """Runs one loop to a terminal RunStatus for a workspace.

    runner_factory receives the event handler the loop must emit into and
    returns the LoopRunner to execute.
    """

    def __init__(
        self,
        ctx: WorkContext,
        loop_config: LoopConfig,
        runner_factory: Callable[[EventHandler], LoopRunner],
        clock: Clock | None = None,
        notifier: Callable[[str, str, str], None] = notify_run_finished,
    ):
        self.ctx = ctx
        self.loop_config = loop_config
        self.runner_factory = runner_factory
        self.clock = clock or SystemClock()
        self.notifier = notifier
        self.cancel = threading.Event()

    def classify(self, error: BaseException | None) -> RunStatus:
        now = self.clock.now()
        if error is None:
            return RunStatus(result=RESULT_SUCCESS, timestamp=now)
        if isinstance(error, LoopCancelled):
            return RunStatus(result=RESULT_CANCELLED, timestamp=now)
        return RunStatus(result=RESULT_FAILED, timestamp=now, error=str(error) or type(error).__name__)

    def _execute(self, events: FileHandler) -> RunStatus:
        runner = self.runner_factory(events)
        try:
            runner.run(self.loop_config, self.cancel)
        except LoopCancelled as e:
            logger.info("[daemon] loop cancelled")
            return self.classify(e)
        except Exception as e:
            logger.exception(f"[daemon] loop failed: {e}")
            events.handle(LogMessage(message=f"loop failed: {e}", level="error"))
            return self.classify(e)
        return self.classify(None)

    def run(self, detach: bool = False) -> RunStatus:
        """
        Run the loop to completion and persist the outcome.

        Raises:
            DaemonError: If the PRD does not exist
            DaemonAlreadyRunning: If another daemon holds this workspace
        """
        if not self.loop_config.prd_path.exists():
            raise DaemonError(f"PRD not found at {self.loop_config.prd_path}")

        if detach:
            detach_from_terminal()

        run_dir = self.ctx.run_dir
        with daemon_lock(run_dir):
            write_pid(run_dir)
            events = FileHandler(self.ctx.logs_dir, now=self.clock.now)
            try:
                with file_logging(self.ctx.logs_dir), cancel_on_signals(self.cancel):
                    logger.info(f"[daemon] started for {self.ctx.name} (PID {os.getpid()})")
                    status = self._execute(events)
                    write_status(run_dir, status)
                    logger.info(f"[daemon] finished: {status.result}")
            finally:
                events.close()
                clear_pid(run_dir)

        self.notifier(self.ctx.name, status.result, status.error)
        return status
