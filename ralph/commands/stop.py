"""
ralph stop - Stop a workspace daemon (SIGTERM, then SIGKILL).
"""

import sys

from ralph.lib.config import ProjectConfig
from ralph.lib.constants import EXIT_ERROR, EXIT_SUCCESS
from ralph.runner.control import DaemonNotRunning, DaemonStopError, stop_and_wait
from ralph.runner.runstate import ProcessLiveness, PosixLiveness

from ralph.commands.common import resolve_context


def cmd_stop(args, config: ProjectConfig, liveness: ProcessLiveness | None = None, clock=None) -> int:
    liveness = liveness or PosixLiveness()
    ctx = resolve_context(args, config)

    try:
        stopped = stop_and_wait(ctx.run_dir, liveness=liveness, clock=clock)
    except DaemonStopError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not stopped:
        print(f"ERROR: {DaemonNotRunning(ctx.name)}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Stopped {ctx.name}")
    return EXIT_SUCCESS
