"""
ralph run - Start the loop daemon for a workspace and attach to it.
"""

import logging
import sys

from ralph.lib import prd as prd_store
from ralph.lib.config import ProjectConfig
from ralph.lib.constants import EXIT_ERROR, EXIT_SUCCESS
from ralph.runner.control import (
    DaemonSpawner,
    DaemonStartTimeout,
    SubprocessSpawner,
    wait_for_start,
)
from ralph.runner.locking import is_locked
from ralph.runner.runstate import ProcessLiveness, PosixLiveness, is_running, read_pid, read_status, status_path

from ralph.commands.attach import attach
from ralph.commands.common import print_daemon_result, resolve_context

logger = logging.getLogger(__name__)


def cmd_run(
    args,
    config: ProjectConfig,
    spawner: DaemonSpawner | None = None,
    liveness: ProcessLiveness | None = None,
) -> int:
    """Spawn the daemon unless one is already running, then attach."""
    spawner = spawner or SubprocessSpawner()
    liveness = liveness or PosixLiveness()
    ctx = resolve_context(args, config)

    if not ctx.prd_path.exists():
        print(
            f"ERROR: no PRD at {ctx.prd_path}\n"
            "Create a workspace first: ralph workspaces new <name> --prd <file>",
            file=sys.stderr,
        )
        return EXIT_ERROR

    try:
        prd = prd_store.read_prd(ctx.prd_path)
    except prd_store.PRDError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    if prd_store.is_complete(prd):
        print("All stories and integration tests already pass, nothing to do")
        return EXIT_SUCCESS

    if is_running(ctx.run_dir, liveness):
        print(f"Daemon already running for {ctx.name} (PID {read_pid(ctx.run_dir)}), attaching", file=sys.stderr)
    elif is_locked(ctx.run_dir):
        # Lock held but no live PID recorded: a daemon is starting or exiting.
        print(f"ERROR: another daemon holds the lock for {ctx.name}, try again shortly", file=sys.stderr)
        return EXIT_ERROR
    else:
        # A stale result must not be mistaken for this run's.
        status_path(ctx.run_dir).unlink(missing_ok=True)
        pid = spawner.spawn(ctx.name, args.max_iterations, config.config_path)
        logger.info(f"[daemon] spawned {pid} for {ctx.name}")
        try:
            wait_for_start(ctx.run_dir, liveness=liveness)
        except DaemonStartTimeout as e:
            if read_status(ctx.run_dir) is not None:
                # Started and already finished between polls.
                return print_daemon_result(ctx.run_dir)
            print(f"ERROR: {e}; see {ctx.logs_dir / 'daemon.log'}", file=sys.stderr)
            return EXIT_ERROR

    return attach(ctx, no_tui=args.no_tui, liveness=liveness)
