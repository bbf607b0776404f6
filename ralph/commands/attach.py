"""
ralph attach - Follow a running daemon.

Plain-text mode tails the event log until the daemon exits; Ctrl-C stops
tailing and asks the daemon to stop. The dashboard can also detach and
leave the daemon running.
"""

import logging
import sys
import threading

from ralph.events.plaintext import PlainTextHandler
from ralph.events.reader import LogTailer, interrupt_handler
from ralph.lib.config import ProjectConfig
from ralph.lib.constants import EXIT_ERROR, EXIT_INTERRUPTED, EXIT_SUCCESS
from ralph.runner.control import DaemonNotRunning, DaemonStopError, stop_and_wait
from ralph.runner.runstate import ProcessLiveness, PosixLiveness, is_running, read_pid
from ralph.workspace.paths import WorkContext

from ralph.commands.common import print_daemon_result, resolve_context

logger = logging.getLogger(__name__)


def _stop(ctx: WorkContext, liveness: ProcessLiveness) -> int:
    print(f"Stopping {ctx.name}...", file=sys.stderr)
    try:
        stop_and_wait(ctx.run_dir, liveness=liveness)
    except DaemonStopError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    return print_daemon_result(ctx.run_dir)


def attach_plain(ctx: WorkContext, liveness: ProcessLiveness) -> int:
    cancel = threading.Event()
    tailer = LogTailer(ctx.logs_dir, PlainTextHandler(), lambda: is_running(ctx.run_dir, liveness))

    with interrupt_handler(cancel.set):
        finished = tailer.run(cancel)

    if finished:
        return print_daemon_result(ctx.run_dir)

    code = _stop(ctx, liveness)
    return EXIT_INTERRUPTED if code == EXIT_SUCCESS else code


def attach_tui(ctx: WorkContext, liveness: ProcessLiveness) -> int:
    # Imported lazily: textual is only needed for the dashboard.
    from ralph.commands.watch import EXIT_DETACH, EXIT_STOP, AttachApp

    app = AttachApp(ctx, lambda: is_running(ctx.run_dir, liveness))
    outcome = app.run()

    if outcome == EXIT_DETACH:
        pid = read_pid(ctx.run_dir)
        print(f"Detached. Daemon still running (PID {pid}). Reattach: ralph attach --workspace {ctx.name}")
        return EXIT_SUCCESS
    if outcome == EXIT_STOP:
        return _stop(ctx, liveness)
    return print_daemon_result(ctx.run_dir)


def attach(ctx: WorkContext, no_tui: bool = False, liveness: ProcessLiveness | None = None) -> int:
    liveness = liveness or PosixLiveness()
    if no_tui or not sys.stdout.isatty():
        return attach_plain(ctx, liveness)
    return attach_tui(ctx, liveness)


def cmd_attach(args, config: ProjectConfig, liveness: ProcessLiveness | None = None) -> int:
    """Attach to a running workspace daemon."""
    liveness = liveness or PosixLiveness()
    ctx = resolve_context(args, config)

    if ctx.is_base:
        print("ERROR: attach needs a workspace; use --workspace <name> or run inside one", file=sys.stderr)
        return EXIT_ERROR
    if not is_running(ctx.run_dir, liveness):
        print(f"ERROR: {DaemonNotRunning(ctx.name)}", file=sys.stderr)
        return EXIT_ERROR

    return attach(ctx, no_tui=args.no_tui, liveness=liveness)
