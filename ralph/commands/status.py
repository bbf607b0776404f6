"""
ralph status - Show PRD progress and daemon state for the current workspace.
"""

import sys

from ralph import git
from ralph.lib import prd as prd_store
from ralph.lib.config import ProjectConfig
from ralph.lib.constants import EXIT_SUCCESS
from ralph.runner.runstate import ProcessLiveness, PosixLiveness, is_running, read_pid, read_status
from ralph.workspace import registry
from ralph.workspace.paths import WorkContext

from ralph.commands.common import integration_test_progress, resolve_context, story_progress


def format_short(ctx: WorkContext) -> str:
    """`name k/n` for embedding in a shell prompt."""
    try:
        prd = prd_store.read_prd(ctx.prd_path)
    except prd_store.PRDError:
        return f"{ctx.name} (no prd)"
    passing, total = story_progress(prd)
    return f"{ctx.name} {passing}/{total}"


def _branch(ctx: WorkContext, config: ProjectConfig) -> str:
    if ctx.is_base:
        return git.get_current_branch(ctx.work_dir) or "(detached)"
    ws = registry.lookup(config.repo.path, ctx.name)
    return ws.branch if ws else "(unknown)"


def format_full(ctx: WorkContext, config: ProjectConfig, liveness: ProcessLiveness) -> str:
    lines = [
        f"Workspace: {ctx.name}",
        f"Branch:    {_branch(ctx, config)}",
    ]

    try:
        prd = prd_store.read_prd(ctx.prd_path)
    except prd_store.PRDError as e:
        lines.append(f"PRD:       {e}")
        prd = None

    if prd is not None:
        passing, total = story_progress(prd)
        lines.append(f"Stories:   {passing}/{total} passing")
        for s in prd.user_stories:
            marker = "✓" if s.passes else "○"
            lines.append(f"  {marker} {s.id} {s.title}")
        if prd.integration_tests:
            it_passing, it_total = integration_test_progress(prd)
            lines.append(f"Tests:     {it_passing}/{it_total} passing")
            for t in prd.integration_tests:
                marker = "✓" if t.passes else "✗"
                line = f"  {marker} {t.id} {t.description}"
                if not t.passes and t.failure:
                    line += f" ({t.failure})"
                lines.append(line)

    if is_running(ctx.run_dir, liveness):
        lines.append(f"Daemon:    running (PID {read_pid(ctx.run_dir)})")
    else:
        status = read_status(ctx.run_dir)
        if status is None:
            lines.append("Daemon:    not running")
        else:
            last = f"{status.result} at {status.timestamp.isoformat(timespec='seconds')}"
            if status.error:
                last += f": {status.error}"
            lines.append(f"Daemon:    not running (last run {last})")

    return "\n".join(lines)


def cmd_status(args, config: ProjectConfig, liveness: ProcessLiveness | None = None) -> int:
    liveness = liveness or PosixLiveness()
    ctx = resolve_context(args, config)
    if args.short:
        sys.stdout.write(format_short(ctx))
        sys.stdout.flush()
    else:
        print(format_full(ctx, config, liveness))
    return EXIT_SUCCESS
