"""
ralph overview - Dashboard of every running workspace.
"""

import sys

from ralph.lib.config import ProjectConfig
from ralph.lib.constants import BASE_WORKSPACE, EXIT_SUCCESS
from ralph.runner.runstate import ProcessLiveness, PosixLiveness, is_running
from ralph.workspace import registry
from ralph.workspace.paths import WorkContext, context_for


def running_contexts(config: ProjectConfig, liveness: ProcessLiveness) -> list[WorkContext]:
    repo = config.repo.path
    names = [BASE_WORKSPACE] + [e.name for e in registry.list_with_missing(repo) if not e.missing]
    contexts = [context_for(repo, n) for n in names]
    return [c for c in contexts if is_running(c.run_dir, liveness)]


def cmd_overview(args, config: ProjectConfig, liveness: ProcessLiveness | None = None) -> int:
    liveness = liveness or PosixLiveness()
    contexts = running_contexts(config, liveness)
    if not contexts:
        print("No workspaces are running. Start one: ralph run --workspace <name>", file=sys.stderr)
        return EXIT_SUCCESS

    from ralph.commands.watch import OverviewApp

    OverviewApp(contexts, lambda ctx: is_running(ctx.run_dir, liveness)).run()
    return EXIT_SUCCESS
