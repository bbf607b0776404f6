"""
ralph _daemon - Hidden entry point run by `ralph run` in a new session.
"""

import logging

from ralph.agents.claude import ClaudeAgent
from ralph.lib.config import ProjectConfig
from ralph.lib.constants import EXIT_ERROR, EXIT_INTERRUPTED, EXIT_SUCCESS
from ralph.runner.daemon import DaemonError, DaemonHost
from ralph.runner.locking import DaemonAlreadyRunning
from ralph.runner.runstate import RESULT_CANCELLED, RESULT_SUCCESS
from ralph.workflow.loop import LoopConfig, LoopEngine

from ralph.commands.common import resolve_context

logger = logging.getLogger(__name__)


def build_host(ctx, config: ProjectConfig, max_iterations: int) -> DaemonHost:
    loop_config = LoopConfig(
        work_dir=ctx.work_dir,
        prd_path=ctx.prd_path,
        progress_path=ctx.progress_path,
        quality_checks=config.quality_checks,
        max_iterations=max_iterations,
        prompts_dir=config.prompts_dir,
    )
    agent = ClaudeAgent()
    return DaemonHost(ctx, loop_config, lambda handler: LoopEngine(agent, event_handler=handler))


def cmd_daemon(args, config: ProjectConfig) -> int:
    ctx = resolve_context(args, config)
    host = build_host(ctx, config, args.max_iterations)
    try:
        status = host.run(detach=not args.foreground)
    except (DaemonError, DaemonAlreadyRunning) as e:
        logger.error(f"[daemon] {e}")
        return EXIT_ERROR

    if status.result == RESULT_SUCCESS:
        return EXIT_SUCCESS
    if status.result == RESULT_CANCELLED:
        return EXIT_INTERRUPTED
    return EXIT_ERROR
