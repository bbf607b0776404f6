"""
ralph rebase - Rebase the current branch onto its base, resolving conflicts with the agent.
"""

import logging
import sys

from ralph import git
from ralph.agents.claude import ClaudeAgent
from ralph.events.plaintext import PlainTextHandler
from ralph.lib.config import ProjectConfig
from ralph.lib.constants import EXIT_ERROR, EXIT_SUCCESS
from ralph.workflow.rebase import GitRebaseOps, RebaseContext, RebaseError, RebaseResolver

from ralph.commands.common import resolve_context

logger = logging.getLogger(__name__)


def rebase_target(work_dir, target: str) -> str:
    """origin/<target> after a fetch when a remote exists, else the local branch."""
    if git.has_remote(work_dir):
        logger.info(f"[rebase] fetching origin/{target}")
        result = git.fetch(work_dir, "origin", target)
        if result.success:
            return f"origin/{target}"
        logger.warning(f"[rebase] fetch failed, using local {target}: {result.stderr.strip()}")
    return target


def cmd_rebase(args, config: ProjectConfig, agent=None) -> int:
    ctx = resolve_context(args, config)
    work_dir = ctx.work_dir

    branch = git.get_current_branch(work_dir)
    if not branch:
        print("ERROR: not on a branch", file=sys.stderr)
        return EXIT_ERROR
    if git.has_rebase_in_progress(work_dir):
        print("ERROR: a rebase is already in progress; finish or abort it first", file=sys.stderr)
        return EXIT_ERROR
    try:
        if git.has_uncommitted_changes(work_dir):
            print("ERROR: uncommitted changes; commit or stash them before rebasing", file=sys.stderr)
            return EXIT_ERROR
    except git.GitError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    onto = rebase_target(work_dir, args.target or config.repo.default_base)
    print(f"Rebasing {branch} onto {onto}", file=sys.stderr)

    resolver = RebaseResolver(agent or ClaudeAgent(), GitRebaseOps(work_dir), event_handler=PlainTextHandler())
    try:
        outcome = resolver.run(RebaseContext(
            work_dir=work_dir,
            branch=branch,
            onto=onto,
            prd_path=ctx.prd_path,
            progress_path=ctx.progress_path,
            prompts_dir=config.prompts_dir,
        ))
    except RebaseError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    if outcome == "done":
        print(f"Rebased {branch} onto {onto}")
        return EXIT_SUCCESS
    print(f"ERROR: rebase onto {onto} was aborted", file=sys.stderr)
    return EXIT_ERROR
