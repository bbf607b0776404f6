"""
ralph done - Squash-merge a finished workspace into its base and clean up.
"""

import logging
import sys
from datetime import date

from ralph import git
from ralph.lib import prd as prd_store
from ralph.lib.config import ProjectConfig
from ralph.lib.constants import EXIT_ERROR, EXIT_SUCCESS
from ralph.runner.runstate import ProcessLiveness, PosixLiveness, is_running
from ralph.workspace import registry
from ralph.workspace.errors import WorkspaceError
from ralph.workspace.manager import remove_workspace

from ralph.commands.common import resolve_context, shell_integration_enabled
from ralph.commands.rebase import rebase_target

logger = logging.getLogger(__name__)


def commit_message(prd: prd_store.PRD) -> str:
    lines = [prd.description or prd.branch_name or "ralph workspace", "", "Completed stories:"]
    lines.extend(f"- {s.id}: {s.title}" for s in prd.user_stories if s.passes)
    return "\n".join(lines) + "\n"


def _confirm_message(draft: str) -> str:
    print("--- Generated commit message ---")
    print(draft)
    print("--- End of message ---")
    reply = input("Press Enter to accept, or type a new message: ")
    return reply.strip() or draft


def cmd_done(args, config: ProjectConfig, liveness: ProcessLiveness | None = None, today: date | None = None) -> int:
    liveness = liveness or PosixLiveness()
    repo = config.repo.path
    base = config.repo.default_base
    ctx = resolve_context(args, config)

    if ctx.is_base:
        print("ERROR: ralph done must be run inside a workspace", file=sys.stderr)
        return EXIT_ERROR
    if is_running(ctx.run_dir, liveness):
        print(f"ERROR: workspace '{ctx.name}' is running. Stop it first: ralph stop", file=sys.stderr)
        return EXIT_ERROR

    try:
        ws = registry.get(repo, ctx.name)
        if git.has_uncommitted_changes(ctx.work_dir):
            print("ERROR: workspace has uncommitted changes", file=sys.stderr)
            return EXIT_ERROR
        if git.has_uncommitted_changes(repo):
            print(f"ERROR: {repo} has uncommitted changes; the squash merge needs a clean checkout",
                  file=sys.stderr)
            return EXIT_ERROR
    except (WorkspaceError, git.GitError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    target = rebase_target(ctx.work_dir, base)
    if not git.is_ancestor(ctx.work_dir, target, "HEAD"):
        print(f"ERROR: {target} is not an ancestor of HEAD; run `ralph rebase` first", file=sys.stderr)
        return EXIT_ERROR

    message = args.message
    if not message:
        try:
            message = commit_message(prd_store.read_prd(ctx.prd_path))
        except prd_store.PRDError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_ERROR
        if not args.yes:
            message = _confirm_message(message)

    logger.info(f"[done] squash-merging {ws.branch} into {base}")
    try:
        git.squash_merge(repo, ws.branch, base, message)
    except git.GitError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    print(f"Squash-merged {ws.branch} into {base}", file=sys.stderr)

    prd_store.archive_prd(ctx.prd_path, config.archive_dir, today or date.today())

    try:
        remove_workspace(repo, ctx.name)
    except WorkspaceError as e:
        print(f"ERROR: removing workspace: {e}", file=sys.stderr)
        return EXIT_ERROR
    print(f"Removed workspace '{ctx.name}'", file=sys.stderr)

    if shell_integration_enabled():
        print(repo)
    return EXIT_SUCCESS
