"""Helpers shared by ralph commands."""

import os
import sys
from pathlib import Path

from ralph.lib import prd as prd_store
from ralph.lib.config import ProjectConfig
from ralph.lib.constants import ENV_SHELL_INIT, EXIT_ERROR, EXIT_SUCCESS
from ralph.runner.runstate import RESULT_CANCELLED, RESULT_SUCCESS, read_status
from ralph.workspace import registry
from ralph.workspace.paths import WorkContext, resolve_work_context


def resolve_context(args, config: ProjectConfig, cwd: Path | None = None) -> WorkContext:
    """Work context from --workspace, RALPH_WORKSPACE, the cwd, or base.

    Raises:
        WorkspaceNotFound, WorkspaceMissing, InvalidWorkspaceName
    """
    return resolve_work_context(
        config.repo.path,
        flag=getattr(args, "workspace", None),
        cwd=cwd,
        verify=registry.get,
    )


def shell_integration_enabled() -> bool:
    return bool(os.environ.get(ENV_SHELL_INIT))


def story_progress(prd: prd_store.PRD) -> tuple[int, int]:
    return sum(1 for s in prd.user_stories if s.passes), len(prd.user_stories)


def integration_test_progress(prd: prd_store.PRD) -> tuple[int, int]:
    return sum(1 for t in prd.integration_tests if t.passes), len(prd.integration_tests)


def print_daemon_result(run_dir: Path) -> int:
    """Report the finished daemon's run.status.json. Returns the exit code."""
    status = read_status(run_dir)
    if status is None:
        print("ERROR: daemon exited without recording a result", file=sys.stderr)
        return EXIT_ERROR
    if status.result == RESULT_SUCCESS:
        print("All work complete")
        return EXIT_SUCCESS
    if status.result == RESULT_CANCELLED:
        print("Stopped.")
        return EXIT_SUCCESS
    print(f"ERROR: {status.error or 'daemon failed'}", file=sys.stderr)
    return EXIT_ERROR
