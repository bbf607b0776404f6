"""On-disk layout of workspaces and the resolved work context."""

import os
import re
from dataclasses import dataclass
from pathlib import Path

from ralph.lib.config import ConfigError
from ralph.lib.constants import (
    BASE_WORKSPACE,
    ENV_WORKSPACE,
    LOGS_DIR,
    PRD_FILE,
    PROGRESS_FILE,
    RALPH_DIR,
    STATE_DIR,
    TREE_DIR,
    WORKSPACE_NAME_PATTERN,
    WORKSPACES_DIR,
)
from ralph.workspace.errors import InvalidWorkspaceName


def validate_name(name: str) -> None:
    if not name or not WORKSPACE_NAME_PATTERN.match(name) or name in (".", ".."):
        raise InvalidWorkspaceName(name)


def workspaces_root(repo: Path) -> Path:
    return repo / RALPH_DIR / WORKSPACES_DIR


def workspace_path(repo: Path, name: str) -> Path:
    return workspaces_root(repo) / name


def tree_path(repo: Path, name: str) -> Path:
    return workspace_path(repo, name) / TREE_DIR


def logs_path(repo: Path, name: str) -> Path:
    return workspace_path(repo, name) / LOGS_DIR


def prd_path(repo: Path, name: str) -> Path:
    if name == BASE_WORKSPACE:
        return repo / RALPH_DIR / STATE_DIR / PRD_FILE
    return workspace_path(repo, name) / PRD_FILE


def progress_path(repo: Path, name: str) -> Path:
    if name == BASE_WORKSPACE:
        return repo / RALPH_DIR / PROGRESS_FILE
    return workspace_path(repo, name) / PROGRESS_FILE


def derive_branch(name: str, prefix: str, pattern: str = "") -> str:
    """Branch for a workspace: prefix + name, optionally checked against a regex."""
    branch = f"{prefix}{name}"
    if pattern:
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise ConfigError(f"invalid repo.branch_pattern {pattern!r}: {e}") from None
        if not compiled.match(branch):
            raise ConfigError(
                f"branch {branch!r} does not match repo.branch_pattern {pattern!r}"
            )
    return branch


def detect_current(cwd: Path) -> str | None:
    """Workspace name when cwd is inside .ralph/workspaces/<name>/tree, else None."""
    parts = Path(cwd).parts
    for i in range(len(parts) - 3):
        if (
            parts[i] == RALPH_DIR
            and parts[i + 1] == WORKSPACES_DIR
            and parts[i + 3] == TREE_DIR
            and parts[i + 2]
        ):
            return parts[i + 2]
    return None


@dataclass
class WorkContext:
    """Where a command is working."""
    name: str
    work_dir: Path
    prd_path: Path
    progress_path: Path
    run_dir: Path

    @property
    def is_base(self) -> bool:
        return self.name == BASE_WORKSPACE

    @property
    def logs_dir(self) -> Path:
        return self.run_dir / LOGS_DIR


def context_for(repo: Path, name: str) -> WorkContext:
    if name == BASE_WORKSPACE:
        return WorkContext(
            name=BASE_WORKSPACE,
            work_dir=repo,
            prd_path=prd_path(repo, name),
            progress_path=progress_path(repo, name),
            run_dir=workspace_path(repo, name),
        )
    validate_name(name)
    return WorkContext(
        name=name,
        work_dir=tree_path(repo, name),
        prd_path=prd_path(repo, name),
        progress_path=progress_path(repo, name),
        run_dir=workspace_path(repo, name),
    )


def resolve_work_context(
    repo: Path,
    flag: str | None = None,
    env: dict | None = None,
    cwd: Path | None = None,
    verify=None,
) -> WorkContext:
    """
    Resolve the work context.

    Priority: explicit flag > RALPH_WORKSPACE > cwd inside a tree > base.

    Args:
        verify: Optional callable(repo, name) that raises if a named workspace
            is unusable (normally registry.get).
    """
    env = os.environ if env is None else env
    name = flag or env.get(ENV_WORKSPACE) or detect_current(cwd or Path.cwd())
    if not name or name == BASE_WORKSPACE:
        return context_for(repo, BASE_WORKSPACE)
    validate_name(name)
    if verify is not None:
        verify(repo, name)
    return context_for(repo, name)


def check_logs_dir(repo: Path | None, cwd: Path) -> Path:
    """Where quality-gate logs go: the workspace's logs/ inside a tree, else .ralph/logs."""
    parts = Path(cwd).resolve().parts
    for i in range(len(parts) - 3):
        if parts[i] == RALPH_DIR and parts[i + 1] == WORKSPACES_DIR and parts[i + 3] == TREE_DIR:
            return Path(*parts[:i + 3]) / LOGS_DIR
    root = repo if repo is not None else cwd
    return root / RALPH_DIR / LOGS_DIR
