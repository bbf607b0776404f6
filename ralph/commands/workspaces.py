"""
ralph workspaces - Create, list, remove and switch isolated workspaces.

With shell integration (RALPH_SHELL_INIT set), commands that change
directory print the target path as the last stdout line for the shell
function to cd into. Human-readable messages go to stderr.
"""

import shutil
import sys
from pathlib import Path

from ralph import git
from ralph.lib import prd as prd_store
from ralph.lib.config import ConfigError, ProjectConfig
from ralph.lib.constants import BASE_WORKSPACE, EXIT_ERROR, EXIT_SUCCESS
from ralph.runner.runstate import ProcessLiveness, PosixLiveness, is_running, utcnow
from ralph.workspace import registry
from ralph.workspace.errors import WorkspaceError
from ralph.workspace.manager import create_workspace, remove_workspace
from ralph.workspace.paths import (
    context_for,
    derive_branch,
    prd_path,
    resolve_work_context,
    tree_path,
    validate_name,
)
from ralph.workspace.registry import Workspace

from ralph.commands.common import shell_integration_enabled


def _current_name(repo: Path) -> str:
    try:
        return resolve_work_context(repo).name
    except WorkspaceError:
        return BASE_WORKSPACE


def _print_cd_target(path: Path) -> None:
    if shell_integration_enabled():
        print(path)
    else:
        print(f"cd {path}", file=sys.stderr)


def cmd_workspaces_new(args, config: ProjectConfig) -> int:
    repo = config.repo.path
    name = args.name
    try:
        validate_name(name)
        if name == BASE_WORKSPACE:
            raise WorkspaceError(f"{BASE_WORKSPACE!r} is reserved for the repository root")
        if registry.lookup(repo, name) is not None:
            print(f"ERROR: workspace '{name}' already exists. Switch to it: ralph workspaces switch {name}",
                  file=sys.stderr)
            return EXIT_ERROR
        branch = derive_branch(name, config.repo.branch_prefix, config.repo.branch_pattern)
    except (WorkspaceError, ConfigError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    source_prd = None
    if args.prd:
        source_prd = Path(args.prd)
        try:
            prd_store.read_prd(source_prd)
        except prd_store.PRDError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_ERROR

    if git.branch_exists(repo, branch):
        if args.fresh:
            result = git.delete_branch(repo, branch)
            if not result.success:
                print(f"ERROR: could not delete {branch}: {result.stderr.strip()}", file=sys.stderr)
                return EXIT_ERROR
            print(f"Deleted existing branch {branch}", file=sys.stderr)
        else:
            print(f"Resuming existing branch {branch}", file=sys.stderr)

    ws = Workspace(name=name, branch=branch, created_at=utcnow().isoformat(timespec="seconds"))
    try:
        tree = create_workspace(repo, ws, config.repo.default_base, config.copy_to_worktree)
    except (WorkspaceError, git.GitError) as e:
        print(f"ERROR: creating workspace: {e}", file=sys.stderr)
        return EXIT_ERROR

    if source_prd is not None:
        shutil.copyfile(source_prd, prd_path(repo, name))

    print(f"✓ Created workspace '{name}' (branch: {branch})", file=sys.stderr)
    _print_cd_target(tree)
    return EXIT_SUCCESS


def format_list(config: ProjectConfig, liveness: ProcessLiveness) -> list[str]:
    repo = config.repo.path
    current = _current_name(repo)
    lines = ["* base [current]" if current == BASE_WORKSPACE else "  base"]
    entries = registry.list_with_missing(repo)
    for entry in entries:
        prefix = "* " if entry.name == current else "  "
        tags = []
        if entry.name == current:
            tags.append("current")
        if entry.missing:
            tags.append("missing")
        elif is_running(context_for(repo, entry.name).run_dir, liveness):
            tags.append("running")
        suffix = f" [{', '.join(tags)}]" if tags else ""
        lines.append(f"{prefix}{entry.name} ({entry.branch}){suffix}")
    if not entries:
        lines.append("")
        lines.append("Create a workspace: ralph workspaces new <name>")
    return lines


def cmd_workspaces_list(args, config: ProjectConfig, liveness: ProcessLiveness | None = None) -> int:
    liveness = liveness or PosixLiveness()
    try:
        lines = format_list(config, liveness)
    except WorkspaceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    print("\n".join(lines))
    return EXIT_SUCCESS


def cmd_workspaces_remove(args, config: ProjectConfig, liveness: ProcessLiveness | None = None) -> int:
    liveness = liveness or PosixLiveness()
    repo = config.repo.path
    name = args.name
    if name == BASE_WORKSPACE:
        print("ERROR: the base workspace cannot be removed", file=sys.stderr)
        return EXIT_ERROR

    ctx = context_for(repo, name)
    if is_running(ctx.run_dir, liveness):
        print(f"ERROR: workspace '{name}' is running. Stop it first: ralph stop --workspace {name}",
              file=sys.stderr)
        return EXIT_ERROR

    was_current = _current_name(repo) == name
    try:
        remove_workspace(repo, name)
    except WorkspaceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Removed workspace '{name}'", file=sys.stderr)
    if was_current:
        _print_cd_target(repo)
    return EXIT_SUCCESS


def cmd_workspaces_switch(args, config: ProjectConfig) -> int:
    repo = config.repo.path
    name = args.name
    if name == BASE_WORKSPACE:
        _print_cd_target(repo)
        return EXIT_SUCCESS
    try:
        registry.get(repo, name)
    except WorkspaceError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ERROR
    _print_cd_target(tree_path(repo, name))
    return EXIT_SUCCESS
