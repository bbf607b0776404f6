"""
Create and remove workspaces.

A workspace is .ralph/workspaces/<name>/ holding workspace.json, a git
worktree in tree/, and the PRD/progress/run-state files for that unit of
work. The registry entry is written last on create and removed as the
authoritative step on remove.
"""

import glob
import logging
import shutil
from pathlib import Path

from ralph import git
from ralph.lib.constants import BASE_WORKSPACE, RALPH_DIR
from ralph.workspace import registry
from ralph.workspace.errors import WorkspaceError, WorkspaceExists, WorkspaceNotFound
from ralph.workspace.paths import tree_path, validate_name, workspace_path
from ralph.workspace.registry import Workspace

logger = logging.getLogger(__name__)

# Never copied from the repo's .ralph/ into a tree. workspaces/ would recurse
# into itself; ralph.yaml in a tree would make discovery pick the tree as repo.
DOT_RALPH_SKIP_DIRS = {"worktrees", "state", "workspaces", "logs"}
DOT_RALPH_SKIP_FILES = {"ralph.yaml"}
STALE_TREE_DIRS = ("state", "workspaces", "worktrees")


def copy_dot_ralph(repo: Path, tree: Path) -> None:
    src = repo / RALPH_DIR
    if not src.is_dir():
        return

    def ignore(directory, names):
        if Path(directory) == src:
            return {n for n in names if n in DOT_RALPH_SKIP_DIRS or n in DOT_RALPH_SKIP_FILES}
        return set()

    shutil.copytree(src, tree / RALPH_DIR, ignore=ignore, dirs_exist_ok=True)


def copy_dot_claude(repo: Path, tree: Path) -> None:
    src = repo / ".claude"
    if src.is_dir():
        shutil.copytree(src, tree / ".claude", dirs_exist_ok=True)


def copy_glob_patterns(src_dir: Path, dst_dir: Path, patterns: list[str]) -> list[str]:
    """Copy files matching each pattern, preserving relative paths.

    A pattern may be a literal file, a directory (copied recursively), or a
    glob with ** support. Returns the patterns that matched nothing; those are
    logged as warnings, not raised.
    """
    unmatched = []
    for pattern in patterns:
        literal = src_dir / pattern
        if literal.is_dir():
            shutil.copytree(literal, dst_dir / pattern, dirs_exist_ok=True)
            continue

        matches = glob.glob(pattern, root_dir=src_dir, recursive=True, include_hidden=True)
        if not matches:
            logger.warning(f"[workspace] pattern {pattern!r} matched no files")
            unmatched.append(pattern)
            continue

        for match in matches:
            src = src_dir / match
            if src.is_dir():
                continue
            dst = dst_dir / match
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)
    return unmatched


def _add_worktree(repo: Path, tree: Path, ws: Workspace, base_branch: str) -> bool:
    """Check out ws.branch into tree. Returns True if the branch was created here."""
    # Best effort: a repo without a remote still works from the local base.
    fetch = git.fetch(repo, "origin", base_branch)
    if not fetch.success:
        logger.debug(f"[workspace] fetch origin {base_branch} failed: {fetch.stderr.strip()}")

    if git.branch_exists(repo, ws.branch) or git.remote_branch_exists(repo, ws.branch):
        logger.info(f"[workspace] resuming existing branch {ws.branch}")
        result = git.add_worktree(repo, tree, ws.branch)
        created = False
    else:
        result = git.add_worktree_new_branch(repo, tree, ws.branch, f"origin/{base_branch}")
        if not result.success:
            result = git.add_worktree_new_branch(repo, tree, ws.branch, base_branch)
        created = True

    if not result.success:
        raise git.GitError(f"creating worktree for {ws.branch}", result)
    return created


def create_workspace(
    repo: Path,
    ws: Workspace,
    base_branch: str,
    copy_patterns: list[str] | None = None,
) -> Path:
    """
    Create a workspace and register it. Returns the tree path.

    On any failure after the directory is created, the worktree (if any), a
    branch this call created, and the directory are removed again and nothing
    is registered.

    Raises:
        WorkspaceExists: Name already registered or directory already present
        GitError: Worktree could not be created
    """
    validate_name(ws.name)
    if ws.name == BASE_WORKSPACE:
        raise WorkspaceError(f"{BASE_WORKSPACE!r} is reserved for the repository root")
    if registry.lookup(repo, ws.name) is not None:
        raise WorkspaceExists(ws.name)

    ws_dir = workspace_path(repo, ws.name)
    tree = tree_path(repo, ws.name)
    if ws_dir.exists():
        raise WorkspaceExists(ws.name)

    ws_dir.mkdir(parents=True)
    worktree_added = False
    branch_created = False
    try:
        registry.write_metadata(repo, ws)
        branch_created = _add_worktree(repo, tree, ws, base_branch)
        worktree_added = True

        for stale in STALE_TREE_DIRS:
            shutil.rmtree(tree / RALPH_DIR / stale, ignore_errors=True)

        copy_dot_ralph(repo, tree)
        copy_dot_claude(repo, tree)
        if copy_patterns:
            copy_glob_patterns(repo, tree, copy_patterns)

        registry.create(repo, ws)
    except BaseException:
        if worktree_added:
            git.remove_worktree(repo, tree)
        shutil.rmtree(ws_dir, ignore_errors=True)
        git.prune_worktrees(repo)
        if branch_created:
            git.delete_branch(repo, ws.branch)
        raise

    logger.info(f"[workspace] created {ws.name} on {ws.branch}")
    return tree


def remove_workspace(repo: Path, name: str) -> None:
    """
    Remove a workspace's worktree, directory, registry entry and branch.

    The worktree and branch steps are best effort; the registry removal is
    the authoritative one.

    Raises:
        WorkspaceNotFound: Not in the registry
    """
    ws = registry.lookup(repo, name)
    if ws is None:
        raise WorkspaceNotFound(name)

    tree = tree_path(repo, name)
    if tree.exists():
        result = git.remove_worktree(repo, tree)
        if not result.success:
            logger.warning(f"[workspace] git worktree remove failed: {result.stderr.strip()}")
    git.prune_worktrees(repo)

    shutil.rmtree(workspace_path(repo, name), ignore_errors=True)
    registry.remove(repo, name)

    result = git.delete_branch(repo, ws.branch)
    if not result.success:
        logger.info(f"[workspace] branch {ws.branch} not deleted: {result.stderr.strip()}")
