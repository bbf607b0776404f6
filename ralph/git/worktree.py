"""Git worktree operations."""

from pathlib import Path

from ralph.git.runner import GitResult, run_git


def add_worktree(repo: Path, tree: Path, branch: str) -> GitResult:
    """Check out an existing branch into a new worktree."""
    return run_git(["worktree", "add", str(tree), branch], repo, timeout=120)


def add_worktree_new_branch(repo: Path, tree: Path, branch: str, start_point: str) -> GitResult:
    """Create branch from start_point and check it out into a new worktree."""
    return run_git(["worktree", "add", "-b", branch, str(tree), start_point], repo, timeout=120)


def remove_worktree(repo: Path, tree: Path) -> GitResult:
    """Remove a worktree, discarding local modifications."""
    return run_git(["worktree", "remove", "--force", str(tree)], repo, timeout=60)


def prune_worktrees(repo: Path) -> GitResult:
    """Drop administrative entries for worktrees whose directories are gone."""
    return run_git(["worktree", "prune"], repo)
