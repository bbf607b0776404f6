"""Git rebase operations."""

from pathlib import Path

from ralph.git.runner import GitResult, run_git
from ralph.git.status import get_git_dir

REBASE_TIMEOUT = 120


def start_rebase(worktree: Path, onto: str) -> GitResult:
    """Start rebasing the current branch onto a ref. Non-zero exit usually means conflicts."""
    return run_git(["rebase", onto], worktree, timeout=REBASE_TIMEOUT)


def continue_rebase(worktree: Path) -> GitResult:
    """Continue an in-progress rebase without opening an editor."""
    return run_git(["-c", "core.editor=true", "rebase", "--continue"], worktree, timeout=REBASE_TIMEOUT)


def abort_rebase(worktree: Path) -> GitResult:
    """Abort an in-progress rebase."""
    return run_git(["rebase", "--abort"], worktree)


def has_rebase_in_progress(worktree: Path) -> bool:
    """A rebase is in progress when git keeps rebase-merge or rebase-apply state."""
    git_dir = get_git_dir(worktree)
    if git_dir is None:
        return False
    return (git_dir / "rebase-merge").exists() or (git_dir / "rebase-apply").exists()
