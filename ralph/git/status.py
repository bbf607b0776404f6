"""Git status operations."""

from pathlib import Path

from ralph.git.runner import GitError, run_git


def has_uncommitted_changes(worktree: Path) -> bool:
    """Check if worktree has any uncommitted changes (staged, unstaged, or untracked).

    Raises GitError when status cannot be read, so callers never mistake a
    broken repository for a clean one.
    """
    result = run_git(["status", "--porcelain"], worktree)
    if not result.success:
        raise GitError("checking git status", result)
    return bool(result.stdout.strip())


def get_git_dir(worktree: Path) -> Path | None:
    """Absolute path of the worktree's private git dir."""
    result = run_git(["rev-parse", "--absolute-git-dir"], worktree)
    if result.success and result.stdout.strip():
        return Path(result.stdout.strip())
    return None
