"""Git diff operations."""

from pathlib import Path

from ralph.git.runner import run_git


def get_conflicted_files(worktree: Path) -> list[str]:
    """Get list of files with unresolved conflicts."""
    result = run_git(["diff", "--name-only", "--diff-filter=U"], worktree)
    return [f.strip() for f in result.stdout.splitlines() if f.strip()]


def get_range_diff(worktree: Path, ref_range: str) -> str:
    """Full diff for a ref range (e.g. "abc123...feature"). Empty on error."""
    result = run_git(["diff", ref_range], worktree, timeout=60)
    if result.success:
        return result.stdout
    return ""
