"""Git branch operations."""

from pathlib import Path

from ralph.git.runner import GitResult, run_git


def get_current_branch(worktree: Path) -> str | None:
    """Get the current branch name, or None if detached HEAD."""
    result = run_git(["branch", "--show-current"], worktree)
    if result.success:
        return result.stdout.strip() or None
    return None


def branch_exists(repo: Path, branch: str) -> bool:
    """Check if a local branch exists."""
    result = run_git(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], repo)
    return result.success


def remote_branch_exists(repo: Path, branch: str, remote: str = "origin") -> bool:
    """Check if a remote-tracking branch exists."""
    result = run_git(["show-ref", "--verify", "--quiet", f"refs/remotes/{remote}/{branch}"], repo)
    return result.success


def get_commit_sha(worktree: Path, ref: str = "HEAD") -> str | None:
    """Get the SHA of a ref."""
    result = run_git(["rev-parse", ref], worktree)
    if result.success:
        return result.stdout.strip()
    return None


def is_ancestor(worktree: Path, ancestor: str, descendant: str) -> bool:
    """Check if ancestor is an ancestor of descendant."""
    result = run_git(["merge-base", "--is-ancestor", ancestor, descendant], worktree)
    return result.success


def get_merge_base(worktree: Path, ref1: str, ref2: str) -> str | None:
    """Best common ancestor of two refs."""
    result = run_git(["merge-base", ref1, ref2], worktree)
    if result.success:
        return result.stdout.strip() or None
    return None


def delete_branch(repo: Path, branch: str) -> GitResult:
    """Force-delete a local branch."""
    return run_git(["branch", "-D", branch], repo)
