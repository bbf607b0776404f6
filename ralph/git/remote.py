"""Git remote operations."""

from pathlib import Path

from ralph.git.runner import GitResult, run_git


def has_remote(repo: Path, remote: str = "origin") -> bool:
    """Check if the named remote is configured."""
    result = run_git(["remote"], repo)
    return remote in result.stdout.split()


def fetch(repo: Path, remote: str = "origin", branch: str | None = None) -> GitResult:
    """Fetch from remote."""
    args = ["fetch", remote]
    if branch:
        args.append(branch)
    return run_git(args, repo, timeout=60)
