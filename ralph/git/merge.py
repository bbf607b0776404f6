"""Squash-merge a feature branch into its base."""

from pathlib import Path

from ralph.git.runner import check_git


def squash_merge(repo: Path, feature_branch: str, base_branch: str, message: str) -> None:
    """Check out base in the main repo, squash feature into it and commit.

    Raises:
        GitError: If any step fails
    """
    check_git(f"checking out {base_branch}", ["checkout", base_branch], repo)
    check_git(f"squash merging {feature_branch}", ["merge", "--squash", feature_branch], repo, timeout=120)
    check_git("committing squash merge", ["commit", "-m", message], repo)
