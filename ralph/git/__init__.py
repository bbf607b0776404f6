"""Git operations for ralph.

Return type conventions:
- Functions returning GitResult: Caller must check .success before using output.
  Examples: fetch(), add_worktree(), start_rebase()
- Functions returning bool: True on success/condition met, False otherwise.
  Examples: branch_exists(), is_ancestor(), has_rebase_in_progress()
- Functions returning parsed values (str, list, Path): Return empty/None on failure.
  Examples: get_conflicted_files() -> [], get_current_branch() -> None
- squash_merge() and has_uncommitted_changes() raise GitError instead.
"""

from ralph.git.runner import GitError, GitResult, run_git
from ralph.git.status import (
    has_uncommitted_changes,
    get_git_dir,
)
from ralph.git.diff import (
    get_conflicted_files,
    get_range_diff,
)
from ralph.git.branch import (
    get_current_branch,
    branch_exists,
    remote_branch_exists,
    get_commit_sha,
    is_ancestor,
    get_merge_base,
    delete_branch,
)
from ralph.git.remote import (
    has_remote,
    fetch,
)
from ralph.git.worktree import (
    add_worktree,
    add_worktree_new_branch,
    remove_worktree,
    prune_worktrees,
)
from ralph.git.rebase import (
    start_rebase,
    continue_rebase,
    abort_rebase,
    has_rebase_in_progress,
)
from ralph.git.merge import squash_merge

__all__ = [
    "GitError",
    "GitResult",
    "run_git",
    # status
    "has_uncommitted_changes",
    "get_git_dir",
    # diff
    "get_conflicted_files",
    "get_range_diff",
    # branch
    "get_current_branch",
    "branch_exists",
    "remote_branch_exists",
    "get_commit_sha",
    "is_ancestor",
    "get_merge_base",
    "delete_branch",
    # remote
    "has_remote",
    "fetch",
    # worktree
    "add_worktree",
    "add_worktree_new_branch",
    "remove_worktree",
    "prune_worktrees",
    # rebase
    "start_rebase",
    "continue_rebase",
    "abort_rebase",
    "has_rebase_in_progress",
    # merge
    "squash_merge",
]
