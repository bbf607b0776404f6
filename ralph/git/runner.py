"""Git subprocess wrapper used by every git helper.

ralph drives git from a detached daemon with no terminal attached, so
commands never prompt: credential prompts are disabled and a hung command
is cut off by a timeout instead of blocking the loop.
"""

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TIMEOUT = 30

_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_MERGE_AUTOEDIT": "no"}


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class GitError(Exception):
    """A git operation that must succeed did not."""

    def __init__(self, operation: str, result: GitResult):
        self.operation = operation
        self.result = result
        detail = result.stderr.strip() or result.stdout.strip() or f"exit {result.returncode}"
        super().__init__(f"{operation}: {detail}")


def run_git(args: list[str], cwd: Path, timeout: int = DEFAULT_TIMEOUT) -> GitResult:
    """Run `git -C cwd <args>` and capture its output.

    Never raises for git failures: a non-zero exit, a timeout or a missing
    git binary all come back as an unsuccessful GitResult.
    """
    env = {**os.environ, **_GIT_ENV}
    try:
        proc = subprocess.run(
            ["git", "-C", str(cwd), *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired:
        return GitResult(-1, "", f"git {args[0]} timed out after {timeout}s", timed_out=True)
    except FileNotFoundError:
        return GitResult(127, "", "git executable not found on PATH")
    return GitResult(proc.returncode, proc.stdout, proc.stderr)


def check_git(operation: str, args: list[str], cwd: Path, timeout: int = DEFAULT_TIMEOUT) -> GitResult:
    """Run a git command and raise GitError with operation context on failure."""
    result = run_git(args, cwd, timeout=timeout)
    if not result.success:
        raise GitError(operation, result)
    return result
