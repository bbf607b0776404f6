"""
Quality gate runner.

Runs one shell command, always persists its full combined output to a log
file, and reports pass/fail with a bounded tail. The command failing is a
normal outcome; only log I/O problems raise.
"""

import logging
import re
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

from ralph.lib.constants import DEFAULT_CHECK_TAIL_LINES
from ralph.lib.output import tail_lines

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r'[^a-zA-Z0-9._-]')


def sanitize_command(command: str) -> str:
    """Log-file-safe form of a command string."""
    return _UNSAFE.sub("_", command)


def log_file_for(logs_dir: Path, command: str) -> Path:
    return logs_dir / f"check-{sanitize_command(command)}.log"


@dataclass
class CheckResult:
    command: str
    exit_code: int
    duration: float
    log_path: Path
    tail: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.exit_code == 0


def run_check(
    argv: list[str],
    cwd: Path,
    logs_dir: Path,
    tail: int = DEFAULT_CHECK_TAIL_LINES,
) -> CheckResult:
    """
    Run argv (joined and passed to `sh -c`) in cwd.

    Raises:
        OSError: If the log directory or log file cannot be written
        ValueError: If argv is empty
    """
    if not argv:
        raise ValueError("no command given")
    command = " ".join(argv)

    start = time.monotonic()
    try:
        proc = subprocess.run(
            ["sh", "-c", command],
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
        output = proc.stdout.decode("utf-8", errors="replace")
        exit_code = proc.returncode
    except OSError as e:
        output = f"failed to run command: {e}\n"
        exit_code = 1
    duration = time.monotonic() - start

    # A signal-killed process reports a negative code; the gate still fails.
    if exit_code < 0:
        exit_code = 1

    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_file_for(logs_dir, command)
    log_path.write_text(output)

    return CheckResult(
        command=command,
        exit_code=exit_code,
        duration=duration,
        log_path=log_path,
        tail=[] if exit_code == 0 else tail_lines(output, tail),
    )


def format_result(result: CheckResult, tail: int = DEFAULT_CHECK_TAIL_LINES) -> str:
    if result.passed:
        return (
            f"PASS: {result.command} ({result.duration:.2f}s)\n"
            f"Full log: {result.log_path}\n"
        )
    lines = [
        f"FAIL: {result.command} ({result.duration:.2f}s)",
        f"--- last {tail} lines ---",
        *result.tail,
        f"Full log: {result.log_path}",
    ]
    return "\n".join(lines) + "\n"
