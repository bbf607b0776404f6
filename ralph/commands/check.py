"""
ralph check - Run a quality gate command with full output logged to a file.
"""

import sys
from pathlib import Path

from ralph.lib.config import ConfigError, resolve_config
from ralph.lib.constants import EXIT_CONFIG, EXIT_ERROR
from ralph.runner.checks import format_result, run_check
from ralph.workspace.paths import check_logs_dir


def cmd_check(args, cwd: Path | None = None) -> int:
    """Run the command; exit with its exit code."""
    cwd = cwd or Path.cwd()
    argv = list(args.cmd)
    if argv and argv[0] == "--":
        argv = argv[1:]
    if not argv:
        print("ERROR: usage: ralph check [--tail N] -- <command...>", file=sys.stderr)
        return EXIT_CONFIG

    # Works outside a configured repo too; logs then go under cwd.
    try:
        repo = resolve_config(getattr(args, "config", None), cwd=cwd).repo.path
    except ConfigError:
        repo = None

    try:
        result = run_check(argv, cwd, check_logs_dir(repo, cwd), tail=args.tail)
    except OSError as e:
        print(f"ERROR: writing check log: {e}", file=sys.stderr)
        return EXIT_ERROR

    sys.stdout.write(format_result(result, args.tail))
    return result.exit_code
