"""
ralph init - Scaffold .ralph/ in the current repository.

Idempotent: existing files are left alone.
"""

import sys
from pathlib import Path

from ralph.lib.clock import SystemClock
from ralph.lib.constants import (
    ARCHIVE_DIR,
    CONFIG_FILE,
    EXIT_SUCCESS,
    LOGS_DIR,
    PROGRESS_FILE,
    RALPH_DIR,
    STATE_DIR,
    WORKSPACES_DIR,
)
from ralph.lib.progress import ensure_progress_file

CONFIG_TEMPLATE = """project: {project}

repo:
  default_base: {base}
  branch_prefix: "ralph/"
  # branch_pattern: "^ralph/[a-zA-Z0-9._-]+$"

# paths:
#   prompts_dir: ".ralph/prompts"

quality_checks:
  # - "make test"
  # - "make lint"

copy_to_worktree:
  # - ".env"
"""

GITIGNORE = f"""{STATE_DIR}/
{WORKSPACES_DIR}/
{LOGS_DIR}/
*.lock
COMPLETE
"""


def scaffold(root: Path, base: str = "main") -> tuple[list[Path], list[Path]]:
    """Create the .ralph layout under root. Returns (created, skipped)."""
    ralph_dir = root / RALPH_DIR
    created: list[Path] = []
    skipped: list[Path] = []

    for directory in (ralph_dir, ralph_dir / STATE_DIR, ralph_dir / STATE_DIR / ARCHIVE_DIR):
        directory.mkdir(parents=True, exist_ok=True)

    files = {
        ralph_dir / CONFIG_FILE: CONFIG_TEMPLATE.format(project=root.resolve().name, base=base),
        ralph_dir / ".gitignore": GITIGNORE,
    }
    for path, content in files.items():
        if path.exists():
            skipped.append(path)
        else:
            path.write_text(content)
            created.append(path)

    progress = ralph_dir / PROGRESS_FILE
    if ensure_progress_file(progress, SystemClock().now()):
        created.append(progress)
    else:
        skipped.append(progress)

    return created, skipped


def cmd_init(args, cwd: Path | None = None) -> int:
    root = cwd or Path.cwd()
    created, skipped = scaffold(root, base=args.base)
    for path in created:
        print(f"  created {path.relative_to(root)}")
    for path in skipped:
        print(f"  skipped {path.relative_to(root)} (exists)")
    print(f"\nEdit {RALPH_DIR}/{CONFIG_FILE}, then create a workspace: ralph workspaces new <name>",
          file=sys.stderr)
    return EXIT_SUCCESS
