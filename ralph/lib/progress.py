"""Progress log helpers.

The progress log is appended to by the agent; ralph only creates it and
reads excerpts of it.
"""

from datetime import datetime
from pathlib import Path

PATTERNS_HEADING = "## Codebase Patterns"
SEPARATOR = "---"


def progress_header(now: datetime) -> str:
    return (
        f"# Ralph Progress Log\nStarted: {now.isoformat(timespec='seconds')}\n{SEPARATOR}\n\n"
        f"{PATTERNS_HEADING}\n\n{SEPARATOR}\n"
    )


def ensure_progress_file(path: Path, now: datetime) -> bool:
    """Create the progress log with its header if missing. Returns True if created."""
    if path.exists():
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(progress_header(now))
    return True


def _split_blocks(lines: list[str]) -> list[list[str]]:
    blocks: list[list[str]] = [[]]
    for line in lines:
        if line.strip() == SEPARATOR:
            blocks.append([])
        else:
            blocks[-1].append(line)
    return blocks


def cap_progress_entries(content: str, keep: int = 5) -> str:
    """Keep the header, the Codebase Patterns section and the last `keep` entries.

    Content without a patterns section is returned unchanged.
    """
    blocks = _split_blocks(content.splitlines())
    pattern_idx = next(
        (i for i, b in enumerate(blocks) if any(line.strip() == PATTERNS_HEADING for line in b)),
        None,
    )
    if pattern_idx is None:
        return content

    preserved = blocks[:pattern_idx + 1]
    entries = [b for b in blocks[pattern_idx + 1:] if any(line.strip() for line in b)]
    if len(entries) <= keep:
        return content

    kept = preserved + (entries[-keep:] if keep > 0 else [])
    out: list[str] = []
    for i, block in enumerate(kept):
        if i > 0:
            out.append(SEPARATOR)
        out.extend(block)
    return "\n".join(out).rstrip("\n") + f"\n{SEPARATOR}\n"


def read_progress_excerpt(path: Path, keep: int = 5) -> str:
    """Capped progress log, or an empty string when there is none."""
    try:
        return cap_progress_entries(path.read_text(), keep)
    except FileNotFoundError:
        return ""
