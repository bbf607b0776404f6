"""
Append-only JSONL event log writer.

The daemon rotates to a new file at each story or QA phase so a viewer can
follow one unit of work per file. Names lead with the creation time and a
per-writer sequence number, so sorting by name replays files in the order
they were opened.
"""

import logging
import re
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from ralph.events.models import Event, QAPhaseStarted, StoryStarted, marshal

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%dT%H%M%S.%fZ"
_UNSAFE_NAME_CHARS = re.compile(r'[^a-zA-Z0-9._-]')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileHandler:
    """EventHandler that appends each event as one line to the current log file."""

    def __init__(self, logs_dir: Path, now: Callable[[], datetime] = _utcnow):
        self.logs_dir = logs_dir
        self._now = now
        self._lock = threading.Lock()
        self._file = None
        self.current_path: Path | None = None
        self._seq = 0

    def _file_stem_for(self, event: Event) -> str | None:
        if isinstance(event, StoryStarted):
            return _UNSAFE_NAME_CHARS.sub("_", event.story_id) or "story"
        if isinstance(event, QAPhaseStarted):
            return f"QA-{_UNSAFE_NAME_CHARS.sub('_', event.phase)}"
        return None

    def _open(self, stem: str) -> None:
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self._seq += 1
        prefix = f"{self._now().strftime(TIMESTAMP_FORMAT)}-{self._seq:04d}"
        path = self.logs_dir / f"{prefix}-{stem}.jsonl"
        counter = 1
        while path.exists():
            path = self.logs_dir / f"{prefix}-{stem}-{counter}.jsonl"
            counter += 1
        self.close()
        self._file = open(path, "a", encoding="utf-8")
        self.current_path = path
        logger.debug(f"[events] writing to {path.name}")

    def handle(self, event: Event) -> None:
        with self._lock:
            stem = self._file_stem_for(event)
            if stem is not None:
                self._open(stem)
            elif self._file is None:
                self._open("startup")
            self._file.write(marshal(event) + "\n")
            self._file.flush()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
