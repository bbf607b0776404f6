"""
Event log readers.

Both consumption modes share read_new_entries(): glob *.jsonl, sort by name,
seek to the last offset per file, parse complete lines, advance the offset.
A line is only consumed once its trailing newline has been written.
"""

import logging
import queue
import signal
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable

from ralph.events.models import Event, EventHandler, unmarshal
from ralph.lib.clock import Clock, SystemClock
from ralph.lib.constants import (
    LIVENESS_GRACE_SECONDS,
    LIVENESS_POLL_SECONDS,
    READER_POLL_SECONDS,
    TAIL_POLL_SECONDS,
)

logger = logging.getLogger(__name__)

# Pushed by a ContinuousReader after its last event.
STREAM_END = object()


def read_new_entries(logs_dir: Path, offsets: dict[str, int], handler: EventHandler) -> int:
    """Deliver every complete line appended since the last call. Returns the event count."""
    if not logs_dir.is_dir():
        return 0

    delivered = 0
    for path in sorted(logs_dir.glob("*.jsonl")):
        key = path.name
        offset = offsets.get(key, 0)
        try:
            with open(path, "rb") as f:
                f.seek(offset)
                chunk = f.read()
        except OSError as e:
            logger.warning(f"[events] cannot read {path}: {e}")
            continue

        end = chunk.rfind(b"\n")
        if end < 0:
            continue

        for raw in chunk[:end].split(b"\n"):
            if not raw.strip():
                continue
            try:
                event = unmarshal(raw)
            except ValueError as e:
                logger.warning(f"[events] skipping malformed line in {key}: {e}")
                continue
            handler.handle(event)
            delivered += 1

        offsets[key] = offset + end + 1
    return delivered


@contextmanager
def interrupt_handler(on_interrupt: Callable[[], None]):
    """Route SIGINT to on_interrupt for the duration of the block."""
    previous = signal.signal(signal.SIGINT, lambda *_: on_interrupt())
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


class LogTailer:
    """Polling tailer for plain-text attach.

    Drains new entries every tick until the daemon is gone, then drains one
    last time so a final burst is not lost.
    """

    def __init__(
        self,
        logs_dir: Path,
        handler: EventHandler,
        is_alive: Callable[[], bool],
        clock: Clock | None = None,
        poll_interval: float = TAIL_POLL_SECONDS,
    ):
        self.logs_dir = logs_dir
        self.handler = handler
        self.is_alive = is_alive
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self.offsets: dict[str, int] = {}

    def run(self, cancel: threading.Event) -> bool:
        """Tail until the daemon exits (returns True) or cancel fires (returns False)."""
        while not cancel.is_set():
            if not self.is_alive():
                read_new_entries(self.logs_dir, self.offsets, self.handler)
                return True
            read_new_entries(self.logs_dir, self.offsets, self.handler)
            if self.clock.sleep(self.poll_interval, cancel):
                break
        return False


class _QueueHandler:
    def __init__(self, out: queue.Queue, index: int | None):
        self.out = out
        self.index = index

    def handle(self, event: Event) -> None:
        if self.index is None:
            self.out.put(event)
        else:
            self.out.put((self.index, event))


class ContinuousReader:
    """Background reader feeding a single-consumer queue until cancelled.

    With an index, items are (index, event) tuples so several readers can
    share one queue. STREAM_END (or (index, STREAM_END)) marks the end.
    """

    def __init__(
        self,
        logs_dir: Path,
        out: queue.Queue,
        index: int | None = None,
        clock: Clock | None = None,
        poll_interval: float = READER_POLL_SECONDS,
    ):
        self.logs_dir = logs_dir
        self.out = out
        self.index = index
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self.cancel = threading.Event()
        self.offsets: dict[str, int] = {}
        self._handler = _QueueHandler(out, index)
        self._thread: threading.Thread | None = None

    def run(self) -> None:
        try:
            while not self.cancel.is_set():
                read_new_entries(self.logs_dir, self.offsets, self._handler)
                if self.clock.sleep(self.poll_interval, self.cancel):
                    break
            # Anything written before cancellation is still delivered.
            read_new_entries(self.logs_dir, self.offsets, self._handler)
        finally:
            self.out.put(STREAM_END if self.index is None else (self.index, STREAM_END))

    def start(self) -> "ContinuousReader":
        self._thread = threading.Thread(target=self.run, name=f"event-reader-{self.index}", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self.cancel.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


class LivenessMonitor:
    """Polls daemon liveness; after death waits a grace period, then fires on_dead.

    The grace period covers events written between the daemon's exit and the
    poll that noticed it.
    """

    def __init__(
        self,
        is_alive: Callable[[], bool],
        on_dead: Callable[[], None],
        clock: Clock | None = None,
        poll_interval: float = LIVENESS_POLL_SECONDS,
        grace: float = LIVENESS_GRACE_SECONDS,
    ):
        self.is_alive = is_alive
        self.on_dead = on_dead
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self.grace = grace
        self.cancel = threading.Event()
        self._thread: threading.Thread | None = None

    def run(self) -> bool:
        """Returns True if the daemon died, False if the monitor was cancelled."""
        while not self.cancel.is_set():
            if not self.is_alive():
                self.clock.sleep(self.grace)
                self.on_dead()
                return True
            if self.clock.sleep(self.poll_interval, self.cancel):
                break
        return False

    def start(self) -> "LivenessMonitor":
        self._thread = threading.Thread(target=self.run, name="liveness-monitor", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self.cancel.set()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)


def follow(logs_dir: Path, out: queue.Queue, is_alive: Callable[[], bool],
           index: int | None = None, clock: Clock | None = None) -> tuple[ContinuousReader, LivenessMonitor]:
    """Start a reader plus the monitor that cancels it once the daemon is gone."""
    reader = ContinuousReader(logs_dir, out, index=index, clock=clock).start()
    monitor = LivenessMonitor(is_alive, reader.stop, clock=clock).start()
    return reader, monitor
