"""Clock port. Injected wherever code sleeps or reads the time, so tests never wait."""

import threading
import time
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        """Sleep up to `seconds`. Returns True if cancel fired first."""
        ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        if seconds <= 0:
            return cancel is not None and cancel.is_set()
        if cancel is None:
            time.sleep(seconds)
            return False
        return cancel.wait(seconds)
