"""
Structured events emitted by the loop and the agent invoker.

Each event serializes to one JSON line: {"type", "timestamp", "payload"}.
"""

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import ClassVar, Protocol

from ralph.lib.validate import validate

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Event:
    """Base class. Subclasses set TYPE and declare payload fields."""

    TYPE: ClassVar[str] = ""

    timestamp: datetime = field(default_factory=_now, kw_only=True)

    @property
    def type(self) -> str:
        return self.TYPE

    def payload(self) -> dict:
        data = asdict(self)
        data.pop("timestamp", None)
        return data


@dataclass
class ToolUse(Event):
    TYPE: ClassVar[str] = "tool_use"
    name: str = ""
    detail: str = ""


@dataclass
class AgentText(Event):
    TYPE: ClassVar[str] = "agent_text"
    text: str = ""


@dataclass
class InvocationDone(Event):
    TYPE: ClassVar[str] = "invocation_done"
    num_turns: int = 0
    duration_ms: int = 0


@dataclass
class IterationStart(Event):
    TYPE: ClassVar[str] = "iteration_start"
    iteration: int = 0
    max_iterations: int = 0


@dataclass
class StoryStarted(Event):
    TYPE: ClassVar[str] = "story_started"
    story_id: str = ""
    title: str = ""


@dataclass
class QAPhaseStarted(Event):
    TYPE: ClassVar[str] = "qa_phase_started"
    phase: str = ""


@dataclass
class UsageLimitWait(Event):
    TYPE: ClassVar[str] = "usage_limit_wait"
    wait_seconds: float = 0.0
    reset_at: str = ""


@dataclass
class LogMessage(Event):
    TYPE: ClassVar[str] = "log_message"
    message: str = ""
    level: str = "info"


@dataclass
class PRDRefresh(Event):
    TYPE: ClassVar[str] = "prd_refresh"


@dataclass
class UnknownEvent(Event):
    """An entry whose type this version does not know. Kept, not dropped."""
    TYPE: ClassVar[str] = "unknown"
    raw_type: str = ""
    data: dict = field(default_factory=dict)

    @property
    def type(self) -> str:
        return self.raw_type

    def payload(self) -> dict:
        return dict(self.data)


EVENT_TYPES: dict[str, type[Event]] = {
    cls.TYPE: cls
    for cls in (
        ToolUse,
        AgentText,
        InvocationDone,
        IterationStart,
        StoryStarted,
        QAPhaseStarted,
        UsageLimitWait,
        LogMessage,
        PRDRefresh,
    )
}


class EventHandler(Protocol):
    def handle(self, event: Event) -> None: ...


def emit(handler: EventHandler | None, event: Event) -> None:
    """Send an event to handler if there is one."""
    if handler is not None:
        handler.handle(event)


def to_record(event: Event) -> dict:
    return {
        "type": event.type,
        "timestamp": event.timestamp.isoformat(),
        "payload": event.payload(),
    }


def marshal(event: Event) -> str:
    """One compact JSON line, without the trailing newline.

    Raises:
        ValidationError: If the record does not match the event schema
    """
    record = to_record(event)
    validate(record, "event")
    return json.dumps(record, separators=(",", ":"))


def unmarshal(line: str | bytes) -> Event:
    """Parse one log line.

    Raises:
        ValueError: If the line is not a JSON object with a type and an object payload
    """
    record = json.loads(line)
    if not isinstance(record, dict) or not isinstance(record.get("type"), str) or not record["type"]:
        raise ValueError("event record must be an object with a type")

    try:
        ts = datetime.fromisoformat(record.get("timestamp", ""))
    except (TypeError, ValueError):
        ts = _now()
    payload = record.get("payload") or {}
    if not isinstance(payload, dict):
        raise ValueError(f"event payload must be an object, got {type(payload).__name__}")

    cls = EVENT_TYPES.get(record["type"])
    if cls is None:
        return UnknownEvent(raw_type=record["type"], data=payload, timestamp=ts)

    known = {f.name for f in fields(cls) if f.name != "timestamp"}
    kwargs = {k: v for k, v in payload.items() if k in known}
    try:
        return cls(timestamp=ts, **kwargs)
    except TypeError as e:
        raise ValueError(f"malformed {record['type']} payload: {e}") from None
