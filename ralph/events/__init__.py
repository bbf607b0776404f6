"""Event streaming: structured events, the JSONL writer, and its readers."""

from ralph.events.models import (
    AgentText,
    Event,
    EventHandler,
    InvocationDone,
    IterationStart,
    LogMessage,
    PRDRefresh,
    QAPhaseStarted,
    StoryStarted,
    ToolUse,
    UnknownEvent,
    UsageLimitWait,
    emit,
    marshal,
    unmarshal,
)
from ralph.events.writer import FileHandler
from ralph.events.reader import (
    STREAM_END,
    ContinuousReader,
    LivenessMonitor,
    LogTailer,
    follow,
    read_new_entries,
)

__all__ = [
    "AgentText",
    "Event",
    "EventHandler",
    "InvocationDone",
    "IterationStart",
    "LogMessage",
    "PRDRefresh",
    "QAPhaseStarted",
    "StoryStarted",
    "ToolUse",
    "UnknownEvent",
    "UsageLimitWait",
    "emit",
    "marshal",
    "unmarshal",
    "FileHandler",
    "STREAM_END",
    "ContinuousReader",
    "LivenessMonitor",
    "LogTailer",
    "follow",
    "read_new_entries",
]
