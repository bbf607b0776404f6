"""Tests for ralph.events: models, writer, readers and plain-text rendering."""

import json
import queue
import threading
from datetime import datetime, timedelta, timezone

import pytest
from rich.console import Console

from conftest import FakeClock, RecordingHandler
from ralph.events.models import (
    AgentText,
    InvocationDone,
    IterationStart,
    LogMessage,
    PRDRefresh,
    QAPhaseStarted,
    StoryStarted,
    ToolUse,
    UnknownEvent,
    UsageLimitWait,
    marshal,
    to_record,
    unmarshal,
)
from ralph.events.plaintext import PlainTextHandler, format_event
from ralph.events.reader import (
    STREAM_END,
    ContinuousReader,
    LivenessMonitor,
    LogTailer,
    read_new_entries,
)
from ralph.events.writer import FileHandler

TS = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def stepping_now(start=TS):
    """now() that advances one second per call so rotated files get distinct names."""
    state = {"t": start}

    def now():
        current = state["t"]
        state["t"] = current + timedelta(seconds=1)
        return current

    return now


def append(path, *events):
    with open(path, "a") as f:
        for e in events:
            f.write(marshal(e) + "\n")


class TestEventModels:

    def test_envelope(self):
        record = to_record(ToolUse(name="Read", detail="app.py", timestamp=TS))
        assert record == {
            "type": "tool_use",
            "timestamp": TS.isoformat(),
            "payload": {"name": "Read", "detail": "app.py"},
        }

    def test_unmarshal_known_type(self):
        event = unmarshal(marshal(IterationStart(iteration=2, max_iterations=5, timestamp=TS)))
        assert isinstance(event, IterationStart)
        assert (event.iteration, event.max_iterations) == (2, 5)
        assert event.timestamp == TS

    def test_unknown_type_is_kept(self):
        event = unmarshal(json.dumps({"type": "future_thing", "timestamp": TS.isoformat(), "payload": {"x": 1}}))
        assert isinstance(event, UnknownEvent)
        assert event.type == "future_thing"
        assert event.payload() == {"x": 1}

    def test_extra_payload_fields_ignored(self):
        line = json.dumps({"type": "agent_text", "timestamp": TS.isoformat(), "payload": {"text": "hi", "new": 1}})
        assert unmarshal(line).text == "hi"

    @pytest.mark.parametrize("line", [
        "not json",
        "[]",
        '{"payload": {}}',
        '{"type": ["log_message"]}',
        '{"type": "log_message", "payload": [1, 2]}',
        '{"type": "mystery", "payload": "text"}',
    ])
    def test_malformed(self, line):
        with pytest.raises(ValueError):
            unmarshal(line)


class TestFileHandler:

    def test_startup_file_before_first_story(self, tmp_path):
        writer = FileHandler(tmp_path, now=stepping_now())
        writer.handle(IterationStart(iteration=1, max_iterations=3))
        writer.close()

        assert [p.name for p in tmp_path.iterdir()] == ["20260301T120000.000000Z-0001-startup.jsonl"]

    def test_rotates_per_story_and_qa_phase(self, tmp_path):
        writer = FileHandler(tmp_path, now=stepping_now())
        writer.handle(StoryStarted(story_id="US-1", title="a"))
        writer.handle(ToolUse(name="Read"))
        writer.handle(QAPhaseStarted(phase="verification"))
        writer.handle(StoryStarted(story_id="US/2", title="b"))
        writer.close()

        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == [
            "20260301T120000.000000Z-0001-US-1.jsonl",
            "20260301T120001.000000Z-0002-QA-verification.jsonl",
            "20260301T120002.000000Z-0003-US_2.jsonl",
        ]
        first = (tmp_path / "20260301T120000.000000Z-0001-US-1.jsonl").read_text().splitlines()
        assert [json.loads(l)["type"] for l in first] == ["story_started", "tool_use"]

    def test_same_instant_keeps_open_order(self, tmp_path):
        writer = FileHandler(tmp_path, now=lambda: TS)
        writer.handle(StoryStarted(story_id="US-2"))
        writer.handle(StoryStarted(story_id="US-1"))
        writer.close()

        assert sorted(p.name for p in tmp_path.iterdir()) == [
            "20260301T120000.000000Z-0001-US-2.jsonl",
            "20260301T120000.000000Z-0002-US-1.jsonl",
        ]

    def test_existing_name_gets_counter(self, tmp_path):
        (tmp_path / "20260301T120000.000000Z-0001-US-1.jsonl").write_text("")
        writer = FileHandler(tmp_path, now=lambda: TS)
        writer.handle(StoryStarted(story_id="US-1"))
        writer.close()

        assert writer.current_path.name == "20260301T120000.000000Z-0001-US-1-1.jsonl"

    def test_each_line_flushed(self, tmp_path):
        writer = FileHandler(tmp_path, now=stepping_now())
        writer.handle(AgentText(text="hello"))
        content = writer.current_path.read_text()
        writer.close()
        assert content.endswith("\n")


class TestReadNewEntries:

    def test_replays_in_write_order(self, tmp_path):
        writer = FileHandler(tmp_path, now=stepping_now())
        writer.handle(IterationStart(iteration=1, max_iterations=2))
        writer.handle(StoryStarted(story_id="US-001", title="Login"))
        writer.handle(IterationStart(iteration=2, max_iterations=2))
        writer.handle(QAPhaseStarted(phase="verification"))
        writer.handle(LogMessage(message="last"))
        writer.close()
        handler = RecordingHandler()

        assert read_new_entries(tmp_path, {}, handler) == 5
        assert [type(e) for e in handler.events] == [
            IterationStart, StoryStarted, IterationStart, QAPhaseStarted, LogMessage,
        ]
        assert [e.iteration for e in handler.events if isinstance(e, IterationStart)] == [1, 2]
        assert handler.events[-1].message == "last"

    def test_offsets_prevent_redelivery(self, tmp_path):
        path = tmp_path / "a.jsonl"
        append(path, AgentText(text="one"))
        offsets = {}
        handler = RecordingHandler()

        read_new_entries(tmp_path, offsets, handler)
        append(path, AgentText(text="two"))
        read_new_entries(tmp_path, offsets, handler)

        assert [e.text for e in handler.events] == ["one", "two"]

    def test_partial_line_waits_for_newline(self, tmp_path):
        path = tmp_path / "a.jsonl"
        line = marshal(AgentText(text="slow"))
        path.write_text(line[:10])
        offsets = {}
        handler = RecordingHandler()

        assert read_new_entries(tmp_path, offsets, handler) == 0
        with open(path, "a") as f:
            f.write(line[10:] + "\n")
        assert read_new_entries(tmp_path, offsets, handler) == 1
        assert handler.events[0].text == "slow"

    def test_malformed_line_skipped(self, tmp_path):
        path = tmp_path / "a.jsonl"
        path.write_text(
            "garbage\n"
            '{"type": "log_message", "timestamp": "", "payload": [1, 2]}\n'
            + marshal(AgentText(text="ok")) + "\n")
        handler = RecordingHandler()

        assert read_new_entries(tmp_path, {}, handler) == 1
        assert handler.events[0].text == "ok"

    def test_ignores_other_files(self, tmp_path):
        (tmp_path / "daemon.log").write_text("INFO something\n")
        assert read_new_entries(tmp_path, {}, RecordingHandler()) == 0

    def test_missing_dir(self, tmp_path):
        assert read_new_entries(tmp_path / "nope", {}, RecordingHandler()) == 0


class TestLogTailer:

    def test_final_drain_after_daemon_exits(self, tmp_path):
        alive = iter([True, False])
        clock = FakeClock()
        handler = RecordingHandler()
        path = tmp_path / "a.jsonl"
        append(path, AgentText(text="early"))

        def tick(seconds, cancel=None):
            # The daemon writes its last burst between polls.
            append(path, AgentText(text="late"))
            return False

        clock.sleep = tick
        tailer = LogTailer(tmp_path, handler, lambda: next(alive), clock=clock)

        assert tailer.run(threading.Event()) is True
        assert [e.text for e in handler.events] == ["early", "late"]

    def test_cancel_stops_tailing(self, tmp_path):
        cancel = threading.Event()
        cancel.set()
        tailer = LogTailer(tmp_path, RecordingHandler(), lambda: True, clock=FakeClock())

        assert tailer.run(cancel) is False


class TestContinuousReader:

    def test_delivers_then_stream_end(self, tmp_path):
        append(tmp_path / "a.jsonl", AgentText(text="x"))
        out = queue.Queue()
        reader = ContinuousReader(tmp_path, out, clock=FakeClock())
        reader.stop()

        reader.run()

        assert out.get_nowait().text == "x"
        assert out.get_nowait() is STREAM_END

    def test_indexed_items(self, tmp_path):
        append(tmp_path / "a.jsonl", AgentText(text="x"))
        out = queue.Queue()
        reader = ContinuousReader(tmp_path, out, index=3, clock=FakeClock())
        reader.stop()

        reader.run()

        index, event = out.get_nowait()
        assert index == 3 and event.text == "x"
        assert out.get_nowait() == (3, STREAM_END)

    def test_threaded_reader_stops(self, tmp_path):
        out = queue.Queue()
        reader = ContinuousReader(tmp_path, out, poll_interval=0.01).start()
        append(tmp_path / "a.jsonl", LogMessage(message="hi"))
        reader.stop()
        reader.join(timeout=5)

        items = []
        while True:
            item = out.get(timeout=5)
            if item is STREAM_END:
                break
            items.append(item)
        assert [e.message for e in items] == ["hi"]


class TestLivenessMonitor:

    def test_fires_after_grace(self):
        clock = FakeClock()
        fired = []
        alive = iter([True, True, False])
        monitor = LivenessMonitor(lambda: next(alive), lambda: fired.append(True), clock=clock)

        assert monitor.run() is True
        assert fired == [True]
        assert clock.sleeps == [0.5, 0.5, 0.3]

    def test_cancelled(self):
        monitor = LivenessMonitor(lambda: True, lambda: pytest.fail("should not fire"), clock=FakeClock())
        monitor.stop()
        assert monitor.run() is False


class TestPlainText:

    def test_iteration_line_keeps_brackets(self):
        console = Console(record=True, width=120)
        PlainTextHandler(console).handle(IterationStart(iteration=2, max_iterations=5))
        assert "[loop] iteration 2/5" in console.export_text()

    def test_formats(self):
        console = Console(record=True, width=120)
        handler = PlainTextHandler(console)
        handler.handle(StoryStarted(story_id="US-1", title="Login [beta]"))
        handler.handle(ToolUse(name="Edit", detail="app.py"))
        handler.handle(InvocationDone(num_turns=4, duration_ms=12000))
        handler.handle(UsageLimitWait(wait_seconds=90, reset_at="2026-03-01T13:00:00+00:00"))
        text = console.export_text()

        assert "[loop] working on US-1: Login [beta]" in text
        assert "→ Edit app.py" in text
        assert "✓ Done (4 turns, 12s)" in text
        assert "waiting 90s" in text

    def test_prd_refresh_is_silent(self):
        assert format_event(PRDRefresh()) is None
