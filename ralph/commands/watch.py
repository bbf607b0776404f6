"""
Live dashboards for running daemons.

AttachApp follows one workspace's event log; OverviewApp shows one row per
running workspace. Both are fed by ContinuousReaders through a queue that
is drained on a timer, so file I/O never happens on the UI thread.
"""

import queue
from dataclasses import dataclass
from typing import Callable, Optional

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, RichLog, Static

from ralph.events.models import (
    AgentText,
    Event,
    IterationStart,
    LogMessage,
    PRDRefresh,
    QAPhaseStarted,
    StoryStarted,
    ToolUse,
    UsageLimitWait,
)
from ralph.events.plaintext import format_event
from ralph.events.reader import STREAM_END, follow
from ralph.lib import prd as prd_store
from ralph.workspace.paths import WorkContext

DRAIN_INTERVAL_SECONDS = 0.1
MAX_LOG_LINES = 2000

EXIT_DETACH = "detach"
EXIT_STOP = "stop"
EXIT_FINISHED = "finished"


def _story_lines(prd: prd_store.PRD) -> list[str]:
    lines = ["[bold]Stories:[/bold]"]
    for s in prd.user_stories:
        marker = "[green]✓[/green]" if s.passes else "[dim]○[/dim]"
        lines.append(f"  {marker} {escape(s.id)} {escape(s.title)}")
    if prd.integration_tests:
        lines.append("[bold]Integration tests:[/bold]")
        for t in prd.integration_tests:
            marker = "[green]✓[/green]" if t.passes else "[red]✗[/red]"
            lines.append(f"  {marker} {escape(t.id)} {escape(t.description)}")
    return lines


class StoriesWidget(Static):
    """Story list with pass markers."""

    prd: reactive[Optional[prd_store.PRD]] = reactive(None, always_update=True)
    error: reactive[str] = reactive("")

    def render(self) -> str:
        if self.error:
            return f"[red]{escape(self.error)}[/red]"
        if self.prd is None:
            return "Loading..."
        return "\n".join(_story_lines(self.prd))


class PhaseWidget(Static):
    """Current iteration and phase."""

    iteration: reactive[str] = reactive("")
    phase: reactive[str] = reactive("starting")
    finished: reactive[bool] = reactive(False)

    def render(self) -> str:
        parts = []
        if self.iteration:
            parts.append(f"Iteration [bold]{self.iteration}[/bold]")
        parts.append(f"Phase: [cyan]{escape(self.phase)}[/cyan]")
        if self.finished:
            parts.append("[yellow]daemon exited[/yellow]")
        return "  ".join(parts)


class AttachApp(App):
    """Dashboard for one running workspace.

    Exit values: EXIT_DETACH (daemon keeps running), EXIT_STOP (caller stops
    the daemon), EXIT_FINISHED (the daemon exited on its own).
    """

    CSS = """
    #main-container {
        layout: vertical;
        padding: 0 1;
    }

    #phase-box {
        height: auto;
        border: solid blue;
        padding: 0 1;
    }

    #stories-box {
        height: auto;
        max-height: 40%;
        border: solid green;
        padding: 0 1;
    }

    #event-log {
        height: 1fr;
        border: solid $primary;
    }

    StoriesWidget {
        height: auto;
    }
    """

    BINDINGS = [
        Binding("d", "detach", "Detach"),
        Binding("q", "stop", "Stop & quit"),
    ]

    def __init__(self, ctx: WorkContext, is_alive: Callable[[], bool]) -> None:
        super().__init__()
        self.ctx = ctx
        self.is_alive = is_alive
        self.events: queue.Queue = queue.Queue()
        self.reader = None
        self.monitor = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield Container(
            Container(PhaseWidget(id="phase"), id="phase-box"),
            Container(StoriesWidget(id="stories"), id="stories-box"),
            RichLog(id="event-log", markup=True, wrap=True, max_lines=MAX_LOG_LINES),
            id="main-container",
        )
        yield Footer()

    def on_mount(self) -> None:
        self.title = f"ralph: {self.ctx.name}"
        self.reload_prd()
        self.reader, self.monitor = follow(self.ctx.logs_dir, self.events, self.is_alive)
        self.set_interval(DRAIN_INTERVAL_SECONDS, self.drain_events)

    def on_unmount(self) -> None:
        if self.monitor is not None:
            self.monitor.stop()
        if self.reader is not None:
            self.reader.stop()

    def reload_prd(self) -> None:
        stories = self.query_one("#stories", StoriesWidget)
        try:
            stories.prd = prd_store.read_prd(self.ctx.prd_path)
            stories.error = ""
        except prd_store.PRDError as e:
            # The agent may be mid-write; keep the last good copy.
            if stories.prd is None:
                stories.error = str(e)

    def drain_events(self) -> None:
        while True:
            try:
                item = self.events.get_nowait()
            except queue.Empty:
                return
            if item is STREAM_END:
                self.query_one("#phase", PhaseWidget).finished = True
                self.exit(EXIT_FINISHED)
                return
            self.apply_event(item)

    def apply_event(self, event: Event) -> None:
        phase = self.query_one("#phase", PhaseWidget)
        if isinstance(event, IterationStart):
            phase.iteration = f"{event.iteration}/{event.max_iterations}"
        elif isinstance(event, StoryStarted):
            phase.phase = f"{event.story_id}: {event.title}"
        elif isinstance(event, QAPhaseStarted):
            phase.phase = f"QA {event.phase}"
        elif isinstance(event, UsageLimitWait):
            phase.phase = "waiting for usage limit reset"
        elif isinstance(event, PRDRefresh):
            self.reload_prd()
            return

        line = format_event(event)
        if line is not None:
            self.query_one("#event-log", RichLog).write(line)

    def action_detach(self) -> None:
        self.exit(EXIT_DETACH)

    def action_stop(self) -> None:
        self.exit(EXIT_STOP)


@dataclass
class WorkspaceRow:
    ctx: WorkContext
    iteration: str = ""
    phase: str = "starting"
    last: str = ""
    finished: bool = False
    done: int = 0
    total: int = 0

    def progress(self) -> str:
        return f"{self.done}/{self.total}" if self.total else "-"


def _summary(event: Event) -> str:
    if isinstance(event, ToolUse):
        return f"→ {event.name} {event.detail}".strip()
    if isinstance(event, AgentText):
        return event.text.strip().splitlines()[0] if event.text.strip() else ""
    if isinstance(event, LogMessage):
        return event.message
    return ""


class OverviewApp(App):
    """One row per running workspace."""

    CSS = """
    DataTable {
        height: 1fr;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
    ]

    COLUMNS = ("Workspace", "Stories", "Iteration", "Phase", "Last event")

    def __init__(self, contexts: list[WorkContext], liveness: Callable[[WorkContext], bool]) -> None:
        super().__init__()
        self.rows = [WorkspaceRow(ctx=c) for c in contexts]
        self.liveness = liveness
        self.events: queue.Queue = queue.Queue()
        self.followers: list = []

    def compose(self) -> ComposeResult:
        yield Header()
        yield DataTable(id="overview", cursor_type="row")
        yield Footer()

    def on_mount(self) -> None:
        self.title = "ralph: running workspaces"
        table = self.query_one("#overview", DataTable)
        for column in self.COLUMNS:
            table.add_column(column, key=column)
        for index, row in enumerate(self.rows):
            self._refresh_progress(row)
            table.add_row(*self._cells(row), key=str(index))
            ctx = row.ctx
            self.followers.append(
                follow(ctx.logs_dir, self.events, lambda c=ctx: self.liveness(c), index=index)
            )
        self.set_interval(DRAIN_INTERVAL_SECONDS, self.drain_events)

    def on_unmount(self) -> None:
        for reader, monitor in self.followers:
            monitor.stop()
            reader.stop()

    def _refresh_progress(self, row: WorkspaceRow) -> None:
        try:
            prd = prd_store.read_prd(row.ctx.prd_path)
        except prd_store.PRDError:
            return
        row.done = sum(1 for s in prd.user_stories if s.passes)
        row.total = len(prd.user_stories)

    def _cells(self, row: WorkspaceRow) -> tuple[str, ...]:
        phase = "[yellow]exited[/yellow]" if row.finished else escape(row.phase)
        return (row.ctx.name, row.progress(), row.iteration, phase, escape(row.last[:60]))

    def drain_events(self) -> None:
        table = self.query_one("#overview", DataTable)
        changed: set[int] = set()
        while True:
            try:
                index, item = self.events.get_nowait()
            except queue.Empty:
                break
            row = self.rows[index]
            changed.add(index)
            if item is STREAM_END:
                row.finished = True
                continue
            if isinstance(item, IterationStart):
                row.iteration = f"{item.iteration}/{item.max_iterations}"
            elif isinstance(item, StoryStarted):
                row.phase = item.story_id
            elif isinstance(item, QAPhaseStarted):
                row.phase = f"QA {item.phase}"
            elif isinstance(item, PRDRefresh):
                self._refresh_progress(row)
            summary = _summary(item)
            if summary:
                row.last = summary

        for index in changed:
            for column, value in zip(self.COLUMNS, self._cells(self.rows[index])):
                table.update_cell(str(index), column, value)
