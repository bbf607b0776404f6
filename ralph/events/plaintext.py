"""Human-readable rendering of events for `--no-tui` mode."""

from rich.console import Console
from rich.markup import escape

from ralph.events.models import (
    AgentText,
    Event,
    InvocationDone,
    IterationStart,
    LogMessage,
    QAPhaseStarted,
    StoryStarted,
    ToolUse,
    UsageLimitWait,
)


def format_event(event: Event) -> str | None:
    """Rich-markup line for an event, or None for events with nothing to show."""
    if isinstance(event, IterationStart):
        return f"\n[bold]\\[loop] iteration {event.iteration}/{event.max_iterations}[/bold]"
    if isinstance(event, StoryStarted):
        return f"[cyan]\\[loop] working on {escape(event.story_id)}: {escape(event.title)}[/cyan]"
    if isinstance(event, QAPhaseStarted):
        return f"[magenta]\\[loop] all stories pass, running QA {escape(event.phase)}[/magenta]"
    if isinstance(event, ToolUse):
        detail = f" {escape(event.detail)}" if event.detail else ""
        return f"  [dim]→ {escape(event.name)}{detail}[/dim]"
    if isinstance(event, AgentText):
        return escape(event.text)
    if isinstance(event, InvocationDone):
        seconds = event.duration_ms / 1000
        return f"  [green]✓ Done ({event.num_turns} turns, {seconds:.0f}s)[/green]"
    if isinstance(event, UsageLimitWait):
        return f"[yellow]\\[loop] usage limit reached, waiting {event.wait_seconds:.0f}s until {escape(event.reset_at)}[/yellow]"
    if isinstance(event, LogMessage):
        style = "red" if event.level == "error" else "dim"
        return f"[{style}]{escape(event.message)}[/{style}]"
    return None


class PlainTextHandler:
    """EventHandler that prints each event as a line of text."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console(stderr=True, highlight=False)

    def handle(self, event: Event) -> None:
        line = format_event(event)
        if line is not None:
            self.console.print(line)
