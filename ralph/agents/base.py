"""Agent invocation port."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Protocol

from ralph.events.models import EventHandler

MODE_STORY = "story"
MODE_QA_VERIFICATION = "qa_verification"
MODE_QA_FIX = "qa_fix"
MODE_REBASE = "rebase"


class AgentError(Exception):
    """The agent process failed to run or exited non-zero."""

    def __init__(self, message: str, exit_code: int | None = None, output: str = ""):
        self.exit_code = exit_code
        self.output = output
        super().__init__(message)


class UsageLimitError(AgentError):
    """The agent's subscription usage cap was hit; retry after reset_at."""

    def __init__(self, reset_at: datetime, message: str):
        self.reset_at = reset_at
        super().__init__(f"usage limit reached (resets {reset_at.isoformat()}): {message}")


@dataclass
class InvokeRequest:
    prompt: str
    workdir: Path
    mode: str = MODE_STORY
    interactive: bool = False
    max_turns: int = 0
    event_handler: EventHandler | None = None


class AgentInvoker(Protocol):
    def invoke(self, request: InvokeRequest) -> str:
        """Run the agent to completion and return its final text output.

        Raises:
            AgentError: On process failure
            UsageLimitError: When the usage cap was hit
        """
        ...
