from ralph.agents.base import (
    MODE_QA_FIX,
    MODE_QA_VERIFICATION,
    MODE_REBASE,
    MODE_STORY,
    AgentError,
    AgentInvoker,
    InvokeRequest,
    UsageLimitError,
)
from ralph.agents.claude import ClaudeAgent

__all__ = [
    "MODE_QA_FIX",
    "MODE_QA_VERIFICATION",
    "MODE_REBASE",
    "MODE_STORY",
    "AgentError",
    "AgentInvoker",
    "InvokeRequest",
    "UsageLimitError",
    "ClaudeAgent",
]
