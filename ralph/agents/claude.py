"""
Claude CLI integration.

Runs `claude --print --output-format stream-json` with the prompt on stdin and
turns the stream into ralph events while the agent works.
"""

import json
import logging
import os
import subprocess
from pathlib import Path

from ralph.agents.base import AgentError, InvokeRequest
from ralph.agents.usage import parse_usage_limit
from ralph.events.models import AgentText, EventHandler, InvocationDone, ToolUse, emit

logger = logging.getLogger(__name__)

BASH_DETAIL_MAX = 60


def _relative(path: str, workdir: Path) -> str:
    try:
        return os.path.relpath(path, workdir)
    except ValueError:
        return path


def tool_detail(name: str, tool_input: dict, workdir: Path) -> str:
    """Short human-readable detail for a tool call."""
    if name in ("Read", "Edit", "Write"):
        fp = tool_input.get("file_path")
        if isinstance(fp, str):
            return _relative(fp, workdir)
    elif name == "Bash":
        cmd = tool_input.get("command")
        if isinstance(cmd, str):
            if len(cmd) > BASH_DETAIL_MAX:
                cmd = cmd[:BASH_DETAIL_MAX - 3] + "..."
            return cmd
    elif name == "Grep":
        pattern = tool_input.get("pattern")
        if isinstance(pattern, str):
            detail = json.dumps(pattern)
            path = tool_input.get("path")
            if isinstance(path, str):
                detail += " in " + _relative(path, workdir)
            return detail
    elif name == "Glob":
        pattern = tool_input.get("pattern")
        if isinstance(pattern, str):
            return pattern
    elif name == "Task":
        desc = tool_input.get("description")
        if isinstance(desc, str):
            return desc
    return ""


def process_stream_line(line: str, workdir: Path, handler: EventHandler | None, state: dict) -> None:
    """Handle one stream-json line, updating state["result"/"num_turns"/"duration_ms"]."""
    try:
        ev = json.loads(line)
    except json.JSONDecodeError:
        return
    if not isinstance(ev, dict):
        return

    if ev.get("type") == "assistant":
        for content in (ev.get("message") or {}).get("content") or []:
            if content.get("type") == "tool_use":
                name = content.get("name", "")
                emit(handler, ToolUse(name=name, detail=tool_detail(name, content.get("input") or {}, workdir)))
            elif content.get("type") == "text" and content.get("text"):
                emit(handler, AgentText(text=content["text"]))
    elif ev.get("type") == "result":
        state["result"] = ev.get("result") or ""
        state["num_turns"] = ev.get("num_turns") or 0
        state["duration_ms"] = ev.get("duration_ms") or 0


class ClaudeAgent:
    """AgentInvoker backed by the claude CLI."""

    def __init__(self, command: str = "claude", verbose: bool = True):
        self.command = command
        self.verbose = verbose

    def build_args(self, request: InvokeRequest) -> list[str]:
        args = [self.command, "--dangerously-skip-permissions"]
        if not request.interactive:
            args += ["--print", "--output-format", "stream-json"]
            # stream-json requires --verbose in print mode
            args.append("--verbose")
        if request.max_turns > 0:
            args += ["--max-turns", str(request.max_turns)]
        if request.interactive and request.prompt:
            args += ["--system-prompt", request.prompt]
        return args

    def invoke(self, request: InvokeRequest) -> str:
        if request.interactive:
            return self._invoke_interactive(request)
        return self._invoke_streaming(request)

    def _invoke_interactive(self, request: InvokeRequest) -> str:
        result = subprocess.run(self.build_args(request), cwd=str(request.workdir))
        if result.returncode != 0:
            raise AgentError(f"claude exited with code {result.returncode}", exit_code=result.returncode)
        return ""

    def _invoke_streaming(self, request: InvokeRequest) -> str:
        args = self.build_args(request)
        logger.debug(f"Running {' '.join(args)} in {request.workdir}")
        try:
            proc = subprocess.Popen(
                args,
                cwd=str(request.workdir),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise AgentError(f"starting claude: {e}") from e

        try:
            proc.stdin.write(request.prompt)
            proc.stdin.close()
        except BrokenPipeError:
            pass

        state = {"result": "", "num_turns": 0, "duration_ms": 0}
        for line in proc.stdout:
            process_stream_line(line, request.workdir, request.event_handler, state)
        returncode = proc.wait()

        if state["num_turns"]:
            emit(request.event_handler, InvocationDone(
                num_turns=state["num_turns"],
                duration_ms=state["duration_ms"],
            ))

        if returncode != 0:
            raise AgentError(f"claude exited with code {returncode}", exit_code=returncode, output=state["result"])

        # The CLI exits 0 when the subscription cap is hit; detect it from the text.
        usage_error = parse_usage_limit(state["result"])
        if usage_error is not None:
            raise usage_error

        return state["result"]
