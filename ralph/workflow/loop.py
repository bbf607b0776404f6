"""
The ralph loop.

Each iteration re-reads the PRD from disk and decides one action:

    complete          -> stop (once the work tree is clean)
    stories pending   -> implement the next story
    all stories pass  -> QA verification, then QA fix for what still fails

The agent mutates the PRD between iterations; the engine never caches it.
Every action counts against a single iteration budget.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from ralph import git
from ralph.agents.base import (
    MODE_QA_FIX,
    MODE_QA_VERIFICATION,
    MODE_STORY,
    AgentError,
    AgentInvoker,
    InvokeRequest,
    UsageLimitError,
)
from ralph.events.models import (
    EventHandler,
    IterationStart,
    LogMessage,
    PRDRefresh,
    QAPhaseStarted,
    StoryStarted,
    UsageLimitWait,
    emit,
)
from ralph.lib import prd as prd_store
from ralph.lib.clock import Clock, SystemClock
from ralph.lib.constants import (
    COMPLETION_SENTINEL,
    DEFAULT_MAX_ITERATIONS,
    ITERATION_DELAY_SECONDS,
    RALPH_DIR,
    USAGE_LIMIT_FALLBACK_WAIT_SECONDS,
)
from ralph.lib.progress import ensure_progress_file
from ralph.lib.prompts import bullet_list, render_prompt

logger = logging.getLogger(__name__)


class LoopError(Exception):
    pass


class MaxIterationsReached(LoopError):
    def __init__(self, max_iterations: int):
        self.max_iterations = max_iterations
        super().__init__(f"max iterations ({max_iterations}) reached without completing all stories")


class LoopCancelled(Exception):
    """The cancel token fired. A terminal outcome, not a failure."""
    pass


@dataclass
class LoopConfig:
    work_dir: Path
    prd_path: Path
    progress_path: Path
    quality_checks: list[str] = field(default_factory=list)
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    prompts_dir: Path | None = None

    @property
    def completion_path(self) -> Path:
        return self.work_dir / RALPH_DIR / COMPLETION_SENTINEL


def git_worktree_clean(work_dir: Path) -> bool:
    """True when there is nothing left to commit. Unknown status counts as dirty."""
    try:
        dirty = git.has_uncommitted_changes(work_dir)
    except git.GitError as e:
        logger.warning(f"[loop] failed to check git status: {e}, continuing loop")
        return False
    if dirty:
        logger.warning("[loop] uncommitted changes detected, continuing loop to allow commit")
    return not dirty


def _format_failed_tests(tests: list[prd_store.IntegrationTest]) -> str:
    blocks = []
    for t in tests:
        lines = [f"### {t.id}", t.description]
        if t.steps:
            lines.append("Steps:")
            lines.extend(f"{i}. {step}" for i, step in enumerate(t.steps, 1))
        lines.append(f"Failure: {t.failure or '(no failure recorded)'}")
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class LoopEngine:
    """Drives the agent through a PRD until it is complete or the budget runs out.

    Collaborators are injected: the agent, a clock for delays and usage-limit
    waits, an event sink, and the clean-tree check used before declaring success.
    """

    def __init__(
        self,
        agent: AgentInvoker,
        clock: Clock | None = None,
        event_handler: EventHandler | None = None,
        worktree_clean: Callable[[Path], bool] = git_worktree_clean,
        iteration_delay: float = ITERATION_DELAY_SECONDS,
    ):
        self.agent = agent
        self.clock = clock or SystemClock()
        self.event_handler = event_handler
        self.worktree_clean = worktree_clean
        self.iteration_delay = iteration_delay

    def _emit(self, event) -> None:
        emit(self.event_handler, event)

    def run(self, config: LoopConfig, cancel: threading.Event) -> None:
        """
        Run until complete.

        Raises:
            MaxIterationsReached: Budget spent without completion
            LoopCancelled: cancel was set
            PRDError: The PRD could not be read at the top of an iteration
            PromptError: A prompt template could not be rendered
        """
        max_iterations = config.max_iterations if config.max_iterations > 0 else DEFAULT_MAX_ITERATIONS
        if ensure_progress_file(config.progress_path, self.clock.now()):
            logger.info(f"[loop] created progress log {config.progress_path}")

        for i in range(1, max_iterations + 1):
            if cancel.is_set():
                raise LoopCancelled()

            self._emit(IterationStart(iteration=i, max_iterations=max_iterations))
            self._emit(PRDRefresh())
            current = prd_store.read_prd(config.prd_path)

            if prd_store.is_complete(current):
                if self._finish(config, "all stories and integration tests pass"):
                    return
            elif prd_store.needs_qa(current):
                if self._qa_cycle(config, cancel):
                    return
            else:
                if self._story_phase(config, current, cancel):
                    return

            if i < max_iterations and self.clock.sleep(self.iteration_delay, cancel):
                raise LoopCancelled()

        message = f"max iterations ({max_iterations}) reached without completing all stories"
        self._emit(LogMessage(message=message, level="error"))
        raise MaxIterationsReached(max_iterations)

    def _finish(self, config: LoopConfig, reason: str) -> bool:
        """Succeed if the tree is clean; otherwise keep looping so the agent can commit."""
        if not self.worktree_clean(config.work_dir):
            return False
        logger.info(f"[loop] {reason}, done")
        self._emit(LogMessage(message=f"loop complete: {reason}"))
        return True

    def _qa_cycle(self, config: LoopConfig, cancel: threading.Event) -> bool:
        """Verify integration tests, then fix whatever still fails. True when complete."""
        self._emit(QAPhaseStarted(phase="verification"))
        prompt = render_prompt(
            "qa_verification",
            config.prompts_dir,
            prd_path=config.prd_path,
            progress_path=config.progress_path,
            quality_checks=bullet_list(config.quality_checks),
        )
        self._invoke_logged(config, prompt, MODE_QA_VERIFICATION, cancel)
        self._emit(PRDRefresh())

        try:
            verified = prd_store.read_prd(config.prd_path)
        except prd_store.PRDError as e:
            logger.warning(f"[loop] failed to read PRD after QA: {e}, continuing loop")
            return False

        if prd_store.is_complete(verified):
            return self._finish(config, "QA verification complete: all integration tests pass")

        failed = prd_store.failed_integration_tests(verified)
        if failed:
            self._emit(QAPhaseStarted(phase="fix"))
            prompt = render_prompt(
                "qa_fix",
                config.prompts_dir,
                prd_path=config.prd_path,
                progress_path=config.progress_path,
                quality_checks=bullet_list(config.quality_checks),
                failed_tests=_format_failed_tests(failed),
            )
            self._invoke_logged(config, prompt, MODE_QA_FIX, cancel)
            self._emit(PRDRefresh())
        return False

    def _story_phase(self, config: LoopConfig, current: prd_store.PRD, cancel: threading.Event) -> bool:
        """Implement the next story. True only when the agent signalled completion and the PRD agrees."""
        story = prd_store.next_unfinished(current)
        self._emit(StoryStarted(story_id=story.id, title=story.title))

        prompt = render_prompt(
            "loop_iteration",
            config.prompts_dir,
            story_id=story.id,
            story_title=story.title,
            story_description=story.description,
            acceptance_criteria=bullet_list(story.acceptance_criteria),
            quality_checks=bullet_list(config.quality_checks),
            progress_path=config.progress_path,
            prd_path=config.prd_path,
            completion_path=config.completion_path,
        )
        self._invoke_logged(config, prompt, MODE_STORY, cancel, label=story.id)
        self._emit(PRDRefresh())

        if not self._consume_completion_signal(config):
            return False

        logger.info("[loop] agent signalled completion, verifying PRD state")
        try:
            verified = prd_store.read_prd(config.prd_path)
        except prd_store.PRDError as e:
            logger.warning(f"[loop] failed to verify PRD: {e}, continuing loop")
            return False
        if not prd_store.is_complete(verified):
            logger.info("[loop] completion signalled but PRD is not complete, continuing loop")
            return False
        return self._finish(config, "verified: all stories and integration tests pass")

    def _consume_completion_signal(self, config: LoopConfig) -> bool:
        path = config.completion_path
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"[loop] could not remove {path}: {e}")
        return True

    def _invoke_logged(self, config: LoopConfig, prompt: str, mode: str,
                       cancel: threading.Event, label: str = "") -> str:
        """Invoke the agent. Failures are logged; the next iteration re-reads the PRD anyway."""
        request = InvokeRequest(
            prompt=prompt,
            workdir=config.work_dir,
            mode=mode,
            event_handler=self.event_handler,
        )
        try:
            return self._invoke_with_usage_limit_wait(request, cancel)
        except AgentError as e:
            logger.warning(f"[loop] agent returned error on {label or mode}: {e}")
            self._emit(LogMessage(message=f"agent error on {label or mode}: {e}", level="error"))
            return ""

    def _invoke_with_usage_limit_wait(self, request: InvokeRequest, cancel: threading.Event) -> str:
        while True:
            try:
                return self.agent.invoke(request)
            except UsageLimitError as e:
                wait = (e.reset_at - self.clock.now()).total_seconds()
                if wait <= 0:
                    wait = USAGE_LIMIT_FALLBACK_WAIT_SECONDS
                self._emit(UsageLimitWait(wait_seconds=round(wait), reset_at=e.reset_at.isoformat()))
                logger.info(f"[loop] usage limit reached, waiting {wait:.0f}s until {e.reset_at.isoformat()}")
                if self.clock.sleep(wait, cancel):
                    raise LoopCancelled() from None
