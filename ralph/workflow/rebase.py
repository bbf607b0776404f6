"""Rebase conflict resolution state machine using transitions library.

Rebases a feature branch onto a target and, whenever git stops on
conflicts, hands the conflict to the agent with enough context to resolve
it, then continues. Loops until the rebase finishes or is abandoned.

Usage:
    from ralph.workflow.rebase import RebaseResolver, RebaseContext

    resolver = RebaseResolver(agent, GitRebaseOps(tree))
    resolver.run(RebaseContext(...))  # "done" or "aborted"
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from transitions import Machine

from ralph import git
from ralph.agents.base import MODE_REBASE, AgentError, AgentInvoker, InvokeRequest
from ralph.events.models import EventHandler, LogMessage, emit
from ralph.lib import prd as prd_store
from ralph.lib.constants import REBASE_MAX_ROUNDS, REBASE_MAX_TURNS
from ralph.lib.output import tail_chars, truncate_output
from ralph.lib.progress import read_progress_excerpt
from ralph.lib.prompts import bullet_list, render_prompt

logger = logging.getLogger(__name__)

PROGRESS_EXCERPT_CHARS = 4000

STATES = [
    "started",
    "conflicted",
    "resolving",
    "continuing",
    "done",
    "aborted",
]

TRANSITIONS = [
    # Initial rebase attempt
    {"trigger": "rebased_cleanly", "source": "started", "dest": "done"},
    {"trigger": "hit_conflicts", "source": "started", "dest": "conflicted"},

    # Agent session
    {"trigger": "invoke_agent", "source": "conflicted", "dest": "resolving"},
    {"trigger": "agent_finished", "source": "resolving", "dest": "continuing"},

    # After `rebase --continue`
    {"trigger": "hit_conflicts", "source": "continuing", "dest": "conflicted"},
    {"trigger": "rebase_finished", "source": ["resolving", "continuing"], "dest": "done"},

    # Abandoned by the agent, by git, or by the round limit
    {"trigger": "rebase_aborted", "source": ["started", "conflicted", "resolving", "continuing"], "dest": "aborted"},
]


class RebaseError(Exception):
    pass


class GitRebaseOps:
    """The git operations the resolver needs, bound to one worktree."""

    def __init__(self, worktree: Path):
        self.worktree = worktree

    def head(self) -> str | None:
        return git.get_commit_sha(self.worktree, "HEAD")

    def start(self, onto: str) -> git.GitResult:
        return git.start_rebase(self.worktree, onto)

    def continue_rebase(self) -> git.GitResult:
        return git.continue_rebase(self.worktree)

    def abort(self) -> git.GitResult:
        return git.abort_rebase(self.worktree)

    def in_progress(self) -> bool:
        return git.has_rebase_in_progress(self.worktree)

    def conflicted_files(self) -> list[str]:
        return git.get_conflicted_files(self.worktree)

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        return git.is_ancestor(self.worktree, ancestor, descendant)

    def merge_base(self, ref1: str, ref2: str) -> str | None:
        return git.get_merge_base(self.worktree, ref1, ref2)

    def diff(self, ref_range: str) -> str:
        return git.get_range_diff(self.worktree, ref_range)


@dataclass
class RebaseContext:
    work_dir: Path
    branch: str
    onto: str
    prd_path: Path
    progress_path: Path
    prompts_dir: Path | None = None


def format_stories(prd: prd_store.PRD) -> str:
    if not prd.user_stories:
        return "(no stories)"
    return "\n".join(
        f"- {s.id}: {s.title} [{'done' if s.passes else 'pending'}]"
        for s in prd.user_stories
    )


class RebaseResolver:
    """State machine driving a rebase to completion with the agent's help."""

    def __init__(
        self,
        agent: AgentInvoker,
        ops: GitRebaseOps,
        event_handler: EventHandler | None = None,
        max_rounds: int = REBASE_MAX_ROUNDS,
        max_turns: int = REBASE_MAX_TURNS,
        on_transition: Callable[[str, str, str], None] | None = None,
    ):
        self.agent = agent
        self.ops = ops
        self.event_handler = event_handler
        self.max_rounds = max_rounds
        self.max_turns = max_turns
        self.on_transition = on_transition
        self.rounds = 0

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial="started",
            auto_transitions=False,
            send_event=True,
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name
        logger.info(f"[rebase] {from_state} -> {to_state} ({trigger})")
        emit(self.event_handler, LogMessage(message=f"[rebase] {from_state} -> {to_state}"))
        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

    def build_prompt(self, ctx: RebaseContext, conflict_files: list[str]) -> str:
        try:
            prd = prd_store.read_prd(ctx.prd_path)
            description, stories = prd.description, format_stories(prd)
        except prd_store.PRDError as e:
            logger.warning(f"[rebase] PRD unavailable for context: {e}")
            description, stories = "(PRD unavailable)", "(PRD unavailable)"

        progress = tail_chars(read_progress_excerpt(ctx.progress_path), PROGRESS_EXCERPT_CHARS)

        feature_diff = base_diff = ""
        merge_base = self.ops.merge_base(ctx.onto, ctx.branch)
        if merge_base:
            feature_diff = truncate_output(self.ops.diff(f"{merge_base}...{ctx.branch}"))
            base_diff = truncate_output(self.ops.diff(f"{merge_base}...{ctx.onto}"))

        return render_prompt(
            "rebase_conflict",
            ctx.prompts_dir,
            prd_description=description or "(no description)",
            stories=stories,
            progress=progress or "(no progress log)",
            feature_diff=feature_diff or "(no diff)",
            base_diff=base_diff or "(no diff)",
            conflict_files=bullet_list(conflict_files),
        )

    def _classify_finished(self, head_before: str | None, onto: str) -> None:
        """The agent ended the rebase itself. Decide done vs aborted from history."""
        head = self.ops.head()
        if head is not None and head != head_before and self.ops.is_ancestor(onto, "HEAD"):
            self.rebase_finished()
        elif head is not None and head == head_before:
            self.rebase_aborted()
        else:
            logger.warning("[rebase] rebase ended; outcome unclear from history, treating as done")
            self.rebase_finished()

    def run(self, ctx: RebaseContext) -> str:
        """
        Rebase ctx.branch onto ctx.onto, resolving conflicts with the agent.

        Returns:
            Final state: "done" or "aborted"

        Raises:
            RebaseError: Rebase could not start, or conflicts outlasted max_rounds
        """
        head_before = self.ops.head()

        result = self.ops.start(ctx.onto)
        if result.success:
            self.rebased_cleanly()
            return self.state
        if not self.ops.in_progress():
            self.rebase_aborted()
            raise RebaseError(f"rebase onto {ctx.onto} failed: {result.stderr.strip() or result.stdout.strip()}")
        self.hit_conflicts()

        while self.state == "conflicted":
            self.rounds += 1
            if self.rounds > self.max_rounds:
                self.ops.abort()
                self.rebase_aborted()
                raise RebaseError(f"conflicts still unresolved after {self.max_rounds} rounds; rebase aborted")

            files = self.ops.conflicted_files()
            logger.info(f"[rebase] round {self.rounds}: {len(files)} conflicted file(s)")
            prompt = self.build_prompt(ctx, files)

            self.invoke_agent()
            try:
                self.agent.invoke(InvokeRequest(
                    prompt=prompt,
                    workdir=ctx.work_dir,
                    mode=MODE_REBASE,
                    max_turns=self.max_turns,
                    event_handler=self.event_handler,
                ))
            except AgentError as e:
                logger.warning(f"[rebase] agent returned error: {e}")

            if not self.ops.in_progress():
                self._classify_finished(head_before, ctx.onto)
                break

            self.agent_finished()
            cont = self.ops.continue_rebase()
            if not self.ops.in_progress():
                if cont.success:
                    self.rebase_finished()
                else:
                    self.rebase_aborted()
                    raise RebaseError(f"rebase --continue failed: {cont.stderr.strip()}")
            else:
                self.hit_conflicts()

        return self.state
