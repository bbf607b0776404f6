"""Tests for ralph.workflow.loop module."""

import threading
from datetime import timedelta

import pytest

from conftest import NOW, itest, story, update_prd_json, write_prd_json
from ralph.agents.base import (
    MODE_QA_FIX,
    MODE_QA_VERIFICATION,
    MODE_STORY,
    AgentError,
    UsageLimitError,
)
from ralph.events.models import (
    IterationStart,
    LogMessage,
    PRDRefresh,
    QAPhaseStarted,
    StoryStarted,
    UsageLimitWait,
)
from ralph.lib.prd import PRDError
from ralph.workflow.loop import (
    LoopCancelled,
    LoopConfig,
    LoopEngine,
    MaxIterationsReached,
)


class ScriptedAgent:
    """Runs one scripted action per invocation; extra invocations do nothing."""

    def __init__(self, *actions):
        self.actions = list(actions)
        self.requests = []

    def invoke(self, request):
        self.requests.append(request)
        if self.actions:
            action = self.actions.pop(0)
            if action is not None:
                action(request)
        return ""

    @property
    def modes(self):
        return [r.mode for r in self.requests]


def raise_(exc):
    def action(request):
        raise exc
    return action


@pytest.fixture
def config(tmp_path):
    work_dir = tmp_path / "tree"
    work_dir.mkdir()
    return LoopConfig(
        work_dir=work_dir,
        prd_path=tmp_path / "prd.json",
        progress_path=tmp_path / "progress.txt",
        quality_checks=["make test"],
        max_iterations=5,
    )


def make_engine(agent, clock, handler, clean=lambda work_dir: True):
    return LoopEngine(agent, clock=clock, event_handler=handler, worktree_clean=clean)


class TestCompletion:

    def test_complete_prd_costs_no_invocations(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)], [itest("IT-1", passes=True)])
        agent = ScriptedAgent()

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert agent.requests == []
        assert len(handler.of(IterationStart)) == 1

    def test_no_integration_tests_is_vacuously_complete(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)], [])
        agent = ScriptedAgent()

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert agent.requests == []

    def test_stories_done_in_priority_order(self, config, clock, handler):
        write_prd_json(config.prd_path, [
            story("US-2", priority=2),
            story("US-1", priority=1),
        ])
        agent = ScriptedAgent(
            lambda r: update_prd_json(config.prd_path, stories={"US-1": True}),
            lambda r: update_prd_json(config.prd_path, stories={"US-2": True}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert [e.story_id for e in handler.of(StoryStarted)] == ["US-1", "US-2"]
        assert agent.modes == [MODE_STORY, MODE_STORY]
        assert len(handler.of(IterationStart)) == 3

    def test_priority_ties_keep_file_order(self, config, clock, handler):
        write_prd_json(config.prd_path, [
            story("US-B", priority=1),
            story("US-A", priority=1),
        ])
        agent = ScriptedAgent()
        config.max_iterations = 1

        with pytest.raises(MaxIterationsReached):
            make_engine(agent, clock, handler).run(config, threading.Event())

        assert handler.of(StoryStarted)[0].story_id == "US-B"

    def test_dirty_tree_delays_success(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)])
        results = iter([False, True])

        make_engine(ScriptedAgent(), clock, handler, clean=lambda work_dir: next(results)).run(
            config, threading.Event()
        )

        assert len(handler.of(IterationStart)) == 2

    def test_prompt_carries_story_and_checks(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", title="Add login")])
        agent = ScriptedAgent(lambda r: update_prd_json(config.prd_path, stories={"US-1": True}))

        make_engine(agent, clock, handler).run(config, threading.Event())

        prompt = agent.requests[0].prompt
        assert "US-1" in prompt
        assert "Add login" in prompt
        assert "make test" in prompt
        assert str(config.completion_path) in prompt
        assert agent.requests[0].workdir == config.work_dir

    def test_emits_prd_refresh_each_iteration(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        agent = ScriptedAgent(lambda r: update_prd_json(config.prd_path, stories={"US-1": True}))

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert len(handler.of(PRDRefresh)) >= 2


class TestBudget:

    def test_budget_exhausted(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        config.max_iterations = 3
        agent = ScriptedAgent()

        with pytest.raises(MaxIterationsReached) as exc:
            make_engine(agent, clock, handler).run(config, threading.Event())

        assert exc.value.max_iterations == 3
        assert "max iterations (3)" in str(exc.value)
        assert len(agent.requests) == 3
        errors = [e for e in handler.of(LogMessage) if e.level == "error"]
        assert errors

    def test_delay_between_iterations_only(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        config.max_iterations = 3

        with pytest.raises(MaxIterationsReached):
            make_engine(ScriptedAgent(), clock, handler).run(config, threading.Event())

        assert clock.sleeps == [2.0, 2.0]

    def test_zero_budget_uses_default(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)])
        config.max_iterations = 0

        make_engine(ScriptedAgent(), clock, handler).run(config, threading.Event())

        assert handler.of(IterationStart)[0].max_iterations == 20


class TestQAPhase:

    def test_verification_success_finishes_same_iteration(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)], [itest("IT-1")])
        agent = ScriptedAgent(
            lambda r: update_prd_json(config.prd_path, tests={"IT-1": (True, "")}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert agent.modes == [MODE_QA_VERIFICATION]
        assert [e.phase for e in handler.of(QAPhaseStarted)] == ["verification"]
        assert len(handler.of(IterationStart)) == 1

    def test_fix_receives_failures(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)], [itest("IT-1"), itest("IT-2")])
        agent = ScriptedAgent(
            lambda r: update_prd_json(config.prd_path, tests={
                "IT-1": (True, ""),
                "IT-2": (False, "login button missing"),
            }),
            lambda r: update_prd_json(config.prd_path, tests={"IT-2": (True, "")}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert agent.modes == [MODE_QA_VERIFICATION, MODE_QA_FIX]
        fix_prompt = agent.requests[1].prompt
        assert "IT-2" in fix_prompt
        assert "login button missing" in fix_prompt
        assert "IT-1" not in fix_prompt
        assert [e.phase for e in handler.of(QAPhaseStarted)] == ["verification", "fix"]

    def test_one_test_fixed_per_iteration(self, config, clock, handler):
        write_prd_json(
            config.prd_path,
            [story("US-1", passes=True)],
            [itest("IT-1", failure="timeout"), itest("IT-2", failure="500")],
        )
        agent = ScriptedAgent(
            None,
            lambda r: update_prd_json(config.prd_path, tests={"IT-1": (True, "")}),
            None,
            lambda r: update_prd_json(config.prd_path, tests={"IT-2": (True, "")}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert agent.modes.count(MODE_QA_FIX) == 2
        assert agent.modes == [MODE_QA_VERIFICATION, MODE_QA_FIX] * 2
        assert "IT-1" in agent.requests[1].prompt
        assert "IT-1" not in agent.requests[3].prompt
        assert "IT-2" in agent.requests[3].prompt
        assert [e.phase for e in handler.of(QAPhaseStarted)] == ["verification", "fix"] * 2

    def test_qa_shares_the_iteration_budget(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)], [itest("IT-1")])
        config.max_iterations = 2
        agent = ScriptedAgent()

        with pytest.raises(MaxIterationsReached):
            make_engine(agent, clock, handler).run(config, threading.Event())

        assert agent.modes == [MODE_QA_VERIFICATION, MODE_QA_FIX] * 2


class TestCompletionSignal:

    def test_signal_with_complete_prd_finishes_immediately(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])

        def finish(request):
            update_prd_json(config.prd_path, stories={"US-1": True})
            config.completion_path.parent.mkdir(parents=True, exist_ok=True)
            config.completion_path.write_text("")

        make_engine(ScriptedAgent(finish), clock, handler).run(config, threading.Event())

        assert len(handler.of(IterationStart)) == 1
        assert not config.completion_path.exists()

    def test_signal_ignored_while_tests_fail(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")], [itest("IT-1")])

        def premature(request):
            update_prd_json(config.prd_path, stories={"US-1": True})
            config.completion_path.parent.mkdir(parents=True, exist_ok=True)
            config.completion_path.write_text("")

        agent = ScriptedAgent(
            premature,
            lambda r: update_prd_json(config.prd_path, tests={"IT-1": (True, "")}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert agent.modes == [MODE_STORY, MODE_QA_VERIFICATION]
        assert not config.completion_path.exists()

    def test_agent_text_is_not_a_signal(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        config.max_iterations = 1

        class ChattyAgent:
            def invoke(self, request):
                return "<promise>COMPLETE</promise>"

        with pytest.raises(MaxIterationsReached):
            make_engine(ChattyAgent(), clock, handler).run(config, threading.Event())


class TestAgentFailures:

    def test_agent_error_is_not_fatal(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        agent = ScriptedAgent(
            raise_(AgentError("claude exited with code 1", exit_code=1)),
            lambda r: update_prd_json(config.prd_path, stories={"US-1": True}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert len(agent.requests) == 2
        assert any("claude exited" in e.message for e in handler.of(LogMessage))

    def test_usage_limit_waits_until_reset_then_retries(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        agent = ScriptedAgent(
            raise_(UsageLimitError(NOW + timedelta(seconds=90), "limit")),
            lambda r: update_prd_json(config.prd_path, stories={"US-1": True}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        waits = handler.of(UsageLimitWait)
        assert len(waits) == 1
        assert waits[0].wait_seconds == 90
        assert 90 in clock.sleeps
        # The retry happens within the same iteration.
        assert len(handler.of(StoryStarted)) == 1
        assert agent.modes == [MODE_STORY, MODE_STORY]

    def test_usage_limit_in_the_past_uses_fallback(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        agent = ScriptedAgent(
            raise_(UsageLimitError(NOW - timedelta(minutes=5), "limit")),
            lambda r: update_prd_json(config.prd_path, stories={"US-1": True}),
        )

        make_engine(agent, clock, handler).run(config, threading.Event())

        assert handler.of(UsageLimitWait)[0].wait_seconds == 30

    def test_cancel_during_usage_wait(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        cancel = threading.Event()

        def limited(request):
            cancel.set()
            raise UsageLimitError(NOW + timedelta(hours=1), "limit")

        with pytest.raises(LoopCancelled):
            make_engine(ScriptedAgent(limited), clock, handler).run(config, cancel)

    def test_unreadable_prd_propagates(self, config, clock, handler):
        config.prd_path.write_text("{not json")

        with pytest.raises(PRDError):
            make_engine(ScriptedAgent(), clock, handler).run(config, threading.Event())


class TestCancellation:

    def test_cancelled_before_start(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        cancel = threading.Event()
        cancel.set()
        agent = ScriptedAgent()

        with pytest.raises(LoopCancelled):
            make_engine(agent, clock, handler).run(config, cancel)

        assert agent.requests == []

    def test_cancel_during_invocation_stops_at_delay(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1")])
        cancel = threading.Event()
        agent = ScriptedAgent(lambda r: cancel.set())

        with pytest.raises(LoopCancelled):
            make_engine(agent, clock, handler).run(config, cancel)

        assert len(agent.requests) == 1


class TestProgressLog:

    def test_created_with_header(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)])

        make_engine(ScriptedAgent(), clock, handler).run(config, threading.Event())

        content = config.progress_path.read_text()
        assert content.startswith("# Ralph Progress Log\n")
        assert "## Codebase Patterns" in content

    def test_existing_log_untouched(self, config, clock, handler):
        write_prd_json(config.prd_path, [story("US-1", passes=True)])
        config.progress_path.write_text("my notes\n")

        make_engine(ScriptedAgent(), clock, handler).run(config, threading.Event())

        assert config.progress_path.read_text() == "my notes\n"
