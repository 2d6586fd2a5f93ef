"""Tests for concurrent agent dispatch."""

import asyncio
import time

import pytest

from conftest import agent_output
from pr_review_mcp.exceptions import AgentTransportError
from pr_review_mcp.models import AgentOutcome
from pr_review_mcp.orchestrator import AgentOrchestrator
from pr_review_mcp.parser import ResponseParser
from pr_review_mcp.prompts import REVIEWER_AGENTS, build_agent_prompt


def agent_from_prompt(prompt: str) -> str:
    """Prompts start with '@<agent>,'."""
    return prompt.split(",", 1)[0].lstrip("@")


def make_runner(behaviors: dict, log: list | None = None):
    """Runner whose behavior per agent is (delay, result-or-exception)."""

    async def runner(prompt, workdir):
        agent = agent_from_prompt(prompt)
        delay, outcome = behaviors[agent]
        if log is not None:
            log.append(("start", agent))
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            if log is not None:
                log.append(("cancelled", agent))
            raise
        if log is not None:
            log.append(("end", agent))
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    return runner


def all_succeed(delay: float = 0.01) -> dict:
    return {a: (delay, agent_output(a, score=80)) for a in REVIEWER_AGENTS}


class TestAgentOrchestrator:
    """Test dispatch, deadlines and failure isolation."""

    def test_all_agents_succeed(self, pr_context, tmp_path):
        orchestrator = AgentOrchestrator(make_runner(all_succeed()), timeout=5)

        outcomes = orchestrator.run_sync(pr_context, tmp_path)

        assert [o.agent for o in outcomes] == list(REVIEWER_AGENTS)
        assert all(o.state == "succeeded" for o in outcomes)
        assert all(o.result.score == 80 for o in outcomes)
        assert all(o.elapsed >= 0 for o in outcomes)

    def test_second_task_times_out(self, pr_context, tmp_path):
        """A timeout in task #2 leaves the other three outcomes intact."""
        behaviors = all_succeed()
        behaviors["architecture-reviewer"] = (30, agent_output("architecture-reviewer", score=50))
        log = []
        orchestrator = AgentOrchestrator(make_runner(behaviors, log), timeout=0.2)

        started = time.monotonic()
        outcomes = orchestrator.run_sync(pr_context, tmp_path)
        elapsed = time.monotonic() - started

        assert len(outcomes) == 4
        assert [o.agent for o in outcomes] == list(REVIEWER_AGENTS)
        assert [o.state for o in outcomes] == ["succeeded", "timed_out", "succeeded", "succeeded"]
        assert outcomes[1].error == "Review timed out after 0.2s"
        assert outcomes[1].result is None
        assert ("cancelled", "architecture-reviewer") in log
        assert elapsed < 5

    def test_order_follows_request_not_completion(self, pr_context, tmp_path):
        delays = [0.2, 0.15, 0.1, 0.01]
        behaviors = {
            a: (d, agent_output(a, score=60 + i))
            for i, (a, d) in enumerate(zip(REVIEWER_AGENTS, delays))
        }
        log = []
        orchestrator = AgentOrchestrator(make_runner(behaviors, log), timeout=5)

        outcomes = orchestrator.run_sync(pr_context, tmp_path)

        finished = [agent for event, agent in log if event == "end"]
        assert finished == list(reversed(REVIEWER_AGENTS))
        assert [o.agent for o in outcomes] == list(REVIEWER_AGENTS)
        assert [o.result.score for o in outcomes] == [60, 61, 62, 63]

    def test_tasks_run_concurrently(self, pr_context, tmp_path):
        log = []
        orchestrator = AgentOrchestrator(make_runner(all_succeed(0.05), log), timeout=5)

        orchestrator.run_sync(pr_context, tmp_path)

        # Every task starts before any finishes
        assert [event for event, _ in log[:4]] == ["start"] * 4

    def test_transport_error_is_isolated(self, pr_context, tmp_path):
        behaviors = all_succeed()
        behaviors["security-reviewer"] = (0, AgentTransportError("Reviewer exited with code 1: boom"))
        orchestrator = AgentOrchestrator(make_runner(behaviors), timeout=5)

        outcomes = orchestrator.run_sync(pr_context, tmp_path)

        assert outcomes[0].state == "failed"
        assert "boom" in outcomes[0].error
        assert [o.state for o in outcomes[1:]] == ["succeeded"] * 3

    def test_unexpected_exception_is_isolated(self, pr_context, tmp_path):
        behaviors = all_succeed()
        behaviors["ux-reviewer"] = (0, KeyError("missing"))
        orchestrator = AgentOrchestrator(make_runner(behaviors), timeout=5)

        outcomes = orchestrator.run_sync(pr_context, tmp_path)

        assert outcomes[3].state == "failed"
        assert outcomes[3].error.startswith("KeyError")

    def test_unparseable_output_fails_with_raw_text(self, pr_context, tmp_path):
        behaviors = all_succeed()
        behaviors["performance-reviewer"] = (0, "Looks fine to me, no JSON today.")
        orchestrator = AgentOrchestrator(make_runner(behaviors), timeout=5)

        outcomes = orchestrator.run_sync(pr_context, tmp_path)

        assert outcomes[2].state == "failed"
        assert outcomes[2].error == "No JSON found in output"
        assert outcomes[2].output == "Looks fine to me, no JSON today."

    def test_custom_agent_subset(self, pr_context, tmp_path):
        orchestrator = AgentOrchestrator(make_runner(all_succeed()), timeout=5)

        outcomes = orchestrator.run_sync(pr_context, tmp_path, agents=["ux-reviewer", "security-reviewer"])

        assert [o.agent for o in outcomes] == ["ux-reviewer", "security-reviewer"]

    def test_duplicate_agents_rejected(self, pr_context, tmp_path):
        orchestrator = AgentOrchestrator(make_runner(all_succeed()), timeout=5)

        with pytest.raises(ValueError):
            orchestrator.run_sync(pr_context, tmp_path, agents=["ux-reviewer", "ux-reviewer"])

    def test_runner_receives_workdir(self, pr_context, tmp_path):
        seen = []

        async def runner(prompt, workdir):
            seen.append(workdir)
            return agent_output(agent_from_prompt(prompt), score=90)

        AgentOrchestrator(runner, timeout=5).run_sync(pr_context, tmp_path)

        assert seen == [tmp_path] * 4


class TestAgentPrompt:
    """Test prompt construction."""

    def test_prompt_mentions_agent_and_pr(self, pr_context, tmp_path):
        prompt = build_agent_prompt("security-reviewer", pr_context, tmp_path)

        assert prompt.startswith("@security-reviewer,")
        assert "PR #42: Add caching layer" in prompt
        assert "feature/cache -> main" in prompt
        assert str(tmp_path) in prompt
        assert "```json" in prompt
        assert '"agent": "security-reviewer"' in prompt

    def test_prompt_without_description(self, pr_context, tmp_path):
        from dataclasses import replace

        prompt = build_agent_prompt("ux-reviewer", replace(pr_context, body=""), tmp_path)

        assert "No description provided" in prompt


class TestParseIsolation:
    """Bad agent output never breaks the join."""

    def test_infinite_line_payload_still_settles_all(self, pr_context, tmp_path):
        behaviors = all_succeed()
        behaviors["ux-reviewer"] = (
            0, '```json\n{"overall_score": 70, "issues_found": [{"description": "d", "line": Infinity}]}\n```',
        )
        orchestrator = AgentOrchestrator(make_runner(behaviors), timeout=5)

        outcomes = orchestrator.run_sync(pr_context, tmp_path)

        assert len(outcomes) == 4
        assert [o.state for o in outcomes] == ["succeeded"] * 4
        assert outcomes[3].result.issues[0].line is None

    def test_parser_exception_becomes_failed_outcome(self, pr_context, tmp_path):
        class ExplodingParser(ResponseParser):
            def parse(self, agent, text):
                if agent == "architecture-reviewer":
                    raise OverflowError("cannot convert float infinity to integer")
                return super().parse(agent, text)

        orchestrator = AgentOrchestrator(make_runner(all_succeed()), timeout=5, parser=ExplodingParser())

        outcomes = orchestrator.run_sync(pr_context, tmp_path)

        assert [o.state for o in outcomes] == ["succeeded", "failed", "succeeded", "succeeded"]
        assert outcomes[1].error.startswith("OverflowError")
        assert outcomes[1].output == agent_output("architecture-reviewer", score=80)


class TestOutcomeState:
    """Outcomes only ever carry a terminal state."""

    def test_non_terminal_state_rejected(self):
        with pytest.raises(ValueError, match="non-terminal state: dispatched"):
            AgentOutcome(agent="ux-reviewer", state="dispatched")

    def test_terminal_states_accepted(self):
        for state in ("succeeded", "failed", "timed_out"):
            assert AgentOutcome(agent="ux-reviewer", state=state).state == state
