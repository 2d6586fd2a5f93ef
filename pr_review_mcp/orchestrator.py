"""Concurrent dispatch of the specialist review agents."""

import asyncio
import logging
import time
from pathlib import Path
from typing import Sequence

from .exceptions import AgentTimeoutError, AgentTransportError
from .llm import Runner
from .models import AgentOutcome, AgentTask, PullRequestContext
from .parser import ResponseParser
from .prompts import REVIEWER_AGENTS, build_agent_prompt

logger = logging.getLogger(__name__)

DEFAULT_TASK_TIMEOUT = 300


class AgentOrchestrator:
    """Runs one review task per agent concurrently and joins all outcomes.

    Each task has its own deadline. A timeout or failure in one task never
    cancels its siblings; ``run`` returns only after every task reached a
    terminal state, with outcomes in request order.
    """

    def __init__(
        self,
        runner: Runner,
        timeout: float = DEFAULT_TASK_TIMEOUT,
        parser: ResponseParser | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            runner: Async review capability ``(prompt, workdir) -> text``
            timeout: Per-task deadline in seconds
            parser: Response parser (defaults to ResponseParser())
        """
        self.runner = runner
        self.timeout = timeout
        self.parser = parser or ResponseParser()

    async def run(
        self,
        context: PullRequestContext,
        workdir: Path,
        agents: Sequence[str] = REVIEWER_AGENTS,
    ) -> list[AgentOutcome]:
        """Dispatch all agents and wait for every one to settle.

        Args:
            context: Pull request under review
            workdir: Read-only repository snapshot shared by all agents
            agents: Ordered, distinct agent identifiers

        Returns:
            One AgentOutcome per agent, aligned with ``agents``
        """
        if len(set(agents)) != len(agents):
            raise ValueError(f"Duplicate agent identifiers: {list(agents)}")

        tasks = [AgentTask(agent=a, context=context, workdir=Path(workdir)) for a in agents]

        logger.info(
            f"Starting parallel review of PR #{context.number} with {len(tasks)} agents"
        )

        # _run_task never raises, so gather acts as a settle-all join
        outcomes = await asyncio.gather(*(self._run_task(t) for t in tasks))

        succeeded = sum(1 for o in outcomes if o.success)
        logger.info(f"Agents settled for PR #{context.number}: {succeeded}/{len(outcomes)} succeeded")
        return list(outcomes)

    def run_sync(
        self,
        context: PullRequestContext,
        workdir: Path,
        agents: Sequence[str] = REVIEWER_AGENTS,
    ) -> list[AgentOutcome]:
        """Blocking wrapper around ``run``."""
        return asyncio.run(self.run(context, workdir, agents))

    async def _run_task(self, task: AgentTask) -> AgentOutcome:
        prompt = build_agent_prompt(task.agent, task.context, task.workdir)

        task.state = "dispatched"
        logger.info(f"Running {task.agent} for PR #{task.context.number}")
        started = time.monotonic()

        try:
            # wait_for cancels only this call on deadline
            output = await asyncio.wait_for(self.runner(prompt, task.workdir), timeout=self.timeout)
        except asyncio.TimeoutError:
            error = AgentTimeoutError(task.agent, self.timeout)
            return self._settle(task, "timed_out", started, error=str(error))
        except AgentTransportError as e:
            return self._settle(task, "failed", started, error=str(e))
        except Exception as e:
            logger.exception(f"{task.agent} raised unexpectedly")
            return self._settle(task, "failed", started, error=f"{type(e).__name__}: {e}")

        try:
            parsed = self.parser.parse(task.agent, output)
        except Exception as e:
            logger.exception(f"{task.agent} output could not be parsed")
            return self._settle(task, "failed", started, error=f"{type(e).__name__}: {e}", output=output)

        if not parsed.ok:
            return self._settle(task, "failed", started, error=parsed.error, output=output)

        return self._settle(task, "succeeded", started, result=parsed.result, output=output)

    def _settle(self, task: AgentTask, state: str, started: float, **fields) -> AgentOutcome:
        task.state = state
        elapsed = time.monotonic() - started

        if state == "succeeded":
            logger.info(f"{task.agent} completed successfully in {elapsed:.1f}s")
        else:
            logger.warning(f"{task.agent} {state.replace('_', ' ')} after {elapsed:.1f}s: {fields.get('error')}")

        return AgentOutcome(agent=task.agent, state=state, elapsed=elapsed, **fields)
