"""End-to-end review run: skip gate, agents, aggregation, fixes, publish."""

import asyncio
import logging
from typing import Sequence

from .aggregator import ReviewAggregator
from .config import ReviewConfig
from .exceptions import PublishError, ReviewError, SetupError
from .github import GitHubHost, context_from_payload
from .llm import make_runner
from .models import ChangedFileStat, PullRequestContext, ReviewRunResult
from .mutation import MutationPipeline
from .orchestrator import AgentOrchestrator
from .prompts import REVIEWER_AGENTS
from .reporter import ReportGenerator
from .skip_policy import SkipPolicyEngine, debug_info
from .workspace import RunWorkspace

logger = logging.getLogger(__name__)

REVIEW_ACTIONS = {"opened", "synchronize"}


def context_from_event(event: dict) -> PullRequestContext:
    """Map a ``pull_request`` webhook payload onto a PullRequestContext."""
    return context_from_payload(
        event["pull_request"],
        event["repository"],
        event.get("organization"),
    )


def should_review_event(event_type: str, event: dict) -> bool:
    """Return True for pull_request events that should start a review."""
    return event_type == "pull_request" and event.get("action") in REVIEW_ACTIONS


def is_manual_trigger(comment_body: str) -> bool:
    """Check whether a PR comment asks for a review (``@claude-bot review``)."""
    body = (comment_body or "").lower()
    return "@claude-bot" in body and "review" in body


def pull_request_for_event(event_type: str, event: dict, host: GitHubHost) -> PullRequestContext | None:
    """Resolve a webhook delivery to the pull request it asks to review.

    ``pull_request`` events carry the pull request directly. A newly created
    ``issue_comment`` on a pull request containing the manual trigger is
    resolved through the host, since the issue payload has no branch data.

    Args:
        event_type: Value of the ``X-GitHub-Event`` header
        event: Decoded webhook payload
        host: Source-control host used for comment-triggered lookups

    Returns:
        PullRequestContext to review, or None if the event is ignored

    Raises:
        SetupError: If a comment-triggered pull request cannot be fetched
    """
    if should_review_event(event_type, event):
        return context_from_event(event)

    if event_type == "issue_comment" and event.get("action") == "created":
        issue = event.get("issue") or {}
        comment = event.get("comment") or {}
        if issue.get("pull_request") and is_manual_trigger(comment.get("body", "")):
            logger.info(f"Manual review triggered for PR #{issue.get('number')}")
            return host.get_pull_request(event["repository"]["full_name"], int(issue["number"]))

    logger.info(f"Ignoring {event_type} event (action: {event.get('action')})")
    return None


class ReviewPipeline:
    """Runs one review for one pull request.

    Every collaborator is injected; ``config`` supplies the defaults for the
    ones not given.
    """

    def __init__(
        self,
        config: ReviewConfig,
        host: GitHubHost,
        orchestrator: AgentOrchestrator | None = None,
        skip_engine: SkipPolicyEngine | None = None,
        aggregator: ReviewAggregator | None = None,
        mutation: MutationPipeline | None = None,
        reporter: ReportGenerator | None = None,
        agents: Sequence[str] = REVIEWER_AGENTS,
    ):
        self.config = config
        self.host = host
        self.reporter = reporter or ReportGenerator()
        self.orchestrator = orchestrator or AgentOrchestrator(
            make_runner(config.reviewer_command),
            timeout=config.per_task_timeout_seconds,
        )
        self.skip_engine = skip_engine or SkipPolicyEngine(
            trivial_line_threshold=config.trivial_line_threshold,
        )
        self.aggregator = aggregator or ReviewAggregator()
        self.mutation = mutation or MutationPipeline(
            host,
            mutation_disabled=config.mutation_disabled,
            backup_dir=config.backup_dir,
            reporter=self.reporter,
        )
        self.agents = tuple(agents)

    async def run(
        self,
        pr: PullRequestContext,
        files: Sequence[ChangedFileStat] | None = None,
    ) -> ReviewRunResult:
        """Review a pull request.

        Args:
            pr: Pull request metadata
            files: Changed files; fetched from the host when None

        Returns:
            ReviewRunResult describing what happened
        """
        logger.info(f"Processing PR #{pr.number} from {pr.repo}")

        if files is None:
            # Unavailable file stats leave only the title/trivial rules in play
            files = self.host.get_changed_files(pr) or []
        files = list(files)

        decision = self.skip_engine.evaluate(pr, files)
        logger.debug(f"Skip evaluation: {debug_info(pr, files, decision)}")

        if decision.skip:
            logger.info(f"Skipping review for PR #{pr.number}: {', '.join(decision.reasons)}")
            self._comment(pr, self.reporter.generate_skip_comment(decision))
            return ReviewRunResult(context=pr, decision=decision)

        self._comment(pr, self.reporter.generate_start_comment(len(files), self.agents))

        result = ReviewRunResult(context=pr, decision=decision)
        workspace = RunWorkspace(pr, root=self.config.work_root)
        try:
            try:
                workspace.create()
                repo_dir = self.host.clone(pr, workspace.repo_dir, depth=self.config.clone_depth)
            except (SetupError, OSError) as e:
                raise SetupError(str(e)) from e

            self.host.generate_diff(repo_dir, pr.base_branch)

            outcomes = await self.orchestrator.run(pr, repo_dir, self.agents)
            result.report = self.aggregator.aggregate(outcomes)
            result.mutation = self.mutation.apply_fixes(repo_dir, result.report.auto_fixes)
            result.publish = self.mutation.publish(repo_dir, pr, result.report, result.mutation)

            logger.info(f"Successfully completed review for PR #{pr.number}")
        except ReviewError as e:
            logger.error(f"Error processing PR #{pr.number}: {e}")
            result.error = str(e)
            self._comment(pr, self.reporter.generate_error_comment(str(e)))
        finally:
            workspace.cleanup()

        return result

    def run_sync(
        self,
        pr: PullRequestContext,
        files: Sequence[ChangedFileStat] | None = None,
    ) -> ReviewRunResult:
        """Blocking wrapper around ``run``."""
        return asyncio.run(self.run(pr, files))

    def _comment(self, pr: PullRequestContext, body: str) -> bool:
        try:
            self.host.post_comment(pr, body)
            return True
        except PublishError as e:
            logger.warning(f"Failed to post comment on PR #{pr.number}: {e}")
            return False
