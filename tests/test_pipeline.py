"""End-to-end tests for a review run with a fake host and fake agents."""

from unittest.mock import MagicMock

import pytest

from conftest import agent_output
from pr_review_mcp.config import ReviewConfig
from pr_review_mcp.exceptions import PublishError, SetupError
from pr_review_mcp.github import GitHubHost
from pr_review_mcp.models import ChangedFileStat
from pr_review_mcp.orchestrator import AgentOrchestrator
from pr_review_mcp.pipeline import (
    ReviewPipeline,
    context_from_event,
    is_manual_trigger,
    pull_request_for_event,
    should_review_event,
)
from pr_review_mcp.prompts import REVIEWER_AGENTS

CODE_FILES = [
    ChangedFileStat(filename="src/cache.py", additions=120, deletions=4),
    ChangedFileStat(filename="src/client.py", additions=10, deletions=2),
]

SCORES = {
    "security-reviewer": 90,
    "architecture-reviewer": 70,
    "performance-reviewer": 85,
    "ux-reviewer": 95,
}


def fake_clone(pr, dest, depth=50):
    (dest / "src").mkdir(parents=True)
    (dest / "src" / "cache.py").write_text("CACHE = {}\n")
    return dest


async def reviewing_runner(prompt, workdir):
    agent = prompt.split(",", 1)[0].lstrip("@")
    return agent_output(
        agent,
        score=SCORES[agent],
        issues=[{"severity": "medium", "category": agent, "description": f"{agent} finding", "file": "src/cache.py"}],
        fixes=[{"file": "src/cache.py", "description": "add type hint", "changes": "CACHE: dict = {}"}],
        recommendations=["Add tests for cache eviction"],
    )


@pytest.fixture
def host():
    host = MagicMock(spec=GitHubHost)
    host.clone.side_effect = fake_clone
    host.generate_diff.return_value = None
    return host


@pytest.fixture
def config(tmp_path):
    return ReviewConfig(work_root=tmp_path / "runs")


def workspaces(config):
    return list(config.work_root.iterdir()) if config.work_root.exists() else []


class TestSkippedRun:
    """Skip decisions stop the run before any agent is dispatched."""

    def test_skip_tag_and_trivial_change(self, pr_context, host, config):
        from dataclasses import replace

        pr = replace(pr_context, title="[SKIP-REVIEW] trivial fix")
        orchestrator = MagicMock(spec=AgentOrchestrator)
        files = [ChangedFileStat(filename="src/utils.py", additions=2, deletions=1)]

        result = ReviewPipeline(config, host, orchestrator=orchestrator).run_sync(pr, files)

        assert result.skipped is True
        assert "Explicit review skip tag found in title" in result.decision.reasons
        assert "Trivial change (1 file, 3 lines changed)" in result.decision.reasons
        orchestrator.run.assert_not_called()
        host.clone.assert_not_called()
        assert result.report is None
        body = host.post_comment.call_args[0][1]
        assert "AI Review Skipped" in body
        assert "- Explicit review skip tag found in title" in body

    def test_skip_comment_failure_is_tolerated(self, pr_context, host, config):
        host.post_comment.side_effect = PublishError("Comment failed")
        files = [ChangedFileStat(filename="README.md", additions=30, deletions=3)]

        result = ReviewPipeline(config, host).run_sync(pr_context, files)

        assert result.skipped is True
        assert result.error is None


class TestFullRun:
    """A non-skipped run goes through every stage."""

    def test_review_is_published(self, pr_context, host, config):
        orchestrator = AgentOrchestrator(reviewing_runner, timeout=5)

        result = ReviewPipeline(config, host, orchestrator=orchestrator).run_sync(pr_context, CODE_FILES)

        assert result.error is None
        assert result.skipped is False
        assert result.report.overall_score == 70
        assert result.report.successful_agents == 4
        assert len(result.report.issues) == 4
        assert result.report.recommendations == ["Add tests for cache eviction"]
        assert result.mutation.applied == 0
        assert len(result.mutation.backups) == 4
        assert result.publish.commented is True
        host.commit.assert_not_called()

        bodies = [c[0][1] for c in host.post_comment.call_args_list]
        assert len(bodies) == 2
        assert "AI Review Started" in bodies[0]
        assert "**Overall Score:** 70/100" in bodies[1]

    def test_workspace_removed_after_run(self, pr_context, host, config):
        orchestrator = AgentOrchestrator(reviewing_runner, timeout=5)

        ReviewPipeline(config, host, orchestrator=orchestrator).run_sync(pr_context, CODE_FILES)

        assert workspaces(config) == []
        clone_dest = host.clone.call_args[0][1]
        assert clone_dest.name == "repo"
        assert clone_dest.parent.name.startswith("pr-analysis-acme-42-")

    def test_agents_run_in_cloned_repo(self, pr_context, host, config):
        seen = []

        async def runner(prompt, workdir):
            seen.append(workdir)
            return agent_output(prompt.split(",", 1)[0].lstrip("@"), score=80)

        ReviewPipeline(config, host, orchestrator=AgentOrchestrator(runner, timeout=5)).run_sync(
            pr_context, CODE_FILES
        )

        assert len(seen) == len(REVIEWER_AGENTS)
        assert all(w == host.clone.call_args[0][1] for w in seen)

    def test_mutation_disabled_creates_no_backups(self, pr_context, host, tmp_path):
        config = ReviewConfig(work_root=tmp_path / "runs", mutation_disabled=True)
        orchestrator = AgentOrchestrator(reviewing_runner, timeout=5)

        result = ReviewPipeline(config, host, orchestrator=orchestrator).run_sync(pr_context, CODE_FILES)

        assert result.mutation.disabled is True
        assert result.mutation.applied == 0
        assert result.mutation.backups == []
        assert "**Auto Fixes Applied:** disabled" in host.post_comment.call_args[0][1]

    def test_start_comment_failure_does_not_abort(self, pr_context, host, config):
        host.post_comment.side_effect = [PublishError("Comment failed"), None]
        orchestrator = AgentOrchestrator(reviewing_runner, timeout=5)

        result = ReviewPipeline(config, host, orchestrator=orchestrator).run_sync(pr_context, CODE_FILES)

        assert result.error is None
        assert result.publish.commented is True

    def test_files_fetched_when_not_given(self, pr_context, host, config):
        host.get_changed_files.return_value = None
        orchestrator = AgentOrchestrator(reviewing_runner, timeout=5)

        result = ReviewPipeline(config, host, orchestrator=orchestrator).run_sync(pr_context)

        host.get_changed_files.assert_called_once_with(pr_context)
        assert result.decision.file_count == 0
        assert result.skipped is False


class TestSetupFailure:
    """Clone failures abort the run with an error notice."""

    def test_clone_failure_posts_error(self, pr_context, host, config):
        host.clone.side_effect = SetupError("Clone failed: repository not found")
        orchestrator = MagicMock(spec=AgentOrchestrator)

        result = ReviewPipeline(config, host, orchestrator=orchestrator).run_sync(pr_context, CODE_FILES)

        assert result.error == "Clone failed: repository not found"
        assert result.report is None
        orchestrator.run.assert_not_called()
        assert "AI Review Error" in host.post_comment.call_args[0][1]
        assert workspaces(config) == []


class TestEventHelpers:
    """Tests for webhook payload helpers."""

    EVENT = {
        "action": "opened",
        "organization": {"login": "acme"},
        "repository": {
            "full_name": "acme/widgets",
            "clone_url": "https://github.com/acme/widgets.git",
            "owner": {"login": "acme"},
        },
        "pull_request": {
            "number": 7,
            "title": "Add cache",
            "body": None,
            "head": {"ref": "feature/cache", "sha": "abc"},
            "base": {"ref": "main"},
            "user": {"login": "octocat"},
            "html_url": "https://github.com/acme/widgets/pull/7",
        },
    }

    def test_context_from_event(self):
        pr = context_from_event(self.EVENT)

        assert pr.organization == "acme"
        assert pr.repo == "acme/widgets"
        assert pr.number == 7
        assert pr.body == ""
        assert pr.head_branch == "feature/cache"
        assert pr.author == "octocat"

    def test_should_review_event(self):
        assert should_review_event("pull_request", {"action": "opened"})
        assert should_review_event("pull_request", {"action": "synchronize"})
        assert not should_review_event("pull_request", {"action": "closed"})
        assert not should_review_event("issue_comment", {"action": "created"})

    def test_manual_trigger(self):
        assert is_manual_trigger("@claude-bot review please")
        assert is_manual_trigger("@Claude-Bot REVIEW")
        assert not is_manual_trigger("please review")
        assert not is_manual_trigger("")

    def comment_event(self, body, action="created", on_pull_request=True):
        issue = {"number": 7}
        if on_pull_request:
            issue["pull_request"] = {"url": "https://api.github.com/repos/acme/widgets/pulls/7"}
        return {
            "action": action,
            "repository": self.EVENT["repository"],
            "issue": issue,
            "comment": {"body": body},
        }

    def test_pull_request_event_resolves_from_payload(self):
        host = MagicMock(spec=GitHubHost)

        pr = pull_request_for_event("pull_request", self.EVENT, host)

        assert pr.number == 7
        host.get_pull_request.assert_not_called()

    def test_closed_pull_request_is_ignored(self):
        host = MagicMock(spec=GitHubHost)

        assert pull_request_for_event("pull_request", {**self.EVENT, "action": "closed"}, host) is None

    def test_trigger_comment_fetches_pull_request(self, pr_context):
        host = MagicMock(spec=GitHubHost)
        host.get_pull_request.return_value = pr_context

        pr = pull_request_for_event("issue_comment", self.comment_event("@claude-bot review"), host)

        assert pr is pr_context
        host.get_pull_request.assert_called_once_with("acme/widgets", 7)

    def test_comment_without_trigger_is_ignored(self):
        host = MagicMock(spec=GitHubHost)

        assert pull_request_for_event("issue_comment", self.comment_event("looks good"), host) is None
        assert pull_request_for_event(
            "issue_comment", self.comment_event("@claude-bot review", on_pull_request=False), host,
        ) is None
        assert pull_request_for_event(
            "issue_comment", self.comment_event("@claude-bot review", action="edited"), host,
        ) is None
        host.get_pull_request.assert_not_called()

    def test_other_events_are_ignored(self):
        host = MagicMock(spec=GitHubHost)

        assert pull_request_for_event("push", {"ref": "refs/heads/main"}, host) is None
