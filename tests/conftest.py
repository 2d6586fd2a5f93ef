"""Shared fixtures for review pipeline tests."""

import json

import pytest

from pr_review_mcp.models import PullRequestContext


def agent_output(agent: str, score: int | None = None, issues=(), fixes=(), recommendations=()) -> str:
    """Build realistic agent stdout: prose around a fenced JSON block."""
    payload = {
        "agent": agent,
        "pr_number": 42,
        "review_summary": f"{agent} summary",
        "issues_found": list(issues),
        "safe_auto_fixes": list(fixes),
        "recommendations": list(recommendations),
    }
    if score is not None:
        payload["overall_score"] = score
    return (
        f"I reviewed the changes as {agent}.\n\n"
        f"```json\n{json.dumps(payload, indent=2)}\n```\n\n"
        "Let me know if you need anything else."
    )


@pytest.fixture
def pr_context():
    return PullRequestContext(
        organization="acme",
        repo="acme/widgets",
        number=42,
        title="Add caching layer",
        body="Adds a cache in front of the API client.",
        head_branch="feature/cache",
        base_branch="main",
        head_sha="abc123",
        author="octocat",
        clone_url="https://github.com/acme/widgets.git",
        html_url="https://github.com/acme/widgets/pull/42",
    )
