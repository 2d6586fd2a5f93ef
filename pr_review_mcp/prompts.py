"""Prompt templates for the specialist review agents."""

from pathlib import Path

from .models import PullRequestContext


# Ordered: outcome lists are aligned to this order
AGENT_FOCUS = {
    "security-reviewer": "security vulnerabilities, authentication mechanisms, data protection",
    "architecture-reviewer": "system design patterns, code structure, scalability",
    "performance-reviewer": "performance optimization, resource usage, algorithmic efficiency",
    "ux-reviewer": "user experience, accessibility, UI consistency",
}

REVIEWER_AGENTS: tuple[str, ...] = tuple(AGENT_FOCUS)

OUTPUT_FORMAT = """Please return your review results in the following JSON format enclosed in ```json blocks:

```json
{{
  "agent": "{agent}",
  "pr_number": {number},
  "review_summary": "Brief summary of your review findings",
  "issues_found": [
    {{
      "severity": "high/medium/low",
      "category": "category name",
      "description": "detailed issue description",
      "file": "file path",
      "line": line_number,
      "suggestion": "improvement suggestion",
      "auto_fixable": true/false
    }}
  ],
  "safe_auto_fixes": [
    {{
      "file": "file path",
      "description": "fix description",
      "changes": "specific changes to apply"
    }}
  ],
  "overall_score": 85,
  "recommendations": ["list of recommendations"]
}}
```

Please ensure the JSON is valid and complete."""


def build_agent_prompt(agent: str, pr: PullRequestContext, workdir: Path) -> str:
    """Build the prompt for one specialist agent.

    Args:
        agent: Agent identifier (one of REVIEWER_AGENTS)
        pr: Pull request under review
        workdir: Cloned repository the agent reads from

    Returns:
        Prompt text
    """
    focus = AGENT_FOCUS.get(agent, "general code quality")

    return f"""@{agent}, please perform a comprehensive review of this GitHub Pull Request.

You are a specialized {agent} focusing on {focus}.

## PR Information:
- Organization: {pr.organization}
- Repository: {pr.repo}
- PR #{pr.number}: {pr.title}
- Author: {pr.author}
- Branch: {pr.head_branch} -> {pr.base_branch}

## PR Description:
{pr.body or 'No description provided'}

## Working Directory:
{workdir}

The full diff against the base branch is in ../pr-diff.patch when available.

## Your Tasks:
1. Analyze the PR changes thoroughly
2. Provide detailed review from your expertise area ({focus})
3. Identify issues and provide improvement suggestions
4. Identify safe auto-fixable items

## Required Output Format:
{OUTPUT_FORMAT.format(agent=agent, number=pr.number)}""".strip()
