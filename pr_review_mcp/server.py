"""PR Review MCP Server - gates and runs multi-agent pull request reviews."""

import json
import os
import logging
import sys
from dataclasses import asdict, replace
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from .config import ReviewConfig, apply_env_overrides, load_config
from .exceptions import ReviewError
from .github import GitHubHost, validate_repo_name
from .llm import check_reviewer_available
from .models import ChangedFileStat, PullRequestContext, ReviewRunResult
from .pipeline import ReviewPipeline, pull_request_for_event
from .prompts import REVIEWER_AGENTS
from .skip_policy import SkipPolicyEngine

logger = logging.getLogger(__name__)

SERVICE_NAME = "pr-review-mcp"
VERSION = "1.0.0"


class ServerState:
    """Configuration and host shared by the tool handlers."""

    def __init__(self, config: ReviewConfig | None = None, host: GitHubHost | None = None):
        self.config = config or ReviewConfig()
        self.host = host or GitHubHost()

    def configure(self, config: ReviewConfig) -> None:
        self.config = config


state = ServerState()

# Create MCP server
server = Server(SERVICE_NAME)


def make_response(
    success: bool,
    data: Any = None,
    error: str | None = None,
    next_step: dict | None = None,
) -> dict:
    """Create standardized response with next_step guidance."""
    response = {
        "success": success,
        "data": data,
        "error": error,
    }
    if next_step:
        response["next_step"] = next_step
    return response


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available review tools."""
    return [
        Tool(
            name="review_check_skip",
            description="Evaluate the skip policy for a pull request title and changed files without running a review.",
            inputSchema={
                "type": "object",
                "properties": {
                    "title": {
                        "type": "string",
                        "description": "Pull request title",
                    },
                    "files": {
                        "type": "array",
                        "description": "Changed files with filename, additions, deletions and optional patch",
                        "items": {
                            "type": "object",
                            "properties": {
                                "filename": {"type": "string"},
                                "additions": {"type": "integer"},
                                "deletions": {"type": "integer"},
                                "patch": {"type": "string"},
                            },
                            "required": ["filename"],
                        },
                        "default": [],
                    },
                },
                "required": ["title"],
            },
        ),
        Tool(
            name="review_pull_request",
            description="Run the full multi-agent review for a pull request and post the consolidated comment.",
            inputSchema={
                "type": "object",
                "properties": {
                    "repo": {
                        "type": "string",
                        "description": "Repository in owner/name form",
                    },
                    "number": {
                        "type": "integer",
                        "description": "Pull request number",
                    },
                    "disable_auto_fix": {
                        "type": "boolean",
                        "description": "Suppress auto-fix staging for this run",
                        "default": False,
                    },
                },
                "required": ["repo", "number"],
            },
        ),
        Tool(
            name="review_webhook_event",
            description="Handle a GitHub webhook delivery: review opened/synchronized pull requests and '@claude-bot review' comments, ignore everything else.",
            inputSchema={
                "type": "object",
                "properties": {
                    "event_type": {
                        "type": "string",
                        "description": "X-GitHub-Event header value (pull_request, issue_comment, ...)",
                    },
                    "payload": {
                        "type": "object",
                        "description": "Decoded webhook JSON body",
                    },
                },
                "required": ["event_type", "payload"],
            },
        ),
        Tool(
            name="review_status",
            description="Show service status, configured agents, and reviewer CLI availability.",
            inputSchema={
                "type": "object",
                "properties": {},
            },
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        result = await _handle_tool(name, arguments or {})
        return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]
    except Exception as e:
        logger.exception(f"Tool {name} failed")
        error_response = make_response(False, error=str(e))
        return [TextContent(type="text", text=json.dumps(error_response, indent=2))]


async def _handle_tool(name: str, arguments: dict) -> dict:
    """Route tool calls to handlers."""
    if name == "review_check_skip":
        return await handle_check_skip(arguments["title"], arguments.get("files", []))
    elif name == "review_pull_request":
        return await handle_review_pull_request(
            arguments["repo"],
            arguments["number"],
            disable_auto_fix=arguments.get("disable_auto_fix", False),
        )
    elif name == "review_webhook_event":
        return await handle_webhook_event(arguments["event_type"], arguments["payload"])
    elif name == "review_status":
        return await handle_status()
    else:
        return make_response(False, error=f"Unknown tool: {name}")


async def handle_check_skip(title: str, files: list[dict]) -> dict:
    """Handle review_check_skip."""
    try:
        stats = [ChangedFileStat.from_dict(f) for f in files]
    except (KeyError, TypeError, ValueError) as e:
        return make_response(False, error=f"Invalid file entry: {e}")

    pr = PullRequestContext(organization="", repo="", number=0, title=title)
    engine = SkipPolicyEngine(trivial_line_threshold=state.config.trivial_line_threshold)
    decision = engine.evaluate(pr, stats)

    next_step = None
    if not decision.skip:
        next_step = {
            "action": "Review is required",
            "tool": "review_pull_request",
        }

    return make_response(
        True,
        data={
            **decision.to_dict(),
            "matched_rules": engine.matched_rules(pr, stats),
        },
        next_step=next_step,
    )


async def handle_review_pull_request(repo: str, number: int, disable_auto_fix: bool = False) -> dict:
    """Handle review_pull_request."""
    if not validate_repo_name(repo):
        return make_response(False, error=f"Invalid repository name: {repo}. Expected owner/name.")

    available, error = check_reviewer_available(state.config.reviewer_command)
    if not available:
        return make_response(False, error=error)

    try:
        pr = state.host.get_pull_request(repo, number)
    except ReviewError as e:
        return make_response(False, error=str(e))

    config = state.config
    if disable_auto_fix:
        config = replace(config, mutation_disabled=True)

    pipeline = ReviewPipeline(config, state.host)
    result = await pipeline.run(pr)

    return make_response(
        result.error is None,
        data=summarize_run(result),
        error=result.error,
    )


async def handle_webhook_event(event_type: str, payload: dict) -> dict:
    """Handle review_webhook_event."""
    if not isinstance(payload, dict):
        return make_response(False, error="Webhook payload must be a JSON object")

    try:
        pr = pull_request_for_event(event_type, payload, state.host)
    except ReviewError as e:
        return make_response(False, error=str(e))
    except (KeyError, TypeError, ValueError) as e:
        return make_response(False, error=f"Malformed {event_type} payload: {e}")

    if pr is None:
        return make_response(
            True,
            data={"event": event_type, "action": payload.get("action"), "reviewed": False},
        )

    available, error = check_reviewer_available(state.config.reviewer_command)
    if not available:
        return make_response(False, error=error)

    result = await ReviewPipeline(state.config, state.host).run(pr)

    return make_response(
        result.error is None,
        data={"event": event_type, "reviewed": True, **summarize_run(result)},
        error=result.error,
    )


async def handle_status() -> dict:
    """Handle review_status."""
    available, error = check_reviewer_available(state.config.reviewer_command)
    config = asdict(state.config)
    config["work_root"] = str(config["work_root"]) if config["work_root"] else None

    return make_response(
        True,
        data={
            "service": SERVICE_NAME,
            "version": VERSION,
            "agents": list(REVIEWER_AGENTS),
            "reviewer_available": available,
            "reviewer_error": error,
            "config": config,
        },
    )


def summarize_run(result: ReviewRunResult) -> dict:
    """Flatten a run result into a JSON-friendly summary."""
    summary = {
        "repo": result.context.repo,
        "number": result.context.number,
        "skipped": result.skipped,
        "skip_reasons": list(result.decision.reasons),
        "file_count": result.decision.file_count,
        "total_changes": result.decision.total_changes,
    }

    if result.report:
        summary.update({
            "overall_score": result.report.overall_score,
            "issue_counts": result.report.severity_counts(),
            "successful_agents": result.report.successful_agents,
            "failed_agents": result.report.failed_agent_details,
            "recommendations": result.report.top_recommendations(),
        })
    if result.mutation:
        summary["auto_fix"] = {
            "applied": result.mutation.applied,
            "disabled": result.mutation.disabled,
            "errors": result.mutation.errors,
        }
    if result.publish:
        summary["published"] = {
            "committed": result.publish.committed,
            "pushed": result.publish.pushed,
            "commented": result.publish.commented,
            "errors": result.publish.errors,
        }

    return summary


def main():
    """Run the MCP server."""
    import asyncio

    # stdout carries the MCP stream
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    )
    state.configure(apply_env_overrides(load_config(os.environ.get("PR_REVIEW_CONFIG"))))

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


if __name__ == "__main__":
    main()
