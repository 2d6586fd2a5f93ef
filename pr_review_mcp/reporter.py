"""Markdown generation for pull request comments and commit messages."""

from datetime import datetime, timezone
from html import escape
from typing import Sequence

from .models import ConsolidatedReport, MutationResult, SkipDecision

SEVERITY_ICONS = {"high": "🔴", "medium": "🟡", "low": "🟢"}

AGENT_LABELS = {
    "security-reviewer": "🛡️ Security Reviewer",
    "architecture-reviewer": "🏗️ Architecture Reviewer",
    "performance-reviewer": "⚡ Performance Reviewer",
    "ux-reviewer": "🎨 UX Reviewer",
}

MANUAL_TRIGGER = "@claude-bot review"

TOP_ISSUES = 5
TOP_RECOMMENDATIONS = 3


class ReportGenerator:
    """Generates the human-facing text of a review run."""

    def __init__(self, clock=None):
        """Initialize the generator.

        Args:
            clock: Callable returning the current datetime (for footers)
        """
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def generate_review_comment(self, report: ConsolidatedReport, mutation: MutationResult) -> str:
        """Generate the consolidated review comment.

        Args:
            report: Merged review report
            mutation: Auto-fix outcome

        Returns:
            Markdown content
        """
        counts = report.severity_counts()
        fixes_line = "disabled" if mutation.disabled else str(mutation.applied)

        lines = [
            "## 🤖 AI Code Review Summary",
            "",
            f"**Overall Score:** {report.overall_score}/100",
            "",
            "### 📊 Review Statistics",
            f"- **Agents Completed:** {report.successful_agents}/{report.total_agents}",
            f"- **Issues Found:** {len(report.issues)} total",
            f"  - 🔴 High: {counts.get('high', 0)}",
            f"  - 🟡 Medium: {counts.get('medium', 0)}",
            f"  - 🟢 Low: {counts.get('low', 0)}",
            f"- **Auto Fixes Applied:** {fixes_line}",
            "",
        ]

        if report.issues:
            lines.append("### 🔍 Key Issues Found")
            lines.append("")
            for index, issue in enumerate(report.top_issues(TOP_ISSUES), start=1):
                icon = SEVERITY_ICONS.get(issue.severity, "🟢")
                location = issue.file or "unknown"
                if issue.line:
                    location = f"{location}:{issue.line}"
                # Escape agent text to prevent markdown injection
                lines.append(f"{index}. {icon} **{escape(issue.category)}** in `{escape(location)}`")
                lines.append(f"   {escape(issue.description)}")
                if issue.suggestion:
                    lines.append(f"   💡 *Suggestion: {escape(issue.suggestion)}*")
                lines.append("")

        if report.recommendations:
            lines.append("### 💡 Recommendations")
            lines.append("")
            for index, rec in enumerate(report.top_recommendations(TOP_RECOMMENDATIONS), start=1):
                lines.append(f"{index}. {escape(rec)}")
            lines.append("")

        if report.failed_agents > 0:
            lines.append("### ⚠️ Agent Failures")
            for failure in report.failed_agent_details:
                lines.append(f"- **{failure['agent']}:** {escape(str(failure['error']))}")
            lines.append("")

        if mutation.errors:
            lines.append("### 🔧 Auto-Fix Errors")
            for error in mutation.errors:
                lines.append(f"- {escape(error)}")
            lines.append("")

        lines.append("---")
        lines.append(f"*Generated by AI Review System at {self._timestamp()}*")
        return "\n".join(lines)

    def generate_skip_comment(self, decision: SkipDecision) -> str:
        lines = [
            "## 🤖 AI Review Skipped",
            "",
            "This PR was automatically skipped from AI review for the following reasons:",
        ]
        lines.extend(f"- {reason}" for reason in decision.reasons)
        lines.append("")
        lines.append(f"To force a review, add `{MANUAL_TRIGGER}` in a comment.")
        return "\n".join(lines)

    def generate_start_comment(self, file_count: int, agents: Sequence[str]) -> str:
        lines = [
            "## 🤖 AI Review Started",
            "",
            "🔍 **Starting comprehensive code review for this PR...**",
            "",
            "### Review Process",
            f"- 📂 **Files analyzed**: {file_count} changed files",
            f"- 🤖 **Agents**: {len(agents)} specialized reviewers running in parallel",
        ]
        lines.extend(f"  - {AGENT_LABELS.get(a, a)}" for a in agents)
        lines.append("")
        lines.append("*Review results will be posted as a comment when all agents complete.*")
        return "\n".join(lines)

    def generate_error_comment(self, message: str) -> str:
        return "\n".join([
            "## 🤖 AI Review Error",
            "",
            f"Failed to complete automated review: {escape(message)}",
            "",
            f"You can manually trigger a review by commenting `{MANUAL_TRIGGER}`.",
        ])

    def generate_commit_message(self, report: ConsolidatedReport, mutation: MutationResult) -> str:
        return "\n".join([
            f"🤖 Auto-fix: Applied {mutation.applied} safe fixes",
            "",
            "AI Review Summary:",
            f"- Overall Score: {report.overall_score}/100",
            f"- Issues Found: {len(report.issues)}",
            f"- Auto Fixes Applied: {mutation.applied}",
            "",
            "Generated by AI Review System",
        ])

    def _timestamp(self) -> str:
        return self.clock().isoformat()
