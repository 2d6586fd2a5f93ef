"""Merges per-agent results into one consolidated report."""

from typing import Sequence

from .models import AgentOutcome, ConsolidatedReport, Issue

DEFAULT_SCORE = 100


def sort_by_severity(issues: Sequence[Issue]) -> list[Issue]:
    """Stable sort, high before medium before low."""
    return sorted(issues, key=lambda i: i.rank, reverse=True)


class ReviewAggregator:
    """Folds agent outcomes into a ConsolidatedReport.

    - Issues and auto-fixes are concatenated in outcome order
    - The overall score is the minimum over successful agents (100 if none)
    - Recommendations are deduplicated by exact text, first occurrence wins
    """

    def aggregate(self, outcomes: Sequence[AgentOutcome]) -> ConsolidatedReport:
        successful = [o for o in outcomes if o.success and o.result is not None]
        failed = [o for o in outcomes if not (o.success and o.result is not None)]

        issues: list[Issue] = []
        fixes = []
        recommendations: list[str] = []
        seen: set[str] = set()
        score = DEFAULT_SCORE

        for outcome in successful:
            result = outcome.result
            issues.extend(result.issues)
            fixes.extend(result.auto_fixes)

            if result.score is not None:
                score = min(score, result.score)

            for rec in result.recommendations:
                if rec not in seen:
                    seen.add(rec)
                    recommendations.append(rec)

        return ConsolidatedReport(
            total_agents=len(outcomes),
            successful_agents=len(successful),
            failed_agents=len(failed),
            failed_agent_details=[
                {"agent": o.agent, "state": o.state, "error": o.error or "Unknown error"}
                for o in failed
            ],
            issues=sort_by_severity(issues),
            auto_fixes=fixes,
            overall_score=score,
            recommendations=recommendations,
        )
