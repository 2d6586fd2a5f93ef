"""Data models for the pull request review pipeline."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional


AgentState = Literal["pending", "dispatched", "succeeded", "failed", "timed_out"]

TERMINAL_STATES = {"succeeded", "failed", "timed_out"}

SEVERITY_RANK = {"high": 3, "medium": 2, "low": 1}

# Severities some reviewers emit that fold into the three-level scale
_SEVERITY_ALIASES = {
    "critical": "high",
    "blocker": "high",
    "major": "high",
    "moderate": "medium",
    "minor": "low",
    "info": "low",
}


def normalize_severity(value) -> str:
    """Map a free-form severity string onto high/medium/low."""
    severity = str(value or "").strip().lower()
    if severity in SEVERITY_RANK:
        return severity
    return _SEVERITY_ALIASES.get(severity, "low")


@dataclass(frozen=True)
class PullRequestContext:
    """Immutable snapshot of one pull request.

    Attributes:
        organization: Owning organization login (may be empty for user repos)
        repo: Full repository name, ``owner/name``
        number: Pull request number
        title: Pull request title
        body: Pull request description
        head_branch: Source branch
        base_branch: Target branch
        head_sha: Head commit SHA
        author: Author login
        clone_url: URL the repository is cloned from
        html_url: Browser URL of the pull request
    """
    organization: str
    repo: str
    number: int
    title: str
    body: str = ""
    head_branch: str = ""
    base_branch: str = "main"
    head_sha: str = ""
    author: str = ""
    clone_url: str = ""
    html_url: str = ""


@dataclass(frozen=True)
class ChangedFileStat:
    """One changed file as reported by the source-control host."""
    filename: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0
    status: str = "modified"
    patch: Optional[str] = None

    @property
    def changed_lines(self) -> int:
        return self.additions + self.deletions

    @classmethod
    def from_dict(cls, d: dict) -> "ChangedFileStat":
        """Deserialize from a host API file entry."""
        additions = int(d.get("additions") or 0)
        deletions = int(d.get("deletions") or 0)
        return cls(
            filename=d["filename"],
            additions=additions,
            deletions=deletions,
            changes=int(d.get("changes") or additions + deletions),
            status=d.get("status", "modified"),
            patch=d.get("patch"),
        )


@dataclass(frozen=True)
class SkipDecision:
    """Outcome of skip-policy evaluation.

    Attributes:
        skip: True if automated review should not run
        reasons: Reasons of every matching rule, in rule order
        file_count: Number of changed files considered
        total_changes: Sum of additions and deletions over all files
    """
    skip: bool
    reasons: tuple[str, ...] = ()
    file_count: int = 0
    total_changes: int = 0

    def to_dict(self) -> dict:
        return {
            "skip": self.skip,
            "reasons": list(self.reasons),
            "file_count": self.file_count,
            "total_changes": self.total_changes,
        }


@dataclass
class Issue:
    """A single finding reported by a review agent.

    Attributes:
        severity: One of 'high', 'medium', 'low'
        category: Short category label (e.g. 'injection', 'naming')
        description: Description of the problem
        file: File path the issue refers to
        line: Line number (optional)
        suggestion: Suggested improvement (optional)
        auto_fixable: Whether the agent considers it safe to fix automatically
    """
    severity: str
    category: str
    description: str
    file: str = ""
    line: Optional[int] = None
    suggestion: Optional[str] = None
    auto_fixable: bool = False

    @property
    def rank(self) -> int:
        return SEVERITY_RANK.get(self.severity, 0)

    def to_dict(self) -> dict:
        return {
            "severity": self.severity,
            "category": self.category,
            "description": self.description,
            "file": self.file,
            "line": self.line,
            "suggestion": self.suggestion,
            "auto_fixable": self.auto_fixable,
        }


@dataclass
class AutoFix:
    """A proposed low-risk change to one file."""
    file: str
    description: str
    changes: str = ""

    def to_dict(self) -> dict:
        return {
            "file": self.file,
            "description": self.description,
            "changes": self.changes,
        }


@dataclass
class ReviewResult:
    """Structured result extracted from one agent's output.

    Every field is optional in the agent's payload; missing lists default to
    empty and a missing score is None.
    """
    agent: str
    summary: str = ""
    issues: list[Issue] = field(default_factory=list)
    auto_fixes: list[AutoFix] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    score: Optional[int] = None


@dataclass
class AgentTask:
    """One specialist's unit of work for a run."""
    agent: str
    context: PullRequestContext
    workdir: Path
    state: AgentState = "pending"


@dataclass(frozen=True)
class AgentOutcome:
    """Terminal result of one AgentTask.

    Attributes:
        agent: Agent identifier
        state: 'succeeded', 'failed' or 'timed_out'
        result: Parsed result when succeeded
        error: Error description when not succeeded
        output: Raw agent output (or stderr), kept for diagnostics
        elapsed: Wall time in seconds
    """
    agent: str
    state: AgentState
    result: Optional[ReviewResult] = None
    error: Optional[str] = None
    output: str = ""
    elapsed: float = 0.0

    def __post_init__(self):
        if self.state not in TERMINAL_STATES:
            raise ValueError(f"Outcome for {self.agent} has non-terminal state: {self.state}")

    @property
    def success(self) -> bool:
        return self.state == "succeeded"


@dataclass
class ConsolidatedReport:
    """Merged result of all agents for one run."""
    total_agents: int = 0
    successful_agents: int = 0
    failed_agents: int = 0
    failed_agent_details: list[dict] = field(default_factory=list)
    issues: list[Issue] = field(default_factory=list)
    auto_fixes: list[AutoFix] = field(default_factory=list)
    overall_score: int = 100
    recommendations: list[str] = field(default_factory=list)

    def severity_counts(self) -> dict[str, int]:
        """Count issues per severity level."""
        counts = {"high": 0, "medium": 0, "low": 0}
        for issue in self.issues:
            counts[issue.severity] = counts.get(issue.severity, 0) + 1
        return counts

    def top_issues(self, limit: int = 5) -> list[Issue]:
        return self.issues[:limit]

    def top_recommendations(self, limit: int = 3) -> list[str]:
        return self.recommendations[:limit]

    def to_dict(self) -> dict:
        return {
            "total_agents": self.total_agents,
            "successful_agents": self.successful_agents,
            "failed_agents": self.failed_agents,
            "failed_agent_details": self.failed_agent_details,
            "issues": [i.to_dict() for i in self.issues],
            "auto_fixes": [f.to_dict() for f in self.auto_fixes],
            "overall_score": self.overall_score,
            "recommendations": self.recommendations,
        }


@dataclass
class MutationResult:
    """Outcome of staging auto-fixes.

    Attributes:
        applied: Number of fixes whose content change was verified
        errors: Per-fix error messages
        disabled: True when mutation was switched off for the run
        backups: Backup files created during the run
    """
    applied: int = 0
    errors: list[str] = field(default_factory=list)
    disabled: bool = False
    backups: list[Path] = field(default_factory=list)


@dataclass
class PublishResult:
    """Outcome of committing, pushing and commenting."""
    committed: bool = False
    pushed: bool = False
    commented: bool = False
    errors: list[str] = field(default_factory=list)


@dataclass
class ReviewRunResult:
    """Everything one pipeline run produced."""
    context: PullRequestContext
    decision: SkipDecision
    report: Optional[ConsolidatedReport] = None
    mutation: Optional[MutationResult] = None
    publish: Optional[PublishResult] = None
    error: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.decision.skip
