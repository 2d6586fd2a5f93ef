"""Skip policy: decides whether a pull request needs automated review.

Rules are evaluated independently so every matching reason is reported:

1. Explicit skip tag in the PR title
2. Trivial change (one file, few changed lines)
3. Documentation-only change
4. Config-only change without dependency edits
5. Translation/text-only change
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Sequence

from .models import ChangedFileStat, PullRequestContext, SkipDecision


SKIP_TAGS = ("[SKIP-REVIEW]", "[NO-REVIEW]", "[DOCS-ONLY]")

DEFAULT_TRIVIAL_LINE_THRESHOLD = 5

DOCUMENTATION_PATTERNS = [
    re.compile(r'^readme\.(md|txt|rst)$'),
    re.compile(r'^docs?/'),
    re.compile(r'\.md$'),
    re.compile(r'^changelog'),
    re.compile(r'^contributing'),
    re.compile(r'^license'),
    re.compile(r'^authors?'),
    re.compile(r'^news\.(md|txt|rst)$'),
]

CONFIG_PATTERNS = [
    re.compile(r'^\.gitignore$'),
    re.compile(r'^\.editorconfig$'),
    re.compile(r'^\.prettierrc'),
    re.compile(r'^\.eslintrc'),
    re.compile(r'^tsconfig\.json$'),
    re.compile(r'^jest\.config'),
    re.compile(r'^webpack\.config'),
    re.compile(r'^rollup\.config'),
    re.compile(r'^vite\.config'),
    re.compile(r'^\.env\.example$'),
    re.compile(r'^\.nvmrc$'),
    re.compile(r'^\.tool-versions$'),
]

TRANSLATION_PATTERNS = [
    re.compile(r'^locales?/'),
    re.compile(r'^translations?/'),
    re.compile(r'^i18n/'),
    re.compile(r'\.po$'),
    re.compile(r'\.pot$'),
    re.compile(r'\.csv$'),
    re.compile(r'\.txt$'),
]

# Manifest files whose patch is inspected for dependency edits
MANIFEST_PATTERNS = [
    re.compile(r'(^|/)package\.json$'),
    re.compile(r'(^|/)pyproject\.toml$'),
    re.compile(r'(^|/)requirements[^/]*\.txt$'),
    re.compile(r'(^|/)pipfile$'),
]

DEPENDENCY_MARKERS = [
    re.compile(r'"dependencies"\s*:'),
    re.compile(r'"devDependencies"\s*:'),
    re.compile(r'"peerDependencies"\s*:'),
    re.compile(r'"optionalDependencies"\s*:'),
    re.compile(r'^[+-]?\s*\[(project\.)?(optional-)?dependencies\]', re.MULTILINE),
    re.compile(r'^[+-]?\s*\[tool\.poetry\.(dev-)?dependencies\]', re.MULTILINE),
    re.compile(r'^[+-]?\s*dependencies\s*=', re.MULTILINE),
    re.compile(r'^[+-]?\s*\[(dev-)?packages\]', re.MULTILINE),
]


def _matches_any(filename: str, patterns: Sequence[re.Pattern]) -> bool:
    name = filename.lower()
    return any(p.search(name) for p in patterns)


def is_documentation_file(filename: str) -> bool:
    return _matches_any(filename, DOCUMENTATION_PATTERNS)


def is_config_file(filename: str) -> bool:
    return _matches_any(filename, CONFIG_PATTERNS)


def is_translation_file(filename: str) -> bool:
    return _matches_any(filename, TRANSLATION_PATTERNS)


def has_dependency_changes(patch: str) -> bool:
    """Check whether a manifest patch touches a dependency section."""
    return any(p.search(patch) for p in DEPENDENCY_MARKERS)


@dataclass(frozen=True)
class SkipRule:
    """One entry of the skip table.

    Attributes:
        name: Stable rule identifier
        predicate: (pr, files, threshold) -> bool
        reason: Reason text, formatted with ``files`` and ``total``
    """
    name: str
    predicate: Callable[[PullRequestContext, list[ChangedFileStat], int], bool]
    reason: str


def _explicit_tag(pr: PullRequestContext, files: list[ChangedFileStat], threshold: int) -> bool:
    title = pr.title or ""
    return any(tag in title for tag in SKIP_TAGS)


def _trivial_change(pr: PullRequestContext, files: list[ChangedFileStat], threshold: int) -> bool:
    return len(files) == 1 and files[0].changed_lines <= threshold


def _documentation_only(pr: PullRequestContext, files: list[ChangedFileStat], threshold: int) -> bool:
    return bool(files) and all(is_documentation_file(f.filename) for f in files)


def _config_only(pr: PullRequestContext, files: list[ChangedFileStat], threshold: int) -> bool:
    # A dependency edit in any manifest forces review even if every file matched
    for f in files:
        if _matches_any(f.filename, MANIFEST_PATTERNS) and has_dependency_changes(f.patch or ""):
            return False
    return bool(files) and all(is_config_file(f.filename) for f in files)


def _translation_only(pr: PullRequestContext, files: list[ChangedFileStat], threshold: int) -> bool:
    # requirements*.txt matches the text pattern but is a manifest
    if any(_matches_any(f.filename, MANIFEST_PATTERNS) for f in files):
        return False
    return bool(files) and all(is_translation_file(f.filename) for f in files)


SKIP_RULES: tuple[SkipRule, ...] = (
    SkipRule("explicit_tag", _explicit_tag, "Explicit review skip tag found in title"),
    SkipRule("trivial_change", _trivial_change, "Trivial change ({files} file, {total} lines changed)"),
    SkipRule("documentation_only", _documentation_only, "Documentation files only"),
    SkipRule("config_only", _config_only, "Configuration files only (no dependency changes)"),
    SkipRule("translation_only", _translation_only, "Translation/text files only"),
)


class SkipPolicyEngine:
    """Evaluates the skip table against a pull request.

    Pure and total: never raises for well-typed input and has no side effects.
    """

    def __init__(
        self,
        trivial_line_threshold: int = DEFAULT_TRIVIAL_LINE_THRESHOLD,
        rules: Sequence[SkipRule] = SKIP_RULES,
    ):
        self.trivial_line_threshold = trivial_line_threshold
        self.rules = tuple(rules)

    def evaluate(
        self,
        pr: PullRequestContext,
        files: Sequence[ChangedFileStat] | None,
    ) -> SkipDecision:
        """Decide whether review should be skipped.

        Args:
            pr: Pull request metadata
            files: Changed files (None or empty when unavailable)

        Returns:
            SkipDecision with every matching reason, in rule order
        """
        files = list(files or [])
        total = sum(f.changed_lines for f in files)

        reasons: list[str] = []
        for rule in self.rules:
            if rule.predicate(pr, files, self.trivial_line_threshold):
                reason = rule.reason.format(files=len(files), total=total)
                if reason not in reasons:
                    reasons.append(reason)

        return SkipDecision(
            skip=bool(reasons),
            reasons=tuple(reasons),
            file_count=len(files),
            total_changes=total,
        )

    def matched_rules(
        self,
        pr: PullRequestContext,
        files: Sequence[ChangedFileStat] | None,
    ) -> list[str]:
        """Return the names of rules that match, in table order."""
        files = list(files or [])
        return [
            rule.name for rule in self.rules
            if rule.predicate(pr, files, self.trivial_line_threshold)
        ]


def debug_info(
    pr: PullRequestContext,
    files: Sequence[ChangedFileStat],
    decision: SkipDecision,
) -> dict:
    """Build a diagnostics snapshot of one skip evaluation."""
    return {
        "pr": {
            "title": pr.title,
            "number": pr.number,
            "author": pr.author,
        },
        "files": [
            {
                "name": f.filename,
                "additions": f.additions,
                "deletions": f.deletions,
                "changes": f.changes,
            }
            for f in files
        ],
        "decision": decision.to_dict(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
