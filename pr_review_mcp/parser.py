"""Agent response parser for extracting structured results from raw output."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from .exceptions import ResultParseError
from .models import AutoFix, Issue, ReviewResult, normalize_severity

logger = logging.getLogger(__name__)

FENCED_JSON = re.compile(r'```json\s*([\s\S]*?)```', re.IGNORECASE)

NO_JSON_ERROR = "No JSON found in output"


@dataclass
class ParseOutcome:
    """Result of parsing one agent's output.

    Exactly one of ``result`` and ``error`` is set. ``raw`` always holds the
    original text for diagnostics.
    """
    result: Optional[ReviewResult] = None
    error: Optional[str] = None
    raw: str = ""

    @property
    def ok(self) -> bool:
        return self.result is not None

    def raise_for_error(self) -> ReviewResult:
        """Return the result or raise ResultParseError."""
        if self.result is None:
            raise ResultParseError(self.error or NO_JSON_ERROR, raw=self.raw)
        return self.result


class ResponseParser:
    """Extracts the JSON review payload from an agent's textual output."""

    def parse(self, agent: str, text: str) -> ParseOutcome:
        """Parse agent output into a ReviewResult.

        Never raises; failures are reported on the returned outcome.

        Args:
            agent: Agent identifier the output came from
            text: Raw agent stdout

        Returns:
            ParseOutcome with result or error
        """
        text = text or ""
        candidate = self._find_candidate(text)

        if candidate is None:
            logger.warning(f"{agent}: no JSON found in output")
            return ParseOutcome(error=NO_JSON_ERROR, raw=text)

        try:
            data = self._decode(candidate)
        except ValueError as e:
            logger.warning(f"{agent}: output parsing failed: {e}")
            logger.debug(f"{agent}: raw output: {text[:500]}...")
            return ParseOutcome(error=f"Failed to parse agent output: {e}", raw=text)

        if not isinstance(data, dict):
            return ParseOutcome(
                error=f"Failed to parse agent output: expected a JSON object, got {type(data).__name__}",
                raw=text,
            )

        try:
            result = self._build_result(agent, data)
        except (RecursionError, TypeError, ValueError) as e:
            logger.warning(f"{agent}: unusable payload: {e}")
            return ParseOutcome(error=f"Failed to parse agent output: {e}", raw=text)

        return ParseOutcome(result=result, raw=text)

    def _find_candidate(self, text: str) -> str | None:
        """Prefer a fenced json block, else the outermost brace span."""
        match = FENCED_JSON.search(text)
        if match:
            return match.group(1).strip()

        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            return None
        return text[start:end + 1]

    def _decode(self, candidate: str):
        try:
            try:
                return json.loads(candidate)
            except json.JSONDecodeError as e:
                # Trailing prose may contain braces; accept the first complete object
                try:
                    data, _ = json.JSONDecoder().raw_decode(candidate)
                    return data
                except json.JSONDecodeError:
                    raise ValueError(str(e)) from e
        except RecursionError as e:
            raise ValueError("JSON nested too deeply") from e

    def _build_result(self, agent: str, data: dict) -> ReviewResult:
        issues = [
            issue for issue in (self._build_issue(d) for d in self._as_list(data.get("issues_found")))
            if issue is not None
        ]
        fixes = [
            fix for fix in (self._build_fix(d) for d in self._as_list(data.get("safe_auto_fixes")))
            if fix is not None
        ]
        recommendations = [
            str(r).strip() for r in self._as_list(data.get("recommendations"))
            if isinstance(r, (str, int, float)) and str(r).strip()
        ]

        return ReviewResult(
            agent=agent,
            summary=str(data.get("review_summary") or ""),
            issues=issues,
            auto_fixes=fixes,
            recommendations=recommendations,
            score=self._score(data.get("overall_score")),
        )

    def _build_issue(self, d) -> Issue | None:
        if not isinstance(d, dict):
            return None

        description = str(d.get("description") or "").strip()
        if not description:
            return None

        suggestion = d.get("suggestion")
        return Issue(
            severity=normalize_severity(d.get("severity")),
            category=str(d.get("category") or "general"),
            description=description,
            file=str(d.get("file") or ""),
            line=self._line(d.get("line")),
            suggestion=str(suggestion) if suggestion else None,
            auto_fixable=d.get("auto_fixable") is True,
        )

    def _build_fix(self, d) -> AutoFix | None:
        if not isinstance(d, dict) or not d.get("file"):
            return None

        changes = d.get("changes", "")
        if not isinstance(changes, str):
            changes = json.dumps(changes)

        return AutoFix(
            file=str(d["file"]),
            description=str(d.get("description") or ""),
            changes=changes,
        )

    @staticmethod
    def _as_list(value) -> list:
        return value if isinstance(value, list) else []

    @staticmethod
    def _line(value) -> int | None:
        if isinstance(value, bool):
            return None
        try:
            line = int(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return line if line > 0 else None

    @staticmethod
    def _score(value) -> int | None:
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return None
        try:
            score = round(float(value))
        except (ValueError, OverflowError):
            return None
        return max(0, min(100, score))
