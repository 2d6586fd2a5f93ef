"""Auto-fix staging and publication of review results."""

import logging
from pathlib import Path
from typing import Sequence

from .exceptions import MutationError, PublishError
from .github import GitHubHost
from .modifier import DEFAULT_BACKUP_DIR, BackupManager
from .models import AutoFix, ConsolidatedReport, MutationResult, PublishResult, PullRequestContext
from .reporter import ReportGenerator

logger = logging.getLogger(__name__)


class MutationPipeline:
    """Stages safe fixes, commits them, and publishes the review comment.

    Fix application stops at the backup step: no patch format is defined for
    the agents' ``changes`` text, so file content is never rewritten and
    ``applied`` only counts verified content changes (currently none).
    """

    def __init__(
        self,
        host: GitHubHost,
        mutation_disabled: bool = False,
        backup_dir: str = DEFAULT_BACKUP_DIR,
        reporter: ReportGenerator | None = None,
    ):
        self.host = host
        self.mutation_disabled = mutation_disabled
        self.backup_dir = backup_dir
        self.reporter = reporter or ReportGenerator()

    def apply_fixes(self, repo_dir: Path, fixes: Sequence[AutoFix]) -> MutationResult:
        """Stage auto-fixes in the cloned repository.

        Args:
            repo_dir: Cloned repository
            fixes: Proposed fixes from the consolidated report

        Returns:
            MutationResult; per-fix failures are recorded, never raised
        """
        if self.mutation_disabled:
            logger.warning("Auto-fix is disabled by configuration")
            return MutationResult(applied=0, disabled=True)

        if not fixes:
            logger.info("No auto fixes to apply")
            return MutationResult()

        result = MutationResult()
        backups = BackupManager(repo_dir, backup_dir=self.backup_dir)

        for fix in fixes:
            try:
                target = backups.validate_path(Path(fix.file))
                if not target.is_file():
                    result.errors.append(f"File not found: {fix.file}")
                    continue

                backup_path = backups.create_backup(Path(fix.file))
                result.backups.append(backup_path)

                if not backups.has_backup(Path(fix.file)):
                    result.errors.append(f"Backup missing for {fix.file}; fix not applied")
                    continue

                if self._apply_fix(target, fix):
                    result.applied += 1
                else:
                    logger.warning(f"Auto-fix prepared but not applied: {fix.file}")
                    logger.info(f"   Description: {fix.description}")
            except (MutationError, OSError) as e:
                result.errors.append(f"Failed to process {fix.file}: {e}")

        return result

    def _apply_fix(self, target: Path, fix: AutoFix) -> bool:
        """Apply one fix to ``target``; True only on a verified content change.

        The backup for ``target`` already exists when this is called.
        """
        # TODO: apply fix.changes once agents emit a unified-diff patch format
        return False

    def publish(
        self,
        repo_dir: Path,
        pr: PullRequestContext,
        report: ConsolidatedReport,
        mutation: MutationResult,
    ) -> PublishResult:
        """Commit/push applied fixes and post the review comment.

        The commit only happens when at least one fix was applied. A commit
        or push failure does not stop the comment from being posted.
        """
        result = PublishResult()

        if mutation.applied > 0:
            try:
                self.host.commit(
                    repo_dir,
                    self.reporter.generate_commit_message(report, mutation),
                    exclude=("*.backup.*", self.backup_dir),
                )
                result.committed = True
                self.host.push(repo_dir, pr.head_branch)
                result.pushed = True
            except PublishError as e:
                logger.error(f"Publishing fixes failed: {e}")
                result.errors.append(str(e))

        try:
            self.host.post_comment(pr, self.reporter.generate_review_comment(report, mutation))
            result.commented = True
        except PublishError as e:
            logger.error(f"Review comment failed: {e}")
            result.errors.append(str(e))

        return result
