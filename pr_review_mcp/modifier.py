"""File backups taken before any auto-fix touches a file."""

import logging
import shutil
import time
import uuid
from pathlib import Path

from .exceptions import MutationError

logger = logging.getLogger(__name__)

DEFAULT_BACKUP_DIR = ".ai-review-backups"


class BackupManager:
    """Manages file backups in a git-ignored directory of the repository."""

    def __init__(self, repo_dir: Path, backup_dir: str = DEFAULT_BACKUP_DIR):
        self.repo_dir = Path(repo_dir).resolve()
        self.backup_dir_name = backup_dir
        self.backup_dir = self.repo_dir / backup_dir
        self.active_backups: dict[str, Path] = {}

    def validate_path(self, file_path: Path) -> Path:
        """Ensure path is within the repository to prevent traversal."""
        resolved = (self.repo_dir / file_path).resolve()
        try:
            resolved.relative_to(self.repo_dir)
        except ValueError:
            raise MutationError(f"Access denied: {file_path} is outside the repository")
        if resolved == self.backup_dir or self.backup_dir in resolved.parents:
            raise MutationError(f"Access denied: {file_path} is inside the backup directory")
        return resolved

    def prepare(self) -> None:
        """Create the backup directory and exclude it from git."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        self._ensure_ignored()

    def create_backup(self, file_path: Path) -> Path:
        """Create a backup of a file with a unique name to prevent collisions."""
        target = self.validate_path(file_path)
        if not target.is_file():
            raise MutationError(f"Cannot backup non-existent file: {file_path}")

        self.prepare()

        timestamp = int(time.time() * 1000)
        u_id = uuid.uuid4().hex[:8]
        backup_path = self.backup_dir / f"{target.name}.backup.{timestamp}_{u_id}"

        shutil.copy2(target, backup_path)
        self.active_backups[str(target)] = backup_path
        logger.info(f"Backup created: {backup_path.name}")

        return backup_path

    def has_backup(self, file_path: Path) -> bool:
        backup = self.active_backups.get(str(self.validate_path(file_path)))
        return backup is not None and backup.exists()

    def _ensure_ignored(self) -> None:
        gitignore = self.repo_dir / ".gitignore"
        entry = f"{self.backup_dir_name}/"
        try:
            content = gitignore.read_text() if gitignore.exists() else ""
            if self.backup_dir_name not in content:
                with open(gitignore, "a") as f:
                    f.write(f"\n# AI Review System Backups\n{entry}\n")
        except OSError as e:
            logger.warning(f"Could not update .gitignore: {e}")
