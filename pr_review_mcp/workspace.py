"""Per-run working directories."""

import logging
import re
import shutil
import tempfile
import time
import uuid
from pathlib import Path

from .models import PullRequestContext

logger = logging.getLogger(__name__)


def _slug(value: str) -> str:
    return re.sub(r'[^A-Za-z0-9_.-]+', '-', value or "unknown").strip("-.") or "unknown"


class RunWorkspace:
    """Exclusively-owned directory for one review run.

    The directory name is unique per organization, pull request and
    timestamp, so concurrent runs never share a path. Used as a context
    manager, the directory is removed on exit whether the run succeeded
    or not.
    """

    def __init__(self, pr: PullRequestContext, root: Path | None = None):
        self.pr = pr
        self.root = Path(root) if root else Path(tempfile.gettempdir())
        self.path: Path | None = None

    @property
    def repo_dir(self) -> Path:
        if self.path is None:
            raise RuntimeError("Workspace has not been created")
        return self.path / "repo"

    def create(self) -> Path:
        timestamp = int(time.time() * 1000)
        name = f"pr-analysis-{_slug(self.pr.organization)}-{self.pr.number}-{timestamp}-{uuid.uuid4().hex[:8]}"

        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / name
        path.mkdir(exist_ok=False)
        self.path = path
        return path

    def cleanup(self) -> None:
        if self.path is None:
            return
        try:
            shutil.rmtree(self.path)
            logger.info(f"Cleaned up temporary directory: {self.path}")
        except OSError as e:
            logger.warning(f"Cleanup warning: {e}")
        self.path = None

    def __enter__(self) -> "RunWorkspace":
        self.create()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()
