"""Source-control host access through the gh and git CLIs."""

import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Sequence

from .exceptions import PublishError, ReviewError, SetupError
from .models import ChangedFileStat, PullRequestContext

logger = logging.getLogger(__name__)

CLONE_TIMEOUT = 60
GIT_TIMEOUT = 120
API_TIMEOUT = 60

FILES_JQ = '.[] | {filename, additions, deletions, changes, status, patch}'


def validate_branch_name(branch: str) -> bool:
    """Validate branch name contains only safe characters.

    Prevents command injection via malicious branch names that could
    be interpreted as git flags (e.g., --version, -v).
    """
    if not branch:
        return False
    # Must not start with a hyphen (could be interpreted as a flag)
    return bool(re.match(r'^[a-zA-Z0-9._/][a-zA-Z0-9._/-]*$', branch))


def validate_repo_name(repo: str) -> bool:
    """Validate an ``owner/name`` repository slug."""
    return bool(re.match(r'^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$', repo or ""))


def context_from_payload(pull_request: dict, repository: dict, organization: dict | None = None) -> PullRequestContext:
    """Build a PullRequestContext from GitHub API/webhook objects."""
    head = pull_request.get("head") or {}
    base = pull_request.get("base") or {}
    user = pull_request.get("user") or {}
    owner = (repository.get("owner") or {}).get("login", "")

    return PullRequestContext(
        organization=(organization or {}).get("login") or owner,
        repo=repository["full_name"],
        number=int(pull_request["number"]),
        title=pull_request.get("title") or "",
        body=pull_request.get("body") or "",
        head_branch=head.get("ref", ""),
        base_branch=base.get("ref", "main"),
        head_sha=head.get("sha", ""),
        author=user.get("login", ""),
        clone_url=repository.get("clone_url", ""),
        html_url=pull_request.get("html_url", ""),
    )


class GitHubHost:
    """Wraps gh/git commands needed by a review run."""

    def __init__(self, gh: str = "gh", git: str = "git"):
        self.gh = gh
        self.git = git

    def get_pull_request(self, repo: str, number: int) -> PullRequestContext:
        """Fetch pull request metadata.

        Raises:
            SetupError: If the repository slug is invalid or the API call fails
        """
        if not validate_repo_name(repo):
            raise SetupError(f"Invalid repository name: {repo}")

        stdout = self._run(
            [self.gh, "api", f"repos/{repo}/pulls/{int(number)}"],
            error=SetupError,
            timeout=API_TIMEOUT,
        )
        try:
            data = json.loads(stdout)
            return context_from_payload(data, data["base"]["repo"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise SetupError(f"Unexpected pull request payload: {e}") from e

    def get_changed_files(self, pr: PullRequestContext) -> list[ChangedFileStat] | None:
        """Fetch changed-file stats for a pull request.

        Returns:
            File stats, or None if the host call failed
        """
        logger.info(f"Fetching changed files for PR #{pr.number}")
        try:
            stdout = self._run(
                [self.gh, "api", f"repos/{pr.repo}/pulls/{pr.number}/files",
                 "--paginate", "--jq", FILES_JQ],
                error=ReviewError,
                timeout=API_TIMEOUT,
            )
            files = [
                ChangedFileStat.from_dict(json.loads(line))
                for line in stdout.splitlines() if line.strip()
            ]
        except ReviewError as e:
            logger.warning(f"Failed to fetch changed files: {e}")
            return None
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to parse files: {e}")
            return None

        logger.info(f"Found {len(files)} changed files")
        return files

    def clone(self, pr: PullRequestContext, dest: Path, depth: int = 50) -> Path:
        """Clone the pull request's head branch into ``dest``.

        Raises:
            SetupError: If the branch name is unsafe or the clone fails
        """
        if not validate_branch_name(pr.head_branch):
            raise SetupError(f"Clone failed: invalid branch name: {pr.head_branch!r}")
        if not pr.clone_url:
            raise SetupError("Clone failed: no clone URL for repository")

        self._run(
            [self.git, "clone", f"--depth={int(depth)}", f"--branch={pr.head_branch}",
             "--", pr.clone_url, str(dest)],
            error=SetupError,
            timeout=CLONE_TIMEOUT,
            label="Clone failed",
        )
        return dest

    def generate_diff(self, repo_dir: Path, base_branch: str) -> Path | None:
        """Write the base...HEAD diff next to the clone.

        Returns:
            Path to pr-diff.patch, or None if it could not be generated
        """
        if not validate_branch_name(base_branch):
            logger.warning(f"Could not generate diff: invalid base branch {base_branch!r}")
            return None

        try:
            self._run([self.git, "fetch", "origin", base_branch], cwd=repo_dir, error=ReviewError)
            diff = self._run(
                [self.git, "diff", f"origin/{base_branch}...HEAD"],
                cwd=repo_dir,
                error=ReviewError,
            )
        except ReviewError as e:
            logger.warning(f"Could not generate diff: {e}")
            return None

        patch_file = Path(repo_dir).parent / "pr-diff.patch"
        patch_file.write_text(diff, encoding="utf-8")
        return patch_file

    def commit(self, repo_dir: Path, message: str, exclude: Sequence[str] = ()) -> None:
        """Stage everything except ``exclude`` pathspecs and commit."""
        pathspecs = ["."] + [f":!{p}" for p in exclude]
        self._run([self.git, "add", "--all", "--"] + pathspecs, cwd=repo_dir, error=PublishError,
                  label="Commit failed")
        self._run([self.git, "commit", "-m", message], cwd=repo_dir, error=PublishError,
                  label="Commit failed")
        logger.info("Changes committed successfully")

    def push(self, repo_dir: Path, branch: str) -> None:
        if not validate_branch_name(branch):
            raise PublishError(f"Push failed: invalid branch name: {branch!r}")
        self._run([self.git, "push", "origin", branch], cwd=repo_dir, error=PublishError,
                  label="Push failed")
        logger.info("Changes pushed successfully")

    def post_comment(self, pr: PullRequestContext, body: str) -> None:
        """Post a comment on the pull request thread."""
        self._run(
            [self.gh, "pr", "comment", str(pr.number), "--repo", pr.repo, "--body-file", "-"],
            error=PublishError,
            input=body,
            timeout=API_TIMEOUT,
            label="Comment failed",
        )
        logger.info(f"Comment posted on PR #{pr.number}")

    def _run(
        self,
        cmd: list[str],
        error: type[ReviewError],
        cwd: Path | None = None,
        input: str | None = None,
        timeout: int = GIT_TIMEOUT,
        label: str | None = None,
    ) -> str:
        prefix = f"{label}: " if label else ""
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                input=input,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            raise error(f"{prefix}{cmd[0]} {cmd[1]} timed out after {timeout}s")
        except OSError as e:
            raise error(f"{prefix}{e}") from e

        if result.returncode != 0:
            raise error(f"{prefix}{result.stderr.strip() or f'exit code {result.returncode}'}")

        return result.stdout
