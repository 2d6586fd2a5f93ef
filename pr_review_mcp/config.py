"""Configuration for the review pipeline."""

import os
import shlex
import yaml
import logging
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Mapping

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = Path(".pr-review") / "config.yaml"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _as_bool(value) -> bool:
    """Interpret YAML booleans and quoted switch strings alike."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_VALUES
    return bool(value)


@dataclass(frozen=True)
class ReviewConfig:
    """Options consumed by the review pipeline.

    Components receive this (or individual values from it) at construction;
    nothing reads the environment after startup.
    """
    mutation_disabled: bool = False
    per_task_timeout_seconds: int = 300
    trivial_line_threshold: int = 5
    reviewer_command: list[str] = field(default_factory=lambda: ["claude"])
    work_root: Path | None = None
    clone_depth: int = 50
    backup_dir: str = ".ai-review-backups"


def load_config(config_file: Path | None = None) -> ReviewConfig:
    """Load configuration from YAML.

    Args:
        config_file: Explicit config path (defaults to .pr-review/config.yaml)

    Returns:
        ReviewConfig object (with defaults if file missing or invalid)
    """
    config_file = Path(config_file) if config_file else DEFAULT_CONFIG_FILE

    if not config_file.exists():
        return ReviewConfig()

    try:
        content = yaml.safe_load(config_file.read_text())
        if not content:
            return ReviewConfig()

        # Extract section
        data = content.get("review", content)

        command = data.get("reviewer_command", ["claude"])
        if isinstance(command, str):
            command = shlex.split(command)

        work_root = data.get("work_root")

        return ReviewConfig(
            mutation_disabled=_as_bool(data.get("mutation_disabled", False)),
            per_task_timeout_seconds=int(data.get("per_task_timeout_seconds", 300)),
            trivial_line_threshold=int(data.get("trivial_line_threshold", 5)),
            reviewer_command=list(command),
            work_root=Path(work_root).expanduser() if work_root else None,
            clone_depth=int(data.get("clone_depth", 50)),
            backup_dir=data.get("backup_dir", ".ai-review-backups"),
        )
    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse config file {config_file}: {e}. Using defaults.")
        return ReviewConfig()
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Invalid review config in {config_file}: {e}. Using defaults.")
        return ReviewConfig()


def apply_env_overrides(config: ReviewConfig, environ: Mapping[str, str] | None = None) -> ReviewConfig:
    """Overlay environment switches onto a config.

    Only the process entry point calls this.

    Args:
        config: Base configuration
        environ: Environment mapping (defaults to os.environ)

    Returns:
        New ReviewConfig with overrides applied
    """
    if environ is None:
        environ = os.environ

    overrides = {}

    if "DISABLE_AUTO_FIX" in environ:
        overrides["mutation_disabled"] = _as_bool(environ["DISABLE_AUTO_FIX"])

    if "REVIEW_TIMEOUT" in environ:
        try:
            overrides["per_task_timeout_seconds"] = int(environ["REVIEW_TIMEOUT"])
        except ValueError:
            logger.warning(f"Ignoring invalid REVIEW_TIMEOUT: {environ['REVIEW_TIMEOUT']!r}")

    if environ.get("REVIEW_COMMAND"):
        overrides["reviewer_command"] = shlex.split(environ["REVIEW_COMMAND"])

    if environ.get("REVIEW_WORK_ROOT"):
        overrides["work_root"] = Path(environ["REVIEW_WORK_ROOT"]).expanduser()

    return replace(config, **overrides) if overrides else config
