"""
Configuration loader for ralph.

Loads the project configuration from .ralph/ralph.yaml and exposes the
repository-relative state layout derived from it.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from ralph.lib.constants import (
    ARCHIVE_DIR,
    CONFIG_FILE,
    PRD_FILE,
    PROGRESS_FILE,
    RALPH_DIR,
    REGISTRY_FILE,
    STATE_DIR,
    TREE_DIR,
    WORKSPACES_DIR,
)

logger = logging.getLogger(__name__)

DEFAULT_BRANCH_PREFIX = "ralph/"


class ConfigError(Exception):
    """Missing or invalid configuration. Message carries a remediation hint."""
    pass


@dataclass
class RepoConfig:
    """The repo: section of ralph.yaml"""
    path: Path
    default_base: str
    branch_prefix: str = DEFAULT_BRANCH_PREFIX
    branch_pattern: str = ""


@dataclass
class ProjectConfig:
    """Project-level configuration from .ralph/ralph.yaml"""
    project: str
    repo: RepoConfig
    prompts_dir: Path | None = None
    quality_checks: list[str] = field(default_factory=list)
    copy_to_worktree: list[str] = field(default_factory=list)
    config_path: Path | None = None

    @property
    def ralph_dir(self) -> Path:
        return self.repo.path / RALPH_DIR

    @property
    def state_dir(self) -> Path:
        return self.ralph_dir / STATE_DIR

    @property
    def state_prd_path(self) -> Path:
        return self.state_dir / PRD_FILE

    @property
    def registry_path(self) -> Path:
        return self.state_dir / REGISTRY_FILE

    @property
    def archive_dir(self) -> Path:
        return self.state_dir / ARCHIVE_DIR

    @property
    def progress_path(self) -> Path:
        return self.ralph_dir / PROGRESS_FILE


def _as_str_list(value, key: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings")
    return value


def load_config(config_path: Path) -> ProjectConfig:
    """Load and validate ralph.yaml.

    The repository root is the directory that contains .ralph/.

    Raises:
        ConfigError: If the file is missing, unparseable, or lacks required fields
    """
    if not config_path.exists():
        raise ConfigError(f"config not found at {config_path}\n\nRun `ralph init` in your repository first.")

    try:
        raw = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {config_path}: {e}") from None

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    project = raw.get("project")
    if not project:
        raise ConfigError(f"{config_path}: 'project' is required")

    repo_raw = raw.get("repo") or {}
    if not isinstance(repo_raw, dict):
        raise ConfigError(f"{config_path}: 'repo' must be a mapping")
    default_base = repo_raw.get("default_base")
    if not default_base:
        raise ConfigError(f"{config_path}: 'repo.default_base' is required (e.g. main)")

    repo_path = config_path.resolve().parent.parent
    paths_raw = raw.get("paths") or {}
    prompts_dir = None
    if paths_raw.get("prompts_dir"):
        prompts_dir = repo_path / paths_raw["prompts_dir"]

    return ProjectConfig(
        project=str(project),
        repo=RepoConfig(
            path=repo_path,
            default_base=str(default_base),
            branch_prefix=repo_raw.get("branch_prefix", DEFAULT_BRANCH_PREFIX),
            branch_pattern=repo_raw.get("branch_pattern", "") or "",
        ),
        prompts_dir=prompts_dir,
        quality_checks=_as_str_list(raw.get("quality_checks"), "quality_checks"),
        copy_to_worktree=_as_str_list(raw.get("copy_to_worktree"), "copy_to_worktree"),
        config_path=config_path,
    )


def _is_workspace_tree(directory: Path) -> bool:
    """True for <repo>/.ralph/workspaces/<name>/tree."""
    parts = directory.parts
    return (
        len(parts) >= 4
        and parts[-1] == TREE_DIR
        and parts[-3] == WORKSPACES_DIR
        and parts[-4] == RALPH_DIR
    )


def discover_config(start: Path) -> Path:
    """Walk up from start looking for .ralph/ralph.yaml.

    Workspace trees carry a copy of .ralph/ but not the config, and the walk
    steps over them so commands run inside a tree resolve the main repository.
    """
    current = start.resolve()
    while True:
        if not _is_workspace_tree(current):
            candidate = current / RALPH_DIR / CONFIG_FILE
            if candidate.is_file():
                return candidate
        if current.parent == current:
            break
        current = current.parent
    raise ConfigError(
        f"no {RALPH_DIR}/{CONFIG_FILE} found in {start} or any parent\n\n"
        "Run `ralph init` in your repository first."
    )


def resolve_config(config_path: str | None = None, cwd: Path | None = None) -> ProjectConfig:
    """Load from an explicit path, or discover from cwd."""
    if config_path:
        return load_config(Path(config_path))
    found = discover_config(cwd or Path.cwd())
    logger.debug(f"Using config {found}")
    return load_config(found)
