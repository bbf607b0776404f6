"""Isolated per-unit-of-work sandboxes: a git worktree plus metadata and a registry entry."""

from ralph.workspace.errors import (
    InvalidWorkspaceName,
    WorkspaceError,
    WorkspaceExists,
    WorkspaceMissing,
    WorkspaceNotFound,
)
from ralph.workspace.paths import (
    WorkContext,
    context_for,
    derive_branch,
    detect_current,
    resolve_work_context,
    tree_path,
    validate_name,
    workspace_path,
)
from ralph.workspace.registry import Workspace, WorkspaceEntry
from ralph.workspace.manager import create_workspace, remove_workspace

__all__ = [
    "InvalidWorkspaceName",
    "WorkspaceError",
    "WorkspaceExists",
    "WorkspaceMissing",
    "WorkspaceNotFound",
    "WorkContext",
    "context_for",
    "derive_branch",
    "detect_current",
    "resolve_work_context",
    "tree_path",
    "validate_name",
    "workspace_path",
    "Workspace",
    "WorkspaceEntry",
    "create_workspace",
    "remove_workspace",
]
