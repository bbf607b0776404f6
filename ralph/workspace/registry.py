"""
Workspace registry: a JSON array in .ralph/state/workspaces.json.

Every mutation is a whole-file read-modify-write under an exclusive flock on
a sidecar lock file, written atomically.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from ralph.lib.constants import RALPH_DIR, REGISTRY_FILE, STATE_DIR, WORKSPACE_META_FILE
from ralph.lib.fileio import atomic_write_json, file_lock
from ralph.lib.validate import ValidationError, validate, validate_before_write
from ralph.workspace.errors import WorkspaceError, WorkspaceExists, WorkspaceMissing, WorkspaceNotFound
from ralph.workspace.paths import validate_name, workspace_path

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    name: str
    branch: str
    created_at: str

    @classmethod
    def from_dict(cls, d: dict) -> "Workspace":
        return cls(name=d["name"], branch=d["branch"], created_at=d["createdAt"])

    def to_dict(self) -> dict:
        return {"name": self.name, "branch": self.branch, "createdAt": self.created_at}


@dataclass
class WorkspaceEntry:
    """Registry row plus derived state."""
    workspace: Workspace
    missing: bool

    @property
    def name(self) -> str:
        return self.workspace.name

    @property
    def branch(self) -> str:
        return self.workspace.branch


def registry_path(repo: Path) -> Path:
    return repo / RALPH_DIR / STATE_DIR / REGISTRY_FILE


def _lock_path(repo: Path) -> Path:
    path = registry_path(repo)
    return path.with_name(path.name + ".lock")


def _read(repo: Path) -> list[Workspace]:
    path = registry_path(repo)
    if not path.exists():
        return []
    try:
        data = json.loads(path.read_text())
        validate(data, "workspaces")
    except (json.JSONDecodeError, ValidationError) as e:
        raise WorkspaceError(f"corrupt workspace registry {path}: {e}") from None
    return [Workspace.from_dict(d) for d in data]


def _write(repo: Path, entries: list[Workspace]) -> None:
    path = registry_path(repo)
    data = [w.to_dict() for w in entries]
    validate_before_write(data, "workspaces", path)
    atomic_write_json(path, data)


def create(repo: Path, ws: Workspace) -> None:
    """Append a workspace.

    Raises:
        WorkspaceExists: If the name is already registered
    """
    validate_name(ws.name)
    with file_lock(_lock_path(repo)):
        entries = _read(repo)
        if any(e.name == ws.name for e in entries):
            raise WorkspaceExists(ws.name)
        entries.append(ws)
        _write(repo, entries)


def list_workspaces(repo: Path) -> list[Workspace]:
    return _read(repo)


def list_with_missing(repo: Path) -> list[WorkspaceEntry]:
    return [
        WorkspaceEntry(workspace=w, missing=not workspace_path(repo, w.name).is_dir())
        for w in _read(repo)
    ]


def lookup(repo: Path, name: str) -> Workspace | None:
    """Registry entry regardless of whether its directory exists."""
    return next((w for w in _read(repo) if w.name == name), None)


def get(repo: Path, name: str) -> Workspace:
    """
    Registered workspace whose directory exists.

    Raises:
        WorkspaceNotFound: Not in the registry
        WorkspaceMissing: In the registry, directory gone
    """
    ws = lookup(repo, name)
    if ws is None:
        raise WorkspaceNotFound(name)
    if not workspace_path(repo, name).is_dir():
        raise WorkspaceMissing(name)
    return ws


def remove(repo: Path, name: str) -> None:
    """
    Raises:
        WorkspaceNotFound: If the name is not registered
    """
    with file_lock(_lock_path(repo)):
        entries = _read(repo)
        kept = [e for e in entries if e.name != name]
        if len(kept) == len(entries):
            raise WorkspaceNotFound(name)
        _write(repo, kept)


def write_metadata(repo: Path, ws: Workspace) -> Path:
    path = workspace_path(repo, ws.name) / WORKSPACE_META_FILE
    data = ws.to_dict()
    validate_before_write(data, "workspace", path)
    atomic_write_json(path, data)
    return path
