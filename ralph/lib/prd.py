"""
PRD store.

The PRD is mutated in place by the agent between loop iterations, so nothing
here caches: every read goes to disk.
"""

import json
import logging
import shutil
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from ralph.lib.fileio import atomic_write_json, file_lock
from ralph.lib.validate import ValidationError, validate, validate_before_write

logger = logging.getLogger(__name__)


class PRDError(Exception):
    """PRD could not be read or is malformed."""
    pass


@dataclass
class Story:
    id: str
    title: str
    description: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    priority: int = 0
    passes: bool = False
    notes: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> "Story":
        return cls(
            id=d["id"],
            title=d.get("title", ""),
            description=d.get("description", ""),
            acceptance_criteria=list(d.get("acceptanceCriteria") or []),
            priority=d.get("priority", 0),
            passes=d.get("passes", False),
            notes=d.get("notes", ""),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "acceptanceCriteria": list(self.acceptance_criteria),
            "priority": self.priority,
            "passes": self.passes,
            "notes": self.notes,
        }


@dataclass
class IntegrationTest:
    id: str
    description: str = ""
    steps: list[str] = field(default_factory=list)
    passes: bool = False
    failure: str = ""
    notes: str = ""

    @classmethod
    def from_dict(cls, d: dict) -> "IntegrationTest":
        return cls(
            id=d["id"],
            description=d.get("description", ""),
            steps=list(d.get("steps") or []),
            passes=d.get("passes", False),
            failure=d.get("failure", ""),
            notes=d.get("notes", ""),
        )

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "description": self.description,
            "steps": list(self.steps),
            "passes": self.passes,
        }
        if self.failure:
            out["failure"] = self.failure
        if self.notes:
            out["notes"] = self.notes
        return out


@dataclass
class PRD:
    project: str = ""
    branch_name: str = ""
    description: str = ""
    user_stories: list[Story] = field(default_factory=list)
    integration_tests: list[IntegrationTest] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: dict) -> "PRD":
        return cls(
            project=d.get("project", ""),
            branch_name=d.get("branchName", ""),
            description=d.get("description", ""),
            user_stories=[Story.from_dict(s) for s in d.get("userStories") or []],
            integration_tests=[IntegrationTest.from_dict(t) for t in d.get("integrationTests") or []],
        )

    def to_dict(self) -> dict:
        return {
            "project": self.project,
            "branchName": self.branch_name,
            "description": self.description,
            "userStories": [s.to_dict() for s in self.user_stories],
            "integrationTests": [t.to_dict() for t in self.integration_tests],
        }


def _check_unique_ids(prd: PRD, path: Path) -> None:
    for kind, items in (("story", prd.user_stories), ("integration test", prd.integration_tests)):
        seen = set()
        for item in items:
            if item.id in seen:
                raise PRDError(f"{path}: duplicate {kind} id {item.id!r}")
            seen.add(item.id)


def read_prd(path: Path) -> PRD:
    """Read and validate the PRD at path.

    Raises:
        PRDError: If the file is missing, not JSON, or fails validation
    """
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        raise PRDError(f"PRD not found at {path}") from None
    except json.JSONDecodeError as e:
        raise PRDError(f"invalid JSON in {path}: {e}") from None

    try:
        validate(data, "prd")
    except ValidationError as e:
        raise PRDError(f"invalid PRD {path}: {e}") from None

    prd = PRD.from_dict(data)
    _check_unique_ids(prd, path)
    return prd


def write_prd(path: Path, prd: PRD) -> None:
    """Validate and atomically replace the PRD under an advisory lock."""
    data = prd.to_dict()
    validate_before_write(data, "prd", path)
    with file_lock(path.with_name(path.name + ".lock")):
        atomic_write_json(path, data)


def next_unfinished(prd: PRD) -> Story | None:
    """Lowest-priority pending story; ties keep file order."""
    pending = pending_stories(prd)
    if not pending:
        return None
    return sorted(pending, key=lambda s: s.priority)[0]


def pending_stories(prd: PRD) -> list[Story]:
    return [s for s in prd.user_stories if not s.passes]


def all_stories_pass(prd: PRD) -> bool:
    return all(s.passes for s in prd.user_stories)


def all_integration_tests_pass(prd: PRD) -> bool:
    """Vacuously true when there are no integration tests."""
    return all(t.passes for t in prd.integration_tests)


def failed_integration_tests(prd: PRD) -> list[IntegrationTest]:
    return [t for t in prd.integration_tests if not t.passes]


def is_complete(prd: PRD) -> bool:
    return all_stories_pass(prd) and all_integration_tests_pass(prd)


def needs_qa(prd: PRD) -> bool:
    """All stories pass, tests exist, and at least one test does not pass."""
    return (
        all_stories_pass(prd)
        and bool(prd.integration_tests)
        and not all_integration_tests_pass(prd)
    )


def archive_dir_name(branch: str, today: date) -> str:
    return f"{today.isoformat()}-{branch.replace('/', '__')}"


def archive_prd(prd_path: Path, archive_root: Path, today: date) -> Path | None:
    """Copy a finished PRD to archive/<date>-<branch>/prd.json.

    Best effort: returns None (and logs) when the PRD is unreadable or has no
    branch name.
    """
    try:
        prd = read_prd(prd_path)
    except PRDError as e:
        logger.warning(f"[done] not archiving PRD: {e}")
        return None
    if not prd.branch_name:
        return None

    dest_dir = archive_root / archive_dir_name(prd.branch_name, today)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(prd_path, dest_dir / "prd.json")
    except OSError as e:
        logger.warning(f"[done] could not archive PRD: {e}")
        return None

    logger.info(f"[done] archived PRD to {dest_dir}")
    return dest_dir
