"""Shared fakes and fixtures for the ralph test suite."""

import json
import subprocess
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that never blocks. sleep() advances time and reports cancellation."""

    def __init__(self, start: datetime = NOW):
        self.start = start
        self.elapsed = 0.0
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)

    def monotonic(self) -> float:
        return self.elapsed

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> bool:
        self.sleeps.append(seconds)
        self.elapsed += max(seconds, 0)
        return cancel is not None and cancel.is_set()


class RecordingHandler:
    def __init__(self):
        self.events = []

    def handle(self, event) -> None:
        self.events.append(event)

    def of(self, cls) -> list:
        return [e for e in self.events if isinstance(e, cls)]


class FakeLiveness:
    """ProcessLiveness over a set of live PIDs. Signals are recorded and may kill."""

    def __init__(self, alive=(), dies_on=()):
        self.alive = set(alive)
        self.dies_on = set(dies_on)
        self.signals: list[tuple[int, int]] = []

    def is_alive(self, pid: int) -> bool:
        return pid in self.alive

    def signal(self, pid: int, sig: int) -> None:
        if pid not in self.alive:
            raise ProcessLookupError(pid)
        self.signals.append((pid, sig))
        if sig in self.dies_on:
            self.alive.discard(pid)


def story(id, passes=False, priority=1, title=None):
    return {
        "id": id,
        "title": title or f"Story {id}",
        "description": f"Implement {id}",
        "acceptanceCriteria": [f"{id} works"],
        "priority": priority,
        "passes": passes,
        "notes": "",
    }


def itest(id, passes=False, failure=""):
    data = {"id": id, "description": f"Check {id}", "steps": ["run it"], "passes": passes}
    if failure:
        data["failure"] = failure
    return data


def write_prd_json(path: Path, stories, tests=None, branch="ralph/feature", description="A feature"):
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "project": "demo",
        "branchName": branch,
        "description": description,
        "userStories": list(stories),
        "integrationTests": list(tests or []),
    }
    path.write_text(json.dumps(data, indent=2))
    return path


def update_prd_json(path: Path, stories=None, tests=None):
    """Set passes/failure by id: stories={"US-1": True}, tests={"IT-1": (False, "boom")}."""
    data = json.loads(path.read_text())
    for s in data["userStories"]:
        if stories and s["id"] in stories:
            s["passes"] = stories[s["id"]]
    for t in data.get("integrationTests") or []:
        if tests and t["id"] in tests:
            passes, failure = tests[t["id"]]
            t["passes"] = passes
            t["failure"] = failure
    path.write_text(json.dumps(data, indent=2))


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", str(cwd), *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, content: str, message: str) -> None:
    path = repo / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", name)
    git(repo, "commit", "-q", "-m", message)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def git_repo(tmp_path):
    """A repository on branch main with one commit and no remote."""
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q", "-b", "main")
    git(repo, "config", "user.email", "test@example.com")
    git(repo, "config", "user.name", "Test")
    git(repo, "config", "commit.gpgsign", "false")
    commit_file(repo, "README.md", "hello\n", "initial")
    return repo
