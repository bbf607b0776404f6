"""Tests for ralph.lib: config, PRD store, progress log, prompts and helpers."""

import json
from datetime import date
from pathlib import Path

import pytest

from conftest import NOW, itest, story, write_prd_json
from ralph.lib import prd as prd_store
from ralph.lib.config import ConfigError, discover_config, load_config, resolve_config
from ralph.lib.fileio import atomic_write_json, atomic_write_text
from ralph.lib.output import tail_chars, tail_lines, truncate_output
from ralph.lib.progress import cap_progress_entries, ensure_progress_file, read_progress_excerpt
from ralph.lib.prompts import (
    PromptError,
    bullet_list,
    clear_cache,
    load_prompt,
    render_prompt,
)
from ralph.lib.validate import ValidationError, validate, validate_before_write


def write_config(repo: Path, text: str) -> Path:
    path = repo / ".ralph" / "ralph.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


class TestConfig:

    def test_load_minimal(self, tmp_path):
        path = write_config(tmp_path, "project: demo\nrepo:\n  default_base: main\n")
        config = load_config(path)

        assert config.project == "demo"
        assert config.repo.path == tmp_path.resolve()
        assert config.repo.default_base == "main"
        assert config.repo.branch_prefix == "ralph/"
        assert config.quality_checks == []
        assert config.state_prd_path == tmp_path.resolve() / ".ralph" / "state" / "prd.json"

    def test_load_full(self, tmp_path):
        path = write_config(tmp_path, """\
project: demo
repo:
  default_base: develop
  branch_prefix: feature/
  branch_pattern: "^feature/"
paths:
  prompts_dir: .ralph/prompts
quality_checks:
  - make lint
  - make test
copy_to_worktree:
  - .env
""")
        config = load_config(path)

        assert config.repo.branch_prefix == "feature/"
        assert config.repo.branch_pattern == "^feature/"
        assert config.prompts_dir == tmp_path.resolve() / ".ralph" / "prompts"
        assert config.quality_checks == ["make lint", "make test"]
        assert config.copy_to_worktree == [".env"]

    @pytest.mark.parametrize("text, match", [
        ("repo:\n  default_base: main\n", "'project' is required"),
        ("project: demo\n", "default_base"),
        ("project: demo\nrepo: [1]\n", "must be a mapping"),
        ("- a\n- b\n", "must contain a mapping"),
        ("project: demo\nrepo:\n  default_base: main\nquality_checks: make\n", "list of strings"),
        ("project: [unclosed\n", "invalid YAML"),
    ])
    def test_invalid(self, tmp_path, text, match):
        with pytest.raises(ConfigError, match=match):
            load_config(write_config(tmp_path, text))

    def test_missing(self, tmp_path):
        with pytest.raises(ConfigError, match="ralph init"):
            load_config(tmp_path / ".ralph" / "ralph.yaml")

    def test_discover_walks_up(self, tmp_path):
        path = write_config(tmp_path, "project: demo\nrepo:\n  default_base: main\n")
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        assert discover_config(nested) == path.resolve()

    def test_discover_skips_workspace_tree(self, tmp_path):
        path = write_config(tmp_path, "project: demo\nrepo:\n  default_base: main\n")
        tree = tmp_path / ".ralph" / "workspaces" / "login" / "tree"
        # A stray config inside a tree must not win over the repository's.
        write_config(tree, "project: wrong\nrepo:\n  default_base: main\n")

        assert discover_config(tree) == path.resolve()
        assert resolve_config(cwd=tree).project == "demo"

    def test_discover_none(self, tmp_path):
        with pytest.raises(ConfigError, match="no .ralph/ralph.yaml"):
            discover_config(tmp_path)


class TestPRDStore:

    def test_read(self, tmp_path):
        path = write_prd_json(tmp_path / "prd.json", [story("US-1", title="Login")], [itest("IT-1")])
        prd = prd_store.read_prd(path)

        assert prd.branch_name == "ralph/feature"
        assert prd.user_stories[0].title == "Login"
        assert prd.user_stories[0].acceptance_criteria == ["US-1 works"]
        assert prd.integration_tests[0].steps == ["run it"]

    def test_missing(self, tmp_path):
        with pytest.raises(prd_store.PRDError, match="not found"):
            prd_store.read_prd(tmp_path / "prd.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "prd.json"
        path.write_text("{oops")
        with pytest.raises(prd_store.PRDError, match="invalid JSON"):
            prd_store.read_prd(path)

    def test_schema_violation(self, tmp_path):
        path = tmp_path / "prd.json"
        path.write_text(json.dumps({"userStories": [{"id": "US-1"}]}))
        with pytest.raises(prd_store.PRDError, match="invalid PRD"):
            prd_store.read_prd(path)

    def test_duplicate_ids(self, tmp_path):
        path = write_prd_json(tmp_path / "prd.json", [story("US-1"), story("US-1")])
        with pytest.raises(prd_store.PRDError, match="duplicate story id"):
            prd_store.read_prd(path)

    def test_null_integration_tests(self, tmp_path):
        path = tmp_path / "prd.json"
        path.write_text(json.dumps({"userStories": [story("US-1", passes=True)], "integrationTests": None}))
        prd = prd_store.read_prd(path)
        assert prd.integration_tests == []
        assert prd_store.is_complete(prd)

    def test_next_unfinished_by_priority_then_file_order(self):
        prd = prd_store.PRD.from_dict({"userStories": [
            story("US-1", passes=True, priority=1),
            story("US-2", priority=3),
            story("US-3", priority=2),
            story("US-4", priority=2),
        ]})
        assert prd_store.next_unfinished(prd).id == "US-3"

    def test_next_unfinished_none(self):
        prd = prd_store.PRD.from_dict({"userStories": [story("US-1", passes=True)]})
        assert prd_store.next_unfinished(prd) is None

    def test_completion_queries(self):
        prd = prd_store.PRD.from_dict({
            "userStories": [story("US-1", passes=True)],
            "integrationTests": [itest("IT-1", passes=True), itest("IT-2", failure="500")],
        })
        assert prd_store.all_stories_pass(prd)
        assert not prd_store.is_complete(prd)
        assert prd_store.needs_qa(prd)
        assert [t.id for t in prd_store.failed_integration_tests(prd)] == ["IT-2"]

    def test_no_tests_no_qa(self):
        prd = prd_store.PRD.from_dict({"userStories": [story("US-1", passes=True)]})
        assert prd_store.is_complete(prd)
        assert not prd_store.needs_qa(prd)

    def test_pending_stories_block_qa(self):
        prd = prd_store.PRD.from_dict({
            "userStories": [story("US-1")],
            "integrationTests": [itest("IT-1")],
        })
        assert not prd_store.needs_qa(prd)

    def test_write_round_trip(self, tmp_path):
        path = write_prd_json(tmp_path / "prd.json", [story("US-1")], [itest("IT-1", failure="boom")])
        prd = prd_store.read_prd(path)
        prd.user_stories[0].passes = True

        prd_store.write_prd(path, prd)

        data = json.loads(path.read_text())
        assert data["userStories"][0]["passes"] is True
        assert data["integrationTests"][0]["failure"] == "boom"

    def test_archive(self, tmp_path):
        path = write_prd_json(tmp_path / "prd.json", [story("US-1", passes=True)], branch="ralph/login")
        dest = prd_store.archive_prd(path, tmp_path / "archive", date(2026, 3, 1))

        assert dest == tmp_path / "archive" / "2026-03-01-ralph__login"
        assert (dest / "prd.json").read_text() == path.read_text()

    def test_archive_unreadable_is_skipped(self, tmp_path):
        assert prd_store.archive_prd(tmp_path / "missing.json", tmp_path / "archive", date(2026, 3, 1)) is None
        assert not (tmp_path / "archive").exists()


PROGRESS = """\
# Ralph Progress Log
Started: 2026-03-01T12:00:00+00:00
---

## Codebase Patterns
- use the repo helpers

---
## entry 1
---
## entry 2
---
## entry 3
---
"""


class TestProgress:

    def test_ensure_creates_once(self, tmp_path):
        path = tmp_path / "progress.txt"
        assert ensure_progress_file(path, NOW) is True
        assert "## Codebase Patterns" in path.read_text()
        path.write_text("custom")
        assert ensure_progress_file(path, NOW) is False
        assert path.read_text() == "custom"

    def test_cap_keeps_header_patterns_and_last_entries(self):
        capped = cap_progress_entries(PROGRESS, keep=2)

        assert "# Ralph Progress Log" in capped
        assert "- use the repo helpers" in capped
        assert "## entry 1" not in capped
        assert "## entry 2" in capped and "## entry 3" in capped

    def test_cap_under_limit_unchanged(self):
        assert cap_progress_entries(PROGRESS, keep=5) == PROGRESS

    def test_cap_without_patterns_unchanged(self):
        text = "a\n---\nb\n---\nc\n"
        assert cap_progress_entries(text, keep=1) == text

    def test_excerpt_missing_file(self, tmp_path):
        assert read_progress_excerpt(tmp_path / "none.txt") == ""


class TestPrompts:

    def setup_method(self):
        clear_cache()

    def teardown_method(self):
        clear_cache()

    @pytest.mark.parametrize("name", ["loop_iteration", "qa_verification", "qa_fix", "rebase_conflict"])
    def test_packaged_templates_exist(self, name):
        assert load_prompt(name).strip()

    def test_comments_stripped(self, tmp_path):
        (tmp_path / "qa_verification.md").write_text("<!-- doc -->\nCheck {prd_path}\n")
        assert load_prompt("qa_verification", tmp_path) == "Check {prd_path}\n"

    def test_override_wins(self, tmp_path):
        (tmp_path / "qa_fix.md").write_text("Fix: {failed_tests}")
        assert render_prompt("qa_fix", tmp_path, failed_tests="IT-1") == "Fix: IT-1"

    def test_missing_override_falls_back(self, tmp_path):
        rendered = render_prompt(
            "qa_verification", tmp_path,
            prd_path="/p/prd.json", progress_path="/p/progress.txt", quality_checks="- make test",
        )
        assert "/p/prd.json" in rendered

    def test_missing_variable(self):
        with pytest.raises(PromptError, match="Missing required variable"):
            render_prompt("qa_fix")

    def test_unknown_template(self):
        with pytest.raises(PromptError, match="not found"):
            load_prompt("nope")

    def test_helpers(self):
        assert bullet_list(["a", "b"]) == "- a\n- b"
        assert bullet_list([]) == "(none)"


class TestOutput:

    def test_truncate_keeps_ends(self):
        text = "A" * 100 + "B" * 100
        out = truncate_output(text, max_chars=80)
        assert len(out) <= 80
        assert out.startswith("A") and out.endswith("B")
        assert "[truncated]" in out

    def test_truncate_short_unchanged(self):
        assert truncate_output("short", 80) == "short"

    def test_tail_lines(self):
        assert tail_lines("a\nb\nc\n", 2) == ["b", "c"]
        assert tail_lines("a\nb", 0) == []

    def test_tail_chars(self):
        assert tail_chars("abcdef", 3) == "def"
        assert tail_chars("ab", 3) == "ab"


class TestFileIO:

    def test_atomic_write_leaves_no_temp(self, tmp_path):
        path = tmp_path / "sub" / "data.json"
        atomic_write_json(path, {"a": 1})
        atomic_write_text(path, '{"a": 2}')

        assert json.loads(path.read_text()) == {"a": 2}
        assert [p.name for p in path.parent.iterdir()] == ["data.json"]


class TestValidate:

    def test_run_status(self):
        validate({"result": "success", "timestamp": "2026-03-01T12:00:00+00:00"}, "run_status")

    def test_error_names_field(self):
        with pytest.raises(ValidationError) as exc:
            validate([{"name": "a b", "branch": "x", "createdAt": "t"}], "workspaces")
        assert "0.name" in str(exc.value)

    def test_unknown_schema(self):
        with pytest.raises(ValidationError, match="no such schema"):
            validate({}, "nope")

    def test_before_write_includes_path(self, tmp_path):
        with pytest.raises(ValidationError, match="prd.json"):
            validate_before_write({"userStories": "no"}, "prd", tmp_path / "prd.json")
