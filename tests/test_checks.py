"""Tests for ralph.runner.checks module."""

import pytest

from ralph.runner.checks import CheckResult, format_result, log_file_for, run_check, sanitize_command


class TestSanitize:

    def test_unsafe_characters_replaced(self):
        assert sanitize_command("npm run test -- --watch=false") == "npm_run_test_--_--watch_false"

    def test_log_name_is_deterministic(self, tmp_path):
        assert log_file_for(tmp_path, "make lint") == tmp_path / "check-make_lint.log"


class TestRunCheck:

    def test_pass(self, tmp_path):
        result = run_check(["echo", "hello"], tmp_path, tmp_path / "logs")

        assert result.passed
        assert result.tail == []
        assert result.log_path.read_text() == "hello\n"

    def test_fail_keeps_bounded_tail(self, tmp_path):
        script = "for i in 1 2 3 4 5; do echo line$i; done; echo oops >&2; exit 4"
        result = run_check([script], tmp_path, tmp_path / "logs", tail=2)

        assert result.exit_code == 4
        assert result.tail == ["line5", "oops"]
        assert "line1" in result.log_path.read_text()

    def test_signal_killed_is_failure(self, tmp_path):
        result = run_check(["kill -9 $$"], tmp_path, tmp_path / "logs")
        assert result.exit_code == 1
        assert not result.passed

    def test_runs_in_cwd(self, tmp_path):
        (tmp_path / "marker").write_text("")
        assert run_check(["test -f marker"], tmp_path, tmp_path / "logs").passed

    def test_empty_argv(self, tmp_path):
        with pytest.raises(ValueError):
            run_check([], tmp_path, tmp_path / "logs")

    def test_unwritable_logs_dir(self, tmp_path):
        blocker = tmp_path / "logs"
        blocker.write_text("a file, not a directory")
        with pytest.raises(OSError):
            run_check(["true"], tmp_path, blocker)


class TestFormatResult:

    def test_fail_format(self, tmp_path):
        result = CheckResult(command="make test", exit_code=2, duration=1.5,
                             log_path=tmp_path / "check-make_test.log", tail=["E  assert 1 == 2"])
        assert format_result(result, tail=20) == (
            "FAIL: make test (1.50s)\n"
            "--- last 20 lines ---\n"
            "E  assert 1 == 2\n"
            f"Full log: {tmp_path / 'check-make_test.log'}\n"
        )
