"""Tests for specflow.lib.test_runner module."""

import json
import subprocess
from unittest.mock import MagicMock, patch

from specflow.lib.config import ProjectProfile
from specflow.lib.test_runner import TestRun, detect_test_runner, run_tests


class TestDetectTestRunner:
    """Tests for detect_test_runner."""

    def test_profile_override(self, tmp_path):
        (tmp_path / "go.mod").write_text("module x\n")
        assert detect_test_runner(tmp_path, ProjectProfile(test_command="make test")) == "make test"

    def test_pytest_from_pyproject(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[tool.pytest.ini_options]\n")
        assert detect_test_runner(tmp_path) == "pytest"

    def test_pyproject_without_pytest(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text("[project]\nname = 'x'\n")
        assert detect_test_runner(tmp_path) is None

    def test_go(self, tmp_path):
        (tmp_path / "go.mod").write_text("module x\n")
        assert detect_test_runner(tmp_path) == "go test ./..."

    def test_bats(self, tmp_path):
        (tmp_path / "tests").mkdir()
        (tmp_path / "tests" / "cli.bats").write_text("")
        assert detect_test_runner(tmp_path) == "bats tests/"

    def test_npm_requires_test_script(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"scripts": {"build": "tsc"}}))
        assert detect_test_runner(tmp_path) is None
        (tmp_path / "package.json").write_text(json.dumps({"scripts": {"test": "jest"}}))
        assert detect_test_runner(tmp_path) == "npm test"

    def test_nothing_detected(self, tmp_path):
        assert detect_test_runner(tmp_path) is None


class TestRunTests:
    """Tests for run_tests with subprocess patched."""

    @patch("specflow.lib.test_runner.subprocess.run")
    def test_passing(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(returncode=0, stdout="3 passed\n", stderr="")
        result = run_tests("pytest -q", tmp_path)
        assert result.passed
        assert mock_run.call_args[0][0] == ["pytest", "-q"]
        assert mock_run.call_args[1]["cwd"] == tmp_path

    @patch("specflow.lib.test_runner.subprocess.run")
    def test_failing_output_head(self, mock_run, tmp_path):
        mock_run.return_value = MagicMock(
            returncode=1,
            stdout="\n".join(f"line {i}" for i in range(20)),
            stderr="",
        )
        result = run_tests("pytest", tmp_path, head_lines=3)
        assert not result.passed
        assert result.output_head == ["line 0", "line 1", "line 2"]

    @patch("specflow.lib.test_runner.subprocess.run")
    def test_timeout(self, mock_run, tmp_path):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="pytest", timeout=5)
        result = run_tests("pytest", tmp_path, timeout=5)
        assert result.timed_out
        assert result.exit_code == -1
        assert not result.passed

    @patch("specflow.lib.test_runner.subprocess.run")
    def test_missing_command(self, mock_run, tmp_path):
        mock_run.side_effect = FileNotFoundError("nope")
        result = run_tests("nope", tmp_path)
        assert result.exit_code == 127


class TestTestRun:
    """Tests for TestRun."""

    def test_to_dict(self):
        data = TestRun(command="pytest", exit_code=0, output_head=[]).to_dict()
        assert data == {
            "command": "pytest",
            "exit_code": 0,
            "passed": True,
            "timed_out": False,
            "output_head": [],
        }
