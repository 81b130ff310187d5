"""
Test runner detection and execution for the implement gate.

The runner's exit code is authoritative; output is captured only so the
first lines can be shown when it fails.
"""

import json
import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from specflow.lib.config import ProjectProfile

logger = logging.getLogger(__name__)


@dataclass
class TestRun:
    """Result of one test command."""
    __test__ = False  # not a pytest class

    command: str
    exit_code: int
    output_head: list[str]
    timed_out: bool = False

    @property
    def passed(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "exit_code": self.exit_code,
            "passed": self.passed,
            "timed_out": self.timed_out,
            "output_head": self.output_head,
        }


def _file_mentions(path: Path, needle: str) -> bool:
    try:
        return needle in path.read_text(errors="replace")
    except OSError:
        return False


def _has_npm_test_script(package_json: Path) -> bool:
    try:
        data = json.loads(package_json.read_text())
    except (OSError, json.JSONDecodeError):
        return False
    scripts = data.get("scripts") if isinstance(data, dict) else None
    return isinstance(scripts, dict) and bool(scripts.get("test"))


def detect_test_runner(root: Path, profile: Optional[ProjectProfile] = None) -> Optional[str]:
    """Pick the project's test command, or None if none is identifiable.

    An explicit profile test_command wins over detection.
    """
    if profile and profile.test_command:
        return profile.test_command

    if (root / "pytest.ini").exists() or _file_mentions(root / "pyproject.toml", "pytest") \
            or _file_mentions(root / "setup.cfg", "pytest"):
        return "pytest"
    if (root / "tox.ini").exists():
        return "tox"
    if (root / "go.mod").exists():
        return "go test ./..."
    tests_dir = root / "tests"
    if tests_dir.is_dir() and any(tests_dir.glob("*.bats")):
        return "bats tests/"
    if (root / "Cargo.toml").exists():
        return "cargo test"
    if (root / "package.json").exists() and _has_npm_test_script(root / "package.json"):
        return "npm test"
    if (tests_dir / "test-runner.sh").exists():
        return "./tests/test-runner.sh"
    return None


def run_tests(command: str, cwd: Path, timeout: int = 300, head_lines: int = 10) -> TestRun:
    """Run the test command synchronously.

    A timeout is reported as exit code -1, a missing executable as 127.
    """
    logger.info(f"[TESTS] Running: {command}")
    try:
        result = subprocess.run(
            shlex.split(command),
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return TestRun(
            command=command,
            exit_code=-1,
            output_head=[f"Timed out after {timeout}s"],
            timed_out=True,
        )
    except FileNotFoundError:
        return TestRun(command=command, exit_code=127, output_head=[f"Command not found: {command}"])

    output = (result.stdout or "") + (result.stderr or "")
    return TestRun(
        command=command,
        exit_code=result.returncode,
        output_head=output.splitlines()[:head_lines],
    )
