"""Tests for the specflow command line."""

import json
from unittest.mock import patch

import pytest

from specflow.cli import build_parser, main

from samples import ROADMAP_V20, ROADMAP_V21, SPEC_OK, TASKS_OK


@pytest.fixture
def project(tmp_path, capsys):
    """Project root with an initialized state document."""
    (tmp_path / ".specify").mkdir()
    assert main(["-C", str(tmp_path), "state", "init"]) == 0
    capsys.readouterr()
    return tmp_path


def run(project, capsys, *argv):
    code = main(["-C", str(project), *argv])
    out, err = capsys.readouterr()
    return code, out, err


class TestParser:
    """Tests for argument parsing."""

    def test_json_after_subcommand(self):
        args = build_parser().parse_args(["state", "get", "orchestration", "--json"])
        assert args.json is True
        assert args.key == "orchestration"

    def test_trust_modes_exclusive(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["reconcile", "--trust-files", "--trust-state"])

    def test_unknown_step_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["step", "start", "deploy"])


class TestStateCommands:
    """specflow state ..."""

    def test_init_twice_fails(self, project, capsys):
        code, _, err = run(project, capsys, "state", "init")
        assert code == 1
        assert "already exists" in err

    def test_set_and_get(self, project, capsys):
        code, out, _ = run(project, capsys, "state", "set",
                           "orchestration.phase_number=0020", "orchestration.steps.implement.tasks_total=5")
        assert code == 0
        assert 'Set orchestration.phase_number = "0020"' in out

        code, out, _ = run(project, capsys, "state", "get", "orchestration.steps.implement.tasks_total")
        assert (code, out) == (0, "5\n")

    def test_get_missing_key(self, project, capsys):
        code, _, err = run(project, capsys, "state", "get", "orchestration.nope")
        assert code == 1
        assert "Key not found" in err

    def test_get_json_object(self, project, capsys):
        code, out, _ = run(project, capsys, "state", "get", "config", "--json")
        assert json.loads(out)["roadmap_path"] == "ROADMAP.md"

    def test_set_rejects_bad_assignment(self, project, capsys):
        code, _, err = run(project, capsys, "state", "set", "orchestration.phase_number")
        assert code == 1
        assert "Expected key=value" in err

    def test_set_rejects_invalid_value(self, project, capsys):
        code, out, _ = run(project, capsys, "state", "set", "interview.status=halfway", "--json")
        assert code == 1
        assert json.loads(out)["ok"] is False

    def test_validate(self, project, capsys):
        code, out, _ = run(project, capsys, "state", "validate", "--json")
        assert code == 0
        assert json.loads(out)["valid"] is True

    def test_corrupt_state_suggests_init(self, project, capsys):
        (project / ".specify" / "orchestration-state.json").write_text("{oops")
        code, _, err = run(project, capsys, "state", "validate")
        assert code == 1
        assert "state init --force" in err

    @pytest.mark.parametrize("key, value", [
        ("steps", {"specify": "completed"}),
        ("steps", ["specify"]),
        ("phase_number", 20),
    ])
    def test_wrong_shapes_reported_not_raised(self, project, capsys, key, value):
        state_file = project / ".specify" / "orchestration-state.json"
        data = json.loads(state_file.read_text())
        data["orchestration"][key] = value
        state_file.write_text(json.dumps(data))

        code, out, _ = run(project, capsys, "state", "validate", "--json")
        assert code == 1
        assert any(p.startswith(f"orchestration.{key}") for p in json.loads(out)["problems"])

        assert run(project, capsys, "reconcile", "--dry-run")[0] in (0, 2)
        assert run(project, capsys, "gate", "status")[0] == 0

    def test_path(self, project, capsys):
        code, out, _ = run(project, capsys, "state", "path")
        assert out.strip().endswith("orchestration-state.json")

    def test_reset(self, project, capsys):
        run(project, capsys, "state", "set", "orchestration.phase_number=0020")
        code, _, _ = run(project, capsys, "state", "reset")
        assert code == 0
        _, out, _ = run(project, capsys, "state", "get", "orchestration.phase_number")
        assert out == "null\n"


class TestStepAndGate:
    """specflow step / gate"""

    @pytest.fixture
    def active(self, project, capsys):
        feature = project / "specs" / "0020-auth"
        feature.mkdir(parents=True)
        run(project, capsys, "state", "set", "orchestration.phase_number=0020")
        return feature

    def test_complete_blocked_without_spec(self, project, capsys, active):
        code, out, err = run(project, capsys, "step", "complete", "specify")
        assert code == 1
        assert "spec.md missing" in out
        assert "blocked completion" in err

    def test_complete_with_spec(self, project, capsys, active):
        (active / "spec.md").write_text(SPEC_OK)
        code, out, _ = run(project, capsys, "step", "complete", "specify", "--json")
        assert code == 0
        assert json.loads(out)["to"] == "completed"

    def test_invalid_transition(self, project, capsys, active):
        code, _, err = run(project, capsys, "step", "fail", "plan")
        assert code == 1
        assert "Invalid transition" in err

    def test_gate_json(self, project, capsys, active):
        (active / "tasks.md").write_text(TASKS_OK)
        code, out, _ = run(project, capsys, "gate", "tasks", "--json")
        assert code == 0
        assert json.loads(out)["verdict"] == "PASS"

    def test_gate_implement_fails(self, project, capsys, active):
        (active / "tasks.md").write_text(TASKS_OK)
        code, out, _ = run(project, capsys, "gate", "implement", "--skip-tests")
        assert code == 1
        assert "2 task(s) incomplete" in out

    def test_gate_all_and_status(self, project, capsys, active):
        (active / "spec.md").write_text(SPEC_OK)
        code, out, _ = run(project, capsys, "gate", "all", "--json")
        assert code == 0
        assert [r["gate"] for r in json.loads(out)["results"]] == ["specify"]

        code, out, _ = run(project, capsys, "gate", "status", "--json")
        gates = {g["gate"]: g for g in json.loads(out)["gates"]}
        assert gates["specify"]["ready"] is True
        assert gates["plan"]["ready"] is False

    def test_gate_uses_recorded_branch(self, project, capsys):
        feature = project / "specs" / "0020-auth"
        feature.mkdir(parents=True)
        (feature / "spec.md").write_text(SPEC_OK)
        run(project, capsys, "state", "set", "orchestration.branch=0020-auth")

        with patch("specflow.git.get_current_branch", return_value="0030-other"):
            _, out, _ = run(project, capsys, "gate", "status", "--json")
        assert json.loads(out)["feature_dir"].endswith("specs/0020-auth")


class TestReconcileCommand:
    """specflow reconcile"""

    def test_in_sync(self, project, capsys):
        code, out, _ = run(project, capsys, "reconcile")
        assert code == 0
        assert "in sync" in out

    def test_hard_difference_exit_2(self, project, capsys):
        (project / "specs" / "0020-auth").mkdir(parents=True)
        run(project, capsys, "state", "set",
            "orchestration.phase_number=0020",
            "orchestration.steps.specify.status=completed",
            "orchestration.steps.specify.completed_at=2026-01-01T00:00:00Z")
        code, out, _ = run(project, capsys, "reconcile", "--json")
        assert code == 2
        assert json.loads(out)["unresolved"][0]["area"] == "step:specify"


class TestPhaseAndMigrate:
    """specflow phase / migrate"""

    def test_phase_find(self, project, capsys):
        (project / "ROADMAP.md").write_text(ROADMAP_V21)
        code, out, _ = run(project, capsys, "phase", "find", "2")
        assert (code, out) == (0, "0020\n")

    def test_phase_status(self, project, capsys):
        (project / "ROADMAP.md").write_text(ROADMAP_V21)
        code, out, _ = run(project, capsys, "phase", "status", "--json")
        data = json.loads(out)
        assert (data["complete"], data["total"]) == (1, 3)

    def test_phase_archive(self, project, capsys):
        (project / "ROADMAP.md").write_text(ROADMAP_V21)
        code, out, _ = run(project, capsys, "phase", "archive", "10")
        assert code == 0
        assert "Archived phase 0010" in out
        assert (project / ".specify" / "history" / "HISTORY.md").is_file()

    def test_phase_archive_with_damaged_state(self, project, capsys):
        roadmap = ROADMAP_V21 + "\n### 0010 - Setup\n\nScaffold the repo.\n"
        (project / "ROADMAP.md").write_text(roadmap)
        (project / ".specify" / "orchestration-state.json").write_text("{not json")
        code, _, err = run(project, capsys, "phase", "archive", "10")
        assert code == 1
        assert "state init --force" in err
        assert not (project / ".specify" / "history" / "HISTORY.md").exists()
        assert (project / "ROADMAP.md").read_text() == roadmap

    def test_migrate_roadmap_dry_run(self, project, capsys):
        (project / "ROADMAP.md").write_text(ROADMAP_V20)
        code, out, _ = run(project, capsys, "migrate", "roadmap", "--dry-run")
        assert code == 0
        assert "042 -> 0420" in out
        assert (project / "ROADMAP.md").read_text() == ROADMAP_V20

    def test_migrate_mixed_fails(self, project, capsys):
        (project / "ROADMAP.md").write_text("| 041 | A | ✅ |\n| 0420 | B | ⬜ |\n")
        code, _, err = run(project, capsys, "migrate", "roadmap")
        assert code == 1
        assert "mixes" in err


class TestDoctorCommand:
    """specflow doctor"""

    @patch("specflow.git.is_git_repo", return_value=False)
    def test_doctor_json(self, _repo, project, capsys):
        (project / "ROADMAP.md").write_text(ROADMAP_V21)
        code, out, _ = run(project, capsys, "doctor", "--json")
        assert code == 0
        assert json.loads(out)["healthy"] is True

    @patch("specflow.git.is_git_repo", return_value=False)
    def test_doctor_reports_missing_state(self, _repo, tmp_path, capsys):
        (tmp_path / ".specify").mkdir()
        code = main(["-C", str(tmp_path), "doctor"])
        out, _ = capsys.readouterr()
        assert code == 1
        assert "specflow state init" in out
