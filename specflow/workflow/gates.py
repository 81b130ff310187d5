"""
Quality gates between workflow steps.

Each gated step has a required artifact and a fixed set of structural
checks. Evaluation never short-circuits between checks (except on a
missing artifact) so one run reports every finding:

    specify    spec.md   sections, placeholders
    plan       plan.md   sections, placeholders
    tasks      tasks.md  placeholders, phase headings, task lines, TXXX ids
    implement  tasks.md  all task lines checked, test suite

clarify, analyze, checklist and verify are not gated.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.inspector import (
    PLACEHOLDER_PATTERNS,
    ArtifactView,
    inspect_artifact,
)
from specflow.lib.test_runner import TestRun, detect_test_runner, run_tests

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Verdict(str, Enum):
    PASS = "PASS"
    PASS_WITH_WARNINGS = "PASS_WITH_WARNINGS"
    FAIL = "FAIL"


@dataclass(frozen=True)
class Finding:
    """One gate check that did not pass."""
    check: str
    severity: Severity
    message: str
    details: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "check": self.check,
            "severity": self.severity.value,
            "message": self.message,
            "details": list(self.details),
        }


@dataclass(frozen=True)
class Gate:
    """Static definition of a gate."""
    name: str
    artifact: str  # file name inside the feature directory
    sections: tuple[tuple[str, str], ...] = ()  # (section name, heading regex)
    placeholder_patterns: tuple[str, ...] = PLACEHOLDER_PATTERNS
    requires_phase_headings: bool = False
    requires_task_lines: bool = False
    requires_all_tasks_complete: bool = False
    runs_tests: bool = False


GATES: dict[str, Gate] = {
    "specify": Gate(
        name="specify",
        artifact="spec.md",
        sections=(
            ("Overview", "## Overview"),
            ("User Stories", "## User Stories|## Features"),
            ("Success Criteria", "## Acceptance|## Success|## Criteria"),
        ),
    ),
    "plan": Gate(
        name="plan",
        artifact="plan.md",
        sections=(
            ("Tech Stack", "## Tech|## Technology|## Stack"),
            ("Architecture", "## Architecture|## Structure|## Design"),
            ("Implementation", "## Implementation|## Approach|## Plan"),
        ),
    ),
    "tasks": Gate(
        name="tasks",
        artifact="tasks.md",
        requires_phase_headings=True,
        requires_task_lines=True,
    ),
    "implement": Gate(
        name="implement",
        artifact="tasks.md",
        placeholder_patterns=(),
        requires_all_tasks_complete=True,
        runs_tests=True,
    ),
}

UNGATED_STEPS = ("clarify", "analyze", "checklist", "verify")

# gate all: the artifact-producing gates, in workflow order
ARTIFACT_GATES = ("specify", "plan", "tasks")

INCOMPLETE_TASK_SAMPLES = 5


@dataclass
class GateResult:
    """Outcome of evaluating one gate."""
    gate: str
    artifact: Optional[Path]
    findings: list[Finding] = field(default_factory=list)
    strict: bool = False
    test_run: Optional[TestRun] = None
    summary: dict = field(default_factory=dict)

    @property
    def errors(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.ERROR)

    @property
    def warnings(self) -> int:
        return sum(1 for f in self.findings if f.severity == Severity.WARNING)

    def _verdict(self, strict: bool) -> Verdict:
        if self.errors:
            return Verdict.FAIL
        if not self.warnings:
            return Verdict.PASS
        return Verdict.FAIL if strict else Verdict.PASS_WITH_WARNINGS

    @property
    def verdict(self) -> Verdict:
        return self._verdict(self.strict)

    @property
    def verdict_strict(self) -> Verdict:
        return self._verdict(True)

    @property
    def passed(self) -> bool:
        return self.verdict != Verdict.FAIL

    def to_dict(self) -> dict:
        return {
            "gate": self.gate,
            "artifact": str(self.artifact) if self.artifact else None,
            "verdict": self.verdict.value,
            "verdict_strict": self.verdict_strict.value,
            "strict": self.strict,
            "errors": self.errors,
            "warnings": self.warnings,
            "findings": [f.to_dict() for f in self.findings],
            "summary": self.summary,
            "tests": self.test_run.to_dict() if self.test_run else None,
        }


TestExecutor = Callable[[str, Path, int, int], TestRun]


def check_view(
    gate: Gate,
    view: ArtifactView,
    test_run: Optional[TestRun] = None,
) -> tuple[list[Finding], dict]:
    """Apply a gate's checks to an artifact view.

    Returns:
        (findings, summary counts for display)
    """
    findings: list[Finding] = []
    summary: dict = {}

    if not view.exists or not view.non_empty:
        state = "missing" if not view.exists else "empty"
        findings.append(Finding(
            check="artifact",
            severity=Severity.ERROR,
            message=f"{gate.artifact} {state}",
            details=(str(view.path),),
        ))
        return findings, summary

    for name, present in view.sections.items():
        if not present:
            findings.append(Finding(
                check="section",
                severity=Severity.WARNING,
                message=f"Missing section: {name}",
            ))

    for hit in view.placeholders:
        findings.append(Finding(
            check="placeholder",
            severity=Severity.WARNING,
            message=f"Placeholder '{hit.pattern}' found on {hit.count} line(s)",
            details=tuple(f"{n}: {text}" for n, text in hit.samples),
        ))

    if gate.requires_phase_headings:
        summary["phase_headings"] = view.phase_headings
        if view.phase_headings == 0:
            findings.append(Finding(
                check="phase_headings",
                severity=Severity.ERROR,
                message="No phase sections found (## Phase N)",
            ))

    if gate.requires_task_lines:
        summary["tasks_total"] = view.tasks.total
        if view.tasks.total == 0:
            findings.append(Finding(
                check="task_lines",
                severity=Severity.ERROR,
                message="No valid tasks found (format: - [ ] T001 Description)",
            ))
        if view.tasks.placeholder_ids:
            findings.append(Finding(
                check="task_ids",
                severity=Severity.WARNING,
                message=f"{view.tasks.placeholder_ids} TXXX placeholder task id(s), replace with real ids",
            ))

    if gate.requires_all_tasks_complete:
        summary["tasks_completed"] = view.tasks.completed
        summary["tasks_total"] = view.tasks.total
        if view.tasks.incomplete > 0:
            findings.append(Finding(
                check="tasks_complete",
                severity=Severity.ERROR,
                message=f"{view.tasks.incomplete} task(s) incomplete",
                details=view.tasks.incomplete_samples[:INCOMPLETE_TASK_SAMPLES],
            ))

    if test_run is not None and not test_run.passed:
        reason = "timed out" if test_run.timed_out else f"exit code: {test_run.exit_code}"
        findings.append(Finding(
            check="tests",
            severity=Severity.WARNING,
            message=f"Tests failed ({reason})",
            details=tuple(test_run.output_head),
        ))

    return findings, summary


def gate_artifact_path(gate: Gate, feature_dir: Optional[Path]) -> Optional[Path]:
    if feature_dir is None:
        return None
    return feature_dir / gate.artifact


def evaluate_gate(
    name: str,
    feature_dir: Optional[Path],
    paths: ProjectPaths,
    profile: ProjectProfile,
    strict: bool = False,
    skip_tests: bool = False,
    test_executor: TestExecutor = run_tests,
) -> GateResult:
    """Evaluate one gate against the active feature directory.

    Raises:
        KeyError: unknown gate name
    """
    if name in UNGATED_STEPS:
        return GateResult(gate=name, artifact=None, strict=strict)
    gate = GATES[name]

    artifact = gate_artifact_path(gate, feature_dir)
    if artifact is None:
        return GateResult(
            gate=name,
            artifact=None,
            strict=strict,
            findings=[Finding(
                check="feature_dir",
                severity=Severity.ERROR,
                message="Cannot determine feature directory (no active phase or matching branch)",
            )],
        )

    view = inspect_artifact(
        artifact,
        sections=dict(gate.sections),
        placeholder_patterns=gate.placeholder_patterns,
        sample_limit=profile.placeholder_samples,
        tasks=gate.requires_task_lines or gate.requires_all_tasks_complete or gate.requires_phase_headings,
    )

    test_run = None
    if gate.runs_tests and not skip_tests and view.non_empty:
        command = detect_test_runner(paths.root, profile)
        if command:
            test_run = test_executor(command, paths.root, profile.test_timeout, profile.test_output_lines)
        else:
            logger.debug("No test runner detected; skipping test check")

    findings, summary = check_view(gate, view, test_run)
    result = GateResult(
        gate=name,
        artifact=artifact,
        findings=findings,
        strict=strict,
        test_run=test_run,
        summary=summary,
    )
    logger.info(f"[GATE] {name}: {result.verdict.value} ({result.errors} errors, {result.warnings} warnings)")
    return result


def evaluate_all(
    feature_dir: Optional[Path],
    paths: ProjectPaths,
    profile: ProjectProfile,
    strict: bool = False,
) -> list[GateResult]:
    """Evaluate specify/plan/tasks for whichever artifacts exist."""
    results = []
    for name in ARTIFACT_GATES:
        artifact = gate_artifact_path(GATES[name], feature_dir)
        if artifact is not None and artifact.is_file():
            results.append(evaluate_gate(name, feature_dir, paths, profile, strict=strict, skip_tests=True))
    return results


@dataclass(frozen=True)
class GateStatus:
    """Whether a gate's artifact is present, alongside the recorded step status."""
    gate: str
    artifact: Optional[Path]
    exists: bool
    step_status: Optional[str]

    @property
    def ready(self) -> bool:
        return self.exists

    def to_dict(self) -> dict:
        return {
            "gate": self.gate,
            "artifact": str(self.artifact) if self.artifact else None,
            "exists": self.exists,
            "ready": self.ready,
            "step_status": self.step_status,
        }


def gate_status(feature_dir: Optional[Path], step_statuses: dict[str, str]) -> list[GateStatus]:
    statuses = []
    for name, gate in GATES.items():
        artifact = gate_artifact_path(gate, feature_dir)
        statuses.append(GateStatus(
            gate=name,
            artifact=artifact,
            exists=bool(artifact and artifact.is_file()),
            step_status=step_statuses.get(name),
        ))
    return statuses
