"""
Drift detection and repair between recorded state and files on disk.

Every comparison runs on every call; nothing short-circuits. A Difference
is computed fresh each time and never persisted.

Repair policy (trust files):
- tasks counts and branch name are overwritten from what is observed
- a pending step whose artifact exists moves to in_progress (never to
  completed, which needs a completion time only the step itself knows)
- an interview with discovery notes but not_started moves to in_progress
- hard differences (completed step with missing artifact, roadmap status,
  detached HEAD, interview missing its outputs) are reported, never repaired

Trust state and dry runs never write. Repairs are applied in one state write.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from specflow.git import get_current_branch, is_git_repo
from specflow.lib.config import ProjectPaths, active_feature_dir, relative_to_root
from specflow.lib.inspector import count_checkboxes
from specflow.lib.roadmap import get_phase
from specflow.lib.state import StateStore, WorkflowState
from specflow.workflow.gates import GATES

logger = logging.getLogger(__name__)


ARTIFACT_STEPS = ("specify", "plan", "tasks")


class TrustMode(str, Enum):
    FILES = "files"
    STATE = "state"


@dataclass(frozen=True)
class Fix:
    """State changes that resolve one difference."""
    area: str
    description: str
    changes: tuple[tuple[str, Any], ...]

    def to_dict(self) -> dict:
        return {
            "area": self.area,
            "description": self.description,
            "changes": {key: value for key, value in self.changes},
        }


@dataclass(frozen=True)
class Difference:
    """One disagreement between state and files."""
    area: str
    recorded: str
    observed: str
    description: str
    severity: str  # "hard" or "soft"
    repairable: bool
    fix: Optional[Fix] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        return {
            "area": self.area,
            "state": self.recorded,
            "files": self.observed,
            "description": self.description,
            "severity": self.severity,
            "repairable": self.repairable,
        }


@dataclass
class ReconcileResult:
    differences: list[Difference]
    applied: list[Fix] = field(default_factory=list)
    planned: list[Fix] = field(default_factory=list)
    reported: list[Difference] = field(default_factory=list)
    trust_mode: TrustMode = TrustMode.FILES
    dry_run: bool = False

    @property
    def in_sync(self) -> bool:
        return not self.differences

    @property
    def exit_code(self) -> int:
        return 2 if self.reported else 0

    def to_dict(self) -> dict:
        return {
            "in_sync": self.in_sync,
            "trust_mode": self.trust_mode.value,
            "dry_run": self.dry_run,
            "differences": [d.to_dict() for d in self.differences],
            "fixes_applied": [f.to_dict() for f in self.applied],
            "fixes_planned": [f.to_dict() for f in self.planned],
            "unresolved": [d.to_dict() for d in self.reported],
        }


def _normalize_status(status: Optional[str]) -> Optional[str]:
    if status in ("completed", "complete"):
        return "complete"
    if status in ("not_started", "pending"):
        return "not_started"
    return status


class Reconciler:
    """Compares state with files and repairs soft drift."""

    def __init__(
        self,
        paths: ProjectPaths,
        store: StateStore,
        current_branch: Callable[[Path], Optional[str]] = get_current_branch,
        is_repo: Callable[[Path], bool] = is_git_repo,
    ):
        self.paths = paths
        self.store = store
        self.current_branch = current_branch
        self.is_repo = is_repo

    def diff(self) -> list[Difference]:
        """All differences, read only.

        Raises:
            SchemaError: state document cannot be loaded
        """
        state = self.store.load()
        feature_dir = active_feature_dir(self.paths, state)
        differences: list[Difference] = []
        for compare in (
            self._compare_tasks,
            self._compare_branch,
            self._compare_artifacts,
            self._compare_interview,
            self._compare_roadmap,
        ):
            differences.extend(compare(state, feature_dir))
        return differences

    def reconcile(self, trust_mode: TrustMode = TrustMode.FILES, dry_run: bool = False) -> ReconcileResult:
        """Detect drift and, trusting files, repair what is repairable."""
        trust_mode = TrustMode(trust_mode)
        differences = self.diff()
        result = ReconcileResult(differences=differences, trust_mode=trust_mode, dry_run=dry_run)

        if trust_mode == TrustMode.STATE:
            result.reported = list(differences)
            return result

        fixes = [d.fix for d in differences if d.repairable and d.fix is not None]
        if dry_run or not fixes:
            result.planned = fixes
            result.reported = list(differences)
            return result

        changes = [change for fix in fixes for change in fix.changes]
        self.store.set_many(changes)
        for fix in fixes:
            logger.info(f"[RECONCILE] Fixed {fix.area}: {fix.description}")
        result.applied = fixes
        result.reported = [d for d in differences if not (d.repairable and d.fix is not None)]
        return result

    # -- comparisons ---------------------------------------------------------

    def _compare_tasks(self, state: WorkflowState, feature_dir: Optional[Path]) -> list[Difference]:
        if not state.orchestration.phase_number or feature_dir is None:
            return []
        tasks_file = feature_dir / "tasks.md"
        if not tasks_file.is_file():
            return []

        implement = state.step("implement")
        recorded = (implement.tasks_completed or 0, implement.tasks_total or 0)
        observed = count_checkboxes(tasks_file)
        if recorded == observed:
            return []
        return [Difference(
            area="tasks",
            recorded=f"{recorded[0]}/{recorded[1]}",
            observed=f"{observed[0]}/{observed[1]}",
            description="Task completion mismatch",
            severity="soft",
            repairable=True,
            fix=Fix(
                area="tasks",
                description=f"tasks {recorded[0]}/{recorded[1]} -> {observed[0]}/{observed[1]}",
                changes=(
                    ("orchestration.steps.implement.tasks_completed", observed[0]),
                    ("orchestration.steps.implement.tasks_total", observed[1]),
                ),
            ),
        )]

    def _compare_branch(self, state: WorkflowState, feature_dir: Optional[Path]) -> list[Difference]:
        recorded = state.orchestration.branch
        if not recorded or not self.is_repo(self.paths.root):
            return []
        current = self.current_branch(self.paths.root)
        if current is None:
            return [Difference(
                area="branch",
                recorded=recorded,
                observed="(detached HEAD)",
                description="HEAD is detached; cannot confirm branch",
                severity="hard",
                repairable=False,
            )]
        if current == recorded:
            return []
        return [Difference(
            area="branch",
            recorded=recorded,
            observed=current,
            description="Git branch mismatch",
            severity="soft",
            repairable=True,
            fix=Fix(
                area="branch",
                description=f"branch {recorded} -> {current}",
                changes=(("orchestration.branch", current),),
            ),
        )]

    def _compare_artifacts(self, state: WorkflowState, feature_dir: Optional[Path]) -> list[Difference]:
        if not state.orchestration.phase_number:
            return []
        differences = []
        for step in ARTIFACT_STEPS:
            step_state = state.step(step)
            artifact_name = GATES[step].artifact
            artifact = feature_dir / artifact_name if feature_dir else None
            exists = bool(artifact and artifact.is_file())

            if step_state.status == "completed" and not exists:
                differences.append(Difference(
                    area=f"step:{step}",
                    recorded="completed",
                    observed="file missing",
                    description=f"{artifact_name} should exist but file missing",
                    severity="hard",
                    repairable=False,
                ))
            elif step_state.status == "pending" and exists:
                recorded_path = relative_to_root(self.paths, artifact)
                artifacts = list(step_state.artifacts)
                if recorded_path not in artifacts:
                    artifacts.append(recorded_path)
                differences.append(Difference(
                    area=f"step:{step}",
                    recorded="pending",
                    observed="file exists",
                    description=f"{artifact_name} exists but step not started",
                    severity="soft",
                    repairable=True,
                    fix=Fix(
                        area=f"step:{step}",
                        description=f"{step} pending -> in_progress",
                        changes=(
                            (f"orchestration.steps.{step}.status", "in_progress"),
                            (f"orchestration.steps.{step}.artifacts", artifacts),
                        ),
                    ),
                ))
        return differences

    def _compare_interview(self, state: WorkflowState, feature_dir: Optional[Path]) -> list[Difference]:
        status = state.interview.status
        memory_docs = sorted(self.paths.memory_dir.glob("*.md")) if self.paths.memory_dir.is_dir() else []
        has_discovery = self.paths.discovery_file.is_file()

        if status == "completed" and not memory_docs:
            return [Difference(
                area="interview",
                recorded="completed",
                observed="no memory docs",
                description="Interview marked complete but no memory documents",
                severity="hard",
                repairable=False,
            )]
        if status == "in_progress" and not has_discovery:
            return [Difference(
                area="interview",
                recorded="in_progress",
                observed="no discovery",
                description="Interview in progress but no discovery files",
                severity="hard",
                repairable=False,
            )]
        if status == "not_started" and has_discovery:
            return [Difference(
                area="interview",
                recorded="not_started",
                observed="discovery exists",
                description="Discovery files exist but interview not started",
                severity="soft",
                repairable=True,
                fix=Fix(
                    area="interview",
                    description="interview not_started -> in_progress",
                    changes=(("interview.status", "in_progress"),),
                ),
            )]
        return []

    def _compare_roadmap(self, state: WorkflowState, feature_dir: Optional[Path]) -> list[Difference]:
        number = state.orchestration.phase_number
        recorded = state.orchestration.status
        if not number or not recorded:
            return []
        phase = get_phase(self.paths.roadmap_file, self.paths.phases_dir, number)
        if phase is None:
            return []
        if _normalize_status(recorded) == _normalize_status(phase.status):
            return []
        return [Difference(
            area="roadmap",
            recorded=recorded,
            observed=phase.status,
            description=f"ROADMAP phase {number} status mismatch",
            severity="hard",
            repairable=False,
        )]
