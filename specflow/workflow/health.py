"""
Read-only project health checks (`specflow doctor`).

Checks report and suggest; they never modify anything.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from specflow import git
from specflow.lib.config import ProjectPaths, ProjectProfile
from specflow.lib.inspector import PhaseFormat, detect_phase_format
from specflow.lib.roadmap import find_storage_conflicts
from specflow.lib.state import (
    SCHEMA_VERSION,
    STEP_NAMES,
    SchemaError,
    StateStore,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


OK = "ok"
WARN = "warn"
ERROR = "error"
SKIP = "skip"


@dataclass(frozen=True)
class Check:
    """One health finding."""
    area: str
    status: str  # ok, warn, error, skip
    message: str
    suggestion: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "area": self.area,
            "status": self.status,
            "message": self.message,
            "suggestion": self.suggestion,
        }


@dataclass
class HealthReport:
    checks: list[Check]

    @property
    def issues(self) -> list[Check]:
        return [c for c in self.checks if c.status == ERROR]

    @property
    def warnings(self) -> list[Check]:
        return [c for c in self.checks if c.status == WARN]

    @property
    def healthy(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict:
        return {
            "healthy": self.healthy,
            "issues": len(self.issues),
            "warnings": len(self.warnings),
            "checks": [c.to_dict() for c in self.checks],
        }


def check_state(store: StateStore, profile: ProjectProfile, now: Optional[datetime] = None) -> list[Check]:
    if not store.exists():
        return [Check("state", ERROR, f"No state file at {store.path}", "specflow state init")]
    try:
        state = store.load()
    except SchemaError as e:
        return [Check("state", ERROR, str(e), "specflow state init --force")]

    checks = [Check("state", OK, f"State file valid JSON (schema {state.schema_version})")]
    if state.migrated_from:
        checks.append(Check(
            "state", WARN,
            f"State uses schema {state.migrated_from}, current is {SCHEMA_VERSION}",
            "specflow state migrate",
        ))
    for problem in state.problems:
        if problem.startswith("schema "):
            continue
        checks.append(Check("state", WARN, problem, "specflow state validate"))

    now = now or datetime.now(timezone.utc)
    stale_after = timedelta(minutes=profile.stale_minutes)
    for name in STEP_NAMES:
        step = state.step(name)
        if step.status == "failed":
            checks.append(Check(
                "steps", WARN,
                f"Step '{name}' failed",
                f"specflow step retry {name}",
            ))
    if state.orchestration.step in STEP_NAMES:
        active = state.step(state.orchestration.step)
        updated = parse_timestamp(state.last_updated)
        if active.status == "in_progress" and updated and now - updated > stale_after:
            minutes = int((now - updated).total_seconds() // 60)
            checks.append(Check(
                "steps", WARN,
                f"Step '{state.orchestration.step}' in_progress with no update for {minutes} min",
                "specflow reconcile --dry-run",
            ))
    return checks


def check_roadmap(paths: ProjectPaths) -> list[Check]:
    roadmap = paths.roadmap_file
    if not roadmap.is_file():
        return [Check("roadmap", SKIP, f"No roadmap at {roadmap}")]

    checks = []
    fmt = detect_phase_format(roadmap)
    if fmt == PhaseFormat.MIXED:
        checks.append(Check(
            "roadmap", ERROR,
            "Roadmap mixes 3-digit and 4-digit phase numbers",
            "Fix phase numbers manually, then run specflow migrate roadmap",
        ))
    elif fmt == PhaseFormat.V2_0:
        checks.append(Check(
            "roadmap", WARN,
            "Roadmap uses 3-digit phase numbers (2.0 format)",
            "specflow migrate roadmap",
        ))
    elif fmt == PhaseFormat.V2_1:
        checks.append(Check("roadmap", OK, "Roadmap uses 4-digit phase numbers"))
    else:
        checks.append(Check("roadmap", WARN, "No phase table found in roadmap"))

    for conflict in find_storage_conflicts(roadmap, paths.phases_dir):
        checks.append(Check(
            "phases", WARN,
            f"Phase {conflict.number} stored inline (line {conflict.inline_line}) "
            f"and in {conflict.phase_file.name}",
            "Keep one copy; phase files take precedence",
        ))
    return checks


def check_git(paths: ProjectPaths, store: StateStore) -> list[Check]:
    root = paths.root
    if not git.is_git_repo(root):
        return [Check("git", SKIP, "Not a git repository")]

    checks = []
    branch = git.get_current_branch(root)
    if branch is None:
        checks.append(Check("git", WARN, "HEAD is detached"))
    else:
        checks.append(Check("git", OK, f"On branch {branch}"))
        recorded = None
        if store.exists():
            try:
                recorded = store.load().orchestration.branch
            except SchemaError:
                recorded = None
        if recorded and recorded != branch:
            checks.append(Check(
                "git", WARN,
                f"State records branch {recorded}, current is {branch}",
                "specflow reconcile --trust-files",
            ))

    if git.has_uncommitted_changes(root):
        checks.append(Check("git", WARN, "Uncommitted changes in working tree"))

    counts = git.get_ahead_behind(root)
    if counts is not None:
        ahead, behind = counts
        if ahead or behind:
            checks.append(Check("git", OK if not behind else WARN, f"{ahead} ahead, {behind} behind upstream"))
    return checks


def run_doctor(
    paths: ProjectPaths,
    store: StateStore,
    profile: ProjectProfile,
    now: Optional[datetime] = None,
) -> HealthReport:
    checks: list[Check] = []
    checks.extend(check_state(store, profile, now))
    checks.extend(check_roadmap(paths))
    checks.extend(check_git(paths, store))
    report = HealthReport(checks=checks)
    logger.debug(f"[DOCTOR] {len(report.issues)} issues, {len(report.warnings)} warnings")
    return report
