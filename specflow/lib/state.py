"""
Workflow state document.

The state lives in a single JSON file (.specify/orchestration-state.json).
StateStore is the only code that reads or writes it:

- load() fails closed on unparseable documents (SchemaError) but tolerates
  missing sections, recording them in WorkflowState.problems.
- Every write is validated against schemas/state.schema.json, then written
  to a temp file in the same directory and moved into place with os.replace.
  A failed write leaves the previous document untouched.
- Older schema versions are upgraded in memory on load; `state migrate`
  persists the upgrade after taking a backup.
"""

import copy
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from specflow.lib import validate

logger = logging.getLogger(__name__)


SCHEMA_NAME = "state"
SCHEMA_VERSION = "2.0"
KNOWN_VERSIONS = ("1.0", "1.1", "2.0")

STEP_NAMES = (
    "specify",
    "clarify",
    "plan",
    "tasks",
    "analyze",
    "checklist",
    "implement",
    "verify",
)
STEP_STATUSES = ("pending", "in_progress", "completed", "failed")
INTERVIEW_STATUSES = ("not_started", "in_progress", "completed")

REQUIRED_SECTIONS = ("config", "project", "interview", "orchestration")

DEFAULT_CONFIG = {
    "roadmap_path": "ROADMAP.md",
    "memory_path": ".specify/memory/",
    "specs_path": "specs/",
    "scripts_path": ".specify/scripts/",
    "templates_path": ".specify/templates/",
}

DEFAULT_PROJECT = {
    "name": None,
    "description": None,
    "type": None,
    "criticality": None,
}

_MISSING = object()


class SchemaError(Exception):
    """State document cannot be interpreted. Recover with `state init --force`."""

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class WriteError(Exception):
    """State write refused or failed. The previous document is untouched."""


def iso_timestamp() -> str:
    """Current UTC time as ISO-8601 with a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp written by iso_timestamp(), or None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_str(value: Any, key: str, problems: Optional[list]) -> Optional[str]:
    """None and strings pass through; numbers become strings; anything else is dropped."""
    if value is None or isinstance(value, str):
        return value
    if problems is not None:
        problems.append(f"{key}: expected a string, got {type(value).__name__}")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _as_int(value: Any, key: str, problems: Optional[list]) -> Optional[int]:
    if value is None or (isinstance(value, int) and not isinstance(value, bool)):
        return value
    if problems is not None:
        problems.append(f"{key}: expected an integer, got {type(value).__name__}")
    return None


@dataclass
class StepState:
    """Progress of a single workflow step."""
    status: str = "pending"
    completed_at: Optional[str] = None
    artifacts: list[str] = field(default_factory=list)
    tasks_completed: Optional[int] = None
    tasks_total: Optional[int] = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, prefix: str = "step", problems: Optional[list] = None) -> "StepState":
        data = dict(data or {})
        artifacts = data.pop("artifacts", None) or []
        if not isinstance(artifacts, list):
            if problems is not None:
                problems.append(f"{prefix}.artifacts: expected a list")
            artifacts = []
        return cls(
            status=_as_str(data.pop("status", "pending"), f"{prefix}.status", problems) or "pending",
            completed_at=_as_str(data.pop("completed_at", None), f"{prefix}.completed_at", problems),
            artifacts=list(artifacts),
            tasks_completed=_as_int(data.pop("tasks_completed", None), f"{prefix}.tasks_completed", problems),
            tasks_total=_as_int(data.pop("tasks_total", None), f"{prefix}.tasks_total", problems),
            extra=data,
        )

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out["status"] = self.status
        out["completed_at"] = self.completed_at
        out["artifacts"] = list(self.artifacts)
        if self.tasks_completed is not None:
            out["tasks_completed"] = self.tasks_completed
        if self.tasks_total is not None:
            out["tasks_total"] = self.tasks_total
        return out


def _default_step(name: str) -> StepState:
    if name == "implement":
        return StepState(tasks_completed=0, tasks_total=0)
    return StepState()


@dataclass
class InterviewState:
    """Discovery interview progress."""
    status: str = "not_started"
    current_phase: int = 0
    decisions_count: int = 0
    extra: dict = field(default_factory=lambda: {
        "current_question": 0,
        "phases": {},
        "started_at": None,
        "completed_at": None,
    })

    @classmethod
    def from_dict(cls, data: dict) -> "InterviewState":
        data = dict(data or {})
        return cls(
            status=data.pop("status", "not_started"),
            current_phase=data.pop("current_phase", 0),
            decisions_count=data.pop("decisions_count", 0),
            extra=data,
        )

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out["status"] = self.status
        out["current_phase"] = self.current_phase
        out["decisions_count"] = self.decisions_count
        return out


@dataclass
class OrchestrationState:
    """Active phase and per-step progress.

    Steps not in STEP_NAMES are kept in unknown_steps so they stay readable,
    but to_dict() never writes them back.
    """
    phase_number: Optional[str] = None
    phase_name: Optional[str] = None
    branch: Optional[str] = None
    step: Optional[str] = None
    status: Optional[str] = "not_started"
    steps: dict[str, StepState] = field(
        default_factory=lambda: {name: _default_step(name) for name in STEP_NAMES}
    )
    unknown_steps: dict[str, dict] = field(default_factory=dict)
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict, problems: Optional[list] = None) -> "OrchestrationState":
        """Interpret the orchestration section.

        Values of the wrong type are replaced by defaults (or stringified,
        for numbers) and reported in problems instead of raising.
        """
        data = dict(data or {})
        raw_steps = data.pop("steps", None) or {}
        if not isinstance(raw_steps, dict):
            if problems is not None:
                problems.append("orchestration.steps: expected an object; using defaults")
            raw_steps = {}
        steps = {}
        unknown = {}
        for name in STEP_NAMES:
            key = f"orchestration.steps.{name}"
            if name not in raw_steps:
                steps[name] = _default_step(name)
            elif not isinstance(raw_steps[name], dict):
                if problems is not None:
                    problems.append(f"{key}: expected an object; using defaults")
                steps[name] = _default_step(name)
            else:
                steps[name] = StepState.from_dict(raw_steps[name], key, problems)
        for name, value in raw_steps.items():
            if name not in STEP_NAMES:
                unknown[name] = value

        def text(key: str, default: Optional[str] = None) -> Optional[str]:
            return _as_str(data.pop(key, default), f"orchestration.{key}", problems)

        return cls(
            phase_number=text("phase_number"),
            phase_name=text("phase_name"),
            branch=text("branch"),
            step=text("step"),
            status=text("status", "not_started"),
            steps=steps,
            unknown_steps=unknown,
            extra=data,
        )

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out["phase_number"] = self.phase_number
        out["phase_name"] = self.phase_name
        out["branch"] = self.branch
        out["step"] = self.step
        out["status"] = self.status
        out["steps"] = {name: self.steps[name].to_dict() for name in STEP_NAMES if name in self.steps}
        return out


@dataclass
class WorkflowState:
    """In-memory view of the state document."""
    schema_version: str = SCHEMA_VERSION
    config: dict = field(default_factory=lambda: dict(DEFAULT_CONFIG))
    project: dict = field(default_factory=lambda: dict(DEFAULT_PROJECT))
    interview: InterviewState = field(default_factory=InterviewState)
    orchestration: OrchestrationState = field(default_factory=OrchestrationState)
    history: list[dict] = field(default_factory=list)
    last_updated: Optional[str] = None
    extra: dict = field(default_factory=dict)
    # Load diagnostics, never written
    problems: list[str] = field(default_factory=list)
    migrated_from: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowState":
        data = dict(data)
        problems = []
        for section in REQUIRED_SECTIONS:
            if not isinstance(data.get(section), dict):
                problems.append(f"missing section: {section}")

        config = dict(DEFAULT_CONFIG)
        raw_config = data.pop("config", None)
        if isinstance(raw_config, dict):
            config.update(raw_config)
            for key in ("roadmap_path", "specs_path", "memory_path"):
                if key not in raw_config:
                    problems.append(f"missing config key: {key}")
                elif not isinstance(config[key], str):
                    config[key] = _as_str(config[key], f"config.{key}", problems) or DEFAULT_CONFIG[key]

        raw_project = data.pop("project", None)
        raw_interview = data.pop("interview", None)
        raw_orchestration = data.pop("orchestration", None)
        history = data.pop("history", None) or []
        if not isinstance(history, list):
            problems.append("history: expected a list; ignoring")
            history = []

        state = cls(
            schema_version=data.pop("schema_version", SCHEMA_VERSION),
            config=config,
            project=dict(raw_project) if isinstance(raw_project, dict) else dict(DEFAULT_PROJECT),
            interview=InterviewState.from_dict(raw_interview if isinstance(raw_interview, dict) else None),
            orchestration=OrchestrationState.from_dict(
                raw_orchestration if isinstance(raw_orchestration, dict) else None, problems
            ),
            history=list(history),
            last_updated=_as_str(data.pop("last_updated", None), "last_updated", problems),
            problems=problems,
        )
        data.pop("version", None)
        state.extra = data
        if state.orchestration.unknown_steps:
            names = ", ".join(sorted(state.orchestration.unknown_steps))
            state.problems.append(f"unknown steps ignored: {names}")
        return state

    def to_dict(self) -> dict:
        out = dict(self.extra)
        out["schema_version"] = self.schema_version
        out["config"] = dict(self.config)
        out["project"] = dict(self.project)
        out["interview"] = self.interview.to_dict()
        out["orchestration"] = self.orchestration.to_dict()
        out["history"] = list(self.history)
        out["last_updated"] = self.last_updated
        return out

    def step(self, name: str) -> StepState:
        """Return the StepState for a known step name."""
        if name not in STEP_NAMES:
            raise KeyError(f"Unknown step: {name}")
        return self.orchestration.steps[name]


# ---------------------------------------------------------------------------
# Schema version migrations
# ---------------------------------------------------------------------------

def _migrate_1_0(data: dict) -> dict:
    """1.0 kept paths and project details together under .project."""
    project = data.get("project") or {}
    out = {k: v for k, v in data.items() if k not in ("project", "version")}
    out["config"] = {
        key: project.get(key, default) for key, default in DEFAULT_CONFIG.items()
    }
    out["project"] = {key: project.get(key) for key in DEFAULT_PROJECT}
    out.setdefault("interview", InterviewState().to_dict())
    out.setdefault("orchestration", OrchestrationState().to_dict())
    out.setdefault("history", [])
    return out


def _migrate_1_1(data: dict) -> dict:
    """1.1 had .config but sections could be absent."""
    out = {k: v for k, v in data.items() if k != "version"}
    out.setdefault("config", dict(DEFAULT_CONFIG))
    out.setdefault("project", dict(DEFAULT_PROJECT))
    out.setdefault("history", [])
    return out


MIGRATIONS: dict[str, Callable[[dict], dict]] = {
    "1.0": _migrate_1_0,
    "1.1": _migrate_1_1,
}


def detect_version(data: dict) -> Optional[str]:
    """Return the document's schema version, or None if unrecognizable."""
    version = data.get("schema_version", data.get("version"))
    if version is None:
        return None
    version = str(version)
    if version not in KNOWN_VERSIONS:
        return None
    # Documents labelled 2.0 that still carry 1.0-style paths are treated as 1.0
    if version != "1.0" and "config" not in data and isinstance(data.get("project"), dict) \
            and "roadmap_path" in data["project"]:
        return "1.0"
    return version


def upgrade(data: dict) -> tuple[dict, Optional[str]]:
    """Bring a raw document up to SCHEMA_VERSION.

    Returns:
        (upgraded document, original version if a migration ran else None)
    """
    version = detect_version(data)
    if version is None or version == SCHEMA_VERSION:
        return data, None
    migrated = MIGRATIONS[version](copy.deepcopy(data))
    migrated["schema_version"] = SCHEMA_VERSION
    return migrated, version


# ---------------------------------------------------------------------------
# Key paths
# ---------------------------------------------------------------------------

def split_key_path(key_path: str) -> list[str]:
    """Split 'orchestration.steps.plan' (leading '.' allowed) into parts."""
    parts = [p for p in key_path.strip().lstrip(".").split(".") if p]
    if not parts:
        raise KeyError("Empty key path")
    return parts


def parse_value(raw: str) -> Any:
    """Interpret a CLI value as a JSON literal when possible, else a string."""
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return raw


def _lookup(data: Any, parts: list[str]) -> Any:
    current = data
    for part in parts:
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return _MISSING
    return current


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def atomic_write_text(path: Path, content: str) -> None:
    """Write text through a same-directory temp file and os.replace."""
    try:
        _atomic_write_text(path, content)
    except OSError as e:
        raise WriteError(f"Failed to write {path}: {e}") from e


class StateStore:
    """Reads and writes the workflow state document."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._state: Optional[WorkflowState] = None

    @property
    def backup_dir(self) -> Path:
        return self.path.parent / "backup"

    def exists(self) -> bool:
        return self.path.is_file()

    def read_raw(self) -> dict:
        """Parse the document without interpreting it."""
        try:
            text = self.path.read_text()
        except FileNotFoundError:
            raise SchemaError(self.path, "state file not found (run `specflow state init`)") from None
        except OSError as e:
            raise SchemaError(self.path, f"unreadable: {e}") from None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise SchemaError(self.path, f"invalid JSON: {e}") from None
        if not isinstance(data, dict):
            raise SchemaError(self.path, "top level is not an object")
        return data

    def load(self) -> WorkflowState:
        """Load, upgrade and interpret the document.

        Raises:
            SchemaError: unparseable, not an object, or unknown version
        """
        raw = self.read_raw()
        if detect_version(raw) is None:
            found = raw.get("schema_version", raw.get("version"))
            if found is None:
                raise SchemaError(self.path, "missing schema_version")
            raise SchemaError(self.path, f"unknown schema_version {found!r}")

        upgraded, migrated_from = upgrade(raw)
        state = WorkflowState.from_dict(upgraded)
        state.migrated_from = migrated_from
        if migrated_from:
            state.problems.append(f"schema {migrated_from} upgraded in memory (run `specflow state migrate`)")

        seen = set(state.problems)
        for error in validate.collect_errors(upgraded, SCHEMA_NAME):
            if not error.startswith("(root): ") and error not in seen:
                state.problems.append(error)
        for problem in state.problems:
            logger.debug(f"State problem: {problem}")

        self._state = state
        return state

    @property
    def state(self) -> WorkflowState:
        if self._state is None:
            return self.load()
        return self._state

    def get(self, key_path: Optional[str] = None, default: Any = None) -> Any:
        """Read a value by dotted key path from the interpreted document.

        Unknown step names remain readable even though they are never written.
        """
        data = self.state.to_dict()
        if not key_path or key_path.strip() in ("", "."):
            return data
        parts = split_key_path(key_path)
        value = _lookup(data, parts)
        if value is _MISSING and parts[:2] == ["orchestration", "steps"]:
            value = _lookup({"orchestration": {"steps": self.state.orchestration.unknown_steps}}, parts)
        return default if value is _MISSING else value

    def has(self, key_path: str) -> bool:
        return self.get(key_path, _MISSING) is not _MISSING

    def set(self, key_path: str, value: Any) -> WorkflowState:
        """Set one value by dotted key path and save."""
        return self.set_many([(key_path, value)])

    def set_many(self, changes: list[tuple[str, Any]]) -> WorkflowState:
        """Set several dotted key paths and save them in one write.

        Raises:
            WriteError: unknown step name, non-object on the path, or the
                result fails validation
        """
        data = self.state.to_dict()
        for key_path, value in changes:
            parts = split_key_path(key_path)
            if parts[:2] == ["orchestration", "steps"] and len(parts) > 2 and parts[2] not in STEP_NAMES:
                raise WriteError(f"Unknown step '{parts[2]}' (valid: {', '.join(STEP_NAMES)})")
            node = data
            for part in parts[:-1]:
                child = node.get(part)
                if child is None:
                    child = {}
                    node[part] = child
                elif not isinstance(child, dict):
                    raise WriteError(f"Cannot set '{key_path}': '{part}' is not an object")
                node = child
            node[parts[-1]] = value
        return self._replace(data)

    def update(self, mutator: Callable[[WorkflowState], None]) -> WorkflowState:
        """Apply several changes to a copy and save them in one write."""
        working = copy.deepcopy(self.state)
        mutator(working)
        return self.save(working)

    def touch(self) -> WorkflowState:
        """Refresh last_updated only."""
        return self.save(copy.deepcopy(self.state))

    def save(self, state: WorkflowState) -> WorkflowState:
        """Validate and atomically write state.

        Raises:
            WriteError: data fails validation or the write fails
        """
        state.last_updated = iso_timestamp()
        data = state.to_dict()
        try:
            validate.validate_before_write(data, SCHEMA_NAME, self.path)
        except validate.ValidationError as e:
            raise WriteError(str(e)) from None

        atomic_write_text(self.path, json.dumps(data, indent=2) + "\n")
        logger.info(f"[STATE] Wrote {self.path}")

        written = WorkflowState.from_dict(data)
        self._state = written
        return written

    def _replace(self, data: dict) -> WorkflowState:
        # Reject bad shapes before from_dict() quietly defaults them
        try:
            validate.validate_before_write(data, SCHEMA_NAME, self.path)
        except validate.ValidationError as e:
            raise WriteError(str(e)) from None
        state = WorkflowState.from_dict(data)
        return self.save(state)

    def init(self, force: bool = False, project_name: Optional[str] = None) -> WorkflowState:
        """Create a fresh document.

        Raises:
            WriteError: the file exists and force is not set
        """
        if self.path.exists() and not force:
            raise WriteError(f"State file already exists: {self.path} (use --force to overwrite)")
        state = WorkflowState()
        if project_name:
            state.project["name"] = project_name
        self._state = None
        logger.info(f"[STATE] Initializing {self.path}")
        return self.save(state)

    def reset(self, full: bool = False) -> WorkflowState:
        """Reset progress. Keeps config and project unless full."""
        current = self.state
        fresh = WorkflowState()
        if not full:
            fresh.config = dict(current.config)
            fresh.project = dict(current.project)
            fresh.history = list(current.history)
        return self.save(fresh)

    def migrate_schema(self) -> tuple[Optional[str], Optional[Path]]:
        """Persist an in-memory schema upgrade after backing up the original.

        Returns:
            (version migrated from, backup path); (None, None) when current
        """
        raw = self.read_raw()
        version = detect_version(raw)
        if version is None:
            raise SchemaError(self.path, "unrecognized schema version; cannot migrate")
        if version == SCHEMA_VERSION:
            return None, None

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        backup = self.backup_dir / f"orchestration-state-{version}-{stamp}.json"
        atomic_write_text(backup, self.path.read_text())
        logger.info(f"[STATE] Backup written to {backup}")

        upgraded, _ = upgrade(raw)
        upgraded["_migrated_from"] = f"v{version}"
        upgraded["_migrated_at"] = iso_timestamp()
        self.save(WorkflowState.from_dict(upgraded))
        return version, backup
