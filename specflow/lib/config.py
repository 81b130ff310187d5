"""
Configuration loaders for specflow.

Project layout comes from the state document's config section (with
defaults when the document is absent or damaged). Tunables come from an
optional .specify/specflow.yaml profile.
"""

import json
import logging
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from specflow.git import get_repo_root
from specflow.lib.state import DEFAULT_CONFIG, WorkflowState

logger = logging.getLogger(__name__)


SPECIFY_DIR = ".specify"
STATE_FILENAME = "orchestration-state.json"
PROFILE_FILENAME = "specflow.yaml"


@dataclass
class ProjectPaths:
    """Absolute locations of every artifact specflow reads or writes."""
    root: Path
    specify_dir: Path
    state_file: Path
    roadmap_file: Path
    specs_dir: Path
    memory_dir: Path
    phases_dir: Path
    history_file: Path
    discovery_file: Path
    backup_dir: Path


@dataclass
class ProjectProfile:
    """Tunables from .specify/specflow.yaml"""
    test_command: Optional[str] = None  # overrides test runner detection
    test_timeout: int = 300
    test_output_lines: int = 10
    placeholder_samples: int = 3
    stale_minutes: int = 5


def find_project_root(start: Optional[Path] = None) -> Path:
    """Nearest ancestor holding .specify/, else the git toplevel, else start."""
    start = (start or Path.cwd()).resolve()
    for candidate in [start, *start.parents]:
        if (candidate / SPECIFY_DIR).is_dir():
            return candidate
    repo_root = get_repo_root(start)
    return repo_root if repo_root else start


def _read_state_config(state_file: Path) -> dict:
    """Best-effort read of the config section. Never raises."""
    try:
        data = json.loads(state_file.read_text())
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as e:
        logger.debug(f"Using default paths, cannot read {state_file}: {e}")
        return {}
    if not isinstance(data, dict):
        return {}
    config = data.get("config")
    if isinstance(config, dict):
        return config
    # 1.0 documents kept paths under .project
    project = data.get("project")
    if isinstance(project, dict):
        return {k: v for k, v in project.items() if k.endswith("_path")}
    return {}


def load_paths(root: Path) -> ProjectPaths:
    """Resolve project paths from the state document's config section."""
    root = Path(root)
    specify_dir = root / SPECIFY_DIR
    state_file = specify_dir / STATE_FILENAME
    config = dict(DEFAULT_CONFIG)
    config.update({k: v for k, v in _read_state_config(state_file).items() if isinstance(v, str) and v})

    return ProjectPaths(
        root=root,
        specify_dir=specify_dir,
        state_file=state_file,
        roadmap_file=root / config["roadmap_path"],
        specs_dir=root / config["specs_path"],
        memory_dir=root / config["memory_path"],
        phases_dir=specify_dir / "phases",
        history_file=specify_dir / "history" / "HISTORY.md",
        discovery_file=specify_dir / "discovery" / "decisions.md",
        backup_dir=specify_dir / "backup",
    )


def load_profile(specify_dir: Optional[Path]) -> ProjectProfile:
    """Load specflow.yaml and return ProjectProfile.

    If specify_dir is None or the file doesn't exist, returns defaults.
    """
    if specify_dir is None:
        return ProjectProfile()

    config_path = specify_dir / PROFILE_FILENAME
    if not config_path.exists():
        return ProjectProfile()

    try:
        data = yaml.safe_load(config_path.read_text())
    except (yaml.YAMLError, OSError) as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return ProjectProfile()
    if not isinstance(data, dict):
        if data is not None:
            logger.warning(f"Ignoring {config_path}: expected a mapping")
        return ProjectProfile()

    profile = ProjectProfile()
    for f in fields(ProjectProfile):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.name == "test_command":
            profile.test_command = str(value) if value else None
            continue
        try:
            value = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Invalid {f.name} '{value}' in {config_path}, using default")
            continue
        if value < 0:
            logger.warning(f"Invalid {f.name} '{value}' in {config_path}, using default")
            continue
        setattr(profile, f.name, value)

    unknown = set(data) - {f.name for f in fields(ProjectProfile)}
    for key in sorted(unknown):
        logger.warning(f"Unknown setting '{key}' in {config_path}")
    return profile


def branch_phase_number(branch: Optional[str]) -> Optional[str]:
    """Numeric prefix of a feature branch name (0420-auth -> 0420)."""
    if not branch:
        return None
    m = re.match(r"^([0-9]+)-", branch)
    return m.group(1) if m else None


def resolve_feature_dir(
    paths: ProjectPaths,
    phase_number: Optional[str],
    branch: Optional[str] = None,
) -> Optional[Path]:
    """Feature directory of the active phase.

    specs/<n> or the first sorted specs/<n>-* match; falls back to the numeric
    prefix of the branch when the phase number finds nothing.
    """
    if not paths.specs_dir.is_dir():
        return None
    for number in (phase_number, branch_phase_number(branch)):
        if not number:
            continue
        exact = paths.specs_dir / number
        if exact.is_dir():
            return exact
        matches = sorted(p for p in paths.specs_dir.glob(f"{number}-*") if p.is_dir())
        if matches:
            return matches[0]
    return None


def active_feature_dir(paths: ProjectPaths, state: Optional[WorkflowState]) -> Optional[Path]:
    """Feature directory for the phase number and branch recorded in state.

    The live git branch is never consulted; reconcile reports when it differs.
    """
    if state is None:
        return None
    return resolve_feature_dir(paths, state.orchestration.phase_number, state.orchestration.branch)


def relative_to_root(paths: ProjectPaths, path: Path) -> str:
    """Path as recorded in state: relative to the project root when inside it."""
    try:
        return str(Path(path).relative_to(paths.root))
    except ValueError:
        return str(path)
