"""
Phase numbering migration (3-digit 2.0 ids to 4-digit 2.1 ids).

    042 -> 0420

Every id is multiplied by ten so new phases can be inserted between
existing ones. The roadmap table, inline '### NNN -' headers, the active
phase number and the id inside the recorded branch name are rewritten as
one logical operation: if the state write fails the original roadmap is
restored.
"""

import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from specflow.lib.config import ProjectPaths
from specflow.lib.inspector import PhaseFormat, detect_phase_format, read_lines
from specflow.lib.roadmap import parse_roadmap
from specflow.lib.state import StateStore, WorkflowState, WriteError, atomic_write_text, iso_timestamp

logger = logging.getLogger(__name__)


OLD_ROW_RE = re.compile(r"^\|\s*([0-9]{3})\s*\|")


class AmbiguousInput(Exception):
    """Input cannot be interpreted safely; nothing was changed."""


class MigrationError(Exception):
    """Migration could not be applied; nothing was changed."""


@dataclass
class MigrationResult:
    from_format: str
    to_format: str = PhaseFormat.V2_1.value
    conversions: dict[str, str] = field(default_factory=dict)
    roadmap_changes: list[tuple[int, str, str]] = field(default_factory=list)  # (line, before, after)
    state_changes: dict[str, tuple] = field(default_factory=dict)  # key -> (before, after)
    backup: Optional[Path] = None
    dry_run: bool = False
    applied: bool = False

    def to_dict(self) -> dict:
        return {
            "from_format": self.from_format,
            "to_format": self.to_format,
            "dry_run": self.dry_run,
            "applied": self.applied,
            "conversions": self.conversions,
            "roadmap_changes": [
                {"line": n, "before": before, "after": after}
                for n, before, after in self.roadmap_changes
            ],
            "state_changes": {
                key: {"before": before, "after": after}
                for key, (before, after) in self.state_changes.items()
            },
            "backup": str(self.backup) if self.backup else None,
        }


def convert_phase_number(old: str) -> str:
    """'042' -> '0420'. Accepts any 1-3 digit id."""
    if not old.isdigit() or len(old) > 3:
        raise ValueError(f"Not a 3-digit phase number: {old!r}")
    return f"{int(old) * 10:04d}"


def _rewrite_line(line: str, conversions: dict[str, str]) -> str:
    if not conversions:
        return line
    ids = "|".join(re.escape(old) for old in conversions)
    line = re.sub(rf"(?<=\|)\s*({ids})\s*(?=\|)", lambda m: f" {conversions[m.group(1)]} ", line)
    return re.sub(rf"^###\s*({ids})\s*-", lambda m: f"### {conversions[m.group(1)]} -", line)


def _rewrite_branch(branch: str, old: str, new: str) -> str:
    return re.sub(rf"(?<![0-9]){old}(?![0-9])", new, branch)


def plan_migration(roadmap: Path) -> tuple[dict[str, str], list[tuple[int, str, str]]]:
    """Compute id conversions and the rewritten roadmap lines.

    Raises:
        AmbiguousInput: roadmap mixes 3- and 4-digit ids
        MigrationError: no phase table found
    """
    fmt = detect_phase_format(roadmap)
    if fmt == PhaseFormat.MIXED:
        raise AmbiguousInput(
            f"{roadmap} mixes 3-digit and 4-digit phase numbers; fix manually before migrating"
        )
    if fmt == PhaseFormat.NONE:
        raise MigrationError(f"No phase table found in {roadmap}")
    if fmt == PhaseFormat.V2_1:
        return {}, []

    lines = read_lines(roadmap) or []
    conversions: dict[str, str] = {}
    for line in lines:
        m = OLD_ROW_RE.match(line)
        if m and m.group(1) not in conversions:
            conversions[m.group(1)] = convert_phase_number(m.group(1))

    changes = []
    for n, line in enumerate(lines, 1):
        rewritten = _rewrite_line(line, conversions)
        if rewritten != line:
            changes.append((n, line, rewritten))
    return conversions, changes


def _state_changes(state: WorkflowState, conversions: dict[str, str]) -> dict[str, tuple]:
    changes: dict[str, tuple] = {}
    number = state.orchestration.phase_number
    if number and len(number) == 3 and number.isdigit():
        new_number = conversions.get(number, convert_phase_number(number))
        changes["orchestration.phase_number"] = (number, new_number)
        branch = state.orchestration.branch
        if branch:
            new_branch = _rewrite_branch(branch, number, new_number)
            if new_branch != branch:
                changes["orchestration.branch"] = (branch, new_branch)
    return changes


def migrate_roadmap(
    paths: ProjectPaths,
    store: Optional[StateStore] = None,
    dry_run: bool = False,
    backup: bool = True,
) -> MigrationResult:
    """Convert a 2.0 roadmap (and the active phase in state) to 2.1 numbering.

    Raises:
        AmbiguousInput: mixed formats
        MigrationError: no roadmap/table, or the write could not complete
    """
    roadmap = paths.roadmap_file
    if not roadmap.is_file():
        raise MigrationError(f"ROADMAP not found: {roadmap}")

    from_format = detect_phase_format(roadmap).value
    conversions, line_changes = plan_migration(roadmap)
    result = MigrationResult(from_format=from_format, dry_run=dry_run, conversions=conversions,
                             roadmap_changes=line_changes)
    if not conversions:
        logger.info(f"[MIGRATE] {roadmap} already uses 4-digit phase numbers")
        return result

    state = store.load() if store is not None and store.exists() else None
    if state is not None:
        result.state_changes = _state_changes(state, conversions)

    if dry_run:
        return result

    original = roadmap.read_text(encoding="utf-8")
    lines = original.splitlines(keepends=True)
    for n, _, after in line_changes:
        ending = lines[n - 1][len(lines[n - 1].rstrip("\r\n")):]
        lines[n - 1] = after + ending
    updated = "".join(lines)

    if backup:
        result.backup = roadmap.with_name(roadmap.name + ".bak")
        shutil.copy2(roadmap, result.backup)

    try:
        atomic_write_text(roadmap, updated)
    except WriteError as e:
        raise MigrationError(str(e)) from e

    if state is not None:
        def apply(s: WorkflowState) -> None:
            for key, (_, after) in result.state_changes.items():
                if key == "orchestration.phase_number":
                    s.orchestration.phase_number = after
                elif key == "orchestration.branch":
                    s.orchestration.branch = after
            s.history.append({
                "type": "phase_migration",
                "from": from_format,
                "to": PhaseFormat.V2_1.value,
                "phases": len(conversions),
                "at": iso_timestamp(),
            })

        try:
            store.update(apply)
        except WriteError as e:
            logger.warning(f"[MIGRATE] State update failed, restoring {roadmap}")
            atomic_write_text(roadmap, original)
            raise MigrationError(f"State update failed, roadmap restored: {e}") from e

    result.applied = True
    logger.info(f"[MIGRATE] Converted {len(conversions)} phase(s) in {roadmap}")
    return result


def normalize_fuzzy(raw: str, roadmap: Path) -> Optional[str]:
    """Resolve user input ('42', '042', 'phase 0420') to a roadmap phase number.

    Exact 4-digit match first, then for inputs of at most 3 digits the
    unmigrated 3-digit id, then for values below 1000 the x10 expansion.
    Without a roadmap the 4-digit form is returned unchecked. None when no
    phase matches.
    """
    digits = re.sub(r"[^0-9]", "", raw or "")
    if not digits or len(digits) > 4:
        return None
    value = int(digits)
    candidate = f"{value:04d}"
    if not roadmap.is_file():
        return candidate

    numbers = {phase.number for phase in parse_roadmap(roadmap)}
    if candidate in numbers:
        return candidate
    if len(digits) <= 3:
        legacy = f"{value:03d}"
        if legacy in numbers:
            return legacy
    if value < 1000:
        expanded = f"{value * 10:04d}"
        if expanded in numbers:
            return expanded
    return None
