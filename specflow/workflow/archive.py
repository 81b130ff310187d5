"""
One-way archival of completed phases into HISTORY.md.

The phase's detail (phase file or inline roadmap section) is moved to the
top of .specify/history/HISTORY.md, newest first, and the source is
removed. A phase is archived at most once, only when complete, and never
while it is stored both inline and as a file.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

from specflow.lib.config import ProjectPaths
from specflow.lib.inspector import read_lines
from specflow.lib.roadmap import (
    Phase,
    find_inline_sections,
    find_phase_files,
    find_storage_conflicts,
    get_phase,
    strip_front_matter,
)
from specflow.lib.state import StateStore, WorkflowState, WriteError, atomic_write_text, iso_timestamp
from specflow.workflow.migrate import AmbiguousInput

logger = logging.getLogger(__name__)


HISTORY_HEADER = (
    "# Completed Phases\n"
    "\n"
    "> Archive of completed development phases. Newest first.\n"
    "\n"
    "---\n"
    "\n"
)

SECTION_END_RE = re.compile(r"^#{1,3}\s")


class ArchiveError(Exception):
    """Phase cannot be archived; nothing was changed."""


@dataclass
class ArchiveResult:
    phase: Phase
    history_file: Path
    entry: str
    source: Optional[str]  # "file", "inline" or None
    removed: Optional[Path] = None
    dry_run: bool = False

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.to_dict(),
            "history_file": str(self.history_file),
            "source": self.source,
            "removed": str(self.removed) if self.removed else None,
            "dry_run": self.dry_run,
            "entry": self.entry,
        }


def is_archived(history_file: Path, number: str) -> bool:
    pattern = re.compile(rf"^## {re.escape(number)}\s*-")
    return any(pattern.match(line) for line in read_lines(history_file) or [])


def format_entry(phase: Phase, body: Optional[str], completed: str) -> str:
    header = f"## {phase.number} - {phase.name}\n\n**Completed**: {completed}\n\n"
    if body:
        return header + body.strip() + "\n\n---\n"
    return header + "Phase completed without detailed phase file.\n\n---\n"


def insert_entry(history_text: Optional[str], entry: str) -> str:
    """Place entry after the first '---' rule (newest first)."""
    text = history_text if history_text else HISTORY_HEADER
    marker = text.find("---\n")
    if marker == -1:
        return text.rstrip("\n") + "\n\n---\n\n" + entry
    cut = marker + len("---\n")
    if text.startswith("\n", cut):
        cut += 1
    rest = text[cut:]
    if rest:
        return text[:marker] + "---\n\n" + entry + "\n" + rest
    return text[:marker] + "---\n\n" + entry


def _inline_section(lines: list[str], start: int) -> tuple[int, int]:
    """0-based [start, end) span of an inline '### NNNN -' section."""
    end = start + 1
    while end < len(lines) and not SECTION_END_RE.match(lines[end]):
        end += 1
    return start, end


def archive_phase(
    paths: ProjectPaths,
    number: str,
    store: Optional[StateStore] = None,
    dry_run: bool = False,
    today: Optional[date] = None,
) -> ArchiveResult:
    """Move a completed phase into HISTORY.md.

    Raises:
        ArchiveError: phase unknown, not complete, already archived, or the
            move failed (HISTORY.md is restored)
        AmbiguousInput: phase stored both inline and as a file
        SchemaError: state document cannot be loaded (checked before any move)
    """
    roadmap = paths.roadmap_file
    phase = get_phase(roadmap, paths.phases_dir, number)
    if phase is None:
        raise ArchiveError(f"Phase {number} not found in {roadmap}")
    if phase.status != "complete":
        raise ArchiveError(f"Phase {number} is {phase.status}; only complete phases can be archived")
    if any(c.number == number for c in find_storage_conflicts(roadmap, paths.phases_dir)):
        raise AmbiguousInput(
            f"Phase {number} is stored both inline in {roadmap.name} and in {paths.phases_dir}; "
            "resolve before archiving"
        )
    if is_archived(paths.history_file, number):
        raise ArchiveError(f"Phase {number} is already archived in {paths.history_file}")

    phase_file = find_phase_files(paths.phases_dir).get(number)
    inline_line = find_inline_sections(roadmap).get(number)
    roadmap_text = roadmap.read_text(encoding="utf-8") if roadmap.is_file() else ""
    roadmap_lines = roadmap_text.splitlines(keepends=True)

    body = None
    source = None
    span = None
    if phase_file is not None:
        source = "file"
        body = strip_front_matter(phase_file.read_text(encoding="utf-8"))
    elif inline_line is not None:
        source = "inline"
        span = _inline_section(roadmap_lines, inline_line - 1)
        body = "".join(roadmap_lines[span[0] + 1:span[1]])

    completed = (today or date.today()).isoformat()
    entry = format_entry(phase, body, completed)
    result = ArchiveResult(
        phase=phase,
        history_file=paths.history_file,
        entry=entry,
        source=source,
        removed=phase_file if source == "file" else (roadmap if source == "inline" else None),
        dry_run=dry_run,
    )
    if dry_run:
        return result

    # Load state before moving anything; SchemaError aborts with no change
    track = store is not None and store.exists()
    if track:
        store.load()

    previous = paths.history_file.read_text(encoding="utf-8") if paths.history_file.is_file() else None
    phase_text = phase_file.read_text(encoding="utf-8") if source == "file" else None

    def restore_history() -> None:
        if previous is None:
            paths.history_file.unlink(missing_ok=True)
        else:
            atomic_write_text(paths.history_file, previous)

    atomic_write_text(paths.history_file, insert_entry(previous, entry))

    try:
        if source == "file":
            phase_file.unlink()
        elif source == "inline":
            remaining = roadmap_lines[:span[0]] + roadmap_lines[span[1]:]
            atomic_write_text(roadmap, "".join(remaining))
    except (OSError, WriteError) as e:
        logger.warning(f"[ARCHIVE] Removing phase {number} source failed, restoring history")
        restore_history()
        raise ArchiveError(f"Failed to remove phase {number} source: {e}") from e

    if track:
        def record(s: WorkflowState) -> None:
            s.history.append({
                "type": "phase_archived",
                "phase_number": number,
                "phase_name": phase.name,
                "at": iso_timestamp(),
            })

        try:
            store.update(record)
        except WriteError as e:
            logger.warning(f"[ARCHIVE] State update failed, restoring phase {number}")
            if source == "file":
                atomic_write_text(phase_file, phase_text)
            elif source == "inline":
                atomic_write_text(roadmap, roadmap_text)
            restore_history()
            raise ArchiveError(f"State update failed, phase {number} restored: {e}") from e

    logger.info(f"[ARCHIVE] Phase {number} archived to {paths.history_file}")
    return result
