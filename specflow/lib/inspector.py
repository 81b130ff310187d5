"""
Artifact inspection.

Line-pattern checks over the markdown artifacts a phase produces (spec.md,
plan.md, tasks.md, ROADMAP.md). Every function here is total: a missing or
unreadable file is reported as absent/empty, never raised. Nothing here
writes.

Gate and reconcile logic consume ArtifactView and never read files directly.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


# Patterns that mark unfinished content. Matched case-insensitively.
PLACEHOLDER_PATTERNS = (
    r"\[PLACEHOLDER\]",
    r"\[TBD\]",
    r"\[TODO\]",
    r"\[FILL IN\]",
    r"\[INSERT\]",
    r"\[DESCRIBE\]",
    r"\[ADD\]",
    r"<<.*>>",
    r"\.\.\.",
)

CHECKBOX_RE = re.compile(r"^\s*-\s*\[([x ])\]")
TASK_LINE_RE = re.compile(r"^\s*-\s*\[([x ])\]\s*T[0-9]+")
TXXX_LINE_RE = re.compile(r"^\s*-\s*\[[x ]\]\s*TXXX")
PHASE_HEADING_RE = re.compile(r"^## Phase")

ROW_3_DIGIT_RE = re.compile(r"^\|\s*[0-9]{3}\s*\|")
ROW_4_DIGIT_RE = re.compile(r"^\|\s*[0-9]{4}\s*\|")

DEFAULT_SAMPLE_LIMIT = 3


class PhaseFormat(str, Enum):
    """Phase numbering scheme found in a roadmap."""
    NONE = "none"
    V2_0 = "2.0"  # 3-digit ids (001, 042)
    V2_1 = "2.1"  # 4-digit ids (0010, 0420)
    MIXED = "mixed"


@dataclass(frozen=True)
class PlaceholderHit:
    """One placeholder pattern found in a file."""
    pattern: str
    count: int  # matching lines
    samples: tuple[tuple[int, str], ...]  # (line_no, text), 1-based

    def to_dict(self) -> dict:
        return {
            "pattern": self.pattern,
            "count": self.count,
            "samples": [{"line": n, "text": t} for n, t in self.samples],
        }


@dataclass(frozen=True)
class TaskTally:
    """Counts over T-numbered task lines (- [ ] T001 ...)."""
    total: int = 0
    completed: int = 0
    incomplete_samples: tuple[str, ...] = ()
    placeholder_ids: int = 0  # TXXX lines

    @property
    def incomplete(self) -> int:
        return self.total - self.completed


@dataclass(frozen=True)
class ArtifactView:
    """Structural summary of one artifact file."""
    path: Path
    exists: bool
    non_empty: bool
    sections: dict[str, bool] = field(default_factory=dict)
    placeholders: tuple[PlaceholderHit, ...] = ()
    checkboxes: tuple[int, int] = (0, 0)  # (completed, total)
    phase_headings: int = 0
    tasks: TaskTally = field(default_factory=TaskTally)

    @property
    def missing_sections(self) -> list[str]:
        return [name for name, present in self.sections.items() if not present]


def read_lines(path: Path) -> Optional[list[str]]:
    """Return file lines, or None if the file is missing or unreadable."""
    try:
        return Path(path).read_text(encoding="utf-8", errors="replace").splitlines()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.debug(f"Cannot read {path}: {e}")
        return None


def file_exists(path: Path) -> bool:
    return Path(path).is_file()


def is_non_empty(path: Path) -> bool:
    """True when the file exists and holds at least one non-whitespace character."""
    lines = read_lines(path)
    if lines is None:
        return False
    return any(line.strip() for line in lines)


def find_sections(path: Path, sections: dict[str, str]) -> dict[str, bool]:
    """Report which named sections have a heading line in the file.

    Args:
        path: Markdown file
        sections: name -> regex alternation, e.g. {"Overview": "## Overview"}

    A section is present when some line matches ^\\s*(?:pattern).
    """
    lines = read_lines(path) or []
    result = {}
    for name, pattern in sections.items():
        regex = re.compile(rf"^\s*(?:{pattern})")
        result[name] = any(regex.match(line) for line in lines)
    return result


def find_placeholders(
    path: Path,
    patterns: tuple[str, ...] = PLACEHOLDER_PATTERNS,
    limit: int = DEFAULT_SAMPLE_LIMIT,
) -> list[PlaceholderHit]:
    """Find placeholder text, one hit per pattern with at least one matching line."""
    lines = read_lines(path) or []
    hits = []
    for pattern in patterns:
        regex = re.compile(pattern, re.IGNORECASE)
        matches = [(n, line.strip()) for n, line in enumerate(lines, 1) if regex.search(line)]
        if matches:
            hits.append(PlaceholderHit(pattern=pattern, count=len(matches), samples=tuple(matches[:limit])))
    return hits


def count_checkboxes(path: Path) -> tuple[int, int]:
    """Return (completed, total) markdown checkboxes. Missing file gives (0, 0)."""
    completed = total = 0
    for line in read_lines(path) or []:
        m = CHECKBOX_RE.match(line)
        if m:
            total += 1
            if m.group(1) == "x":
                completed += 1
    return completed, total


def count_tasks(path: Path, sample_limit: int = 5) -> TaskTally:
    """Tally T-numbered task lines and TXXX placeholder ids."""
    total = completed = txxx = 0
    incomplete = []
    for line in read_lines(path) or []:
        m = TASK_LINE_RE.match(line)
        if m:
            total += 1
            if m.group(1) == "x":
                completed += 1
            elif len(incomplete) < sample_limit:
                incomplete.append(line.strip())
        if TXXX_LINE_RE.match(line):
            txxx += 1
    return TaskTally(total=total, completed=completed, incomplete_samples=tuple(incomplete), placeholder_ids=txxx)


def count_phase_headings(path: Path) -> int:
    return sum(1 for line in read_lines(path) or [] if PHASE_HEADING_RE.match(line))


def detect_phase_format(roadmap: Path) -> PhaseFormat:
    """Classify roadmap table rows by id width."""
    has_3 = has_4 = False
    for line in read_lines(roadmap) or []:
        if ROW_4_DIGIT_RE.match(line):
            has_4 = True
        elif ROW_3_DIGIT_RE.match(line):
            has_3 = True
    if has_3 and has_4:
        return PhaseFormat.MIXED
    if has_4:
        return PhaseFormat.V2_1
    if has_3:
        return PhaseFormat.V2_0
    return PhaseFormat.NONE


def inspect_artifact(
    path: Path,
    sections: Optional[dict[str, str]] = None,
    placeholder_patterns: tuple[str, ...] = (),
    sample_limit: int = DEFAULT_SAMPLE_LIMIT,
    tasks: bool = False,
) -> ArtifactView:
    """Build the structural view of one artifact.

    Only the checks requested are performed; a missing file yields an empty view.
    """
    path = Path(path)
    exists = file_exists(path)
    non_empty = exists and is_non_empty(path)
    if not non_empty:
        return ArtifactView(
            path=path,
            exists=exists,
            non_empty=False,
            sections={name: False for name in (sections or {})},
        )
    return ArtifactView(
        path=path,
        exists=True,
        non_empty=True,
        sections=find_sections(path, sections) if sections else {},
        placeholders=tuple(find_placeholders(path, placeholder_patterns, sample_limit)) if placeholder_patterns else (),
        checkboxes=count_checkboxes(path),
        phase_headings=count_phase_headings(path) if tasks else 0,
        tasks=count_tasks(path) if tasks else TaskTally(),
    )
