"""
ROADMAP.md and phase file parsing.

Phases are listed in a roadmap table:

    | Phase | Name | Status | Verification Gate |
    |-------|------|--------|-------------------|
    | 0010  | Core | ✅ Complete | Tests pass |

Details for a phase live either inline in the roadmap (### 0010 - Core) or
in a phase file (.specify/phases/0010-core.md) with YAML front matter.
Both for the same number is a storage conflict that must be resolved by
migration, never merged.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from specflow.lib.inspector import read_lines

logger = logging.getLogger(__name__)


PHASE_STATUSES = ("not_started", "in_progress", "complete", "awaiting_user", "blocked")

TABLE_ROW_RE = re.compile(r"^\|\s*([0-9]{3,4})\s*\|")
INLINE_SECTION_RE = re.compile(r"^###\s*([0-9]{3,4})\s*-\s*(.*?)\s*$")
FRONT_MATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*\n?", re.DOTALL)


@dataclass(frozen=True)
class Phase:
    """A phase listed in the roadmap."""
    number: str
    name: str
    status: str
    line: int
    source: str = "roadmap"  # "roadmap" or "file"
    has_user_gate: bool = False

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "name": self.name,
            "status": self.status,
            "line": self.line,
            "source": self.source,
            "has_user_gate": self.has_user_gate,
        }


@dataclass(frozen=True)
class StorageConflict:
    """Same phase stored inline in ROADMAP.md and as a phase file."""
    number: str
    inline_line: int
    phase_file: Path


def parse_phase_status(text: str) -> str:
    """Map a status cell ('✅ Complete', 'IN_PROGRESS', ...) to a phase status."""
    lower = (text or "").lower().replace("_", " ")
    if "✅" in lower or "complete" in lower or "done" in lower:
        return "complete"
    if "🔄" in lower or "in progress" in lower or "active" in lower:
        return "in_progress"
    if "⏳" in lower or "awaiting" in lower or "waiting" in lower:
        return "awaiting_user"
    if "🚫" in lower or "blocked" in lower:
        return "blocked"
    return "not_started"


def _split_row(line: str) -> list[str]:
    return [cell.strip() for cell in line.strip().strip("|").split("|")]


def parse_roadmap(roadmap: Path) -> list[Phase]:
    """Parse the phase table. Missing roadmap gives an empty list."""
    phases = []
    for n, line in enumerate(read_lines(roadmap) or [], 1):
        m = TABLE_ROW_RE.match(line)
        if not m:
            continue
        cells = _split_row(line)
        name = cells[1] if len(cells) > 1 else ""
        status_cell = cells[2] if len(cells) > 2 else ""
        gate_cell = cells[3] if len(cells) > 3 else ""
        phases.append(Phase(
            number=m.group(1),
            name=name,
            status=parse_phase_status(status_cell),
            line=n,
            has_user_gate="USER GATE" in (status_cell + gate_cell).upper(),
        ))
    return phases


def find_inline_sections(roadmap: Path) -> dict[str, int]:
    """Return {phase number: line} for '### NNNN - Name' headers."""
    found = {}
    for n, line in enumerate(read_lines(roadmap) or [], 1):
        m = INLINE_SECTION_RE.match(line)
        if m and m.group(1) not in found:
            found[m.group(1)] = n
    return found


def find_phase_files(phases_dir: Path) -> dict[str, Path]:
    """Return {phase number: path} for .specify/phases/NNNN-*.md files."""
    found = {}
    if not phases_dir.is_dir():
        return found
    for path in sorted(phases_dir.glob("*.md")):
        m = re.match(r"^([0-9]{3,4})-", path.name)
        if m and m.group(1) not in found:
            found[m.group(1)] = path
    return found


def read_front_matter(path: Path) -> dict:
    """Parse YAML front matter from a phase file. Empty dict if absent or invalid."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    m = FRONT_MATTER_RE.match(text)
    if not m:
        return {}
    try:
        data = yaml.safe_load(m.group(1))
    except yaml.YAMLError as e:
        logger.warning(f"Invalid front matter in {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def strip_front_matter(text: str) -> str:
    return FRONT_MATTER_RE.sub("", text, count=1).strip()


def load_phases(roadmap: Path, phases_dir: Path) -> list[Phase]:
    """Roadmap phases with status taken from phase files where they exist."""
    files = find_phase_files(phases_dir)
    phases = []
    for phase in parse_roadmap(roadmap):
        path = files.get(phase.number)
        if path is None:
            phases.append(phase)
            continue
        meta = read_front_matter(path)
        status = meta.get("status")
        if status not in PHASE_STATUSES:
            status = phase.status if status is None else parse_phase_status(str(status))
        phases.append(Phase(
            number=phase.number,
            name=phase.name,
            status=status,
            line=phase.line,
            source="file",
            has_user_gate=phase.has_user_gate,
        ))
    return phases


def get_phase(roadmap: Path, phases_dir: Path, number: str) -> Optional[Phase]:
    for phase in load_phases(roadmap, phases_dir):
        if phase.number == number:
            return phase
    return None


def find_storage_conflicts(roadmap: Path, phases_dir: Path) -> list[StorageConflict]:
    """Phases stored both inline and as a phase file."""
    inline = find_inline_sections(roadmap)
    files = find_phase_files(phases_dir)
    return [
        StorageConflict(number=number, inline_line=inline[number], phase_file=files[number])
        for number in sorted(inline)
        if number in files
    ]
