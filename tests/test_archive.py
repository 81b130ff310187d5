"""Tests for specflow.workflow.archive module."""

from datetime import date
from unittest.mock import patch

import pytest

from specflow.lib.state import SchemaError, StateStore, WriteError
from specflow.workflow.archive import (
    HISTORY_HEADER,
    ArchiveError,
    archive_phase,
    insert_entry,
    is_archived,
)
from specflow.workflow.migrate import AmbiguousInput

from samples import ROADMAP_V21

DAY = date(2026, 3, 1)

ROADMAP_INLINE = ROADMAP_V21 + """
### 0010 - Setup

Scaffold the repo.

### 0020 - Auth

Login and sessions.
"""


class TestInsertEntry:
    """Tests for insert_entry."""

    def test_new_history_gets_header(self):
        text = insert_entry(None, "## 0010 - Setup\n\n---\n")
        assert text.startswith(HISTORY_HEADER)
        assert text.endswith("## 0010 - Setup\n\n---\n")

    def test_newest_first(self):
        first = insert_entry(None, "## 0010 - Setup\n\n---\n")
        second = insert_entry(first, "## 0020 - Auth\n\n---\n")
        assert second.index("## 0020") < second.index("## 0010")

    def test_history_without_rule(self):
        text = insert_entry("# History\n", "## 0010 - Setup\n")
        assert text == "# History\n\n---\n\n## 0010 - Setup\n"

    def test_entries_separated_by_one_blank_line(self):
        first = insert_entry(None, "## 0010 - Setup\n\n---\n")
        second = insert_entry(first, "## 0020 - Auth\n\n---\n")
        assert second == HISTORY_HEADER + "## 0020 - Auth\n\n---\n\n## 0010 - Setup\n\n---\n"


class TestArchivePhase:
    """Tests for archive_phase."""

    def test_phase_file_moved(self, paths, store):
        paths.roadmap_file.write_text(ROADMAP_V21)
        paths.phases_dir.mkdir()
        phase_file = paths.phases_dir / "0010-setup.md"
        phase_file.write_text("---\nstatus: complete\n---\n# Setup\n\nScaffold the repo.\n")

        result = archive_phase(paths, "0010", store, today=DAY)

        assert result.source == "file"
        assert not phase_file.exists()
        history = paths.history_file.read_text()
        assert "## 0010 - Setup" in history
        assert "**Completed**: 2026-03-01" in history
        assert "Scaffold the repo." in history
        assert "status: complete" not in history
        assert is_archived(paths.history_file, "0010")
        assert store.load().history[-1]["type"] == "phase_archived"

    def test_inline_section_removed(self, paths):
        paths.roadmap_file.write_text(ROADMAP_INLINE)

        result = archive_phase(paths, "0010", today=DAY)

        assert result.source == "inline"
        roadmap = paths.roadmap_file.read_text()
        assert "### 0010 - Setup" not in roadmap
        assert "Scaffold the repo." not in roadmap
        assert "### 0020 - Auth" in roadmap
        assert "| 0010 | Setup |" in roadmap
        assert "Scaffold the repo." in paths.history_file.read_text()

    def test_no_detail(self, paths):
        paths.roadmap_file.write_text(ROADMAP_V21)
        result = archive_phase(paths, "0010", today=DAY)
        assert result.source is None
        assert "without detailed phase file" in result.entry

    def test_dry_run(self, paths):
        paths.roadmap_file.write_text(ROADMAP_INLINE)
        result = archive_phase(paths, "0010", dry_run=True, today=DAY)
        assert result.entry.startswith("## 0010 - Setup")
        assert not paths.history_file.exists()
        assert paths.roadmap_file.read_text() == ROADMAP_INLINE

    def test_not_complete(self, paths):
        paths.roadmap_file.write_text(ROADMAP_V21)
        with pytest.raises(ArchiveError, match="in_progress"):
            archive_phase(paths, "0020")

    def test_unknown_phase(self, paths):
        paths.roadmap_file.write_text(ROADMAP_V21)
        with pytest.raises(ArchiveError, match="not found"):
            archive_phase(paths, "0099")

    def test_archived_once(self, paths):
        paths.roadmap_file.write_text(ROADMAP_V21)
        archive_phase(paths, "0010", today=DAY)
        with pytest.raises(ArchiveError, match="already archived"):
            archive_phase(paths, "0010", today=DAY)

    def test_storage_conflict(self, paths):
        paths.roadmap_file.write_text(ROADMAP_INLINE)
        paths.phases_dir.mkdir()
        (paths.phases_dir / "0010-setup.md").write_text("---\nstatus: complete\n---\n")
        with pytest.raises(AmbiguousInput):
            archive_phase(paths, "0010")
        assert not paths.history_file.exists()

    def test_failed_removal_restores_history(self, paths):
        paths.roadmap_file.write_text(ROADMAP_V21)
        paths.phases_dir.mkdir()
        (paths.phases_dir / "0010-setup.md").write_text("---\nstatus: complete\n---\nBody\n")
        paths.history_file.parent.mkdir(parents=True)
        paths.history_file.write_text(HISTORY_HEADER)

        with patch("pathlib.Path.unlink", side_effect=PermissionError("read-only")):
            with pytest.raises(ArchiveError, match="read-only"):
                archive_phase(paths, "0010", today=DAY)
        assert (paths.phases_dir / "0010-setup.md").exists()
        assert paths.history_file.read_text() == HISTORY_HEADER

    def test_malformed_state_aborts_before_any_move(self, paths):
        paths.roadmap_file.write_text(ROADMAP_INLINE)
        paths.state_file.write_text("{not json")

        with pytest.raises(SchemaError, match="invalid JSON"):
            archive_phase(paths, "0010", StateStore(paths.state_file), today=DAY)
        assert not paths.history_file.exists()
        assert paths.roadmap_file.read_text() == ROADMAP_INLINE

    def test_failed_state_update_restores_inline_section(self, paths, store):
        paths.roadmap_file.write_text(ROADMAP_INLINE)

        with patch.object(store, "update", side_effect=WriteError("disk full")):
            with pytest.raises(ArchiveError, match="restored"):
                archive_phase(paths, "0010", store, today=DAY)
        assert paths.roadmap_file.read_text() == ROADMAP_INLINE
        assert not paths.history_file.exists()

    def test_failed_state_update_restores_phase_file(self, paths, store):
        paths.roadmap_file.write_text(ROADMAP_V21)
        paths.phases_dir.mkdir()
        phase_file = paths.phases_dir / "0010-setup.md"
        phase_file.write_text("---\nstatus: complete\n---\nBody\n")
        paths.history_file.parent.mkdir(parents=True)
        paths.history_file.write_text(HISTORY_HEADER)

        with patch.object(store, "update", side_effect=WriteError("disk full")):
            with pytest.raises(ArchiveError, match="disk full"):
                archive_phase(paths, "0010", store, today=DAY)
        assert phase_file.read_text() == "---\nstatus: complete\n---\nBody\n"
        assert paths.history_file.read_text() == HISTORY_HEADER
