"""Tests for specflow.lib.validate module."""

import pytest

from specflow.lib import validate
from specflow.lib.state import WorkflowState


def valid_document():
    return WorkflowState().to_dict()


class TestValidate:
    """Tests for validate and validate_before_write."""

    def test_fresh_document_is_valid(self):
        validate.validate(valid_document(), "state")

    def test_error_carries_path(self):
        data = valid_document()
        data["orchestration"]["steps"]["plan"]["status"] = "done"
        with pytest.raises(validate.ValidationError) as exc:
            validate.validate(data, "state")
        assert exc.value.path == "orchestration.steps.plan.status"
        assert exc.value.schema_name == "state"

    def test_phase_number_format(self):
        data = valid_document()
        data["orchestration"]["phase_number"] = "42"
        with pytest.raises(validate.ValidationError):
            validate.validate(data, "state")
        data["orchestration"]["phase_number"] = "0042"
        validate.validate(data, "state")

    def test_before_write_names_file(self, tmp_path):
        data = valid_document()
        del data["config"]
        target = tmp_path / "state.json"
        with pytest.raises(validate.ValidationError, match="Refusing to write invalid data"):
            validate.validate_before_write(data, "state", target)
        assert not target.exists()

    def test_unknown_schema(self):
        with pytest.raises(validate.ValidationError, match="Schema file not found"):
            validate.validate({}, "nope")


class TestCollectErrors:
    """Tests for collect_errors."""

    def test_valid_has_no_errors(self):
        assert validate.collect_errors(valid_document(), "state") == []

    def test_reports_every_error(self):
        data = valid_document()
        data["interview"]["status"] = "halfway"
        data["orchestration"]["steps"]["specify"]["status"] = "completed"
        errors = validate.collect_errors(data, "state")
        assert len(errors) == 2
        assert errors[0].startswith("interview.status: ")
        assert errors[1].startswith("orchestration.steps.specify.completed_at: ")

    def test_root_errors(self):
        errors = validate.collect_errors({"schema_version": "2.0"}, "state")
        assert all(e.startswith("(root): ") for e in errors)
        assert len(errors) == 3
