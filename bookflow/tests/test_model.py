"""
Unit tests for bookflow.model module.
"""
import json

import pytest
from pydantic import ValidationError

from bookflow.model import (
    UPDATE_COMMAND_ADAPTER,
    Pause,
    SelectCover,
    SetCharacterSpec,
    WorkflowRef,
    WorkflowState,
)


class TestWorkflowRef:
    def test_for_book(self):
        ref = WorkflowRef.for_book("abc")
        assert ref.book_id == "abc"
        assert ref.workflow_id == "book-abc"

    def test_empty_book_id_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowRef.for_book("")

    def test_frozen(self):
        ref = WorkflowRef.for_book("abc")
        with pytest.raises(ValidationError):
            ref.book_id = "other"


class TestWorkflowState:
    """Tests for state snapshots."""

    def test_terminal_statuses(self):
        for status in ("completed", "failed", "cancelled"):
            assert WorkflowState(workflow_id="w", status=status).is_terminal
        for status in ("running", "paused", "awaiting-cover"):
            assert not WorkflowState(workflow_id="w", status=status).is_terminal

    def test_unknown_fields_survive_serialization(self):
        raw = {
            "workflowId": "book-1",
            "startedAt": "2026-01-01T00:00:00Z",
            "updates": [{"step": "outline"}],
            "status": "running",
            "pages": [1, 2, 3],
        }
        state = WorkflowState.model_validate(raw)
        assert json.loads(state.to_json()) == raw

    def test_missing_status_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowState.model_validate({"workflowId": "book-1"})

    def test_failed_frame_shape(self):
        data = json.loads(WorkflowState.failed("book-1", "boom").to_json())
        assert data["workflowId"] == "book-1"
        assert data["status"] == "failed"
        assert data["updates"] == []
        assert data["error"] == "boom"
        assert data["startedAt"]


class TestUpdateCommands:
    def test_select_cover_maps_to_choose_cover(self):
        cmd = UPDATE_COMMAND_ADAPTER.validate_python(
            {"kind": "selectCover", "payload": "cover-2"}
        )
        assert isinstance(cmd, SelectCover)
        assert cmd.update_name == "chooseCover"
        assert cmd.update_args() == ["cover-2"]

    def test_payload_shapes_enforced(self):
        with pytest.raises(ValidationError):
            UPDATE_COMMAND_ADAPTER.validate_python(
                {"kind": "setCharacterSpec", "payload": "not a dict"}
            )
        with pytest.raises(ValidationError):
            UPDATE_COMMAND_ADAPTER.validate_python(
                {"kind": "chooseCharacter", "payload": 3}
            )

    def test_control_commands_take_no_arguments(self):
        cmd = UPDATE_COMMAND_ADAPTER.validate_python({"kind": "pause", "payload": {"x": 1}})
        assert isinstance(cmd, Pause)
        assert cmd.update_args() == []

    def test_dict_payload_forwarded(self):
        cmd = SetCharacterSpec(payload={"name": "Mia"})
        assert cmd.update_args() == [{"name": "Mia"}]
