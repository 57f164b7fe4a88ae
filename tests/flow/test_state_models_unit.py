"""Unit tests for run state models and transitions."""

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from opencode_flow.state import (
    VALID_TRANSITIONS,
    RunState,
    RunStatus,
    create_run_state,
    is_valid_transition,
)


def _state(**overrides) -> RunState:
    state = create_run_state("DEV-18", "flow/DEV-18", "/repo/DEV-18")
    return state.model_copy(update=overrides)


class TestCreateRunState:
    def test_new_state_is_pending_and_empty(self):
        state = create_run_state("DEV-18", "flow/DEV-18", "/repo/DEV-18")

        assert state.status == RunStatus.PENDING
        assert state.current_agent is None
        assert state.completed_agents == []
        assert state.error is None
        assert state.started_at == state.updated_at
        assert state.started_at.tzinfo is not None

    def test_rejects_empty_story_id(self):
        with pytest.raises(ValidationError):
            create_run_state("", "flow/", "/repo")


class TestJsonFormat:
    def test_uses_camel_case_keys(self):
        payload = json.loads(_state(current_agent="build").to_json())

        assert set(payload) == {
            "storyId",
            "branch",
            "worktreePath",
            "status",
            "currentAgent",
            "completedAgents",
            "startedAt",
            "updatedAt",
            "error",
        }
        assert payload["status"] == "pending"
        assert payload["currentAgent"] == "build"

    def test_two_space_indent(self):
        assert '\n  "storyId": "DEV-18"' in _state().to_json()

    def test_reads_external_record(self):
        content = json.dumps(
            {
                "storyId": "DEV-7",
                "branch": "flow/DEV-7",
                "worktreePath": "/repo/DEV-7",
                "status": "failed",
                "currentAgent": None,
                "completedAgents": ["build"],
                "startedAt": "2025-01-15T10:00:00.000Z",
                "updatedAt": "2025-01-15T10:05:00.000Z",
                "error": "Agent test failed with exit code 1",
            }
        )

        state = RunState.from_json(content)

        assert state.status == RunStatus.FAILED
        assert state.completed_agents == ["build"]
        assert state.updated_at == datetime(2025, 1, 15, 10, 5, tzinfo=timezone.utc)

    def test_rejects_duplicate_completed_agents(self):
        content = _state(completed_agents=["build", "build"]).to_json()

        with pytest.raises(ValidationError, match="duplicates"):
            RunState.from_json(content)

    def test_current_agent_already_completed_reads_as_between_agents(self):
        payload = json.loads(_state(completed_agents=["build"]).to_json())
        payload["currentAgent"] = "build"

        state = RunState.from_json(json.dumps(payload))

        assert state.current_agent is None
        assert state.completed_agents == ["build"]

    def test_naive_timestamps_are_utc(self):
        payload = json.loads(_state().to_json())
        payload["startedAt"] = "2024-01-01T00:00:00"
        payload["updatedAt"] = "2024-01-01T00:05:00"

        state = RunState.from_json(json.dumps(payload))

        assert state.started_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert state.updated_at.tzinfo is not None

    def test_rejects_unknown_status(self):
        payload = json.loads(_state().to_json())
        payload["status"] = "paused"

        with pytest.raises(ValidationError):
            RunState.from_json(json.dumps(payload))


class TestTransitions:
    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (RunStatus.PENDING, RunStatus.IN_PROGRESS),
            (RunStatus.PENDING, RunStatus.FAILED),
            (RunStatus.IN_PROGRESS, RunStatus.COMPLETED),
            (RunStatus.IN_PROGRESS, RunStatus.FAILED),
        ],
    )
    def test_valid_transitions(self, from_status, to_status):
        assert is_valid_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (RunStatus.PENDING, RunStatus.COMPLETED),
            (RunStatus.COMPLETED, RunStatus.IN_PROGRESS),
            (RunStatus.FAILED, RunStatus.IN_PROGRESS),
            (RunStatus.IN_PROGRESS, RunStatus.PENDING),
        ],
    )
    def test_invalid_transitions(self, from_status, to_status):
        assert not is_valid_transition(from_status, to_status)

    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(RunStatus)
