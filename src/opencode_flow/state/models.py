"""Run state models.

This module defines the data models for per-story pipeline runs:
- RunStatus: Enum of run statuses
- RunState: Persisted progress of one story through the pipeline
- VALID_TRANSITIONS: Map defining allowed status transitions

The JSON shape of RunState is read by `ocf status` and by anything else
that inspects .opencode-flow/runs/, so its camelCase field names are a
stable on-disk contract.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class RunStatus(str, Enum):
    """Statuses a story run moves through.

    Status Flow:
        pending → in_progress → completed
                             ↘ failed

    A story with no run state at all has not started. COMPLETED and
    FAILED are terminal: the story is not run again until its state is
    removed with `ocf cleanup`.

    Attributes:
        PENDING: Run state created, no agent started yet.
        IN_PROGRESS: Agents are being executed.
        COMPLETED: Every agent exited with code 0.
        FAILED: An agent failed; remaining agents were not run.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class RunState(BaseModel):
    """Persisted progress of one story through the pipeline.

    Attributes:
        story_id: Story identifier; also the state file name.
        branch: Git branch created for the run (flow/<storyId>).
        worktree_path: Absolute path to the story's worktree.
        status: Current run status.
        current_agent: Agent executing right now, if any.
        completed_agents: Agents that exited successfully, in order.
        started_at: When the run started (UTC).
        updated_at: When the run state last changed (UTC).
        error: Failure description when status is FAILED.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    story_id: str = Field(..., min_length=1)
    branch: str = Field(..., min_length=1)
    worktree_path: str = Field(..., min_length=1)
    status: RunStatus = RunStatus.PENDING
    current_agent: Optional[str] = None
    completed_agents: List[str] = Field(default_factory=list)
    started_at: datetime
    updated_at: datetime
    error: Optional[str] = None

    @field_validator("started_at", "updated_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Timestamps without an offset are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def validate_agent_progress(self) -> "RunState":
        if len(set(self.completed_agents)) != len(self.completed_agents):
            raise ValueError("completedAgents contains duplicates")
        # Records that still name the agent that just finished are read as
        # being between agents
        if self.current_agent is not None and self.current_agent in self.completed_agents:
            self.current_agent = None
        return self

    def to_json(self) -> str:
        """Serialize to the on-disk JSON format."""
        return self.model_dump_json(by_alias=True, indent=2)

    @classmethod
    def from_json(cls, content: str) -> "RunState":
        """Parse the on-disk JSON format.

        Raises:
            pydantic.ValidationError: If the content is not valid JSON or
                does not match the RunState shape.
        """
        return cls.model_validate_json(content)


# Valid status transitions map
#
# COMPLETED and FAILED have no outgoing transitions; a finished run is
# only ever replaced by deleting its state file.
VALID_TRANSITIONS: Dict[RunStatus, List[RunStatus]] = {
    RunStatus.PENDING: [
        RunStatus.IN_PROGRESS,
        RunStatus.FAILED,
    ],
    RunStatus.IN_PROGRESS: [
        RunStatus.COMPLETED,
        RunStatus.FAILED,
    ],
    RunStatus.COMPLETED: [],
    RunStatus.FAILED: [],
}


def is_valid_transition(from_status: RunStatus, to_status: RunStatus) -> bool:
    """Check if a status transition is valid.

    Example:
        >>> is_valid_transition(RunStatus.PENDING, RunStatus.IN_PROGRESS)
        True
        >>> is_valid_transition(RunStatus.FAILED, RunStatus.IN_PROGRESS)
        False
    """
    return to_status in VALID_TRANSITIONS.get(from_status, [])


def create_run_state(story_id: str, branch: str, worktree_path: str) -> RunState:
    """Build a new PENDING run state. Nothing is persisted.

    Args:
        story_id: Story identifier.
        branch: Git branch created for the run.
        worktree_path: Absolute path to the worktree.

    Returns:
        A RunState with both timestamps set to now.
    """
    now = datetime.now(timezone.utc)
    return RunState(
        story_id=story_id,
        branch=branch,
        worktree_path=worktree_path,
        status=RunStatus.PENDING,
        current_agent=None,
        completed_agents=[],
        started_at=now,
        updated_at=now,
        error=None,
    )
