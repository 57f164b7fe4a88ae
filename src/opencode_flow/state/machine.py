"""Run state machine implementation.

This module implements the RunStateMachine class, the only writer of
run state during a pipeline run. Every mutation validates the status
transition, refreshes updated_at, and is persisted before the method
returns, so the record on disk always matches the last step taken.

Checkpoints happen before each agent starts and after it finishes. If
the process dies mid-agent, current_agent on disk still names the agent
that was running.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from opencode_flow.state.models import (
    RunState,
    RunStatus,
    create_run_state,
    is_valid_transition,
)
from opencode_flow.state.repository import StateRepository


logger = logging.getLogger(__name__)


class InvalidTransitionError(Exception):
    """Raised when a run state change is not allowed.

    Attributes:
        story_id: The story whose state was being changed.
        from_status: The current status.
        to_status: The attempted target status.
        message: Human-readable error message.
    """

    def __init__(
        self,
        story_id: str,
        from_status: RunStatus,
        to_status: RunStatus,
        message: Optional[str] = None,
    ):
        self.story_id = story_id
        self.from_status = from_status
        self.to_status = to_status
        self.message = message or (
            f"Invalid transition for {story_id} from {from_status.value} "
            f"to {to_status.value}"
        )
        super().__init__(self.message)


class RunStateMachine:
    """State machine for a story's run state.

    The state machine enforces the following invariants:
    - Only transitions listed in VALID_TRANSITIONS are allowed
    - completed_agents only grows, never holds duplicates, and an agent
      can only be completed while it is the current agent
    - Transitions to FAILED always record an error message
    - Every change refreshes updated_at and is saved immediately

    Attributes:
        repository: The state repository for persistence.

    Example:
        >>> machine = RunStateMachine(JsonStateRepository(config_dir))
        >>> state = await machine.start("DEV-18", "flow/DEV-18", "/repo/DEV-18")
        >>> state = await machine.begin_agent(state, "build")
        >>> state = await machine.complete_agent(state, "build")
        >>> state = await machine.complete(state)
    """

    def __init__(self, repository: StateRepository):
        self.repository = repository

    async def exists(self, story_id: str) -> bool:
        """Check whether a run state exists for a story."""
        return await self.repository.exists(story_id)

    async def start(
        self, story_id: str, branch: str, worktree_path: str
    ) -> RunState:
        """Create a run state and move it straight to IN_PROGRESS.

        Only the IN_PROGRESS record is written; PENDING is never persisted.

        Args:
            story_id: Story identifier.
            branch: Git branch created for the run.
            worktree_path: Absolute path to the worktree.

        Returns:
            The persisted IN_PROGRESS run state.

        Raises:
            ValueError: If story_id is empty.
            StateError: If the state cannot be saved.
        """
        if not story_id:
            raise ValueError("story_id cannot be empty")

        state = create_run_state(story_id, branch, worktree_path)
        state = self._transition(state, RunStatus.IN_PROGRESS)

        logger.info(
            "Starting run",
            extra={
                "story_id": story_id,
                "branch": branch,
                "worktree_path": worktree_path,
            },
        )

        await self.repository.save(state)
        return state

    async def begin_agent(self, state: RunState, agent_name: str) -> RunState:
        """Record that an agent is about to run.

        Raises:
            InvalidTransitionError: If the run is not in progress or the
                agent already completed.
        """
        self._require_in_progress(state)
        if agent_name in state.completed_agents:
            raise InvalidTransitionError(
                state.story_id,
                state.status,
                state.status,
                f"Agent {agent_name} already completed for {state.story_id}",
            )

        updated = self._update(state, current_agent=agent_name)
        await self.repository.save(updated)
        return updated

    async def complete_agent(self, state: RunState, agent_name: str) -> RunState:
        """Record that an agent exited successfully.

        current_agent is cleared so that it never names a completed
        agent; the next begin_agent sets it again.

        Raises:
            InvalidTransitionError: If the run is not in progress or the
                agent is not the one currently running.
        """
        self._require_in_progress(state)
        if state.current_agent != agent_name:
            raise InvalidTransitionError(
                state.story_id,
                state.status,
                state.status,
                f"Agent {agent_name} is not running for {state.story_id}",
            )

        updated = self._update(
            state,
            current_agent=None,
            completed_agents=[*state.completed_agents, agent_name],
        )
        await self.repository.save(updated)
        return updated

    async def fail(self, state: RunState, error: str) -> RunState:
        """Move the run to FAILED with an error message."""
        if not error:
            error = "Unknown error (no details provided)"
            logger.warning(
                "Transition to FAILED without error details",
                extra={"story_id": state.story_id},
            )

        updated = self._transition(
            state, RunStatus.FAILED, current_agent=None, error=error
        )

        logger.info(
            "Run failed",
            extra={"story_id": state.story_id, "error": error},
        )

        await self.repository.save(updated)
        return updated

    async def complete(self, state: RunState) -> RunState:
        """Move the run to COMPLETED."""
        updated = self._transition(state, RunStatus.COMPLETED, current_agent=None)

        logger.info(
            "Run completed",
            extra={
                "story_id": state.story_id,
                "completed_agents": updated.completed_agents,
            },
        )

        await self.repository.save(updated)
        return updated

    def _transition(
        self, state: RunState, to_status: RunStatus, **changes: Any
    ) -> RunState:
        if not is_valid_transition(state.status, to_status):
            logger.warning(
                "Invalid run state transition attempted",
                extra={
                    "story_id": state.story_id,
                    "from_status": state.status.value,
                    "to_status": to_status.value,
                },
            )
            raise InvalidTransitionError(state.story_id, state.status, to_status)

        return self._update(state, status=to_status, **changes)

    def _require_in_progress(self, state: RunState) -> None:
        if state.status != RunStatus.IN_PROGRESS:
            raise InvalidTransitionError(
                state.story_id,
                state.status,
                state.status,
                f"Run for {state.story_id} is {state.status.value}, "
                f"not {RunStatus.IN_PROGRESS.value}",
            )

    @staticmethod
    def _update(state: RunState, **changes: Any) -> RunState:
        changes["updated_at"] = datetime.now(timezone.utc)
        return state.model_copy(update=changes)
