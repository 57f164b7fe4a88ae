"""Run state: models, JSON persistence, and the state machine.

This module tracks each story's progress through the pipeline:
- pending → in_progress → completed | failed

One JSON record per story is kept under .opencode-flow/runs/ and is
rewritten before and after every agent.
"""

from opencode_flow.state.models import (
    RunState,
    RunStatus,
    VALID_TRANSITIONS,
    create_run_state,
    is_valid_transition,
)
from opencode_flow.state.machine import (
    InvalidTransitionError,
    RunStateMachine,
)
from opencode_flow.state.repository import (
    JsonStateRepository,
    RUNS_DIR_NAME,
    StateCorruptionError,
    StateError,
    StateRepository,
)

__all__ = [
    # Models
    "RunState",
    "RunStatus",
    "VALID_TRANSITIONS",
    "create_run_state",
    "is_valid_transition",
    # State machine
    "InvalidTransitionError",
    "RunStateMachine",
    # Repository
    "JsonStateRepository",
    "RUNS_DIR_NAME",
    "StateCorruptionError",
    "StateError",
    "StateRepository",
]
