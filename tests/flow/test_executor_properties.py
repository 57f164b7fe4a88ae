"""Property-based tests for agent sequencing in the pipeline executor.

Testing Configuration:
- Library: Hypothesis (Python)
- Minimum iterations: 100 per property test
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

from hypothesis import given, settings, strategies as st

from opencode_flow.config import PipelineConfig
from opencode_flow.executor import PipelineExecutor, ResultStatus
from opencode_flow.runner import AgentResult
from opencode_flow.state import RunState, RunStateMachine, RunStatus, StateRepository


def run_async(coro):
    return asyncio.run(coro)


class InMemoryStateRepository(StateRepository):
    def __init__(self) -> None:
        self._states: Dict[str, RunState] = {}

    async def save(self, state: RunState) -> None:
        self._states[state.story_id] = state

    async def load(self, story_id: str) -> Optional[RunState]:
        return self._states.get(story_id)

    async def list_runs(self) -> List[RunState]:
        return list(self._states.values())

    async def exists(self, story_id: str) -> bool:
        return story_id in self._states

    async def delete(self, story_id: str) -> bool:
        return self._states.pop(story_id, None) is not None


# =============================================================================
# Hypothesis Strategies
# =============================================================================


@st.composite
def agent_names(draw: st.DrawFn) -> List[str]:
    """Generate 1-6 unique agent names."""
    return draw(
        st.lists(
            st.from_regex(r"[a-z][a-z0-9_-]{0,10}", fullmatch=True),
            min_size=1,
            max_size=6,
            unique=True,
        )
    )


@st.composite
def exit_codes(draw: st.DrawFn) -> int:
    return draw(st.one_of(st.integers(min_value=1, max_value=255), st.just(-1)))


# =============================================================================
# Helpers
# =============================================================================


def _run_pipeline(names: List[str], results: List[AgentResult]):
    with tempfile.TemporaryDirectory() as tmp:
        config_dir = Path(tmp) / ".opencode-flow"
        config_dir.mkdir()
        for name in names:
            (config_dir / f"{name}.md").write_text(f"{name} {{{{storyId}}}}")

        config = PipelineConfig.model_validate(
            {"agents": [{"name": n, "promptPath": f"{n}.md"} for n in names]},
            context={"config_dir": config_dir},
        )

        worktrees = MagicMock()
        worktrees.exists = AsyncMock(return_value=False)
        worktrees.create = AsyncMock(return_value=Path(tmp) / "STORY-1")
        worktrees.branch_name = MagicMock(return_value="flow/STORY-1")

        runner = MagicMock()
        runner.run = AsyncMock(side_effect=results)

        repository = InMemoryStateRepository()
        executor = PipelineExecutor(
            config=config,
            config_dir=config_dir,
            worktrees=worktrees,
            state_machine=RunStateMachine(repository),
            runner=runner,
        )

        result = run_async(executor.run("STORY-1"))
        state = run_async(repository.load("STORY-1"))
        return result, state, runner


def _ok() -> AgentResult:
    return AgentResult(success=True, exit_code=0, duration_seconds=0.1)


# =============================================================================
# Properties
# =============================================================================


class TestAgentSequencingProperties:
    @settings(max_examples=100, deadline=None)
    @given(names=agent_names(), data=st.data())
    def test_failure_at_index_k_records_exactly_k_completed(self, names, data):
        k = data.draw(st.integers(min_value=0, max_value=len(names) - 1))
        code = data.draw(exit_codes())
        results = [_ok()] * k + [
            AgentResult(success=False, exit_code=code, duration_seconds=0.1)
        ]

        result, state, runner = _run_pipeline(names, results)

        assert result.status == ResultStatus.FAILED
        assert result.failed_agent == names[k]
        assert result.error == f"Agent {names[k]} failed with exit code {code}"
        assert state.status == RunStatus.FAILED
        assert state.completed_agents == names[:k]
        assert state.current_agent is None
        assert runner.run.call_count == k + 1

    @settings(max_examples=100, deadline=None)
    @given(names=agent_names())
    def test_all_success_records_full_sequence(self, names):
        result, state, runner = _run_pipeline(names, [_ok() for _ in names])

        assert result.status == ResultStatus.COMPLETED
        assert state.status == RunStatus.COMPLETED
        assert state.completed_agents == names
        assert state.current_agent is None
        assert [call.args[1] for call in runner.run.call_args_list] == [
            f"{name} STORY-1" for name in names
        ]
