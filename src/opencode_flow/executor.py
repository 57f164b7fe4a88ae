"""Pipeline executor for a single story.

Drives one story through the configured agents:

    run state exists?      → skipped ("run already exists")
    worktree exists?       → skipped ("worktree already exists")
    create worktree        → failed, nothing persisted, on error
    start run state        (in_progress); on error the new worktree is
                           removed and the error propagates
    for each agent:
        checkpoint current agent
        render prompt, run opencode in the worktree
        exit != 0          → failed, remaining agents not run
        record completion
    mark completed

The run state check comes first on purpose: a story whose worktree was
deleted by hand still reports "run already exists" until its state is
cleaned up.

Source:
- src/opencode_flow/state/machine.py (RunStateMachine)
- src/opencode_flow/workspace/worktree.py (WorktreeManager)
- src/opencode_flow/runner/opencode.py (OpencodeRunner)
- src/opencode_flow/template.py (substitute_variables)
- src/opencode_flow/events/emitter.py (EventEmitter)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from opencode_flow.config.models import AgentConfig, PipelineConfig
from opencode_flow.events.emitter import EventEmitter, NullEventEmitter
from opencode_flow.events.models import EventType, PipelineEvent
from opencode_flow.runner.opencode import AgentResult, OpencodeRunner
from opencode_flow.state.machine import RunStateMachine
from opencode_flow.state.models import RunState
from opencode_flow.state.repository import StateError
from opencode_flow.template import TemplateVariables, substitute_variables
from opencode_flow.workspace.worktree import WorktreeError, WorktreeManager

logger = logging.getLogger(__name__)

SKIP_REASON_RUN_EXISTS = "run already exists"
SKIP_REASON_WORKTREE_EXISTS = "worktree already exists"


class ResultStatus(str, Enum):
    """Final outcome of one story's pipeline."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PipelineResult:
    """Result of running the pipeline for one story.

    Attributes:
        story_id: The story that was processed.
        status: Final outcome.
        failed_agent: Agent that failed, when an agent failed.
        skip_reason: Why the story was skipped, when skipped.
        error: Failure description, when failed.
    """

    story_id: str
    status: ResultStatus
    failed_agent: Optional[str] = None
    skip_reason: Optional[str] = None
    error: Optional[str] = None


class PromptError(Exception):
    """Raised when an agent's prompt file cannot be read.

    Attributes:
        agent_name: The agent whose prompt is unreadable.
        prompt_path: Resolved prompt file path.
    """

    def __init__(self, agent_name: str, prompt_path: Path, reason: str):
        self.agent_name = agent_name
        self.prompt_path = prompt_path
        super().__init__(
            f"Failed to read prompt file for agent {agent_name}: {reason}"
        )


class PipelineExecutor:
    """Runs the configured agents for one story at a time.

    Accepts all collaborators via constructor injection. Worktree and
    agent failures come back as PipelineResult values; errors reading
    or writing run state propagate to the caller.

    Attributes:
        config: Validated pipeline configuration.
        config_dir: Directory prompt paths are resolved against.
        worktrees: Worktree manager bound to the repository root.
        state_machine: Writer of run state.
        runner: OpenCode subprocess runner.
        event_emitter: Sink for progress events.
    """

    def __init__(
        self,
        config: PipelineConfig,
        config_dir: Path,
        worktrees: WorktreeManager,
        state_machine: RunStateMachine,
        runner: OpencodeRunner,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.config = config
        self.config_dir = Path(config_dir)
        self.worktrees = worktrees
        self.state_machine = state_machine
        self.runner = runner
        self.event_emitter = event_emitter or NullEventEmitter()

    async def run(self, story_id: str) -> PipelineResult:
        """Run the full pipeline for a single story.

        Args:
            story_id: The story to process.

        Returns:
            PipelineResult indicating completion, failure, or skip.

        Raises:
            StateError: If run state cannot be written. When the very first
                write fails, the worktree created for the story is removed
                first so the story can be retried.
        """
        skip_reason = await self._check_idempotency(story_id)
        if skip_reason is not None:
            logger.info(
                "Skipping story",
                extra={"story_id": story_id, "skip_reason": skip_reason},
            )
            await self._emit(
                EventType.STORY_SKIPPED, story_id, skip_reason=skip_reason
            )
            return PipelineResult(
                story_id=story_id,
                status=ResultStatus.SKIPPED,
                skip_reason=skip_reason,
            )

        try:
            worktree_path = await self.worktrees.create(story_id)
        except WorktreeError as exc:
            error = f"Failed to create worktree: {exc}"
            logger.error(error, extra={"story_id": story_id})
            await self._emit(EventType.STORY_FAILED, story_id, error=error)
            return PipelineResult(
                story_id=story_id,
                status=ResultStatus.FAILED,
                error=error,
            )

        try:
            state = await self.state_machine.start(
                story_id,
                self.worktrees.branch_name(story_id),
                str(worktree_path),
            )
        except StateError:
            await self._discard_worktree(story_id)
            raise

        for agent in self.config.agents:
            state = await self.state_machine.begin_agent(state, agent.name)

            try:
                result = await self._run_agent(agent, state)
            except PromptError as exc:
                return await self._fail_agent(state, agent, str(exc))

            if not result.success:
                return await self._fail_agent(
                    state,
                    agent,
                    f"Agent {agent.name} failed with exit code {result.exit_code}",
                    exit_code=result.exit_code,
                )

            state = await self.state_machine.complete_agent(state, agent.name)
            await self._emit(
                EventType.AGENT_COMPLETED,
                story_id,
                agent=agent.name,
                exit_code=result.exit_code,
                duration_seconds=round(result.duration_seconds, 3),
            )

        state = await self.state_machine.complete(state)
        await self._emit(
            EventType.STORY_COMPLETED,
            story_id,
            completed_agents=list(state.completed_agents),
        )

        return PipelineResult(story_id=story_id, status=ResultStatus.COMPLETED)

    async def _check_idempotency(self, story_id: str) -> Optional[str]:
        """Return a skip reason if the story was already started."""
        if await self.state_machine.exists(story_id):
            return SKIP_REASON_RUN_EXISTS
        if await self.worktrees.exists(story_id):
            return SKIP_REASON_WORKTREE_EXISTS
        return None

    async def _discard_worktree(self, story_id: str) -> None:
        """Remove a worktree whose run state could not be recorded."""
        try:
            await self.worktrees.remove(story_id)
        except WorktreeError:
            logger.exception(
                "Failed to remove worktree after run state error",
                extra={"story_id": story_id},
            )

    async def _run_agent(self, agent: AgentConfig, state: RunState) -> AgentResult:
        """Render an agent's prompt and execute it in the worktree.

        Raises:
            PromptError: If the prompt file cannot be read.
        """
        model = agent.effective_model(self.config.settings)
        agent_type = agent.effective_agent(self.config.settings)

        prompt = await self._render_prompt(agent, state)

        await self._emit(
            EventType.AGENT_STARTED,
            state.story_id,
            agent=agent.name,
            model=model,
            agent_type=agent_type,
        )

        return await self.runner.run(
            Path(state.worktree_path),
            prompt,
            model=model,
            agent=agent_type,
        )

    async def _render_prompt(self, agent: AgentConfig, state: RunState) -> str:
        """Read the agent's prompt file and substitute template variables.

        Unknown placeholders are left in place and reported as a
        TEMPLATE_WARNING event.
        """
        prompt_path = agent.resolve_prompt_path(self.config_dir)

        try:
            template = prompt_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise PromptError(agent.name, prompt_path, str(exc)) from exc

        substitution = substitute_variables(
            template,
            TemplateVariables(
                story_id=state.story_id,
                branch=state.branch,
                worktree_path=state.worktree_path,
                agent_name=agent.name,
            ),
        )

        if substitution.missing_variables:
            await self._emit(
                EventType.TEMPLATE_WARNING,
                state.story_id,
                agent=agent.name,
                prompt_path=agent.prompt_path,
                missing_variables=substitution.missing_variables,
            )

        return substitution.result

    async def _fail_agent(
        self,
        state: RunState,
        agent: AgentConfig,
        error: str,
        exit_code: Optional[int] = None,
    ) -> PipelineResult:
        """Persist the failure and build the failed result."""
        await self.state_machine.fail(state, error)

        await self._emit(
            EventType.AGENT_FAILED,
            state.story_id,
            agent=agent.name,
            exit_code=exit_code,
            error=error,
        )
        await self._emit(
            EventType.STORY_FAILED,
            state.story_id,
            failed_agent=agent.name,
            error=error,
        )

        return PipelineResult(
            story_id=state.story_id,
            status=ResultStatus.FAILED,
            failed_agent=agent.name,
            error=error,
        )

    async def _emit(self, event_type: EventType, story_id: str, **details) -> None:
        """Emit an event, swallowing exceptions to avoid disrupting the pipeline."""
        try:
            await self.event_emitter.emit(
                PipelineEvent(event_type=event_type, story_id=story_id, details=details)
            )
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={"event_type": event_type.value, "story_id": story_id},
            )
