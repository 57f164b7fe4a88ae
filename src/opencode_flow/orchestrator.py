"""Multi-story orchestration.

Runs the pipeline executor over a list of story IDs, one after another,
in the order given. Each story's outcome is independent: a git error
or a corrupt run state for one story is recorded in its result and the
loop moves on to the next. A run state that cannot be written at all is
not a per-story problem; that StateError ends the whole run.

Every component receives the repository root explicitly, so nothing
here depends on or changes the process working directory.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from opencode_flow.events.emitter import EventEmitter, NullEventEmitter
from opencode_flow.events.models import EventType, PipelineEvent
from opencode_flow.executor import PipelineExecutor, PipelineResult, ResultStatus
from opencode_flow.state.repository import StateCorruptionError
from opencode_flow.workspace.worktree import WorktreeError

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """Aggregate of a multi-story run.

    Attributes:
        results: One result per story, in processing order.
    """

    results: List[PipelineResult] = field(default_factory=list)

    def _count(self, status: ResultStatus) -> int:
        return sum(1 for result in self.results if result.status == status)

    @property
    def completed(self) -> int:
        return self._count(ResultStatus.COMPLETED)

    @property
    def failed(self) -> int:
        return self._count(ResultStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(ResultStatus.SKIPPED)

    @property
    def all_succeeded(self) -> bool:
        """True only if every story completed; skips count against it."""
        return self.failed == 0 and self.skipped == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.all_succeeded else 1


class PipelineOrchestrator:
    """Runs the pipeline for several stories sequentially.

    Attributes:
        executor: Single-story pipeline executor.
        event_emitter: Sink for story_started events and aborted stories.
    """

    def __init__(
        self,
        executor: PipelineExecutor,
        event_emitter: Optional[EventEmitter] = None,
    ):
        self.executor = executor
        self.event_emitter = event_emitter or NullEventEmitter()

    async def run_all(self, story_ids: Sequence[str]) -> RunSummary:
        """Run the pipeline for each story in order.

        Args:
            story_ids: Non-empty list of story IDs.

        Returns:
            RunSummary with one result per story.

        Raises:
            ValueError: If story_ids is empty.
            StateError: If run state cannot be written; remaining stories
                are not attempted.
        """
        if not story_ids:
            raise ValueError("At least one story ID is required")

        summary = RunSummary()
        total = len(story_ids)

        for index, story_id in enumerate(story_ids, start=1):
            await self._emit(
                EventType.STORY_STARTED, story_id, index=index, total=total
            )
            result = await self._run_story(story_id)
            summary.results.append(result)

        logger.info(
            "Run finished",
            extra={
                "stories": total,
                "completed": summary.completed,
                "failed": summary.failed,
                "skipped": summary.skipped,
            },
        )
        return summary

    async def _run_story(self, story_id: str) -> PipelineResult:
        """Run one story, turning corrupt state and git errors into a failed result."""
        try:
            return await self.executor.run(story_id)
        except (StateCorruptionError, WorktreeError) as exc:
            logger.exception(
                "Pipeline aborted for story",
                extra={"story_id": story_id},
            )
            await self._emit(EventType.STORY_FAILED, story_id, error=str(exc))
            return PipelineResult(
                story_id=story_id,
                status=ResultStatus.FAILED,
                error=str(exc),
            )

    async def _emit(self, event_type: EventType, story_id: str, **details) -> None:
        try:
            await self.event_emitter.emit(
                PipelineEvent(event_type=event_type, story_id=story_id, details=details)
            )
        except Exception:
            logger.exception(
                "Failed to emit pipeline event",
                extra={"event_type": event_type.value, "story_id": story_id},
            )
