"""Pipeline event models.

This module defines the events the executor and orchestrator publish
while a run progresses:
- EventType: Enum of all event types
- PipelineEvent: Structured event with story ID, timestamp, and details

The executor never prints; the CLI turns these events into terminal
output and the logging emitter turns them into log records.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events emitted during a run.

    Details Field Conventions:
        STORY_STARTED: index, total (1-based position in the batch)
        STORY_SKIPPED: skip_reason
        STORY_COMPLETED: completed_agents
        STORY_FAILED: error, failed_agent (when an agent failed)
        AGENT_STARTED: agent, model, agent_type
        AGENT_COMPLETED: agent, exit_code, duration_seconds
        AGENT_FAILED: agent, exit_code, error
        TEMPLATE_WARNING: agent, prompt_path, missing_variables
    """

    STORY_STARTED = "story_started"
    STORY_SKIPPED = "story_skipped"
    STORY_COMPLETED = "story_completed"
    STORY_FAILED = "story_failed"
    AGENT_STARTED = "agent_started"
    AGENT_COMPLETED = "agent_completed"
    AGENT_FAILED = "agent_failed"
    TEMPLATE_WARNING = "template_warning"


class PipelineEvent(BaseModel):
    """Structured event emitted by the pipeline.

    Attributes:
        event_type: The category of event.
        story_id: The story the event belongs to.
        timestamp: When the event occurred (UTC timezone).
        details: Additional context specific to the event type.

    Example:
        >>> event = PipelineEvent(
        ...     event_type=EventType.AGENT_STARTED,
        ...     story_id="DEV-18",
        ...     details={"agent": "build"},
        ... )
    """

    event_type: EventType = Field(
        ...,
        description="The category of event being emitted",
    )

    story_id: str = Field(
        ...,
        min_length=1,
        description="Story identifier the event belongs to",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC timezone)",
    )

    details: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context specific to the event type",
    )

    def to_log_dict(self) -> Dict[str, Any]:
        """Flat dictionary of the event, suitable for structured logging.

        Example:
            >>> PipelineEvent(
            ...     event_type=EventType.STORY_SKIPPED,
            ...     story_id="DEV-18",
            ...     details={"skip_reason": "run already exists"},
            ... ).to_log_dict()["event_type"]
            'story_skipped'
        """
        return {
            "event_type": self.event_type.value,
            "story_id": self.story_id,
            "timestamp": self.timestamp.isoformat(),
            **self.details,
        }
