"""Event emitter implementations.

This module defines the EventEmitter interface the pipeline publishes
through, plus the sinks that do not depend on a terminal:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously
- NullEventEmitter: Discards events

The console sink lives with the rest of the terminal output in
opencode_flow.cli.output.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from opencode_flow.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventEmitter(ABC):
    """Abstract base class for pipeline event emitters.

    Implementations should be fault-tolerant: the pipeline treats
    emission as best-effort and must not fail because a sink did.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Emit a pipeline event.

        Args:
            event: The pipeline event to emit.
        """
        pass

    async def close(self) -> None:
        """Release resources. The default implementation does nothing."""
        pass


# Everything not listed here is logged at INFO.
EVENT_LOG_LEVELS = {
    EventType.STORY_FAILED: logging.ERROR,
    EventType.AGENT_FAILED: logging.ERROR,
    EventType.STORY_SKIPPED: logging.WARNING,
    EventType.TEMPLATE_WARNING: logging.WARNING,
}


class LoggingEventEmitter(EventEmitter):
    """Writes each event as one log record.

    The event's details become attributes of the record, so the structlog
    formatter renders them as key/value pairs (or JSON fields).
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger

    async def emit(self, event: PipelineEvent) -> None:
        self._logger.log(
            EVENT_LOG_LEVELS.get(event.event_type, logging.INFO),
            "%s %s",
            event.story_id,
            event.event_type.value,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Fans each event out to several sinks, in order.

    A sink that raises is logged and skipped; the others still receive
    the event. The CLI pairs the console sink with the logging sink.
    """

    def __init__(self, emitters: Sequence[EventEmitter]):
        self._emitters = list(emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception:
                logger.exception(
                    "Event sink failed",
                    extra={
                        "sink": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "story_id": event.story_id,
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception:
                logger.exception(
                    "Event sink failed to close",
                    extra={"sink": type(emitter).__name__},
                )


class NullEventEmitter(EventEmitter):
    """Event emitter that discards all events."""

    async def emit(self, event: PipelineEvent) -> None:
        pass
