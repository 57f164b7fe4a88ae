"""JSON file repository for run state persistence.

Each story's run state lives in its own file at
<config_dir>/runs/<storyId>.json. Writes go through a temporary file
and an atomic rename, so a crash mid-write leaves either the previous
record or the new one, never a truncated file.

Listing tolerates damaged records: one corrupt file is logged and left
out instead of hiding every other run.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

from pydantic import ValidationError

from opencode_flow.state.models import RunState


logger = logging.getLogger(__name__)

RUNS_DIR_NAME = "runs"
STATE_FILE_SUFFIX = ".json"


class StateError(Exception):
    """Raised when a run state cannot be read or written.

    Attributes:
        message: Human-readable error description.
        original_error: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
    ):
        self.message = message
        self.original_error = original_error
        super().__init__(message)


class StateCorruptionError(StateError):
    """Raised when a stored run state exists but cannot be parsed.

    Attributes:
        story_id: The story whose record is damaged.
        path: Location of the damaged record.
    """

    def __init__(
        self,
        story_id: str,
        path: Path,
        original_error: Optional[Exception] = None,
    ):
        self.story_id = story_id
        self.path = path
        super().__init__(
            f"Run state for {story_id} is corrupt ({path}): {original_error}",
            original_error,
        )


@runtime_checkable
class StateRepository(Protocol):
    """Protocol defining the interface for run state persistence.

    Implementations store one record per story ID. There is no locking:
    a single writer per story is assumed.
    """

    async def save(self, state: RunState) -> None:
        """Write the record for state.story_id, replacing any previous one."""
        ...

    async def load(self, story_id: str) -> Optional[RunState]:
        """Return the stored record, or None if there is none.

        Raises:
            StateCorruptionError: If a record exists but cannot be parsed.
        """
        ...

    async def list_runs(self) -> List[RunState]:
        """Return every readable record, most recently updated first."""
        ...

    async def exists(self, story_id: str) -> bool:
        """Check whether a record exists, without reading it."""
        ...

    async def delete(self, story_id: str) -> bool:
        """Remove the record; return False if there was nothing to remove."""
        ...


class JsonStateRepository:
    """JSON file implementation of the StateRepository protocol.

    Attributes:
        runs_dir: Directory holding one <storyId>.json file per run.

    Example:
        >>> repo = JsonStateRepository(Path("/repo/.opencode-flow"))
        >>> await repo.save(create_run_state("DEV-18", "flow/DEV-18", "/repo/DEV-18"))
        >>> (await repo.load("DEV-18")).status
        <RunStatus.PENDING: 'pending'>
    """

    def __init__(self, config_dir: Path):
        """Initialize the repository.

        Args:
            config_dir: The .opencode-flow directory; records are kept in
                its runs/ subdirectory, which is created on first save.
        """
        self.runs_dir = Path(config_dir) / RUNS_DIR_NAME

    def state_path(self, story_id: str) -> Path:
        """Path of the record for a story."""
        return self.runs_dir / f"{story_id}{STATE_FILE_SUFFIX}"

    async def save(self, state: RunState) -> None:
        """Write a run state to disk.

        Args:
            state: The run state to save.

        Raises:
            StateError: If the runs directory or the file cannot be written.
        """
        target = self.state_path(state.story_id)
        temp_path = target.with_name(f".{target.name}.tmp")

        try:
            self.runs_dir.mkdir(parents=True, exist_ok=True)
            temp_path.write_text(state.to_json(), encoding="utf-8")
            os.replace(temp_path, target)
        except OSError as exc:
            raise StateError(
                f"Failed to save run state for {state.story_id}: {exc}", exc
            ) from exc

        logger.debug(
            "Saved run state",
            extra={
                "story_id": state.story_id,
                "status": state.status.value,
                "current_agent": state.current_agent,
            },
        )

    async def load(self, story_id: str) -> Optional[RunState]:
        """Load the run state for a story.

        Args:
            story_id: The story ID to load.

        Returns:
            The run state if it exists, None otherwise.

        Raises:
            StateCorruptionError: If the file cannot be parsed.
            StateError: If the file exists but cannot be read.
        """
        return self._read(self.state_path(story_id), story_id)

    async def list_runs(self) -> List[RunState]:
        """List all readable run states.

        Returns:
            Run states sorted by updated_at, most recent first.
        """
        if not self.runs_dir.is_dir():
            return []

        states: List[RunState] = []
        for path in sorted(self.runs_dir.glob(f"*{STATE_FILE_SUFFIX}")):
            story_id = path.name[: -len(STATE_FILE_SUFFIX)]
            try:
                state = self._read(path, story_id)
            except StateError as exc:
                logger.warning(
                    "Skipping unreadable run state",
                    extra={"path": str(path), "error": str(exc)},
                )
                continue
            if state is not None:
                states.append(state)

        states.sort(key=lambda state: state.updated_at, reverse=True)
        return states

    async def exists(self, story_id: str) -> bool:
        """Check if a run state exists for a story."""
        return self.state_path(story_id).is_file()

    async def delete(self, story_id: str) -> bool:
        """Delete a run state file.

        Args:
            story_id: The story ID to delete.

        Returns:
            True if the file was deleted, False if it did not exist.

        Raises:
            StateError: If the file exists but cannot be removed.
        """
        path = self.state_path(story_id)
        if not path.is_file():
            return False

        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StateError(
                f"Failed to delete run state for {story_id}: {exc}", exc
            ) from exc

        logger.info("Deleted run state", extra={"story_id": story_id})
        return True

    def _read(self, path: Path, story_id: str) -> Optional[RunState]:
        """Read and parse one record.

        Args:
            path: Record location.
            story_id: Story the record belongs to, for error messages.

        Returns:
            The parsed run state, or None if the file does not exist.
        """
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise StateCorruptionError(story_id, path, exc) from exc
        except OSError as exc:
            raise StateError(
                f"Failed to load run state for {story_id}: {exc}", exc
            ) from exc

        try:
            return RunState.from_json(content)
        except ValidationError as exc:
            raise StateCorruptionError(story_id, path, exc) from exc
