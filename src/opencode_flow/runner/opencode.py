"""OpenCode subprocess management.

Executes `opencode run` as an async subprocess inside a story's
worktree. The agent's stdout and stderr are inherited so the operator
sees its output live; only the exit code is reported back.

Command line:
    opencode run [--model <provider/model>] [--agent <name>] <prompt>

A process that cannot be started is reported like any other failure,
with exit code 1. An optional timeout kills the process and reports
exit code -1.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

OPENCODE_RUN_VERB = "run"
SPAWN_FAILURE_EXIT_CODE = 1
TIMEOUT_EXIT_CODE = -1


@dataclass
class AgentResult:
    """Result of one agent execution.

    Attributes:
        success: True when the process exited with code 0.
        exit_code: Process exit code (1 if it could not be started,
            -1 on timeout, negative signal number if killed).
        duration_seconds: Wall-clock execution time.
    """

    success: bool
    exit_code: int
    duration_seconds: float


class OpencodeRunner:
    """Runs OpenCode agents as subprocesses.

    Attributes:
        opencode_path: The opencode executable.
        timeout_seconds: Optional limit per agent; None waits indefinitely.
    """

    def __init__(
        self,
        opencode_path: str = "opencode",
        timeout_seconds: Optional[int] = None,
    ):
        self.opencode_path = opencode_path
        self.timeout_seconds = timeout_seconds

    def build_args(
        self,
        prompt: str,
        model: Optional[str] = None,
        agent: Optional[str] = None,
    ) -> List[str]:
        """Arguments after the executable: flags first, prompt last."""
        args = [OPENCODE_RUN_VERB]
        if model:
            args.extend(["--model", model])
        if agent:
            args.extend(["--agent", agent])
        args.append(prompt)
        return args

    async def run(
        self,
        worktree_path: Path,
        prompt: str,
        model: Optional[str] = None,
        agent: Optional[str] = None,
    ) -> AgentResult:
        """Execute one agent in a worktree and wait for it to exit.

        Args:
            worktree_path: Directory the agent runs in.
            prompt: Fully substituted prompt text.
            model: Model flag value, omitted when None.
            agent: Agent flag value, omitted when None.

        Returns:
            AgentResult with the exit code and duration.
        """
        start_time = time.monotonic()

        try:
            process = await self._start_process(worktree_path, prompt, model, agent)
        except OSError as exc:
            return self._handle_spawn_error(exc, start_time)

        try:
            await asyncio.wait_for(process.wait(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return await self._handle_timeout(process, start_time)
        except asyncio.CancelledError:
            self._kill(process)
            raise

        exit_code = (
            process.returncode
            if process.returncode is not None
            else SPAWN_FAILURE_EXIT_CODE
        )
        duration = time.monotonic() - start_time
        return self._build_result(exit_code, duration)

    async def _start_process(
        self,
        worktree_path: Path,
        prompt: str,
        model: Optional[str],
        agent: Optional[str],
    ) -> asyncio.subprocess.Process:
        """Launch the opencode subprocess.

        Raises:
            OSError: If the executable cannot be found or started.
        """
        args = self.build_args(prompt, model, agent)

        logger.info(
            "Starting opencode",
            extra={
                "worktree": str(worktree_path),
                "model": model,
                "agent": agent,
                "timeout": self.timeout_seconds,
            },
        )

        return await asyncio.create_subprocess_exec(
            self.opencode_path,
            *args,
            cwd=str(worktree_path),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=None,
            stderr=None,
        )

    def _handle_spawn_error(self, exc: OSError, start_time: float) -> AgentResult:
        duration = time.monotonic() - start_time
        logger.error("Failed to execute opencode: %s", exc)
        return AgentResult(
            success=False,
            exit_code=SPAWN_FAILURE_EXIT_CODE,
            duration_seconds=duration,
        )

    async def _handle_timeout(
        self,
        process: asyncio.subprocess.Process,
        start_time: float,
    ) -> AgentResult:
        """Kill the process and return a timeout failure result."""
        self._kill(process)
        await process.wait()
        duration = time.monotonic() - start_time
        logger.error(
            "opencode timed out after %ds",
            self.timeout_seconds,
        )
        return AgentResult(
            success=False,
            exit_code=TIMEOUT_EXIT_CODE,
            duration_seconds=duration,
        )

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass

    def _build_result(self, exit_code: int, duration: float) -> AgentResult:
        is_success = exit_code == 0

        if is_success:
            logger.info("opencode completed successfully in %.1fs", duration)
        else:
            logger.error(
                "opencode failed with exit code %d in %.1fs",
                exit_code,
                duration,
            )

        return AgentResult(
            success=is_success,
            exit_code=exit_code,
            duration_seconds=duration,
        )
