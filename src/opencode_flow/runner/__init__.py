"""OpenCode subprocess runner.

This module manages agent execution:
- `opencode run` invocation inside the story's worktree
- Optional --model/--agent flags, prompt as the final argument
- Inherited stdout/stderr so agent output streams live
- Exit code handling for success/failure determination
"""

from opencode_flow.runner.opencode import (
    AgentResult,
    OpencodeRunner,
    SPAWN_FAILURE_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
)

__all__ = [
    "AgentResult",
    "OpencodeRunner",
    "SPAWN_FAILURE_EXIT_CODE",
    "TIMEOUT_EXIT_CODE",
]
