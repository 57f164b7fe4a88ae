"""Per-story git worktrees.

Each story is worked on in its own worktree at <git_root>/<storyId> on
a dedicated flow/<storyId> branch, so agents for different stories
never touch each other's files.
"""

from opencode_flow.workspace.worktree import (
    BRANCH_PREFIX,
    GitCommandError,
    WorktreeCollisionError,
    WorktreeError,
    WorktreeManager,
    branch_name,
    get_git_root,
    is_bare_repo,
    run_git,
)

__all__ = [
    "BRANCH_PREFIX",
    "GitCommandError",
    "WorktreeCollisionError",
    "WorktreeError",
    "WorktreeManager",
    "branch_name",
    "get_git_root",
    "is_bare_repo",
    "run_git",
]
