"""Git worktree management for per-story workspaces.

Each story gets its own worktree at <git_root>/<storyId>, checked out on
a new branch flow/<storyId>. Both names are derived from the story ID
alone, so whether a workspace exists can always be re-checked from the
ID without any side table.

Git is run as an async subprocess with an explicit working directory;
the process-wide current directory is never changed.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "flow/"
PORCELAIN_WORKTREE_PREFIX = "worktree "
NOT_A_WORKTREE_MARKER = "is not a working tree"


class WorktreeError(Exception):
    """Raised when a worktree operation fails."""

    pass


class WorktreeCollisionError(WorktreeError):
    """Raised when creating a worktree that already exists.

    Attributes:
        story_id: The story whose worktree already exists.
        path: Location of the existing worktree.
    """

    def __init__(self, story_id: str, path: Path):
        self.story_id = story_id
        self.path = path
        super().__init__(f"Worktree already exists: {path}")


class GitCommandError(WorktreeError):
    """Raised when a git command exits with a non-zero code.

    Attributes:
        git_args: Arguments passed to git.
        returncode: Git's exit code.
        stderr: Git's standard error, stripped.
    """

    def __init__(self, args: Sequence[str], returncode: int, stderr: str):
        self.git_args = list(args)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(stderr or f"git command failed with code {returncode}")


async def run_git(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    git_path: str = "git",
) -> str:
    """Run a git command and return its stripped standard output.

    Args:
        args: Arguments after the git executable.
        cwd: Directory to run git in.
        git_path: Git executable.

    Returns:
        Standard output with surrounding whitespace removed.

    Raises:
        GitCommandError: If git exits with a non-zero code.
        WorktreeError: If git cannot be started.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            git_path,
            *args,
            cwd=str(cwd) if cwd is not None else None,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as exc:
        raise WorktreeError(f"Failed to execute git: {exc}") from exc

    if process.returncode != 0:
        raise GitCommandError(
            args,
            process.returncode,
            stderr.decode("utf-8", errors="replace").strip(),
        )

    return stdout.decode("utf-8", errors="replace").strip()


async def is_bare_repo(directory: Optional[Path] = None, git_path: str = "git") -> bool:
    """Check whether a directory is a bare git repository."""
    try:
        output = await run_git(
            ["rev-parse", "--is-bare-repository"], directory, git_path
        )
    except WorktreeError:
        return False
    return output == "true"


async def get_git_root(start_dir: Optional[Path] = None, git_path: str = "git") -> Path:
    """Find the root of the repository containing start_dir.

    For a bare repository there is no work tree, so the git directory
    itself is the root.

    Args:
        start_dir: Directory inside the repository; defaults to cwd.
        git_path: Git executable.

    Returns:
        Absolute path of the repository root.

    Raises:
        WorktreeError: If start_dir is not inside a git repository.
    """
    start = Path(start_dir or Path.cwd()).resolve()

    try:
        toplevel = await run_git(["rev-parse", "--show-toplevel"], start, git_path)
    except GitCommandError:
        toplevel = ""

    # Older git prints nothing for bare repositories instead of failing
    if toplevel:
        return Path(toplevel)

    git_dir = await run_git(["rev-parse", "--git-dir"], start, git_path)
    return (start / git_dir).resolve()


def branch_name(story_id: str) -> str:
    """Branch name for a story, e.g. flow/DEV-18."""
    return f"{BRANCH_PREFIX}{story_id}"


class WorktreeManager:
    """Creates, detects, and removes story worktrees in one repository.

    Attributes:
        git_root: Repository root; worktrees are created directly under it.
        git_path: Git executable.
    """

    def __init__(self, git_root: Path, git_path: str = "git"):
        self.git_root = Path(git_root).resolve()
        self.git_path = git_path

    def branch_name(self, story_id: str) -> str:
        """Branch name for a story."""
        return branch_name(story_id)

    def worktree_path(self, story_id: str) -> Path:
        """Absolute worktree path for a story."""
        return self.git_root / story_id

    async def exists(self, story_id: str) -> bool:
        """Check whether a story's worktree exists.

        The directory must exist and git must list it as a worktree; a
        leftover directory alone does not count.
        """
        path = self.worktree_path(story_id)
        if not path.is_dir():
            return False

        try:
            output = await self._git("worktree", "list", "--porcelain")
        except WorktreeError:
            logger.warning(
                "Could not list worktrees",
                extra={"git_root": str(self.git_root)},
            )
            return False

        return path.resolve() in self._registered_paths(output)

    async def create(self, story_id: str) -> Path:
        """Create a worktree for a story on a new branch.

        Args:
            story_id: The story ID.

        Returns:
            Absolute path of the new worktree.

        Raises:
            WorktreeCollisionError: If the worktree already exists.
            GitCommandError: If git refuses (e.g., the branch exists).
        """
        path = self.worktree_path(story_id)
        branch = self.branch_name(story_id)

        if await self.exists(story_id):
            raise WorktreeCollisionError(story_id, path)

        await self._git("worktree", "add", "-b", branch, str(path))

        logger.info(
            "Created worktree",
            extra={"story_id": story_id, "branch": branch, "path": str(path)},
        )
        return path

    async def remove(self, story_id: str, delete_branch: bool = True) -> None:
        """Remove a story's worktree, discarding uncommitted changes.

        A worktree that is already gone is not an error. Deleting the
        branch is best-effort.

        Args:
            story_id: The story ID.
            delete_branch: Also delete the flow/<storyId> branch.

        Raises:
            WorktreeError: If git fails for any other reason.
        """
        path = self.worktree_path(story_id)
        branch = self.branch_name(story_id)

        try:
            await self._git("worktree", "remove", str(path), "--force")
            logger.info(
                "Removed worktree",
                extra={"story_id": story_id, "path": str(path)},
            )
        except GitCommandError as exc:
            if NOT_A_WORKTREE_MARKER not in exc.stderr:
                raise
            logger.info(
                "Worktree already removed",
                extra={"story_id": story_id, "path": str(path)},
            )

        if not delete_branch:
            return

        try:
            await self._git("branch", "-D", branch)
        except WorktreeError as exc:
            logger.debug(
                "Branch not deleted",
                extra={"story_id": story_id, "branch": branch, "error": str(exc)},
            )

    async def _git(self, *args: str) -> str:
        return await run_git(args, self.git_root, self.git_path)

    @staticmethod
    def _registered_paths(porcelain_output: str) -> set:
        """Worktree paths from `git worktree list --porcelain` output."""
        paths = set()
        for line in porcelain_output.splitlines():
            if line.startswith(PORCELAIN_WORKTREE_PREFIX):
                listed = Path(line[len(PORCELAIN_WORKTREE_PREFIX):])
                paths.add(listed.resolve())
        return paths
