"""opencode-flow CLI.

Entry point for the ``ocf`` command: initialize a repository, run the
agent pipeline for one or more stories, inspect runs, and clean up.
"""

import asyncio
from pathlib import Path
from typing import List

import structlog
import typer
from pydantic import ValidationError

from opencode_flow import __version__
from opencode_flow.cli.output import (
    ConsoleEventEmitter,
    console,
    print_error,
    print_info,
    print_runs,
    print_skip,
    print_success,
    print_summary,
    print_warning,
)
from opencode_flow.config import CONFIG_DIR_NAME, ConfigError, find_config_dir, load_config
from opencode_flow.events import CompositeEventEmitter, LoggingEventEmitter
from opencode_flow.executor import PipelineExecutor
from opencode_flow.logging_config import configure_logging
from opencode_flow.orchestrator import PipelineOrchestrator, RunSummary
from opencode_flow.runner import OpencodeRunner
from opencode_flow.settings import FlowSettings, get_settings
from opencode_flow.state import JsonStateRepository, RunStateMachine, StateError
from opencode_flow.workspace import (
    WorktreeError,
    WorktreeManager,
    get_git_root,
    is_bare_repo,
)

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

# (template name, destination relative to the config directory)
INIT_FILES = [
    ("pipeline.yaml", "pipeline.yaml"),
    ("agents/build.md", "agents/build.md"),
    ("agents/test.md", "agents/test.md"),
    ("agents/review.md", "agents/review.md"),
    ("gitignore", ".gitignore"),
]

app = typer.Typer(
    name="ocf",
    help="opencode-flow - run a sequence of OpenCode agents per story in isolated git worktrees",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"ocf {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Load process settings and configure logging for every command."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        print_error(f"Error: Invalid OCF_ environment settings:\n{exc}")
        raise typer.Exit(1)

    configure_logging(settings.log_level, settings.log_format)
    ctx.obj = settings


def _settings(ctx: typer.Context) -> FlowSettings:
    return ctx.obj


def _git_root(settings: FlowSettings) -> Path:
    try:
        return asyncio.run(get_git_root(git_path=settings.git_path))
    except WorktreeError:
        print_error("Error: Not in a git repository.")
        raise typer.Exit(1)


@app.command()
def init(ctx: typer.Context) -> None:
    """Initialize opencode-flow configuration in the current repository."""
    settings = _settings(ctx)
    git_root = _git_root(settings)

    if Path.cwd().resolve() != git_root:
        print_error("Error: Not in the git root directory.")
        print_error(f"Please run this command from: {git_root}")
        raise typer.Exit(1)

    config_dir = git_root / CONFIG_DIR_NAME
    if config_dir.exists():
        print_error(f"{CONFIG_DIR_NAME}/ already exists.")
        print_error("Remove it first if you want to re-initialize.")
        raise typer.Exit(1)

    try:
        contents = [
            (destination, (TEMPLATES_DIR / template).read_text(encoding="utf-8"))
            for template, destination in INIT_FILES
        ]
        (config_dir / "agents").mkdir(parents=True)
        for destination, content in contents:
            (config_dir / destination).write_text(content, encoding="utf-8")
            print_success(f"Created {CONFIG_DIR_NAME}/{destination}")
    except OSError as exc:
        print_error(f"Error: Failed to initialize {CONFIG_DIR_NAME}: {exc}")
        raise typer.Exit(1)

    logger.info("initialized", config_dir=str(config_dir))

    console.print()
    console.print(
        f"[green]opencode-flow initialized![/green] Edit {CONFIG_DIR_NAME}/pipeline.yaml "
        "to configure your pipeline."
    )


@app.command()
def run(
    ctx: typer.Context,
    story_ids: List[str] = typer.Argument(
        ..., help="One or more story IDs to process, in order"
    ),
) -> None:
    """Run the pipeline for one or more stories."""
    settings = _settings(ctx)

    story_ids = [story_id.strip() for story_id in story_ids]
    if not story_ids or not all(story_ids):
        print_error("Error: Story IDs must not be empty.")
        raise typer.Exit(1)

    try:
        loaded = load_config()
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(1)

    git_root = _git_root(settings)

    if not asyncio.run(is_bare_repo(git_root, settings.git_path)):
        print_warning(
            "Warning: Not a bare repository. Worktrees work best with bare repos."
        )
        console.print()

    noun = "story" if len(story_ids) == 1 else "stories"
    print_info(f"Running pipeline for {len(story_ids)} {noun}: {', '.join(story_ids)}")
    console.print()

    emitter = CompositeEventEmitter([ConsoleEventEmitter(), LoggingEventEmitter()])
    executor = PipelineExecutor(
        config=loaded.config,
        config_dir=loaded.config_dir,
        worktrees=WorktreeManager(git_root, git_path=settings.git_path),
        state_machine=RunStateMachine(JsonStateRepository(loaded.config_dir)),
        runner=OpencodeRunner(
            opencode_path=settings.opencode_path,
            timeout_seconds=settings.agent_timeout_seconds,
        ),
        event_emitter=emitter,
    )
    orchestrator = PipelineOrchestrator(executor, event_emitter=emitter)

    try:
        summary = asyncio.run(_run_stories(orchestrator, emitter, story_ids))
    except StateError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(1)

    print_summary(summary.results)
    raise typer.Exit(summary.exit_code)


async def _run_stories(
    orchestrator: PipelineOrchestrator,
    emitter: CompositeEventEmitter,
    story_ids: List[str],
) -> RunSummary:
    try:
        return await orchestrator.run_all(story_ids)
    finally:
        await emitter.close()


@app.command()
def status() -> None:
    """Show all pipeline runs and their status."""
    try:
        config_dir = find_config_dir()
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(1)

    runs = asyncio.run(JsonStateRepository(config_dir).list_runs())

    if not runs:
        console.print("No pipeline runs found.")
        console.print()
        console.print("Run [cyan]ocf run <storyId>[/cyan] to start a pipeline.")
        return

    print_runs(runs)

    console.print()
    console.print(f"{len(runs)} pipeline run{'' if len(runs) == 1 else 's'} found")


@app.command()
def cleanup(
    ctx: typer.Context,
    story_id: str = typer.Argument(..., help="The story ID to clean up"),
    keep_state: bool = typer.Option(
        False,
        "--keep-state",
        help="Don't delete the run state JSON file",
    ),
) -> None:
    """Remove a worktree and optionally delete its run state."""
    settings = _settings(ctx)

    try:
        config_dir = find_config_dir()
    except ConfigError as exc:
        print_error(f"Error: {exc}")
        raise typer.Exit(1)

    git_root = _git_root(settings)
    worktrees = WorktreeManager(git_root, git_path=settings.git_path)
    repository = JsonStateRepository(config_dir)

    has_worktree = asyncio.run(worktrees.exists(story_id))
    has_state = asyncio.run(repository.exists(story_id))

    if not has_worktree and not has_state:
        print_error(f"No worktree or run state found for {story_id}.")
        raise typer.Exit(1)

    if has_worktree:
        print_info(f"Removing worktree {story_id}...")
        try:
            asyncio.run(worktrees.remove(story_id))
        except WorktreeError as exc:
            print_error(f"Failed to remove worktree: {exc}")
            raise typer.Exit(1)
        print_success("Worktree removed")

    if has_state and keep_state:
        print_skip("Run state preserved (--keep-state)")
    elif has_state:
        try:
            asyncio.run(repository.delete(story_id))
        except StateError as exc:
            print_error(f"Failed to delete run state: {exc}")
            raise typer.Exit(1)
        print_success("Run state deleted")

    logger.info("cleanup finished", story_id=story_id, kept_state=keep_state)

    console.print()
    console.print(f"[green]Cleanup complete for {story_id}[/green]")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
