"""Rich console output utilities for the ocf CLI."""

from datetime import datetime
from typing import List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.rule import Rule
from rich.table import Table

from opencode_flow.events.emitter import EventEmitter
from opencode_flow.events.models import EventType, PipelineEvent
from opencode_flow.executor import PipelineResult, ResultStatus
from opencode_flow.state.models import RunState, RunStatus


console = Console()
error_console = Console(stderr=True)

STATUS_STYLES = {
    RunStatus.COMPLETED: "green",
    RunStatus.FAILED: "red",
    RunStatus.IN_PROGRESS: "cyan",
    RunStatus.PENDING: "yellow",
}

DATE_FORMAT = "%m/%d/%Y, %H:%M:%S"


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[cyan]◐[/cyan] {message}")


def print_skip(message: str) -> None:
    console.print(f"[yellow]⊘[/yellow] {message}")


def print_separator() -> None:
    console.print(Rule(style="grey50"))


def print_header(title: str) -> None:
    print_separator()
    console.print(f"[bold]{title}[/bold]")
    print_separator()


def format_date(value: datetime) -> str:
    """Format a timestamp in local time for display."""
    return value.astimezone().strftime(DATE_FORMAT)


def format_status(status: RunStatus) -> str:
    style = STATUS_STYLES.get(status)
    return f"[{style}]{status.value}[/{style}]" if style else status.value


def print_runs(runs: Sequence[RunState]) -> None:
    """Print run states as a table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Story ID")
    table.add_column("Branch")
    table.add_column("Status")
    table.add_column("Current Agent")
    table.add_column("Started")

    for run in runs:
        table.add_row(
            escape(run.story_id),
            escape(run.branch),
            format_status(run.status),
            escape(run.current_agent or "-"),
            format_date(run.started_at),
        )

    console.print(table)


def print_summary(results: List[PipelineResult]) -> None:
    """Print one line per story and the totals."""
    print_header("Summary")

    completed = failed = skipped = 0

    for result in results:
        story_id = escape(result.story_id)
        if result.status == ResultStatus.COMPLETED:
            completed += 1
            print_success(f"{story_id}: completed")
        elif result.status == ResultStatus.FAILED:
            failed += 1
            agent = f" (agent: {escape(result.failed_agent)})" if result.failed_agent else ""
            console.print(f"[red]✗[/red] {story_id}: failed{agent}")
        else:
            skipped += 1
            reason = f" ({result.skip_reason})" if result.skip_reason else ""
            print_skip(f"{story_id}: skipped{reason}")

    console.print()
    console.print(f"{completed}/{len(results)} pipelines completed successfully")

    parts = []
    if failed:
        parts.append(f"{failed} failed")
    if skipped:
        parts.append(f"{skipped} skipped")
    if parts:
        console.print(", ".join(parts))


class ConsoleEventEmitter(EventEmitter):
    """Event emitter that narrates a run on the terminal.

    Agent output itself is inherited by the subprocess and appears
    between the lines printed here.
    """

    async def emit(self, event: PipelineEvent) -> None:
        details = event.details
        story_id = escape(event.story_id)

        if event.event_type == EventType.STORY_STARTED:
            print_header(f"[{details['index']}/{details['total']}] {story_id}")
            console.print()
        elif event.event_type == EventType.STORY_SKIPPED:
            print_skip(f"Skipping {story_id}: {details.get('skip_reason')}")
            console.print()
        elif event.event_type == EventType.AGENT_STARTED:
            flags = [
                f"{name}: {escape(details[key])}"
                for name, key in (("model", "model"), ("agent", "agent_type"))
                if details.get(key)
            ]
            suffix = f" ({', '.join(flags)})" if flags else ""
            print_info(f"Running agent [bold]{escape(details['agent'])}[/bold]{suffix}")
        elif event.event_type == EventType.AGENT_COMPLETED:
            print_success(f"Agent {escape(details['agent'])} completed")
        elif event.event_type == EventType.TEMPLATE_WARNING:
            print_warning(
                f"Missing template variables in {escape(details['prompt_path'])}: "
                f"{', '.join(details['missing_variables'])}"
            )
        elif event.event_type == EventType.STORY_COMPLETED:
            console.print()
            print_success(f"Pipeline completed for {story_id}")
            console.print()
        elif event.event_type == EventType.STORY_FAILED:
            error = details.get("error")
            suffix = f": {escape(error)}" if error else ""
            console.print()
            console.print(f"[red]✗[/red] Pipeline failed for {story_id}{suffix}")
            console.print()
