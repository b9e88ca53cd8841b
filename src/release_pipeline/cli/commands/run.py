"""Implementation of the 'run' command.

The run command executes the whole pipeline: verify, classify, tag,
build and publish.
"""

from __future__ import annotations

import json
import signal
from pathlib import Path
from typing import TYPE_CHECKING

from rich.panel import Panel

from release_pipeline.cli.commands._common import load_pipeline, make_trigger
from release_pipeline.exceptions import PipelineBusyError, ReleasePipelineError
from release_pipeline.pipeline.models import RunStatus

if TYPE_CHECKING:
    from types import FrameType

    from rich.console import Console

EXIT_FAILED = 1
EXIT_BUSY = 2


def run_release(
    path: str | None,
    branch: str | None,
    head: str | None,
    bump: str | None,
    dry_run: bool,
    report_file: str | None,
    console: Console,
    err_console: Console,
) -> int:
    """Run the release pipeline.

    Args:
        path: Optional path to project directory
        branch: Branch the trigger came from (defaults to the checked-out branch)
        head: Trigger commit (defaults to HEAD)
        bump: Manual bump override (major, minor, patch)
        dry_run: Only show what would be released
        report_file: Write the JSON run report here
        console: Console for standard output
        err_console: Console for error output

    Returns:
        Process exit code
    """
    project_path = Path(path) if path else Path.cwd()

    try:
        pipeline = load_pipeline(project_path, console)
        trigger = make_trigger(pipeline, branch, head, bump)
    except ReleasePipelineError as e:
        err_console.print(f"[red]Error:[/] {e}")
        return EXIT_FAILED

    if dry_run:
        try:
            plan = pipeline.plan(trigger)
        except ReleasePipelineError as e:
            err_console.print(f"[red]Error:[/] {e}")
            return EXIT_FAILED
        if plan.next_version is None:
            console.print("[yellow]No releasable changes found. Nothing to do.[/]")
            return 0
        targets = "\n".join(
            f"  • {t.name} ({t.kind.value}{', mandatory' if t.mandatory else ''})"
            for t in pipeline.targets
        ) or "  • (no targets configured)"
        console.print(
            Panel(
                f"[bold]Would release[/] [cyan]{plan.current_version}[/] -> "
                f"[green]{plan.next_version}[/] ({plan.decision.kind})\n\n"
                f"Tag: [cyan]{plan.next_version.tag_name(pipeline.config.effective_tag_prefix)}[/]\n"
                f"Publish targets:\n{targets}",
                title="[yellow]Dry Run Preview[/]",
                border_style="yellow",
            )
        )
        return 0

    def _on_sigterm(signum: int, frame: FrameType | None) -> None:
        pipeline.abort()

    previous = signal.signal(signal.SIGTERM, _on_sigterm)
    try:
        run = pipeline.run(trigger)
    except PipelineBusyError as e:
        err_console.print(f"[red]Error:[/] {e}")
        return EXIT_BUSY
    except KeyboardInterrupt:
        err_console.print("[red]Interrupted.[/]")
        return EXIT_FAILED
    finally:
        signal.signal(signal.SIGTERM, previous)

    if report_file:
        Path(report_file).write_text(json.dumps(run.report().to_dict(), indent=2) + "\n")

    return EXIT_FAILED if run.status == RunStatus.FAILED else 0
