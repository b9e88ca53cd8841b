"""Implementation of the 'next' command: show the decision, change nothing."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from release_pipeline.cli.commands._common import load_pipeline, make_trigger
from release_pipeline.config import get_project_name
from release_pipeline.exceptions import ReleasePipelineError

if TYPE_CHECKING:
    from rich.console import Console


def run_next(
    path: str | None,
    bump: str | None,
    quiet: bool,
    console: Console,
    err_console: Console,
) -> int:
    project_path = Path(path) if path else Path.cwd()
    try:
        pipeline = load_pipeline(project_path, None)
        plan = pipeline.plan(make_trigger(pipeline, None, None, bump))
        tag_commit = pipeline.repo.tag_commit(plan.latest_tag) if plan.latest_tag else None
        project_name = get_project_name(project_path)
    except ReleasePipelineError as e:
        err_console.print(f"[red]Error:[/] {e}")
        return 1

    if quiet:
        console.print(str(plan.next_version or plan.current_version))
        return 0

    console.print(f"Project: [bold]{project_name}[/]")
    console.print(f"Current version: [cyan]{plan.current_version}[/]")
    if plan.latest_tag:
        console.print(f"Last release tag: [cyan]{plan.latest_tag}[/] at {(tag_commit or '')[:7]}")
    else:
        console.print("Last release tag: [cyan](none)[/]")
    console.print(f"Commits since: {len(plan.commits)}")
    source = "manual override" if plan.decision.manual else "commit history"
    console.print(f"Bump: [bold]{plan.decision.kind}[/] (from {source})")
    if plan.decision.rationale:
        console.print(f"[dim]Because of: {', '.join(plan.decision.rationale)}[/]")
    if plan.next_version is None:
        console.print("[yellow]Nothing to release.[/]")
    else:
        console.print(f"Next version: [green]{plan.next_version}[/]")
    return 0
