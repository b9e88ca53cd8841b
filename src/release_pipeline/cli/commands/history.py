"""Implementation of the 'history' command."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from rich.table import Table

from release_pipeline.config import load_config
from release_pipeline.exceptions import ReleasePipelineError
from release_pipeline.pipeline.history import RunHistory

if TYPE_CHECKING:
    from rich.console import Console


def run_history(path: str | None, limit: int, console: Console, err_console: Console) -> int:
    project_path = Path(path) if path else Path.cwd()
    try:
        config = load_config(project_path)
    except ReleasePipelineError as e:
        err_console.print(f"[red]Error:[/] {e}")
        return 1

    entries = RunHistory(project_path.resolve() / config.state_dir).entries()
    if not entries:
        console.print("[yellow]No runs recorded yet.[/]")
        return 0

    table = Table(title="Release runs")
    table.add_column("Run")
    table.add_column("Started")
    table.add_column("Status")
    table.add_column("Version")
    table.add_column("Halted at")
    table.add_column("Targets")
    for entry in entries[-limit:]:
        results = entry.get("results", [])
        ok = sum(1 for r in results if r.get("status") == "success")
        table.add_row(
            str(entry.get("run_id", "")),
            str(entry.get("started_at", ""))[:19],
            str(entry.get("status", "")),
            str(entry.get("version") or "-"),
            str(entry.get("halted_stage") or "-"),
            f"{ok}/{len(results)}" if results else "-",
        )
    console.print(table)
    return 0
