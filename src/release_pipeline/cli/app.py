"""Typer application and command wiring."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from release_pipeline import __version__
from release_pipeline.logging import configure_logging

app = typer.Typer(
    name="release-pipeline",
    help="Infer the next version from commits, tag, build and publish.",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

PathOption = Annotated[
    str | None, typer.Option("--path", "-p", help="Project directory (default: cwd)")
]
BumpOption = Annotated[
    str | None, typer.Option("--bump", help="Force a bump: major, minor or patch")
]


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"release-pipeline {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
    log_format: Annotated[
        str, typer.Option("--log-format", help="console or json")
    ] = "console",
    version: Annotated[
        bool,
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    configure_logging(level="DEBUG" if verbose else "INFO", fmt=log_format)


@app.command("run")
def run_cmd(
    path: PathOption = None,
    branch: Annotated[
        str | None, typer.Option("--branch", help="Trigger branch (default: current)")
    ] = None,
    head: Annotated[
        str | None, typer.Option("--head", help="Trigger commit (default: HEAD)")
    ] = None,
    bump: BumpOption = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show the plan only")] = False,
    report_file: Annotated[
        str | None, typer.Option("--report-file", help="Write the JSON run report here")
    ] = None,
) -> None:
    """Run the release pipeline."""
    from release_pipeline.cli.commands.run import run_release

    code = run_release(path, branch, head, bump, dry_run, report_file, console, err_console)
    if code:
        raise typer.Exit(code)


@app.command("next")
def next_cmd(
    path: PathOption = None,
    bump: BumpOption = None,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Print the version only")] = False,
) -> None:
    """Show the next version without changing anything."""
    from release_pipeline.cli.commands.next_version import run_next

    code = run_next(path, bump, quiet, console, err_console)
    if code:
        raise typer.Exit(code)


@app.command("history")
def history_cmd(
    path: PathOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Number of runs")] = 20,
) -> None:
    """List recorded runs."""
    from release_pipeline.cli.commands.history import run_history

    code = run_history(path, limit, console, err_console)
    if code:
        raise typer.Exit(code)


def main() -> None:
    app()
