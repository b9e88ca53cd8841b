"""Notification sinks for the final run report."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx
from rich.console import Group
from rich.panel import Panel
from rich.table import Table

from release_pipeline.pipeline.models import PublishStatus, RunStatus

if TYPE_CHECKING:
    from rich.console import Console

    from release_pipeline.config.models import NotifyConfig
    from release_pipeline.pipeline.models import RunReport

_STATUS_STYLE = {
    RunStatus.SUCCESS: "green",
    RunStatus.FAILED: "red",
    RunStatus.NOOP: "yellow",
}

_RESULT_STYLE = {
    PublishStatus.SUCCESS: "green",
    PublishStatus.FAILURE: "red",
    PublishStatus.SKIPPED: "dim",
}


class Notifier(Protocol):
    def notify(self, report: RunReport) -> None: ...


def render_report(report: RunReport) -> Panel:
    """Rich renderable summarising a run."""
    style = _STATUS_STYLE[report.status]
    lines = [f"[bold {style}]{report.status.value.upper()}[/]"]
    if report.version:
        lines.append(
            f"Version: [cyan]{report.previous_version or '?'}[/] -> [green]{report.version}[/]"
            f" ({report.bump})"
        )
        lines.append(f"Tag: [cyan]{report.tag}[/] at {(report.tag_commit or '')[:7]}")
    elif report.bump:
        lines.append(f"Decision: {report.bump}")
    if report.halted_stage:
        lines.append(f"Halted at: [red]{report.halted_stage}[/]")
    if report.error:
        lines.append(f"Error: {report.error}")
    if report.stage_timings:
        timings = ", ".join(f"{stage} {secs:.2f}s" for stage, secs in report.stage_timings.items())
        lines.append(f"[dim]Timings: {timings}[/]")

    body: list[object] = ["\n".join(lines)]
    if report.results:
        table = Table(show_header=True, header_style="bold")
        table.add_column("Target")
        table.add_column("Mandatory")
        table.add_column("Status")
        table.add_column("Attempts", justify="right")
        table.add_column("Detail", overflow="fold")
        for r in report.results:
            table.add_row(
                r.target,
                "yes" if r.mandatory else "no",
                f"[{_RESULT_STYLE[r.status]}]{r.status.value}[/]",
                str(r.attempts),
                r.detail,
            )
        body.append(table)

    return Panel(Group(*body), title=f"Release run {report.run_id}", border_style=style)


class ConsoleNotifier:
    def __init__(self, console: Console) -> None:
        self.console = console

    def notify(self, report: RunReport) -> None:
        self.console.print(render_report(report))


class WebhookNotifier:
    """POSTs the JSON report to a URL."""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._transport = transport

    def notify(self, report: RunReport) -> None:
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            response = client.post(self.url, json=report.to_dict())
            response.raise_for_status()


def build_notifiers(
    config: NotifyConfig,
    console: Console | None,
    transport: httpx.BaseTransport | None = None,
) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.console and console is not None:
        notifiers.append(ConsoleNotifier(console))
    if config.webhook_url:
        notifiers.append(WebhookNotifier(config.webhook_url, config.webhook_timeout, transport))
    return notifiers
