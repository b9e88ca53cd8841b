"""Helpers shared by CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from release_pipeline.config import load_config
from release_pipeline.core.version import BumpType
from release_pipeline.exceptions import ConfigValidationError
from release_pipeline.pipeline.models import Trigger
from release_pipeline.pipeline.notify import build_notifiers
from release_pipeline.pipeline.orchestrator import ReleasePipeline

if TYPE_CHECKING:
    from pathlib import Path

    from rich.console import Console


def load_pipeline(project_path: Path, console: Console | None) -> ReleasePipeline:
    config = load_config(project_path)
    root = project_path.resolve()
    return ReleasePipeline(
        root,
        config,
        notifiers=build_notifiers(config.notify, console),
    )


def parse_bump(value: str | None) -> BumpType | None:
    if value is None:
        return None
    try:
        kind = BumpType(value.lower())
    except ValueError as e:
        raise ConfigValidationError(
            f"Invalid bump {value!r}; expected one of major, minor, patch"
        ) from e
    if kind == BumpType.NONE:
        raise ConfigValidationError("Bump override 'none' is not allowed")
    return kind


def make_trigger(
    pipeline: ReleasePipeline,
    branch: str | None,
    head: str | None,
    bump: str | None,
) -> Trigger:
    return Trigger(
        branch=branch or pipeline.repo.current_branch(),
        head_commit=head or pipeline.repo.head_sha(),
        override=parse_bump(bump),
    )
