"""Configuration management for release-pipeline."""

from __future__ import annotations

from release_pipeline.config.loader import get_project_name, load_config
from release_pipeline.config.models import (
    ArtifactKind,
    BuildConfig,
    CommitsConfig,
    GitConfig,
    NotifyConfig,
    ReleasePipelineConfig,
    TargetConfig,
    TargetKind,
    VersionConfig,
)

__all__ = [
    "ArtifactKind",
    "BuildConfig",
    "CommitsConfig",
    "GitConfig",
    "NotifyConfig",
    "ReleasePipelineConfig",
    "TargetConfig",
    "TargetKind",
    "VersionConfig",
    "get_project_name",
    "load_config",
]
