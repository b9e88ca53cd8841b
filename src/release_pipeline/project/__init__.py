"""Project files that carry the version."""

from __future__ import annotations

from release_pipeline.project.store import VersionStore

__all__ = ["VersionStore"]
