"""Command line interface for release-pipeline."""

from __future__ import annotations

from release_pipeline.cli.app import app, main

__all__ = ["app", "main"]
