"""Core business logic for release-pipeline.

This module contains the fundamental building blocks:
- Semantic version values and bump rules
- Conventional commit parsing and bump classification
- Release notes rendering
"""

from __future__ import annotations

from release_pipeline.core.commits import (
    BumpDecision,
    ParsedCommit,
    calculate_bump,
    classify,
    format_commit_for_changelog,
    get_breaking_changes,
    group_commits_by_type,
    parse_commits,
)
from release_pipeline.core.notes import render_release_notes
from release_pipeline.core.version import BumpType, Version, parse_version

__all__ = [
    # Version
    "BumpType",
    "Version",
    "parse_version",
    # Commits
    "BumpDecision",
    "ParsedCommit",
    "calculate_bump",
    "classify",
    "format_commit_for_changelog",
    "get_breaking_changes",
    "group_commits_by_type",
    "parse_commits",
    # Notes
    "render_release_notes",
]
