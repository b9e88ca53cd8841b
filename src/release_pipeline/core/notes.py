"""Release notes rendered from the commits in a release.

The same text is used as the annotated tag message and as the body of the
source-control release.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from release_pipeline.core.commits import (
    format_commit_for_changelog,
    get_breaking_changes,
    group_commits_by_type,
    parse_commits,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from release_pipeline.config.models import CommitsConfig
    from release_pipeline.core.commits import ParsedCommit
    from release_pipeline.core.version import Version
    from release_pipeline.vcs.git import Commit

SECTION_LABELS = {
    "feat": "### Features",
    "fix": "### Bug Fixes",
    "perf": "### Performance",
    "docs": "### Documentation",
    "refactor": "### Refactoring",
    "test": "### Tests",
    "build": "### Build",
    "ci": "### CI",
    "style": "### Style",
    "chore": "### Chores",
    "other": "### Other",
}


def render_release_notes(
    version: Version,
    commits: Sequence[Commit],
    config: CommitsConfig,
    *,
    date: datetime | None = None,
) -> str:
    """Render markdown release notes.

    Args:
        version: Version being released
        commits: Commits included in the release, oldest first
        config: Commit parsing configuration
        date: Release date, defaults to now (UTC)

    Returns:
        Markdown text; a heading only when there are no commits
    """
    when = (date or datetime.now(UTC)).strftime("%Y-%m-%d")
    lines = [f"## [{version}] - {when}", ""]

    parsed = parse_commits(commits, config)
    if not parsed:
        return "\n".join(lines).rstrip() + "\n"

    breaking = get_breaking_changes(parsed)
    if breaking:
        lines.append("### Breaking Changes")
        lines.append("")
        lines.extend(format_commit_for_changelog(pc).replace("[BREAKING] ", "") for pc in breaking)
        lines.append("")

    grouped: dict[str, list[ParsedCommit]] = {}
    # Unknown types go under "other".
    for commit_type, items in group_commits_by_type(parsed).items():
        key = commit_type if commit_type in SECTION_LABELS else "other"
        grouped.setdefault(key, []).extend(items)

    for commit_type, label in SECTION_LABELS.items():
        items = [pc for pc in grouped.get(commit_type, []) if not pc.is_breaking]
        if not items:
            continue
        lines.append(label)
        lines.append("")
        lines.extend(format_commit_for_changelog(pc) for pc in items)
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
