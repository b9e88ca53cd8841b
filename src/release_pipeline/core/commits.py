"""Conventional commit parsing and bump classification.

Commit messages are parsed against the Conventional Commits format::

    type(scope)!: description

    body

    BREAKING CHANGE: footer

Classification folds over the whole commit range and keeps the highest
precedence marker seen (breaking > feature > fix). Messages that do not
follow the format carry no signal; they are never an error.
"""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from functools import reduce
from typing import TYPE_CHECKING

from release_pipeline.core.version import BumpType

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from release_pipeline.config.models import CommitsConfig
    from release_pipeline.vcs.git import Commit

_HEADER_RE = re.compile(
    r"^(?P<type>[a-zA-Z][\w-]*)(?:\((?P<scope>[^()\r\n]*)\))?(?P<breaking>!)?:\s+(?P<description>\S.*)$"
)


@dataclass(frozen=True, slots=True)
class ParsedCommit:
    """A commit with its conventional-commit fields extracted."""

    commit: Commit
    commit_type: str | None
    scope: str | None
    description: str
    is_breaking: bool
    is_conventional: bool

    @classmethod
    def from_commit(cls, commit: Commit, breaking_pattern: str) -> ParsedCommit:
        """Parse a commit message.

        Args:
            commit: Commit to parse
            breaking_pattern: Regex matched against the whole message to detect
                a breaking-change footer

        Returns:
            Parsed commit; non-conventional messages get ``commit_type=None``
        """
        message = commit.message or ""
        header = message.split("\n", 1)[0].strip()
        match = _HEADER_RE.match(header)

        try:
            footer_breaking = bool(re.search(breaking_pattern, message))
        except re.error:
            footer_breaking = False

        if not match:
            return cls(
                commit=commit,
                commit_type=None,
                scope=None,
                description=header,
                is_breaking=footer_breaking,
                is_conventional=False,
            )

        return cls(
            commit=commit,
            commit_type=match["type"].lower(),
            scope=match["scope"] or None,
            description=match["description"].strip(),
            is_breaking=bool(match["breaking"]) or footer_breaking,
            is_conventional=True,
        )


@dataclass(frozen=True, slots=True)
class BumpDecision:
    """Outcome of classifying a commit range.

    ``rationale`` lists the short SHAs of the commits that carry the winning
    marker, oldest first. A manual decision has an empty rationale.
    """

    kind: BumpType
    rationale: tuple[str, ...] = ()
    manual: bool = False

    @property
    def releasable(self) -> bool:
        return self.kind != BumpType.NONE


def parse_commits(commits: Iterable[Commit], config: CommitsConfig) -> list[ParsedCommit]:
    """Parse commits, keeping only those whose scope matches ``scope_regex``."""
    parsed = [ParsedCommit.from_commit(c, config.breaking_pattern) for c in commits]
    if config.scope_regex:
        scope_re = re.compile(config.scope_regex)
        parsed = [pc for pc in parsed if pc.scope and scope_re.search(pc.scope)]
    return parsed


def commit_bump(pc: ParsedCommit, config: CommitsConfig) -> BumpType:
    """Bump signalled by a single commit."""
    if pc.is_breaking:
        return BumpType.MAJOR
    if pc.commit_type is None:
        return BumpType.NONE
    if pc.commit_type in config.types_major:
        return BumpType.MAJOR
    if pc.commit_type in config.types_minor:
        return BumpType.MINOR
    if pc.commit_type in config.types_patch:
        return BumpType.PATCH
    return BumpType.NONE


def _higher(a: BumpType, b: BumpType) -> BumpType:
    return b if b.rank > a.rank else a


def calculate_bump(parsed: Sequence[ParsedCommit], config: CommitsConfig) -> BumpType:
    """Highest-precedence bump across all commits."""
    return reduce(_higher, (commit_bump(pc, config) for pc in parsed), BumpType.NONE)


def filter_skip_release_commits(commits: Iterable[Commit], patterns: Sequence[str]) -> list[Commit]:
    """Drop commits whose message contains any skip marker (case-insensitive)."""
    if not patterns:
        return list(commits)
    lowered = [p.lower() for p in patterns]
    return [c for c in commits if not any(p in c.message.lower() for p in lowered)]


def classify(
    commits: Sequence[Commit],
    config: CommitsConfig,
    override: BumpType | None = None,
) -> BumpDecision:
    """Decide the bump for a commit range.

    Args:
        commits: Commits since the last release tag, oldest first
        config: Commit type mapping
        override: Manual bump; wins unconditionally when given

    Returns:
        The decision; ``BumpType.NONE`` when nothing releasable was found
    """
    if override is not None:
        return BumpDecision(kind=override, manual=True)

    candidates = filter_skip_release_commits(commits, config.skip_release_patterns)
    parsed = parse_commits(candidates, config)
    kind = calculate_bump(parsed, config)
    if kind == BumpType.NONE:
        return BumpDecision(kind=kind)

    rationale = tuple(pc.commit.short_sha for pc in parsed if commit_bump(pc, config) == kind)
    return BumpDecision(kind=kind, rationale=rationale)


def group_commits_by_type(parsed: Iterable[ParsedCommit]) -> dict[str, list[ParsedCommit]]:
    """Group commits by type; non-conventional commits go under ``other``."""
    grouped: dict[str, list[ParsedCommit]] = defaultdict(list)
    for pc in parsed:
        grouped[pc.commit_type or "other"].append(pc)
    return dict(grouped)


def get_breaking_changes(parsed: Iterable[ParsedCommit]) -> list[ParsedCommit]:
    return [pc for pc in parsed if pc.is_breaking]


def format_commit_for_changelog(
    pc: ParsedCommit,
    *,
    include_scope: bool = True,
    include_sha: bool = False,
) -> str:
    """Render one commit as a markdown bullet."""
    parts = ["-"]
    if pc.is_breaking:
        parts.append("[BREAKING]")
    if include_scope and pc.scope:
        parts.append(f"**{pc.scope}:**")
    parts.append(pc.description)
    if include_sha:
        parts.append(f"({pc.commit.short_sha})")
    return " ".join(parts)
