"""Semantic version values and bump rules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from release_pipeline.exceptions import InvalidVersionError

_VERSION_RE = re.compile(r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)$")


class BumpType(StrEnum):
    """Kind of version bump.

    Precedence is exposed through :attr:`rank`; comparing members as
    strings is not meaningful.
    """

    NONE = "none"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"

    @property
    def rank(self) -> int:
        return _BUMP_RANK[self]


_BUMP_RANK = {
    BumpType.NONE: 0,
    BumpType.PATCH: 1,
    BumpType.MINOR: 2,
    BumpType.MAJOR: 3,
}


@dataclass(frozen=True, order=True, slots=True)
class Version:
    """A MAJOR.MINOR.PATCH version.

    Ordering is lexicographic on (major, minor, patch).
    """

    major: int
    minor: int
    patch: int

    def __post_init__(self) -> None:
        for part in (self.major, self.minor, self.patch):
            if not isinstance(part, int) or isinstance(part, bool) or part < 0:
                raise InvalidVersionError(
                    f"Version parts must be non-negative integers, got "
                    f"({self.major!r}, {self.minor!r}, {self.patch!r})"
                )

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @classmethod
    def parse(cls, value: str, prefix: str = "") -> Version:
        """Parse ``"1.2.3"`` or ``"v1.2.3"``.

        Args:
            value: Version string, optionally carrying a tag prefix
            prefix: Tag prefix to strip; a leading ``v`` is always accepted

        Raises:
            InvalidVersionError: If the string is not a plain semantic version
        """
        text = value.strip()
        if prefix and text.startswith(prefix):
            text = text[len(prefix) :]
        elif text[:1] in ("v", "V"):
            text = text[1:]

        match = _VERSION_RE.match(text)
        if not match:
            raise InvalidVersionError(f"Invalid version: {value!r}")
        return cls(int(match["major"]), int(match["minor"]), int(match["patch"]))

    def bump(self, bump_type: BumpType) -> Version:
        """Return the next version for ``bump_type``."""
        if bump_type == BumpType.MAJOR:
            return Version(self.major + 1, 0, 0)
        if bump_type == BumpType.MINOR:
            return Version(self.major, self.minor + 1, 0)
        if bump_type == BumpType.PATCH:
            return Version(self.major, self.minor, self.patch + 1)
        return self

    def tag_name(self, prefix: str = "v") -> str:
        return f"{prefix}{self}"


def parse_version(value: str, prefix: str = "") -> Version:
    """Shortcut for :meth:`Version.parse`."""
    return Version.parse(value, prefix)
