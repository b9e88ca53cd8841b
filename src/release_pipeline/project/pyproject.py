"""Reading and rewriting version strings inside project files.

Edits are regex based so formatting and comments survive. Functions here
work on text; the caller owns reading and writing files so that several
files can be updated as one unit.
"""

from __future__ import annotations

import re

from release_pipeline.exceptions import VersionNotFoundError

_SECTIONS = (r"\[project\]", r"\[tool\.poetry\]")
_VERSION_LINE = r'^(version\s*=\s*)["\']([^"\']+)["\']'

DEFAULT_FILE_PATTERNS = (
    r'^(__version__\s*=\s*)["\']([^"\']+)["\']',
    r'^(VERSION\s*=\s*)["\']([^"\']+)["\']',
    r'^(version\s*=\s*)["\']([^"\']+)["\']',
)


def _section(content: str, header: str) -> re.Match[str] | None:
    return re.search(rf"^{header}[ \t]*$.*?(?=^\[|\Z)", content, re.MULTILINE | re.DOTALL)


def read_pyproject_version(content: str, source: str = "pyproject.toml") -> str:
    """Return the version from [project] or [tool.poetry].

    Raises:
        VersionNotFoundError: If neither section declares a version
    """
    for header in _SECTIONS:
        section = _section(content, header)
        if section is None:
            continue
        match = re.search(_VERSION_LINE, section.group(0), re.MULTILINE)
        if match:
            return match.group(2)

    raise VersionNotFoundError(
        f"Could not find version in {source}. Expected [project].version or [tool.poetry].version."
    )


def replace_pyproject_version(content: str, new_version: str, source: str = "pyproject.toml") -> str:
    """Return ``content`` with the [project] (or [tool.poetry]) version replaced."""
    for header in _SECTIONS:
        section = _section(content, header)
        if section is None:
            continue
        body = section.group(0)
        new_body, count = re.subn(
            _VERSION_LINE,
            rf'\g<1>"{new_version}"',
            body,
            count=1,
            flags=re.MULTILINE,
        )
        if count:
            return content[: section.start()] + new_body + content[section.end() :]

    raise VersionNotFoundError(
        f"Could not find version to update in {source}. "
        "Expected [project].version or [tool.poetry].version."
    )


def read_file_version(content: str, source: str, pattern: str | None = None) -> str:
    """Return the version from a module such as ``__init__.py``.

    ``pattern`` must have two groups: the assignment prefix and the version.
    """
    patterns = (pattern,) if pattern else DEFAULT_FILE_PATTERNS
    for pat in patterns:
        match = re.search(pat, content, re.MULTILINE)
        if match:
            return match.group(2)
    raise VersionNotFoundError(f"Could not find version pattern in {source}")


def replace_file_version(
    content: str,
    new_version: str,
    source: str,
    pattern: str | None = None,
) -> str:
    """Return ``content`` with the first version assignment replaced."""
    patterns = (pattern,) if pattern else DEFAULT_FILE_PATTERNS
    for pat in patterns:
        new_content, count = re.subn(
            pat,
            rf'\g<1>"{new_version}"',
            content,
            count=1,
            flags=re.MULTILINE,
        )
        if count:
            return new_content
    raise VersionNotFoundError(f"Could not find version pattern in {source}")
