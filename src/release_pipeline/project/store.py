"""Version Store: the current version and the last released commit.

The version lives in pyproject.toml plus any extra files listed in
``version.version_files``. All of them must agree. Writes go to every
location or to none, and are refused if a file changed since it was read.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from release_pipeline.core.version import Version
from release_pipeline.exceptions import InvalidVersionError, PersistenceError
from release_pipeline.project.pyproject import (
    read_file_version,
    read_pyproject_version,
    replace_file_version,
    replace_pyproject_version,
)

if TYPE_CHECKING:
    from pathlib import Path

    from release_pipeline.config.models import ReleasePipelineConfig
    from release_pipeline.pipeline.models import ReleaseTag

log = structlog.get_logger(__name__)

STATE_FILE = "state.json"


@dataclass(frozen=True, slots=True)
class _Location:
    path: Path
    is_pyproject: bool

    @property
    def label(self) -> str:
        return self.path.name

    def read_version(self, content: str) -> str:
        if self.is_pyproject:
            return read_pyproject_version(content, str(self.path))
        return read_file_version(content, str(self.path))

    def replace_version(self, content: str, version: str) -> str:
        if self.is_pyproject:
            return replace_pyproject_version(content, version, str(self.path))
        return replace_file_version(content, version, str(self.path))


class VersionStore:
    """Reads and writes the project version across all tracked files."""

    def __init__(self, root: Path, config: ReleasePipelineConfig) -> None:
        self.root = root
        self.state_dir = root / config.state_dir
        self._locations = [_Location(root / "pyproject.toml", is_pyproject=True)] + [
            _Location(root / p, is_pyproject=False) for p in config.version.version_files
        ]
        self._snapshot: dict[Path, str] | None = None
        self._backup: dict[Path, str] | None = None

    def tracked_paths(self) -> list[Path]:
        return [loc.path for loc in self._locations]

    def _read_all(self) -> dict[Path, str]:
        contents: dict[Path, str] = {}
        for loc in self._locations:
            try:
                contents[loc.path] = loc.path.read_text(encoding="utf-8")
            except FileNotFoundError as e:
                raise PersistenceError(f"Version file not found: {loc.path}") from e
            except OSError as e:
                raise PersistenceError(f"Cannot read {loc.path}: {e}") from e
        return contents

    def current_version(self) -> Version:
        """Read the version from every location.

        Raises:
            PersistenceError: If a file is missing, unparseable, or files disagree
        """
        contents = self._read_all()
        found: dict[str, Version] = {}
        for loc in self._locations:
            raw = loc.read_version(contents[loc.path])
            try:
                found[str(loc.path)] = Version.parse(raw)
            except InvalidVersionError as e:
                raise PersistenceError(f"Malformed version {raw!r} in {loc.path}") from e

        versions = set(found.values())
        if len(versions) != 1:
            detail = ", ".join(f"{path}={v}" for path, v in found.items())
            raise PersistenceError(f"Version files disagree: {detail}")

        self._snapshot = contents
        return versions.pop()

    def write(self, version: Version) -> list[Path]:
        """Write ``version`` to every location.

        Returns:
            Paths that were rewritten

        Raises:
            PersistenceError: If the files changed since :meth:`current_version`,
                or any write failed (already written files are restored)
        """
        if self._snapshot is None:
            raise PersistenceError("current_version() must be read before write()")

        current = self._read_all()
        changed = [str(p) for p, text in current.items() if self._snapshot.get(p) != text]
        if changed:
            raise PersistenceError(f"Version files modified concurrently: {', '.join(changed)}")

        updated = {
            loc.path: loc.replace_version(current[loc.path], str(version)) for loc in self._locations
        }

        written: list[Path] = []
        try:
            for path, text in updated.items():
                _atomic_write(path, text)
                written.append(path)
        except OSError as e:
            for path in written:
                _atomic_write(path, current[path])
            raise PersistenceError(
                f"Failed to write version to {path}; restored {len(written)} file(s)"
            ) from e

        log.info("version.written", version=str(version), files=[p.name for p in written])
        self._backup = current
        self._snapshot = updated
        return written

    def restore(self) -> None:
        """Undo the last :meth:`write`."""
        if self._backup is None:
            return
        for path, text in self._backup.items():
            _atomic_write(path, text)
        log.info("version.restored", files=[p.name for p in self._backup])
        self._snapshot = self._backup
        self._backup = None

    # Release state ---------------------------------------------------------------

    def _load_state(self) -> dict[str, Any]:
        path = self.state_dir / STATE_FILE
        if not path.is_file():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Corrupt release state in {path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Corrupt release state in {path}")
        return data

    def last_released_commit(self) -> str | None:
        value = self._load_state().get("last_released_commit")
        return str(value) if value else None

    def record_release(self, tag: ReleaseTag) -> None:
        """Remember the commit and version of a successful tag."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        state = self._load_state()
        state.update(
            {
                "last_released_commit": tag.commit,
                "last_released_version": str(tag.version),
                "last_released_tag": tag.name,
            }
        )
        _atomic_write(self.state_dir / STATE_FILE, json.dumps(state, indent=2) + "\n")


def _atomic_write(path: Path, text: str) -> None:
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(text, encoding="utf-8")
    os.replace(tmp, path)
