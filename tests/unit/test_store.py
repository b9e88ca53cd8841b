"""Tests for version file editing and the Version Store."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from release_pipeline.config.models import ReleasePipelineConfig, VersionConfig
from release_pipeline.core.version import Version
from release_pipeline.exceptions import PersistenceError, VersionNotFoundError
from release_pipeline.pipeline.models import ReleaseTag
from release_pipeline.project.pyproject import (
    read_file_version,
    read_pyproject_version,
    replace_file_version,
    replace_pyproject_version,
)
from release_pipeline.project.store import VersionStore

PYPROJECT = """\
# build settings
[build-system]
requires = ["hatchling"]
version = "0.0.0"  # not the project version

[project]
name = "demo"
version = "1.4.7"  # keep in sync
dependencies = [
    "httpx",
]

[tool.other]
version = "9.9.9"
"""


class TestPyprojectText:
    def test_read_pep621(self):
        assert read_pyproject_version(PYPROJECT) == "1.4.7"

    def test_read_poetry(self):
        assert read_pyproject_version('[tool.poetry]\nname = "x"\nversion = "0.3.0"\n') == "0.3.0"

    def test_read_missing(self):
        with pytest.raises(VersionNotFoundError):
            read_pyproject_version('[project]\nname = "x"\n')

    def test_replace_only_project_section(self):
        updated = replace_pyproject_version(PYPROJECT, "1.5.0")

        assert 'version = "1.5.0"  # keep in sync' in updated
        assert 'version = "0.0.0"' in updated
        assert 'version = "9.9.9"' in updated
        assert "# build settings" in updated

    def test_file_version(self):
        content = '"""pkg"""\n\n__version__ = "1.4.7"\n'

        assert read_file_version(content, "__init__.py") == "1.4.7"
        assert replace_file_version(content, "2.0.0", "__init__.py") == (
            '"""pkg"""\n\n__version__ = "2.0.0"\n'
        )

    def test_file_version_missing(self):
        with pytest.raises(VersionNotFoundError):
            replace_file_version("x = 1\n", "2.0.0", "mod.py")


@pytest.fixture
def project(tmp_path: Path) -> Path:
    (tmp_path / "pyproject.toml").write_text(PYPROJECT)
    pkg = tmp_path / "demo"
    pkg.mkdir()
    (pkg / "__init__.py").write_text('__version__ = "1.4.7"\n')
    return tmp_path


@pytest.fixture
def config() -> ReleasePipelineConfig:
    return ReleasePipelineConfig(version=VersionConfig(version_files=[Path("demo/__init__.py")]))


class TestVersionStore:
    def test_current_version(self, project: Path, config: ReleasePipelineConfig):
        store = VersionStore(project, config)

        assert store.current_version() == Version(1, 4, 7)
        assert store.tracked_paths() == [project / "pyproject.toml", project / "demo/__init__.py"]

    def test_missing_source(self, tmp_path: Path, config: ReleasePipelineConfig):
        with pytest.raises(PersistenceError):
            VersionStore(tmp_path, config).current_version()

    def test_malformed_version(self, project: Path, config: ReleasePipelineConfig):
        (project / "pyproject.toml").write_text('[project]\nname = "demo"\nversion = "banana"\n')

        with pytest.raises(PersistenceError, match="Malformed"):
            VersionStore(project, config).current_version()

    def test_disagreeing_files(self, project: Path, config: ReleasePipelineConfig):
        (project / "demo" / "__init__.py").write_text('__version__ = "1.4.6"\n')

        with pytest.raises(PersistenceError, match="disagree"):
            VersionStore(project, config).current_version()

    def test_write_updates_every_location(self, project: Path, config: ReleasePipelineConfig):
        store = VersionStore(project, config)
        store.current_version()

        written = store.write(Version(1, 5, 0))

        assert len(written) == 2
        assert VersionStore(project, config).current_version() == Version(1, 5, 0)

    def test_write_requires_prior_read(self, project: Path, config: ReleasePipelineConfig):
        with pytest.raises(PersistenceError):
            VersionStore(project, config).write(Version(1, 5, 0))

    def test_write_detects_concurrent_modification(
        self, project: Path, config: ReleasePipelineConfig
    ):
        store = VersionStore(project, config)
        store.current_version()
        (project / "demo" / "__init__.py").write_text('__version__ = "1.4.7"  # edited\n')

        with pytest.raises(PersistenceError, match="concurrently"):
            store.write(Version(1, 5, 0))
        assert 'version = "1.4.7"' in (project / "pyproject.toml").read_text()

    def test_partial_write_is_rolled_back(self, project: Path, config: ReleasePipelineConfig):
        store = VersionStore(project, config)
        store.current_version()
        original = (project / "pyproject.toml").read_text()

        from release_pipeline.project import store as store_module

        real_write = store_module._atomic_write
        calls = {"n": 0}

        def flaky_write(path: Path, text: str) -> None:
            calls["n"] += 1
            if calls["n"] == 2:
                raise OSError("disk full")
            real_write(path, text)

        with patch.object(store_module, "_atomic_write", side_effect=flaky_write):
            with pytest.raises(PersistenceError, match="restored 1 file"):
                store.write(Version(1, 5, 0))

        assert (project / "pyproject.toml").read_text() == original
        assert (project / "demo" / "__init__.py").read_text() == '__version__ = "1.4.7"\n'

    def test_restore(self, project: Path, config: ReleasePipelineConfig):
        store = VersionStore(project, config)
        store.current_version()
        store.write(Version(2, 0, 0))

        store.restore()

        assert VersionStore(project, config).current_version() == Version(1, 4, 7)

    def test_record_release(self, project: Path, config: ReleasePipelineConfig):
        store = VersionStore(project, config)
        assert store.last_released_commit() is None

        store.record_release(
            ReleaseTag(
                version=Version(1, 5, 0),
                name="v1.5.0",
                commit="abc123",
                annotation="Release 1.5.0",
                created_at=datetime(2024, 1, 1, tzinfo=UTC),
            )
        )

        assert store.last_released_commit() == "abc123"
        assert VersionStore(project, config).last_released_commit() == "abc123"

    def test_corrupt_state(self, project: Path, config: ReleasePipelineConfig):
        state_dir = project / config.state_dir
        state_dir.mkdir()
        (state_dir / "state.json").write_text("{not json")

        with pytest.raises(PersistenceError):
            VersionStore(project, config).last_released_commit()
