"""Tests for the Tag & Commit Writer."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from release_pipeline.config.loader import load_config
from release_pipeline.core.version import Version
from release_pipeline.exceptions import (
    ConcurrentModificationError,
    GitError,
    PreconditionError,
    PushRejectedError,
)
from release_pipeline.pipeline.tagging import TagWriter
from release_pipeline.project.store import VersionStore
from release_pipeline.vcs.git import GitRepository
from tests.conftest import commit_file, git


def _writer(path: Path) -> TagWriter:
    config = load_config(path)
    repo = GitRepository(path)
    store = VersionStore(path, config)
    store.current_version()
    return TagWriter(repo, store, config)


class TestPreconditions:
    def test_wrong_branch(self, released_repo: Path):
        git(released_repo, "checkout", "-b", "feature")

        with pytest.raises(PreconditionError, match="must run on 'main'"):
            _writer(released_repo).check_preconditions()

    def test_dirty_tree(self, released_repo: Path):
        (released_repo / "scratch.txt").write_text("x")

        with pytest.raises(PreconditionError, match="uncommitted"):
            _writer(released_repo).apply(Version(1, 3, 0))

    def test_existing_tag(self, released_repo: Path):
        with pytest.raises(PreconditionError, match="already exists"):
            _writer(released_repo).apply(Version(1, 2, 0))

    def test_tag_only_on_remote(self, released_repo: Path):
        git(released_repo, "tag", "-d", "v1.2.0")

        with pytest.raises(PreconditionError, match="on the remote"):
            _writer(released_repo).apply(Version(1, 2, 0))


class TestApply:
    def test_apply_commits_tags_and_pushes(self, released_repo: Path):
        commit_file(released_repo, "a.txt", "feat: add export")
        git(released_repo, "push", "origin", "main")

        tag = _writer(released_repo).apply(Version(1, 3, 0), notes="### Features\n\n- add export")

        assert tag.name == "v1.3.0"
        assert tag.version == Version(1, 3, 0)
        assert tag.commit == git(released_repo, "rev-parse", "HEAD")
        assert git(released_repo, "log", "-1", "--format=%s") == "chore(release): 1.3.0"
        assert 'version = "1.3.0"' in (released_repo / "pyproject.toml").read_text()
        assert "add export" in git(released_repo, "tag", "-l", "--format=%(contents)", "v1.3.0")
        remote_head = git(released_repo, "ls-remote", "origin", "refs/heads/main").split()[0]
        assert remote_head == tag.commit
        assert git(released_repo, "ls-remote", "--tags", "origin", "refs/tags/v1.3.0")

    def test_failure_rolls_back(self, released_repo: Path):
        base = git(released_repo, "rev-parse", "HEAD")
        writer = _writer(released_repo)

        with patch.object(writer.repo, "push", side_effect=GitError("network down")):
            with pytest.raises(GitError):
                writer.apply(Version(1, 3, 0))

        assert git(released_repo, "rev-parse", "HEAD") == base
        assert not writer.repo.tag_exists("v1.3.0")
        assert 'version = "1.2.0"' in (released_repo / "pyproject.toml").read_text()
        assert not writer.repo.is_dirty(exclude=[".release-pipeline"])

    def test_push_rejected_once_then_retried(self, released_repo: Path, tmp_path: Path):
        other = tmp_path / "other"
        git(tmp_path, "clone", str(tmp_path / "origin.git"), str(other))
        git(other, "config", "user.name", "Other")
        git(other, "config", "user.email", "other@example.com")
        commit_file(other, "other.txt", "fix: concurrent change")
        git(other, "push", "origin", "main")

        tag = _writer(released_repo).apply(Version(1, 2, 1))

        # The retry caught up with the remote before committing.
        assert (released_repo / "other.txt").exists()
        assert tag.commit == git(released_repo, "ls-remote", "origin", "refs/heads/main").split()[0]

    def test_push_rejected_twice_is_concurrent_modification(self, released_repo: Path):
        writer = _writer(released_repo)
        base = writer.repo.head_sha()

        with (
            patch.object(writer.repo, "push", side_effect=PushRejectedError("rejected")),
            patch.object(writer.repo, "fetch"),
            patch.object(writer.repo, "fast_forward"),
        ):
            with pytest.raises(ConcurrentModificationError):
                writer.apply(Version(1, 3, 0))

        assert writer.repo.head_sha() == base
        assert not writer.repo.tag_exists("v1.3.0")


def _clone(tmp_path: Path) -> Path:
    other = tmp_path / "other"
    git(tmp_path, "clone", str(tmp_path / "origin.git"), str(other))
    git(other, "config", "user.name", "Other")
    git(other, "config", "user.email", "other@example.com")
    return other


class TestConcurrentRelease:
    def test_newer_release_on_remote_is_not_overwritten(self, released_repo: Path, tmp_path: Path):
        commit_file(released_repo, "a.txt", "feat: add export")
        git(released_repo, "push", "origin", "main")
        other = _clone(tmp_path)
        pyproject = other / "pyproject.toml"
        pyproject.write_text(pyproject.read_text().replace('version = "1.2.0"', 'version = "2.0.0"'))
        git(other, "commit", "-am", "chore(release): 2.0.0")
        git(other, "tag", "-a", "v2.0.0", "-m", "Release 2.0.0")
        git(other, "push", "origin", "main", "--tags")
        remote_head = git(other, "rev-parse", "HEAD")
        writer = _writer(released_repo)

        with pytest.raises(ConcurrentModificationError, match="already moved to 2.0.0"):
            writer.apply(Version(1, 3, 0))

        assert git(released_repo, "ls-remote", "origin", "refs/heads/main").split()[0] == remote_head
        assert not writer.repo.remote_tag_exists("v1.3.0")
        assert not writer.repo.tag_exists("v1.3.0")
        assert 'version = "2.0.0"' in (released_repo / "pyproject.toml").read_text()

    def test_tag_created_concurrently(self, released_repo: Path, tmp_path: Path):
        other = _clone(tmp_path)
        commit_file(other, "other.txt", "fix: concurrent change")
        git(other, "tag", "-a", "v1.2.1", "-m", "Release 1.2.1")
        git(other, "push", "origin", "main", "--tags")
        writer = _writer(released_repo)

        with patch.object(writer.repo, "remote_tag_exists", side_effect=[False, True]):
            with pytest.raises(ConcurrentModificationError, match="created concurrently"):
                writer.apply(Version(1, 2, 1))

    def test_diverged_trunk_is_concurrent_modification(self, released_repo: Path, tmp_path: Path):
        other = _clone(tmp_path)
        commit_file(other, "other.txt", "fix: concurrent change")
        git(other, "push", "origin", "main")
        local = commit_file(released_repo, "a.txt", "feat: add export")
        writer = _writer(released_repo)

        with pytest.raises(ConcurrentModificationError) as excinfo:
            writer.apply(Version(1, 3, 0))

        assert isinstance(excinfo.value.__cause__, GitError)
        assert writer.repo.head_sha() == local
        assert not writer.repo.tag_exists("v1.3.0")
        assert 'version = "1.2.0"' in (released_repo / "pyproject.toml").read_text()


def _dirty_writer(path: Path) -> TagWriter:
    writer = _writer(path)
    git_config = writer.config.git.model_copy(update={"allow_dirty": True})
    writer.config = writer.config.model_copy(update={"git": git_config})
    return writer


class TestAllowDirty:
    @pytest.fixture
    def dirty_repo(self, released_repo: Path) -> Path:
        commit_file(released_repo, "notes.txt", "docs: add notes", content="original\n")
        git(released_repo, "push", "origin", "main")
        (released_repo / "notes.txt").write_text("work in progress\n")
        (released_repo / "staged.txt").write_text("staged\n")
        git(released_repo, "add", "staged.txt")
        return released_repo

    def test_release_commit_holds_only_version_files(self, dirty_repo: Path):
        _dirty_writer(dirty_repo).apply(Version(1, 3, 0))

        assert git(dirty_repo, "show", "--name-only", "--format=", "HEAD") == "pyproject.toml"
        assert git(dirty_repo, "diff", "--cached", "--name-only") == "staged.txt"
        assert (dirty_repo / "notes.txt").read_text() == "work in progress\n"

    def test_rollback_keeps_uncommitted_changes(self, dirty_repo: Path):
        writer = _dirty_writer(dirty_repo)
        base = writer.repo.head_sha()

        with patch.object(writer.repo, "push", side_effect=GitError("network down")):
            with pytest.raises(GitError):
                writer.apply(Version(1, 3, 0))

        assert writer.repo.head_sha() == base
        assert not writer.repo.tag_exists("v1.3.0")
        assert (dirty_repo / "notes.txt").read_text() == "work in progress\n"
        assert git(dirty_repo, "diff", "--cached", "--name-only") == "staged.txt"
        assert 'version = "1.2.0"' in (dirty_repo / "pyproject.toml").read_text()
        assert git(dirty_repo, "diff", "--name-only", "--", "pyproject.toml") == ""
