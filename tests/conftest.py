"""Shared test fixtures."""

from __future__ import annotations

import subprocess
from datetime import datetime
from typing import TYPE_CHECKING

import pytest

from release_pipeline.vcs.git import Commit

if TYPE_CHECKING:
    from pathlib import Path

PYPROJECT = """\
[project]
name = "test-project"
version = "1.0.0"
description = "A test project"

[tool.release-pipeline]
state_dir = ".release-pipeline"

[tool.release-pipeline.git]
default_branch = "main"
"""


def git(path: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", *args],
        cwd=path,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


def commit_file(repo: Path, name: str, message: str, content: str | None = None) -> str:
    (repo / name).write_text(content if content is not None else f"{message}\n")
    git(repo, "add", name)
    git(repo, "commit", "-m", message)
    return git(repo, "rev-parse", "HEAD")


def _init_repo(path: Path) -> None:
    git(path, "init", "-b", "main")
    git(path, "config", "user.name", "Test User")
    git(path, "config", "user.email", "test@example.com")
    git(path, "config", "commit.gpgsign", "false")
    git(path, "config", "tag.gpgsign", "false")


@pytest.fixture
def temp_git_repo(tmp_path: Path) -> Path:
    """Empty git repository on branch main."""
    repo = tmp_path / "repo"
    repo.mkdir()
    _init_repo(repo)
    return repo


@pytest.fixture
def temp_git_repo_with_pyproject(temp_git_repo: Path) -> Path:
    """Repository with a committed pyproject.toml at version 1.0.0."""
    (temp_git_repo / "pyproject.toml").write_text(PYPROJECT)
    (temp_git_repo / ".gitignore").write_text("dist/\n")
    git(temp_git_repo, "add", "pyproject.toml", ".gitignore")
    git(temp_git_repo, "commit", "-m", "chore: initial commit")
    return temp_git_repo


@pytest.fixture
def released_repo(temp_git_repo_with_pyproject: Path, tmp_path: Path) -> Path:
    """Repository at 1.2.0 with tag v1.2.0, pushed to a bare ``origin``."""
    repo = temp_git_repo_with_pyproject
    (repo / "pyproject.toml").write_text(PYPROJECT.replace('version = "1.0.0"', 'version = "1.2.0"'))
    git(repo, "commit", "-am", "chore(release): 1.2.0")
    git(repo, "tag", "-a", "v1.2.0", "-m", "Release 1.2.0")

    remote = tmp_path / "origin.git"
    git(tmp_path, "init", "--bare", "-b", "main", str(remote))
    git(repo, "remote", "add", "origin", str(remote))
    git(repo, "push", "origin", "main", "--tags")
    git(repo, "branch", "--set-upstream-to=origin/main", "main")
    return repo


def _commit(sha: str, message: str) -> Commit:
    return Commit(
        sha=sha,
        message=message,
        author_name="Test",
        author_email="test@test.com",
        date=datetime(2024, 1, 1, 12, 0, 0),
    )


@pytest.fixture
def feat_commit() -> Commit:
    return _commit("feat1234567890", "feat: add user authentication")


@pytest.fixture
def fix_commit() -> Commit:
    return _commit("fix1234567890", "fix(core): handle empty input")


@pytest.fixture
def breaking_commit() -> Commit:
    return _commit("break1234567890", "feat(api)!: remove deprecated endpoints")


@pytest.fixture
def sample_commits(feat_commit: Commit, fix_commit: Commit, breaking_commit: Commit) -> list[Commit]:
    return [
        feat_commit,
        fix_commit,
        _commit("docs1234567890", "docs: update readme"),
        _commit("chore1234567890", "chore: bump dependencies"),
        breaking_commit,
        _commit("misc1234567890", "Merge branch 'feature'"),
    ]
