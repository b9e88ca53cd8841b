"""Git operations via the git CLI.

All commands run as subprocesses in the repository root; failures are
raised as GitError with git's stderr attached.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from release_pipeline.exceptions import GitError, PushRejectedError

if TYPE_CHECKING:
    from collections.abc import Sequence

log = structlog.get_logger(__name__)

# Record and field separators for `git log` output.
_RS = "\x1e"
_FS = "\x1f"

_PUSH_REJECTED_MARKERS = (
    "[rejected]",
    "non-fast-forward",
    "fetch first",
    "atomic push failed",
    "stale info",
)


@dataclass(frozen=True, slots=True)
class Commit:
    """A commit as read from ``git log``."""

    sha: str
    message: str
    author_name: str
    author_email: str
    date: datetime

    @property
    def short_sha(self) -> str:
        return self.sha[:7]

    @property
    def subject(self) -> str:
        return self.message.split("\n", 1)[0]


class GitRepository:
    """Thin wrapper around the git CLI for one working tree."""

    def __init__(self, path: Path, remote: str = "origin") -> None:
        self.path = path.resolve()
        self.remote = remote
        if not (self.path / ".git").exists():
            # Worktrees and submodules use a .git file; let git decide.
            self._run("rev-parse", "--git-dir")

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        cmd = ["git", *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=self.path,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise GitError("git executable not found") from e
        if check and result.returncode != 0:
            raise GitError(f"git {args[0]} failed with exit code {result.returncode}", result.stderr)
        return result

    # Read operations ------------------------------------------------------------

    def head_sha(self) -> str:
        return self._run("rev-parse", "HEAD").stdout.strip()

    def current_branch(self) -> str:
        return self._run("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def is_dirty(self, exclude: Sequence[str] = ()) -> bool:
        """True if there are staged, unstaged or untracked changes.

        Args:
            exclude: Paths (relative to the repository root) to ignore
        """
        pathspec = [".", *(f":(exclude){p}" for p in exclude)]
        return bool(self._run("status", "--porcelain", "--", *pathspec).stdout.strip())

    def get_latest_tag(self, pattern: str = "*") -> str | None:
        """Most recent tag reachable from HEAD matching ``pattern``."""
        result = self._run("describe", "--tags", "--abbrev=0", "--match", pattern, check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def get_commits_since_tag(self, tag: str | None) -> list[Commit]:
        """Commits after ``tag`` up to HEAD, oldest first.

        With no tag, the whole history is returned.
        """
        rev_range = f"{tag}..HEAD" if tag else "HEAD"
        fmt = _FS.join(["%H", "%an", "%ae", "%aI", "%B"]) + _RS
        result = self._run("log", "--reverse", f"--format={fmt}", rev_range, check=False)
        if result.returncode != 0:
            # An empty repository has no HEAD yet.
            if "does not have any commits" in result.stderr or "unknown revision" in result.stderr:
                return []
            raise GitError("git log failed", result.stderr)
        return _parse_log(result.stdout)

    def tag_exists(self, tag: str) -> bool:
        result = self._run("rev-parse", "-q", "--verify", f"refs/tags/{tag}", check=False)
        return result.returncode == 0

    def remote_tag_exists(self, tag: str) -> bool:
        result = self._run("ls-remote", "--tags", self.remote, f"refs/tags/{tag}", check=False)
        return result.returncode == 0 and bool(result.stdout.strip())

    def tags_pointing_at(self, ref: str = "HEAD") -> list[str]:
        result = self._run("tag", "--points-at", ref)
        return [line for line in result.stdout.splitlines() if line]

    def tag_commit(self, tag: str) -> str:
        return self._run("rev-list", "-n", "1", tag).stdout.strip()

    # Write operations -----------------------------------------------------------

    def add(self, paths: Sequence[Path]) -> None:
        self._run("add", "--", *(str(p) for p in paths))

    def commit(self, message: str, paths: Sequence[Path] = ()) -> str:
        """Commit and return the new HEAD sha.

        With ``paths``, only those paths are committed; anything else in the
        index stays staged and out of the commit.
        """
        pathspec = ["--", *(str(p) for p in paths)] if paths else []
        self._run("commit", "-m", message, *pathspec)
        return self.head_sha()

    def create_tag(self, tag: str, message: str, ref: str = "HEAD") -> None:
        """Create an annotated tag."""
        self._run("tag", "-a", tag, "-m", message, ref)

    def delete_tag(self, tag: str) -> None:
        self._run("tag", "-d", tag)

    def reset_soft(self, ref: str) -> None:
        """Move HEAD to ``ref``, leaving the index and working tree alone."""
        self._run("reset", "--soft", ref)

    def unstage(self, paths: Sequence[Path], ref: str = "HEAD") -> None:
        """Reset the index entries of ``paths`` to ``ref``."""
        self._run("reset", "-q", ref, "--", *(str(p) for p in paths))

    def fetch(self) -> None:
        self._run("fetch", "--tags", self.remote)

    def fast_forward(self, branch: str) -> None:
        self._run("merge", "--ff-only", f"{self.remote}/{branch}")

    def push(self, branch: str, tag: str) -> None:
        """Push branch and tag together; either both land or neither does.

        Raises:
            PushRejectedError: If the remote refused the update
            GitError: For any other failure
        """
        result = self._run("push", "--atomic", self.remote, branch, f"refs/tags/{tag}", check=False)
        if result.returncode == 0:
            return
        stderr = result.stderr or ""
        if any(marker in stderr for marker in _PUSH_REJECTED_MARKERS):
            raise PushRejectedError("push rejected by remote", stderr)
        raise GitError("git push failed", stderr)


def _parse_log(output: str) -> list[Commit]:
    commits: list[Commit] = []
    for record in output.split(_RS):
        record = record.strip("\n")
        if not record:
            continue
        parts = record.split(_FS, 4)
        if len(parts) != 5:
            log.debug("git.log.unparsed_record", record=record[:80])
            continue
        sha, author_name, author_email, date, message = parts
        commits.append(
            Commit(
                sha=sha,
                message=message.strip(),
                author_name=author_name,
                author_email=author_email,
                date=datetime.fromisoformat(date),
            )
        )
    return commits
