"""Tag & Commit Writer.

Writes the version, commits it, creates an annotated tag and pushes both
as one unit. On failure the local repository and the version files are
put back the way they were. A push rejected because the remote moved is
retried once after catching up with the remote.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from release_pipeline.exceptions import (
    ConcurrentModificationError,
    GitError,
    PreconditionError,
    PushRejectedError,
)
from release_pipeline.pipeline.models import ReleaseTag, utcnow

if TYPE_CHECKING:
    from release_pipeline.config.models import ReleasePipelineConfig
    from release_pipeline.core.version import Version
    from release_pipeline.project.store import VersionStore
    from release_pipeline.vcs.git import GitRepository

log = structlog.get_logger(__name__)


class TagWriter:
    def __init__(
        self,
        repo: GitRepository,
        store: VersionStore,
        config: ReleasePipelineConfig,
    ) -> None:
        self.repo = repo
        self.store = store
        self.config = config

    def tag_name(self, version: Version) -> str:
        return version.tag_name(self.config.effective_tag_prefix)

    def check_preconditions(self, version: Version | None = None) -> None:
        """Raise PreconditionError unless the tree is clean and on trunk.

        With a version, also refuses when its tag already exists.
        """
        branch = self.repo.current_branch()
        trunk = self.config.trunk_branch
        if branch != trunk:
            raise PreconditionError(f"Releases must run on {trunk!r}, current branch is {branch!r}")
        generated = [str(self.config.state_dir), str(self.config.build.out_dir)]
        if not self.config.git.allow_dirty and self.repo.is_dirty(exclude=generated):
            raise PreconditionError("Working tree has uncommitted changes")
        if version is not None:
            tag = self.tag_name(version)
            if self.repo.tag_exists(tag):
                raise PreconditionError(f"Tag {tag} already exists")

    def apply(self, version: Version, notes: str = "") -> ReleaseTag:
        """Materialise ``version`` as a commit and an annotated tag.

        Args:
            version: Version to release
            notes: Release notes appended to the tag message

        Returns:
            The created tag

        Raises:
            PreconditionError: Wrong branch, dirty tree or tag already exists
            ConcurrentModificationError: Push rejected twice, the remote cannot
                be fast-forwarded to, or it already released ``version`` or later
        """
        self.check_preconditions(version)
        if self.config.git.push and self.repo.remote_tag_exists(self.tag_name(version)):
            raise PreconditionError(f"Tag {self.tag_name(version)} already exists on the remote")

        try:
            return self._apply_once(version, notes)
        except PushRejectedError as e:
            log.warning("tag.push_rejected", version=str(version), error=str(e))

        try:
            self._refresh(version)
            return self._apply_once(version, notes)
        except GitError as e:
            raise ConcurrentModificationError(
                f"Remote {self.config.trunk_branch!r} moved during release of {version}; "
                "refusing to merge automatically"
            ) from e

    def _refresh(self, version: Version) -> None:
        """Catch up with the remote and check ``version`` is still ahead of it."""
        self.repo.fetch()
        self.repo.fast_forward(self.config.trunk_branch)
        current = self.store.current_version()
        tag = self.tag_name(version)
        if current >= version:
            raise ConcurrentModificationError(
                f"Remote already moved to {current}; refusing to release {version}"
            )
        if self.repo.tag_exists(tag) or (
            self.config.git.push and self.repo.remote_tag_exists(tag)
        ):
            raise ConcurrentModificationError(f"Tag {tag} was created concurrently")

    def _apply_once(self, version: Version, notes: str) -> ReleaseTag:
        tag = self.tag_name(version)
        paths = self.store.tracked_paths()
        base = self.repo.head_sha()
        tag_created = False
        written = False
        try:
            self.store.write(version)
            written = True
            self.repo.add(paths)
            commit = self.repo.commit(
                self.config.git.commit_message.format(version=version), paths
            )
            annotation = self.config.git.tag_message.format(version=version)
            if notes:
                annotation = f"{annotation}\n\n{notes}"
            self.repo.create_tag(tag, annotation)
            tag_created = True
            if self.config.git.push:
                self.repo.push(self.config.trunk_branch, tag)
        except Exception:
            self._rollback(base, tag if tag_created else None, written)
            raise

        log.info("tag.created", tag=tag, commit=commit[:7])
        return ReleaseTag(
            version=version,
            name=tag,
            commit=commit,
            annotation=annotation,
            created_at=utcnow(),
        )

    def _rollback(self, base: str, tag: str | None, written: bool) -> None:
        # Only the version files are touched; other working tree changes survive.
        log.warning("tag.rollback", base=base[:7], tag=tag)
        if tag is not None:
            self.repo.delete_tag(tag)
        self.repo.reset_soft(base)
        if written:
            self.repo.unstage(self.store.tracked_paths(), base)
            self.store.restore()
