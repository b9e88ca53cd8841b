"""Exception hierarchy for release-pipeline.

Every error raised on purpose derives from ReleasePipelineError so the CLI
can report it without a traceback.
"""

from __future__ import annotations


class ReleasePipelineError(Exception):
    """Base class for all release-pipeline errors."""


# Configuration ----------------------------------------------------------------


class ConfigError(ReleasePipelineError):
    """Configuration could not be loaded."""


class ConfigNotFoundError(ConfigError):
    """No pyproject.toml was found."""


class ConfigValidationError(ConfigError):
    """Configuration is present but invalid."""


# Versions ---------------------------------------------------------------------


class InvalidVersionError(ReleasePipelineError):
    """A string is not a valid MAJOR.MINOR.PATCH version."""


class PersistenceError(ReleasePipelineError):
    """The version source is missing, malformed or was modified concurrently."""


class VersionNotFoundError(PersistenceError):
    """A version-bearing file has no recognisable version."""


# Source control ---------------------------------------------------------------


class GitError(ReleasePipelineError):
    """A git command failed."""

    def __init__(self, message: str, stderr: str | None = None) -> None:
        super().__init__(message)
        self.stderr = stderr

    def __str__(self) -> str:
        base = super().__str__()
        if self.stderr:
            return f"{base}: {self.stderr.strip()}"
        return base


class PushRejectedError(GitError):
    """The remote refused the push, usually because it moved ahead."""


# Pipeline stages --------------------------------------------------------------


class PreconditionError(ReleasePipelineError):
    """The repository is not in a state that allows releasing."""


class ConcurrentModificationError(ReleasePipelineError):
    """The remote trunk kept moving while we tried to push a release."""


class BuildError(ReleasePipelineError):
    """The test suite or the build toolchain failed."""

    def __init__(self, message: str, diagnostic: str | None = None) -> None:
        super().__init__(message)
        self.diagnostic = diagnostic


class PublishError(ReleasePipelineError):
    """Publishing to a target failed permanently."""


class TransientPublishError(PublishError):
    """Publishing failed in a way that may succeed on retry."""


class PipelineAbortedError(ReleasePipelineError):
    """The run was asked to stop before it changed anything."""


class PipelineBusyError(ReleasePipelineError):
    """Another run already holds the lock for this trunk branch."""


class RunFinalizedError(ReleasePipelineError):
    """A terminal pipeline run was modified."""
