"""Pydantic models for the [tool.release-pipeline] configuration table."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class CommitsConfig(_Model):
    """How commit messages map to version bumps."""

    types_major: list[str] = Field(default_factory=list)
    types_minor: list[str] = Field(default_factory=lambda: ["feat"])
    types_patch: list[str] = Field(default_factory=lambda: ["fix", "perf"])
    breaking_pattern: str = r"BREAKING[ -]CHANGE:"
    scope_regex: str | None = None
    skip_release_patterns: list[str] = Field(
        default_factory=lambda: ["[skip release]", "[release skip]", "[no release]"]
    )


class VersionConfig(_Model):
    """Where the version lives and how tags are named."""

    tag_prefix: str = "v"
    version_files: list[Path] = Field(default_factory=list)
    # Reject manual overrides that are lower than the automatic decision.
    override_floor: bool = False


class GitConfig(_Model):
    """Source control settings."""

    default_branch: str = "main"
    remote: str = "origin"
    allow_dirty: bool = False
    commit_message: str = "chore(release): {version}"
    tag_message: str = "Release {version}"
    push: bool = True

    @field_validator("commit_message", "tag_message")
    @classmethod
    def _only_version_placeholder(cls, value: str) -> str:
        try:
            value.format(version="0.0.0")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"template may only use the {{version}} placeholder: {e!r}") from e
        return value


class ArtifactKind(StrEnum):
    WHEEL = "wheel"
    SDIST = "sdist"


class BuildConfig(_Model):
    """Test gate and build toolchain commands."""

    test_command: str = "pytest -q"
    test_timeout: float = 900.0
    # Runs per gate when the test command times out.
    test_attempts: int = Field(default=2, ge=1, le=5)
    build_command: str = "uv build --out-dir {out_dir}"
    build_timeout: float = 900.0
    artifact_kinds: list[ArtifactKind] = Field(
        default_factory=lambda: [ArtifactKind.WHEEL, ArtifactKind.SDIST]
    )
    out_dir: Path = Path("dist")
    manifest_name: str = "manifest.json"

    @field_validator("artifact_kinds")
    @classmethod
    def _at_least_one_kind(cls, value: list[ArtifactKind]) -> list[ArtifactKind]:
        if not value:
            raise ValueError("at least one artifact kind is required")
        return value


class TargetKind(StrEnum):
    RELEASE_STORE = "release-store"
    ARTIFACT_REPOSITORY = "artifact-repository"
    OBJECT_STORAGE = "object-storage"


class TargetConfig(_Model):
    """One publish destination.

    Missing endpoint or credentials do not fail validation; the target
    reports itself as skipped at publish time instead.
    """

    kind: TargetKind
    endpoint: str | None = None
    credentials_env: str | None = None
    mandatory: bool = False
    max_attempts: int = Field(default=3, ge=1, le=10)
    backoff_base: float = Field(default=0.5, ge=0)
    backoff_cap: float = Field(default=8.0, ge=0)
    timeout: float = Field(default=60.0, gt=0)
    # release-store: "owner/name" of the hosted repository
    repository: str | None = None
    # object-storage: key prefix inside the bucket
    prefix: str = ""


class NotifyConfig(_Model):
    """Where the final run report goes."""

    console: bool = True
    webhook_url: str | None = None
    webhook_timeout: float = 10.0


class ReleasePipelineConfig(_Model):
    """Root configuration."""

    commits: CommitsConfig = Field(default_factory=CommitsConfig)
    version: VersionConfig = Field(default_factory=VersionConfig)
    git: GitConfig = Field(default_factory=GitConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    targets: dict[str, TargetConfig] = Field(default_factory=dict)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)
    state_dir: Path = Path(".release-pipeline")

    @model_validator(mode="after")
    def _target_names(self) -> ReleasePipelineConfig:
        for name in self.targets:
            if not name or name.strip() != name:
                raise ValueError(f"invalid target name: {name!r}")
        return self

    @property
    def effective_tag_prefix(self) -> str:
        return self.version.tag_prefix

    @property
    def trunk_branch(self) -> str:
        return self.git.default_branch
