"""Records passed between pipeline stages."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from release_pipeline.config.models import ArtifactKind
from release_pipeline.exceptions import RunFinalizedError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from release_pipeline.core.commits import BumpDecision
    from release_pipeline.core.version import BumpType, Version


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Trigger:
    """What started a run: a commit landing on a branch."""

    branch: str
    head_commit: str
    override: BumpType | None = None


@dataclass(frozen=True, slots=True)
class TestResult:
    passed: bool
    summary: str
    duration: float = 0.0

    __test__ = False  # not a pytest class


@dataclass(frozen=True, slots=True)
class ReleaseTag:
    version: Version
    name: str
    commit: str
    annotation: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class BuildArtifact:
    """A built distribution. Publish targets only read it."""

    kind: ArtifactKind
    filename: str
    content: bytes = field(repr=False)
    checksum: str

    @classmethod
    def from_bytes(cls, kind: ArtifactKind, filename: str, content: bytes) -> BuildArtifact:
        return cls(
            kind=kind,
            filename=filename,
            content=content,
            checksum=hashlib.sha256(content).hexdigest(),
        )

    @property
    def size(self) -> int:
        return len(self.content)


class PublishStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class PublishResult:
    target: str
    status: PublishStatus
    detail: str = ""
    mandatory: bool = False
    attempts: int = 0

    @property
    def blocks_release(self) -> bool:
        """A mandatory target that failed makes the whole run fail."""
        return self.mandatory and self.status == PublishStatus.FAILURE


class RunState(StrEnum):
    IDLE = "idle"
    VERIFYING = "verifying"
    CLASSIFYING = "classifying"
    TAGGING = "tagging"
    BUILDING = "building"
    PUBLISHING = "publishing"
    NOTIFYING = "notifying"
    TERMINAL = "terminal"


class RunStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"
    NOOP = "noop"


@dataclass
class PipelineRun:
    """Audit record for one pipeline run.

    Mutable while the run progresses; any assignment after :meth:`finish`
    raises :class:`RunFinalizedError`.
    """

    trigger: Trigger
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: RunState = RunState.IDLE
    previous_version: Version | None = None
    decision: BumpDecision | None = None
    tag: ReleaseTag | None = None
    artifacts: tuple[BuildArtifact, ...] = ()
    results: tuple[PublishResult, ...] = ()
    status: RunStatus | None = None
    halted_stage: RunState | None = None
    error: str | None = None
    stage_timings: Mapping[str, float] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    _finalized: bool = field(default=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_finalized", False):
            raise RunFinalizedError(f"Run {self.run_id} is terminal and cannot be modified")
        super().__setattr__(name, value)

    @property
    def is_terminal(self) -> bool:
        return self._finalized

    def record_timing(self, stage: RunState, seconds: float) -> None:
        timings = dict(self.stage_timings)
        timings[stage.value] = timings.get(stage.value, 0.0) + round(seconds, 4)
        self.stage_timings = timings

    def finish(self, status: RunStatus) -> None:
        self.status = status
        self.state = RunState.TERMINAL
        self.finished_at = utcnow()
        self.stage_timings = MappingProxyType(dict(self.stage_timings))
        self._finalized = True

    def report(self) -> RunReport:
        return RunReport.from_run(self)


@dataclass(frozen=True, slots=True)
class RunReport:
    """Final output of a run, shaped for notification sinks."""

    run_id: str
    status: RunStatus
    version: str | None
    previous_version: str | None
    bump: str | None
    tag: str | None
    tag_commit: str | None
    halted_stage: str | None
    error: str | None
    stage_timings: dict[str, float]
    results: tuple[PublishResult, ...]
    artifacts: tuple[dict[str, Any], ...]

    @classmethod
    def from_run(cls, run: PipelineRun) -> RunReport:
        return cls(
            run_id=run.run_id,
            status=run.status or RunStatus.FAILED,
            version=str(run.tag.version) if run.tag else None,
            previous_version=str(run.previous_version) if run.previous_version else None,
            bump=run.decision.kind.value if run.decision else None,
            tag=run.tag.name if run.tag else None,
            tag_commit=run.tag.commit if run.tag else None,
            halted_stage=run.halted_stage.value if run.halted_stage else None,
            error=run.error,
            stage_timings=dict(run.stage_timings),
            results=run.results,
            artifacts=tuple(
                {"filename": a.filename, "kind": a.kind.value, "size": a.size, "sha256": a.checksum}
                for a in run.artifacts
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "version": self.version,
            "previous_version": self.previous_version,
            "bump": self.bump,
            "tag": self.tag,
            "tag_commit": self.tag_commit,
            "halted_stage": self.halted_stage,
            "error": self.error,
            "stage_timings": self.stage_timings,
            "results": [
                {
                    "target": r.target,
                    "status": r.status.value,
                    "mandatory": r.mandatory,
                    "attempts": r.attempts,
                    "detail": r.detail,
                }
                for r in self.results
            ],
            "artifacts": list(self.artifacts),
        }
