"""Release pipeline stages and the records passed between them.

The orchestrator lives in :mod:`release_pipeline.pipeline.orchestrator`.
"""

from __future__ import annotations

from release_pipeline.pipeline.models import (
    BuildArtifact,
    PipelineRun,
    PublishResult,
    PublishStatus,
    ReleaseTag,
    RunReport,
    RunState,
    RunStatus,
    TestResult,
    Trigger,
)

__all__ = [
    "BuildArtifact",
    "PipelineRun",
    "PublishResult",
    "PublishStatus",
    "ReleaseTag",
    "RunReport",
    "RunState",
    "RunStatus",
    "TestResult",
    "Trigger",
]
