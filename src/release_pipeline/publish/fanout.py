"""Concurrent publishing to all configured targets."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import structlog

from release_pipeline.config.models import TargetKind
from release_pipeline.pipeline.models import PublishResult, PublishStatus
from release_pipeline.publish.object_storage import ObjectStorageTarget
from release_pipeline.publish.release_store import ReleaseStoreTarget
from release_pipeline.publish.repository import ArtifactRepositoryTarget

if TYPE_CHECKING:
    import threading
    from collections.abc import Mapping, Sequence

    import httpx

    from release_pipeline.config.models import ReleasePipelineConfig
    from release_pipeline.pipeline.models import BuildArtifact, ReleaseTag
    from release_pipeline.publish.base import PublishTarget

log = structlog.get_logger(__name__)

TARGET_TYPES: dict[TargetKind, type[PublishTarget]] = {
    TargetKind.RELEASE_STORE: ReleaseStoreTarget,
    TargetKind.ARTIFACT_REPOSITORY: ArtifactRepositoryTarget,
    TargetKind.OBJECT_STORAGE: ObjectStorageTarget,
}


def build_targets(
    config: ReleasePipelineConfig,
    *,
    transport: httpx.BaseTransport | None = None,
    env: Mapping[str, str] | None = None,
) -> list[PublishTarget]:
    """Instantiate targets in configuration order."""
    return [
        TARGET_TYPES[target.kind](name, target, transport=transport, env=env)
        for name, target in config.targets.items()
    ]


def _run_target(
    target: PublishTarget,
    tag: ReleaseTag,
    artifacts: Sequence[BuildArtifact],
    abort: threading.Event | None,
) -> PublishResult:
    if abort is not None and abort.is_set():
        return PublishResult(
            target=target.name,
            status=PublishStatus.SKIPPED,
            detail="aborted before start",
            mandatory=target.mandatory,
        )
    return target.publish(tag, artifacts, abort)


def publish_all(
    targets: Sequence[PublishTarget],
    tag: ReleaseTag,
    artifacts: Sequence[BuildArtifact],
    abort: threading.Event | None = None,
) -> tuple[PublishResult, ...]:
    """Publish to every target concurrently and wait for all of them.

    One target's failure never affects another. Results come back in the
    order of ``targets``.
    """
    if not targets:
        return ()

    with ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="publish") as pool:
        futures = [pool.submit(_run_target, t, tag, artifacts, abort) for t in targets]

    results = []
    for target, future in zip(targets, futures, strict=True):
        exc = future.exception()
        if exc is not None:
            log.error("publish.crashed", target=target.name, error=repr(exc))
            results.append(
                PublishResult(
                    target=target.name,
                    status=PublishStatus.FAILURE,
                    detail=f"unexpected error: {exc!r}",
                    mandatory=target.mandatory,
                )
            )
        else:
            results.append(future.result())
    return tuple(results)
