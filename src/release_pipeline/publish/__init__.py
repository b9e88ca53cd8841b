"""Publish targets and concurrent fan-out."""

from __future__ import annotations

from release_pipeline.publish.base import PublishTarget
from release_pipeline.publish.fanout import TARGET_TYPES, build_targets, publish_all
from release_pipeline.publish.object_storage import ObjectStorageTarget
from release_pipeline.publish.release_store import ReleaseStoreTarget
from release_pipeline.publish.repository import ArtifactRepositoryTarget

__all__ = [
    "TARGET_TYPES",
    "ArtifactRepositoryTarget",
    "ObjectStorageTarget",
    "PublishTarget",
    "ReleaseStoreTarget",
    "build_targets",
    "publish_all",
]
