"""Object storage target: plain HTTP PUT per object."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, ClassVar

from release_pipeline.config.models import TargetKind
from release_pipeline.publish.base import PublishTarget, check_response

if TYPE_CHECKING:
    from collections.abc import Sequence

    import httpx

    from release_pipeline.pipeline.models import BuildArtifact, ReleaseTag


class ObjectStorageTarget(PublishTarget):
    """Stores artifacts under ``{endpoint}/{prefix}/{version}/``.

    Each object carries its sha256 in ``x-checksum-sha256``. A
    ``manifest.json`` listing the artifacts is written last, so its
    presence means the upload is complete.
    """

    kind: ClassVar[TargetKind] = TargetKind.OBJECT_STORAGE

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Authorization"] = f"Bearer {self.credentials}"
        return headers

    def object_url(self, tag: ReleaseTag, filename: str) -> str:
        parts = [(self.config.endpoint or "").rstrip("/")]
        if self.config.prefix.strip("/"):
            parts.append(self.config.prefix.strip("/"))
        parts.extend([str(tag.version), filename])
        return "/".join(parts)

    def _attempt(
        self,
        client: httpx.Client,
        tag: ReleaseTag,
        artifacts: Sequence[BuildArtifact],
    ) -> str:
        for artifact in artifacts:
            response = client.put(
                self.object_url(tag, artifact.filename),
                content=artifact.content,
                headers={
                    "Content-Type": "application/octet-stream",
                    "x-checksum-sha256": artifact.checksum,
                },
            )
            check_response(response, f"put {artifact.filename}")

        manifest = {
            "version": str(tag.version),
            "tag": tag.name,
            "commit": tag.commit,
            "artifacts": [
                {"filename": a.filename, "kind": a.kind.value, "size": a.size, "sha256": a.checksum}
                for a in artifacts
            ],
        }
        response = client.put(
            self.object_url(tag, "manifest.json"),
            content=json.dumps(manifest, indent=2).encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )
        check_response(response, "put manifest.json")
        return f"{len(artifacts)} object(s) stored at {self.object_url(tag, '')}"
