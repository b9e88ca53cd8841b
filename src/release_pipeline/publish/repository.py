"""Artifact repository target (PyPI-compatible legacy upload API)."""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from release_pipeline.config.models import ArtifactKind, TargetKind
from release_pipeline.publish.base import PublishTarget, check_response

if TYPE_CHECKING:
    from collections.abc import Sequence

    import httpx

    from release_pipeline.pipeline.models import BuildArtifact, ReleaseTag

_FILETYPES = {
    ArtifactKind.WHEEL: ("bdist_wheel", "py3"),
    ArtifactKind.SDIST: ("sdist", "source"),
}


def distribution_name(filename: str) -> str:
    """Project name as encoded in a wheel or sdist filename."""
    stem = filename.removesuffix(".whl").removesuffix(".tar.gz").removesuffix(".zip")
    return stem.split("-", 1)[0]


class ArtifactRepositoryTarget(PublishTarget):
    """Uploads each distribution with an API token (user ``__token__``)."""

    kind: ClassVar[TargetKind] = TargetKind.ARTIFACT_REPOSITORY

    def _attempt(
        self,
        client: httpx.Client,
        tag: ReleaseTag,
        artifacts: Sequence[BuildArtifact],
    ) -> str:
        endpoint = self.config.endpoint or ""
        auth = ("__token__", self.credentials or "")
        uploaded, present = 0, 0

        for artifact in artifacts:
            filetype, pyversion = _FILETYPES[artifact.kind]
            response = client.post(
                endpoint,
                auth=auth,
                data={
                    ":action": "file_upload",
                    "protocol_version": "1",
                    "name": distribution_name(artifact.filename),
                    "version": str(tag.version),
                    "filetype": filetype,
                    "pyversion": pyversion,
                    "sha256_digest": artifact.checksum,
                },
                files={"content": (artifact.filename, artifact.content, "application/octet-stream")},
            )
            # A retry after a partial upload finds earlier files already there.
            if response.status_code in (400, 409) and "already exist" in response.text.lower():
                present += 1
                continue
            check_response(response, f"upload {artifact.filename}")
            uploaded += 1

        return f"{uploaded} file(s) uploaded, {present} already present"
