"""Source-control release target (GitHub-compatible REST API)."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, ClassVar

from release_pipeline.config.models import TargetKind
from release_pipeline.publish.base import PublishTarget, check_response

if TYPE_CHECKING:
    from collections.abc import Sequence

    import httpx

    from release_pipeline.pipeline.models import BuildArtifact, ReleaseTag

_URI_TEMPLATE = re.compile(r"\{[^}]*\}$")


class ReleaseStoreTarget(PublishTarget):
    """Creates a release for the tag and attaches every artifact to it.

    ``endpoint`` is the API root (``https://api.github.com`` or an
    Enterprise ``/api/v3`` URL), ``repository`` is ``owner/name``.
    """

    kind: ClassVar[TargetKind] = TargetKind.RELEASE_STORE
    required_fields: ClassVar[tuple[str, ...]] = ("endpoint", "credentials_env", "repository")

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/vnd.github+json"
        headers["Authorization"] = f"Bearer {self.credentials}"
        return headers

    def _api(self, path: str) -> str:
        base = (self.config.endpoint or "").rstrip("/")
        return f"{base}/repos/{self.config.repository}{path}"

    def _get_or_create_release(self, client: httpx.Client, tag: ReleaseTag) -> dict[str, Any]:
        response = client.get(self._api(f"/releases/tags/{tag.name}"))
        if response.status_code == 200:
            return dict(response.json())
        if response.status_code != 404:
            check_response(response, f"look up release {tag.name}")

        title, _, body = tag.annotation.partition("\n\n")
        response = client.post(
            self._api("/releases"),
            json={
                "tag_name": tag.name,
                "name": title or tag.name,
                "body": body,
                "draft": False,
                "prerelease": False,
            },
        )
        check_response(response, f"create release {tag.name}")
        return dict(response.json())

    def _attempt(
        self,
        client: httpx.Client,
        tag: ReleaseTag,
        artifacts: Sequence[BuildArtifact],
    ) -> str:
        release = self._get_or_create_release(client, tag)
        upload_url = _URI_TEMPLATE.sub("", str(release["upload_url"]))
        existing = {asset.get("name") for asset in release.get("assets", [])}

        uploaded = 0
        for artifact in artifacts:
            if artifact.filename in existing:
                continue
            response = client.post(
                upload_url,
                params={"name": artifact.filename},
                content=artifact.content,
                headers={"Content-Type": "application/octet-stream"},
            )
            check_response(response, f"upload {artifact.filename}")
            uploaded += 1

        return f"release {tag.name}: {uploaded} asset(s) uploaded, {len(existing)} already present"
