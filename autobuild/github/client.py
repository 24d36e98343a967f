"""
GitHubClient — async client for the subset of the GitHub REST API the pipeline uses:
releases, release assets, workflow dispatch, workflow runs and run artifacts.

Every call is a single attempt; a non-success response raises the matching
RemoteHostError subclass with the host's message intact. Artifact zip downloads
are the exception: they are idempotent GETs and are retried on transport errors.
"""
import logging
from typing import Optional, Type

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from autobuild.common.exceptions import (
    ArtifactDownloadError,
    ArtifactListError,
    AssetUploadError,
    DispatchError,
    ReleaseCreationError,
    RemoteHostError,
    RunLookupError,
)
from autobuild.github.schemas import (
    Artifact,
    ArtifactsResponse,
    Release,
    ReleaseAsset,
    WorkflowRun,
    WorkflowRunsResponse,
)

logger = logging.getLogger(__name__)

GITHUB_ACCEPT = "application/vnd.github.v3+json"


def error_message(response: httpx.Response) -> str:
    """Return the host's error message: JSON ``message`` if present, else raw text."""
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return response.text


class GitHubClient:
    """HTTP client for one repository, authenticated with a single token."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.owner = owner
        self.repo = repo
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"token {token}",
                "Accept": GITHUB_ACCEPT,
            },
        )

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.owner}/{self.repo}"

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        error_cls: Type[RemoteHostError],
        error_prefix: str,
        **kwargs,
    ) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise error_cls(f"{error_prefix}: {e}") from e

    # ---- Releases ----

    async def create_release(
        self,
        tag: str,
        name: str,
        body: str,
        prerelease: bool = True,
        draft: bool = False,
    ) -> Release:
        prefix = "Failed to create release"
        response = await self._request(
            "POST",
            f"{self.repo_path}/releases",
            ReleaseCreationError,
            prefix,
            json={
                "tag_name": tag,
                "name": name,
                "body": body,
                "draft": draft,
                "prerelease": prerelease,
            },
        )
        if not response.is_success:
            raise ReleaseCreationError(
                f"{prefix}: {error_message(response)}",
                status_code=response.status_code,
                body=response.text,
            )
        return Release.model_validate(response.json())

    async def upload_release_asset(
        self,
        release: Release,
        name: str,
        content: bytes,
        content_type: str = "application/zip",
    ) -> ReleaseAsset:
        # upload_url is an RFC 6570 template: ".../assets{?name,label}"
        upload_url = release.upload_url.split("{", 1)[0]
        logger.info(f"Upload URL: {upload_url}?name={name}")
        logger.info(f"File size: {len(content)}")

        prefix = "Failed to upload asset"
        response = await self._request(
            "POST",
            upload_url,
            AssetUploadError,
            prefix,
            params={"name": name},
            content=content,
            headers={"Content-Type": content_type},
        )
        if not response.is_success:
            logger.error(f"Upload failed: {response.text}")
            raise AssetUploadError(
                f"{prefix}: {response.status_code} {response.reason_phrase} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return ReleaseAsset.model_validate(response.json())

    # ---- Workflows ----

    async def dispatch_workflow(self, workflow_file: str, ref: str, inputs: dict) -> None:
        prefix = "Failed to trigger workflow"
        response = await self._request(
            "POST",
            f"{self.repo_path}/actions/workflows/{workflow_file}/dispatches",
            DispatchError,
            prefix,
            json={"ref": ref, "inputs": inputs},
        )
        if not response.is_success:
            raise DispatchError(
                f"{prefix}: {error_message(response)}",
                status_code=response.status_code,
                body=response.text,
            )

    async def get_latest_run(self, workflow_file: str) -> WorkflowRun:
        """Most recent run of a workflow. Racy if several dispatches overlap."""
        prefix = "Failed to fetch workflow runs"
        response = await self._request(
            "GET",
            f"{self.repo_path}/actions/workflows/{workflow_file}/runs",
            RunLookupError,
            prefix,
            params={"per_page": 1},
        )
        if not response.is_success:
            raise RunLookupError(
                f"{prefix}: {error_message(response)}",
                status_code=response.status_code,
                body=response.text,
            )
        runs = WorkflowRunsResponse.model_validate(response.json())
        if not runs.workflow_runs:
            raise RunLookupError(f"{prefix}: no runs found for {workflow_file}")
        return runs.workflow_runs[0]

    async def get_run(self, run_id: int) -> WorkflowRun:
        prefix = "Failed to fetch workflow status"
        response = await self._request(
            "GET",
            f"{self.repo_path}/actions/runs/{run_id}",
            RunLookupError,
            prefix,
        )
        if not response.is_success:
            raise RunLookupError(
                f"{prefix}: {error_message(response)}",
                status_code=response.status_code,
                body=response.text,
            )
        return WorkflowRun.model_validate(response.json())

    # ---- Artifacts ----

    async def list_artifacts(self, run_id: int) -> list[Artifact]:
        prefix = "Failed to load artifacts"
        response = await self._request(
            "GET",
            f"{self.repo_path}/actions/runs/{run_id}/artifacts",
            ArtifactListError,
            prefix,
        )
        if not response.is_success:
            raise ArtifactListError(
                f"{prefix}: {error_message(response)}",
                status_code=response.status_code,
                body=response.text,
            )
        return ArtifactsResponse.model_validate(response.json()).artifacts

    async def download_artifact(self, artifact_id: int) -> bytes:
        try:
            response = await self._get_with_retry(
                f"{self.repo_path}/actions/artifacts/{artifact_id}/zip"
            )
        except httpx.HTTPError as e:
            raise ArtifactDownloadError(f"Failed to download: {e}") from e

        if not response.is_success:
            raise ArtifactDownloadError(
                f"Failed to download: {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )
        return response.content

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _get_with_retry(self, url: str) -> httpx.Response:
        return await self._client.get(url, follow_redirects=True)
