import base64
import logging
from typing import Optional

import httpx

from autobuild.common.exceptions import ProxyUploadError
from autobuild.releases.schemas import UploadResponse

logger = logging.getLogger(__name__)


def _proxy_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and (payload.get("error") or payload.get("message")):
        return str(payload.get("error") or payload.get("message"))
    return f"Upload failed: {response.status_code} - {response.text[:200]}"


class ProxyClient:
    """Client for the upload proxy's POST /upload endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def upload(
        self,
        archive: bytes,
        task_name: str,
        token: str,
        owner: str,
        repo: str,
    ) -> UploadResponse:
        encoded = base64.b64encode(archive).decode("ascii")
        logger.info(
            f"Uploading to backend... taskName={task_name} fileSize={len(archive)} "
            f"base64Length={len(encoded)}"
        )

        try:
            response = await self._client.post(
                f"{self.base_url}/upload",
                json={
                    "file": encoded,
                    "taskName": task_name,
                    "token": token,
                    "owner": owner,
                    "repo": repo,
                },
            )
        except httpx.HTTPError as e:
            raise ProxyUploadError(f"Upload failed: {e}") from e

        logger.info(f"Backend response status: {response.status_code}")
        if not response.is_success:
            logger.error(f"Backend error: {response.text}")
            raise ProxyUploadError(
                _proxy_error(response),
                status_code=response.status_code,
                body=response.text,
            )

        result = UploadResponse.model_validate(response.json())
        logger.info(f"Upload successful: {result.releaseTag}")
        return result

    async def close(self) -> None:
        await self._client.aclose()
