"""
ReleasePublisher — publishes an uploaded task archive as a GitHub release asset.

Steps (each a separate failure domain, none retried):
1. Validate inputs; nothing touches the network on a missing field.
2. Create a prerelease tagged ``task-<name>-<epoch millis>``.
3. Normalize the archive's entry paths; on failure keep the original bytes.
4. Upload the bytes as ``<name>.zip`` to the release.

A failed upload leaves the release in place without an asset. It is not deleted.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from autobuild.archive.normalizer import normalize
from autobuild.common.exceptions import ArchiveFormatError, AssetUploadError, ValidationError
from autobuild.github.client import GitHubClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepoRef:
    owner: str
    repo: str

    @classmethod
    def parse(cls, value: str) -> "RepoRef":
        owner, _, repo = (value or "").partition("/")
        return cls(owner=owner.strip(), repo=repo.strip())

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}"


@dataclass(frozen=True)
class PublishResult:
    release_tag: str
    release_url: str
    asset_url: str


def generate_release_tag(task_name: str, now_ms: int) -> str:
    return f"task-{task_name}-{now_ms}"


def _epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class ReleasePublisher:
    def __init__(
        self,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        compression_level: int = 6,
        asset_extension: str = ".zip",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], int] = _epoch_millis,
        normalizer: Callable[..., bytes] = normalize,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self.compression_level = compression_level
        self.asset_extension = asset_extension
        self._transport = transport
        self._clock = clock
        self._normalizer = normalizer

    @staticmethod
    def validate(
        archive: Optional[bytes],
        task_name: Optional[str],
        token: Optional[str],
        repo: Optional[RepoRef],
    ) -> None:
        missing = []
        if not archive:
            missing.append("file")
        if not task_name:
            missing.append("taskName")
        if not token:
            missing.append("token")
        if repo is None or not repo.owner:
            missing.append("owner")
        if repo is None or not repo.repo:
            missing.append("repo")
        if missing:
            raise ValidationError(missing)

    def normalize_or_original(self, archive: bytes) -> bytes:
        """Best-effort path normalization; returns the input unchanged on failure."""
        try:
            return self._normalizer(archive, compression_level=self.compression_level)
        except ArchiveFormatError as e:
            logger.warning(f"Could not fix ZIP paths: {e}")
            return archive

    async def publish(
        self,
        archive: bytes,
        task_name: str,
        token: str,
        repo: RepoRef,
    ) -> PublishResult:
        self.validate(archive, task_name, token, repo)

        tag = generate_release_tag(task_name, self._clock())
        created_at = datetime.now(timezone.utc).isoformat()

        async with GitHubClient(
            token=token,
            owner=repo.owner,
            repo=repo.repo,
            base_url=self.api_url,
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            release = await client.create_release(
                tag=tag,
                name=f"Task: {task_name}",
                body=f"Autobuild task upload - {created_at}",
                prerelease=True,
                draft=False,
            )
            logger.info(f"Created release {tag} on {repo}")

            payload = self.normalize_or_original(archive)

            try:
                asset = await client.upload_release_asset(
                    release,
                    name=f"{task_name}{self.asset_extension}",
                    content=payload,
                )
            except AssetUploadError:
                logger.warning(f"Release {tag} left without an asset after failed upload")
                raise

        return PublishResult(
            release_tag=tag,
            release_url=release.html_url,
            asset_url=asset.browser_download_url,
        )
