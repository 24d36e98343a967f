"""
ArtifactService — enumerates and downloads the artifacts of a completed workflow run.

An empty list is a valid answer (the run produced nothing); a failed listing
raises ArtifactListError instead.
"""

import logging
from pathlib import Path
from typing import List, Union

from autobuild.github.client import GitHubClient
from autobuild.github.schemas import Artifact

logger = logging.getLogger(__name__)


class ArtifactService:
    def __init__(self, client: GitHubClient):
        self._client = client

    async def list_artifacts(self, run_id: int) -> List[Artifact]:
        artifacts = await self._client.list_artifacts(run_id)
        logger.info(f"Run {run_id} produced {len(artifacts)} artifact(s)")
        return artifacts

    async def download_artifact(self, artifact: Artifact, dest_dir: Union[str, Path]) -> Path:
        """Download an artifact's zip into dest_dir as <name>.zip."""
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)

        content = await self._client.download_artifact(artifact.id)
        path = dest / f"{artifact.name}.zip"
        path.write_bytes(content)
        logger.info(f"Downloaded artifact {artifact.name} ({len(content)} bytes) to {path}")
        return path
