from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class RunStatus:
    QUEUED = "queued"
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Release(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    tag_name: str
    name: Optional[str] = None
    html_url: str
    upload_url: str
    draft: bool = False
    prerelease: bool = True


class ReleaseAsset(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    content_type: Optional[str] = None
    size: int = 0
    browser_download_url: str


class WorkflowRun(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: Optional[str] = None
    status: str
    conclusion: Optional[str] = None
    html_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.created_at is None or self.updated_at is None:
            return None
        return int((self.updated_at - self.created_at).total_seconds() // 60)


class WorkflowRunsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_count: int = 0
    workflow_runs: List[WorkflowRun] = []


class Artifact(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    size_in_bytes: int
    expired: bool = False
    expires_at: Optional[datetime] = None
    archive_download_url: Optional[str] = None


class ArtifactsResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    total_count: int = 0
    artifacts: List[Artifact] = []
