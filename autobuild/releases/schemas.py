from typing import Optional

from pydantic import BaseModel, Field


class UploadRequest(BaseModel):
    """Proxy upload body. Fields are optional here so a missing one maps to a 400."""

    file: Optional[str] = Field(None, description="Task ZIP archive, base64 encoded")
    taskName: Optional[str] = None
    token: Optional[str] = None
    owner: Optional[str] = None
    repo: Optional[str] = None


class UploadResponse(BaseModel):
    success: bool = True
    releaseTag: str
    releaseUrl: str
    assetUrl: str


class ErrorResponse(BaseModel):
    error: str
