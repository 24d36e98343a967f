"""
Error taxonomy for the publish / dispatch / poll pipeline.

Host-originated errors keep the host's message intact so callers can surface it verbatim.
"""

from typing import Iterable, Optional


class AutobuildError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(AutobuildError):
    def __init__(self, missing: Iterable[str], message: str = "Missing required fields"):
        self.missing = list(missing)
        super().__init__(message)


class ArchiveFormatError(AutobuildError):
    """Raised when the uploaded bytes cannot be parsed or rebuilt as a ZIP container."""


class RemoteHostError(AutobuildError):
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ReleaseCreationError(RemoteHostError):
    pass


class AssetUploadError(RemoteHostError):
    pass


class DispatchError(RemoteHostError):
    pass


class RunLookupError(RemoteHostError):
    pass


class ArtifactListError(RemoteHostError):
    pass


class ArtifactDownloadError(RemoteHostError):
    pass


class ProxyUploadError(RemoteHostError):
    """Raised by the dashboard when the upload proxy rejects or fails a publish."""
