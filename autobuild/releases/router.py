import base64
import binascii
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from autobuild.common.exceptions import ValidationError
from autobuild.releases.schemas import ErrorResponse, UploadRequest, UploadResponse
from autobuild.releases.service import ReleasePublisher, RepoRef

logger = logging.getLogger(__name__)

router = APIRouter()


def get_publisher(request: Request) -> ReleasePublisher:
    publisher = getattr(request.app.state, "publisher", None)
    if publisher is None:
        raise RuntimeError("ReleasePublisher not initialized")
    return publisher


def decode_file(value: str) -> bytes:
    """Decode the base64 archive, accepting a data: URL prefix and line breaks."""
    if value.startswith("data:") and "," in value:
        value = value.split(",", 1)[1]
    return base64.b64decode("".join(value.split()), validate=True)


@router.options("/upload")
async def upload_preflight():
    return Response(status_code=status.HTTP_200_OK)


@router.api_route("/upload", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def upload_method_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_task(
    body: UploadRequest,
    publisher: ReleasePublisher = Depends(get_publisher),
):
    if not (body.file and body.taskName and body.token and body.owner and body.repo):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields",
        )

    try:
        archive = decode_file(body.file)
    except (binascii.Error, ValueError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is not valid base64",
        )

    try:
        result = await publisher.publish(
            archive=archive,
            task_name=body.taskName,
            token=body.token,
            repo=RepoRef(owner=body.owner, repo=body.repo),
        )
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Upload error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e),
        )

    return UploadResponse(
        success=True,
        releaseTag=result.release_tag,
        releaseUrl=result.release_url,
        assetUrl=result.asset_url,
    )
