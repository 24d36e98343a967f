from contextlib import asynccontextmanager
from datetime import datetime
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import Headers
from starlette.exceptions import HTTPException as StarletteHTTPException

from autobuild.config import settings
from autobuild.releases import router as upload_router
from autobuild.releases.service import ReleasePublisher

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class UploadCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose preflight answer is always 200 with an empty body.

    The Access-Control-* headers are still computed by Starlette, so the browser
    enforces the allow-list instead of a 400 from the proxy.
    """

    def preflight_response(self, request_headers: Headers) -> Response:
        checked = super().preflight_response(request_headers)
        if checked.status_code != 200:
            logger.debug(f"CORS preflight outside allow-list: {checked.body.decode()}")
        headers = {
            key: value
            for key, value in checked.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=200, headers=headers)


def create_app(publisher: Optional[ReleasePublisher] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Autobuild upload proxy...")
        app.state.publisher = publisher or ReleasePublisher(
            api_url=settings.GITHUB_API_URL,
            timeout=settings.HTTP_TIMEOUT_SEC,
            compression_level=settings.ZIP_COMPRESSION_LEVEL,
            asset_extension=settings.ASSET_EXTENSION,
        )
        logger.info("Autobuild upload proxy ready")
        yield
        logger.info("Shutting down Autobuild upload proxy...")

    app = FastAPI(
        title="Autobuild Upload Proxy",
        description="Publishes task archives as GitHub release assets",
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        UploadCORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    # Errors leave the proxy as {"error": "..."} rather than FastAPI's {"detail": ...}
    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request body"})

    # Served both at the root and under the production API path
    app.include_router(upload_router.router)
    app.include_router(upload_router.router, prefix=settings.PRODUCTION_API_PATH)

    @app.get("/")
    async def root():
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
        }

    @app.get("/health")
    async def health():
        return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("autobuild.main:app", host=settings.HOST, port=settings.PORT, reload=True, log_level="info")
