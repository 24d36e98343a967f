from pathlib import Path
from pydantic_settings import BaseSettings
from typing import List, Optional

# Resolve to repo root .env (autobuild/config.py -> ../.env)
_ENV_FILE = Path(__file__).resolve().parents[1] / ".env"


class Settings(BaseSettings):
    """Autobuild proxy + dashboard configuration"""

    # Service
    SERVICE_NAME: str = "autobuild-proxy"
    SERVICE_VERSION: str = "1.0.0"
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # GitHub
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_OWNER: str = "tomas95-lab"
    GITHUB_REPO: str = "autobuild_test"
    WORKFLOW_FILE: str = "autobuild-v2.yml"
    WORKFLOW_REF: str = "main"
    HTTP_TIMEOUT_SEC: float = 30.0

    # Run monitor
    DISPATCH_SETTLE_SEC: float = 3.0
    POLL_INTERVAL_SEC: float = 5.0

    # Archive repackaging (DEFLATE)
    ZIP_COMPRESSION_LEVEL: int = 6
    ASSET_EXTENSION: str = ".zip"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_METHODS: List[str] = ["GET", "OPTIONS", "PATCH", "DELETE", "POST", "PUT"]
    CORS_ALLOW_HEADERS: List[str] = [
        "X-CSRF-Token",
        "X-Requested-With",
        "Accept",
        "Accept-Version",
        "Content-Length",
        "Content-MD5",
        "Content-Type",
        "Date",
        "X-Api-Version",
        "Authorization",
    ]

    # Dashboard -> proxy
    LOCAL_API_URL: str = "http://localhost:3000/api"
    PRODUCTION_API_PATH: str = "/api"
    LOCAL_HOSTNAMES: List[str] = ["localhost"]

    # Credential store (plain JSON file, browser-localStorage equivalent)
    CREDENTIAL_STORE_PATH: str = "~/.autobuild/credentials.json"
    TOKEN_KEY: str = "github_token"

    class Config:
        env_file = str(_ENV_FILE)
        extra = "ignore"


def resolve_api_base(hostname: str, cfg: Optional[Settings] = None) -> str:
    """Pick the proxy base: local dev address on localhost, relative path otherwise."""
    cfg = cfg or settings
    if hostname in cfg.LOCAL_HOSTNAMES:
        return cfg.LOCAL_API_URL
    return cfg.PRODUCTION_API_PATH


settings = Settings()
