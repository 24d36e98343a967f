"""Shared test fixtures."""

import io
import json
import re
import zipfile
from typing import List, Optional, Sequence, Tuple

import httpx
import pytest

from autobuild.config import Settings

OWNER = "octo"
REPO = "autobuild_test"
ZIP_DATE = (2024, 1, 2, 3, 4, 6)


def build_zip(entries: Sequence[Tuple[str, Optional[bytes]]], compression=zipfile.ZIP_STORED) -> bytes:
    """Build a ZIP in memory. A ``None`` content marks a directory record."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        for name, content in entries:
            info = zipfile.ZipInfo(name, date_time=ZIP_DATE)
            if content is None:
                info.external_attr = (0o40755 << 16) | 0x10
                zf.writestr(info, b"")
            else:
                info.external_attr = 0o644 << 16
                zf.writestr(info, content)
    return buffer.getvalue()


class GitHubAPIStub:
    """In-memory stand-in for the GitHub REST endpoints the pipeline calls."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.release_status = 201
        self.release_error = {"message": "Bad credentials"}
        self.upload_status = 201
        self.upload_error = "asset name already exists"
        self.dispatch_status = 204
        self.runs_status = 200
        self.latest_runs = [{"id": 77, "status": "queued", "conclusion": None}]
        # Each GET /actions/runs/<id> consumes one entry; the last one repeats.
        self.run_sequence: List[object] = [("completed", "success")]
        self.artifacts_status = 200
        self.artifacts = [
            {
                "id": 5,
                "name": "firmware",
                "size_in_bytes": 2048,
                "expired": False,
                "expires_at": "2026-11-01T10:00:00Z",
                "archive_download_url": "https://api.github.com/repos/octo/autobuild_test/actions/artifacts/5/zip",
            }
        ]
        self.artifact_zip = b"PK-artifact"

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, pattern: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and re.search(pattern, r.url.path)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path.endswith("/releases"):
            if self.release_status >= 400:
                return httpx.Response(self.release_status, json=self.release_error)
            tag = json.loads(request.content)["tag_name"]
            return httpx.Response(
                self.release_status,
                json={
                    "id": 1,
                    "tag_name": tag,
                    "name": f"Task: {tag}",
                    "html_url": f"https://github.com/{OWNER}/{REPO}/releases/tag/{tag}",
                    "upload_url": f"https://uploads.github.com/repos/{OWNER}/{REPO}/releases/1/assets{{?name,label}}",
                    "draft": False,
                    "prerelease": True,
                },
            )

        if request.method == "POST" and path.endswith("/releases/1/assets"):
            if self.upload_status >= 400:
                return httpx.Response(self.upload_status, text=self.upload_error)
            name = request.url.params["name"]
            return httpx.Response(
                self.upload_status,
                json={
                    "id": 9,
                    "name": name,
                    "content_type": "application/zip",
                    "size": len(request.content),
                    "browser_download_url": f"https://github.com/{OWNER}/{REPO}/releases/download/t/{name}",
                },
            )

        if request.method == "POST" and path.endswith("/dispatches"):
            if self.dispatch_status >= 400:
                return httpx.Response(self.dispatch_status, json={"message": "Workflow does not have 'workflow_dispatch' trigger"})
            return httpx.Response(self.dispatch_status)

        if request.method == "GET" and re.search(r"/actions/workflows/[^/]+/runs$", path):
            if self.runs_status >= 400:
                return httpx.Response(self.runs_status, json={"message": "Not Found"})
            return httpx.Response(
                200,
                json={"total_count": len(self.latest_runs), "workflow_runs": self.latest_runs},
            )

        match = re.search(r"/actions/runs/(\d+)/artifacts$", path)
        if request.method == "GET" and match:
            if self.artifacts_status >= 400:
                return httpx.Response(self.artifacts_status, json={"message": "Server Error"})
            return httpx.Response(
                200,
                json={"total_count": len(self.artifacts), "artifacts": self.artifacts},
            )

        match = re.search(r"/actions/runs/(\d+)$", path)
        if request.method == "GET" and match:
            step = self.run_sequence.pop(0) if len(self.run_sequence) > 1 else self.run_sequence[0]
            if isinstance(step, int):
                return httpx.Response(step, json={"message": "Server Error"})
            status, conclusion = step
            return httpx.Response(
                200,
                json={
                    "id": int(match.group(1)),
                    "name": "autobuild",
                    "status": status,
                    "conclusion": conclusion,
                    "html_url": f"https://github.com/{OWNER}/{REPO}/actions/runs/{match.group(1)}",
                    "created_at": "2026-10-18T10:00:00Z",
                    "updated_at": "2026-10-18T10:07:30Z",
                },
            )

        if request.method == "GET" and re.search(r"/actions/artifacts/\d+/zip$", path):
            return httpx.Response(200, content=self.artifact_zip)

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture()
def make_zip():
    return build_zip


@pytest.fixture()
def github_api():
    return GitHubAPIStub()


@pytest.fixture()
def fast_settings(tmp_path):
    """Settings with no settling delay or poll interval and a throwaway credential file."""
    return Settings(
        GITHUB_OWNER=OWNER,
        GITHUB_REPO=REPO,
        DISPATCH_SETTLE_SEC=0,
        POLL_INTERVAL_SEC=0,
        CREDENTIAL_STORE_PATH=str(tmp_path / "credentials.json"),
    )
