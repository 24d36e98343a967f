"""Tests for the POST /upload proxy endpoint."""

import base64

import pytest
from fastapi.testclient import TestClient

from autobuild.common.exceptions import ReleaseCreationError
from autobuild.main import create_app
from autobuild.releases.service import PublishResult, ReleasePublisher

NOW_MS = 1760781600123


class FakePublisher:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def publish(self, archive, task_name, token, repo):
        self.calls.append((archive, task_name, token, repo))
        if self.error:
            raise self.error
        return PublishResult(
            release_tag=f"task-{task_name}-{NOW_MS}",
            release_url="https://github.com/octo/r/releases/tag/x",
            asset_url="https://github.com/octo/r/releases/download/x/t.zip",
        )


def upload_body(**overrides):
    body = {
        "file": base64.b64encode(b"PK\x05\x06" + b"\x00" * 18).decode(),
        "taskName": "build42",
        "token": "ghp_x",
        "owner": "octo",
        "repo": "r",
    }
    body.update(overrides)
    return body


@pytest.fixture()
def publisher():
    return FakePublisher()


@pytest.fixture()
def client(publisher):
    with TestClient(create_app(publisher=publisher)) as test_client:
        yield test_client


class TestUpload:
    def test_success(self, client, publisher):
        response = client.post("/upload", json=upload_body())

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "releaseTag": f"task-build42-{NOW_MS}",
            "releaseUrl": "https://github.com/octo/r/releases/tag/x",
            "assetUrl": "https://github.com/octo/r/releases/download/x/t.zip",
        }
        archive, task_name, token, repo = publisher.calls[0]
        assert archive == b"PK\x05\x06" + b"\x00" * 18
        assert (task_name, token, repo.owner, repo.repo) == ("build42", "ghp_x", "octo", "r")

    def test_served_under_api_prefix(self, client):
        assert client.post("/api/upload", json=upload_body()).status_code == 200

    @pytest.mark.parametrize("field", ["file", "taskName", "token", "owner", "repo"])
    def test_missing_field(self, client, publisher, field):
        body = upload_body()
        del body[field]

        response = client.post("/upload", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}
        assert publisher.calls == []

    def test_blank_field_counts_as_missing(self, client):
        assert client.post("/upload", json=upload_body(taskName="")).status_code == 400

    def test_invalid_base64(self, client, publisher):
        response = client.post("/upload", json=upload_body(file="%%% not base64 %%%"))

        assert response.status_code == 400
        assert "error" in response.json()
        assert publisher.calls == []

    def test_wrapped_base64_and_data_url_accepted(self, client, publisher):
        encoded = base64.encodebytes(b"PK\x05\x06" + b"\x00" * 60).decode()
        assert "\n" in encoded

        assert client.post("/upload", json=upload_body(file=encoded)).status_code == 200
        data_url = "data:application/zip;base64," + base64.b64encode(b"PK\x05\x06").decode()
        assert client.post("/upload", json=upload_body(file=data_url)).status_code == 200

        assert publisher.calls[0][0] == b"PK\x05\x06" + b"\x00" * 60
        assert publisher.calls[1][0] == b"PK\x05\x06"

    def test_non_json_body(self, client):
        response = client.post("/upload", content=b"file=abc", headers={"Content-Type": "text/plain"})

        assert response.status_code == 400
        assert "error" in response.json()

    def test_host_error_passed_through(self, publisher):
        publisher.error = ReleaseCreationError("Failed to create release: Bad credentials", status_code=401)

        with TestClient(create_app(publisher=publisher)) as client:
            response = client.post("/upload", json=upload_body())

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create release: Bad credentials"}


class TestMethodsAndCors:
    def test_options_short_circuits(self, client, publisher):
        response = client.options("/upload")

        assert response.status_code == 200
        assert response.content == b""
        assert publisher.calls == []

    @pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
    def test_other_methods_rejected(self, client, method):
        response = client.request(method, "/upload")

        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed"}

    def test_preflight_allows_any_origin(self, client):
        response = client.options(
            "/upload",
            headers={
                "Origin": "https://dashboard.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type, Authorization",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", "https://dashboard.example.com")
        assert response.content == b""
        assert "POST" in response.headers["access-control-allow-methods"]

    def test_preflight_outside_allow_list_still_short_circuits(self, client):
        response = client.options(
            "/upload",
            headers={
                "Origin": "https://dashboard.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "X-Not-Allowed",
            },
        )

        assert response.status_code == 200
        assert response.content == b""

    def test_simple_request_gets_cors_header(self, client):
        response = client.post("/upload", json=upload_body(), headers={"Origin": "https://any.example"})

        assert "access-control-allow-origin" in response.headers


class TestEndToEnd:
    def test_real_publisher_against_stub_host(self, github_api, make_zip):
        publisher = ReleasePublisher(transport=github_api.transport, clock=lambda: NOW_MS)
        archive = make_zip([("src\\main.c", b"int main(){}")])

        with TestClient(create_app(publisher=publisher)) as client:
            response = client.post(
                "/upload",
                json=upload_body(file=base64.b64encode(archive).decode(), repo="autobuild_test"),
            )

        assert response.status_code == 200
        assert response.json()["releaseTag"] == f"task-build42-{NOW_MS}"
        assert len(github_api.calls("POST", r"/assets$")) == 1


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"
