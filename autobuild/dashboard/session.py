"""
DashboardSession — owns everything one dashboard session needs: the cached
credential, the proxy client, the GitHub client and the run monitor.

Create one per session and call close() on teardown. run_task() is the strict
pipeline: upload through the proxy, then dispatch, then poll to completion. A
later step never starts before the previous one succeeded.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

import httpx

from autobuild.artifacts.service import ArtifactService
from autobuild.config import Settings, resolve_api_base, settings as default_settings
from autobuild.credentials.base import CredentialStore
from autobuild.credentials.local_store import LocalCredentialStore
from autobuild.common.exceptions import AutobuildError, ValidationError
from autobuild.dashboard.proxy_client import ProxyClient
from autobuild.dashboard.render import render_outcome, render_status
from autobuild.github.client import GitHubClient
from autobuild.github.schemas import Artifact, WorkflowRun
from autobuild.runs.monitor import RunMonitor, RunOutcome

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str, str], None]


def _log_status(message: str, level: str) -> None:
    if level == "error":
        logger.error(message)
    else:
        logger.info(message)


class DashboardSession:
    def __init__(
        self,
        cfg: Optional[Settings] = None,
        store: Optional[CredentialStore] = None,
        hostname: str = "localhost",
        origin: Optional[str] = None,
        prompt_token: Optional[Callable[[], Optional[str]]] = None,
        on_status: StatusCallback = _log_status,
        on_run_update: Optional[Callable[[WorkflowRun], None]] = None,
        proxy_transport: Optional[httpx.AsyncBaseTransport] = None,
        github_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cfg = cfg or default_settings
        self.store = store or LocalCredentialStore(self.cfg.CREDENTIAL_STORE_PATH)
        self._prompt_token = prompt_token
        self._on_status = on_status
        self._on_run_update = on_run_update
        self._github_transport = github_transport

        api_base = resolve_api_base(hostname, self.cfg)
        if api_base.startswith("/"):
            api_base = f"{origin or f'http://{hostname}'}{api_base}"
        self.proxy = ProxyClient(api_base, transport=proxy_transport)

        self.token: Optional[str] = self.store.get(self.cfg.TOKEN_KEY)
        self.busy = False
        self._client: Optional[GitHubClient] = None
        self._client_token: Optional[str] = None
        self.monitor: Optional[RunMonitor] = None
        self.artifacts: Optional[ArtifactService] = None

    # ---- Credential ----

    def set_token(self, token: str) -> None:
        self.token = token
        self.store.set(self.cfg.TOKEN_KEY, token)

    def clear_token(self) -> None:
        self.token = None
        self.store.delete(self.cfg.TOKEN_KEY)

    def ensure_token(self) -> Optional[str]:
        if not self.token and self._prompt_token is not None:
            token = self._prompt_token()
            if token:
                self.set_token(token)
        return self.token

    # ---- Clients ----

    async def _get_monitor(self, token: str) -> RunMonitor:
        if self._client is not None and self._client_token == token:
            return self.monitor

        await self._close_clients()
        self._client = GitHubClient(
            token=token,
            owner=self.cfg.GITHUB_OWNER,
            repo=self.cfg.GITHUB_REPO,
            base_url=self.cfg.GITHUB_API_URL,
            timeout=self.cfg.HTTP_TIMEOUT_SEC,
            transport=self._github_transport,
        )
        self._client_token = token
        self.artifacts = ArtifactService(self._client)
        self.monitor = RunMonitor(
            client=self._client,
            artifacts=self.artifacts,
            workflow_file=self.cfg.WORKFLOW_FILE,
            ref=self.cfg.WORKFLOW_REF,
            poll_interval=self.cfg.POLL_INTERVAL_SEC,
            settle_delay=self.cfg.DISPATCH_SETTLE_SEC,
            on_update=self._handle_run_update,
        )
        return self.monitor

    def _handle_run_update(self, run: WorkflowRun) -> None:
        logger.info(render_status(run))
        if self._on_run_update:
            self._on_run_update(run)

    # ---- Pipeline ----

    @staticmethod
    def validate_task(file_name: Optional[str], archive: Optional[bytes], task_name: Optional[str]) -> str:
        if not file_name or not archive:
            raise ValidationError(["file"], "Please select a task ZIP file")
        name = (task_name or "").strip()
        if not name:
            raise ValidationError(["taskName"], "Please enter a task name")
        if not file_name.endswith(".zip"):
            raise ValidationError(["file"], "Task file must be a ZIP archive")
        return name

    async def run_task(
        self,
        file_name: str,
        archive: bytes,
        task_name: str,
        mode: str,
        keep_artifacts: bool = False,
    ) -> Optional[RunOutcome]:
        """Upload, dispatch and monitor one task. Returns the run's outcome, or
        None if monitoring was stopped before the run completed."""
        if self.busy:
            raise AutobuildError("A task is already running in this session")

        token = self.ensure_token()
        if not token:
            raise ValidationError(["token"], "A GitHub token is required")
        name = self.validate_task(file_name, archive, task_name)

        self.busy = True
        try:
            self._on_status("Step 1/3: Uploading task to GitHub...", "info")
            upload = await self.proxy.upload(
                archive=archive,
                task_name=name,
                token=token,
                owner=self.cfg.GITHUB_OWNER,
                repo=self.cfg.GITHUB_REPO,
            )

            self._on_status("Step 2/3: Triggering autobuild workflow...", "info")
            monitor = await self._get_monitor(token)
            await monitor.dispatch(mode, upload.releaseTag, keep_artifacts)

            self._on_status("Step 3/3: Monitoring execution...", "success")
            monitor.start_polling()
            outcome = await monitor.wait_for_completion()
        except AutobuildError as e:
            self._on_status(f"Error: {e}", "error")
            raise
        finally:
            self.busy = False

        self._on_status(render_outcome(outcome), "success" if outcome and outcome.succeeded else "info")
        return outcome

    def stop(self) -> None:
        """Stop following the current run."""
        if self.monitor is not None:
            self.monitor.stop_polling()

    async def download_artifact(self, artifact: Artifact, dest_dir: Union[str, Path]) -> Path:
        if self.artifacts is None:
            raise AutobuildError("No workflow run has been monitored in this session")
        self._on_status("Downloading artifact...", "info")
        try:
            path = await self.artifacts.download_artifact(artifact, dest_dir)
        except AutobuildError as e:
            self._on_status(f"Download failed: {e}", "error")
            raise
        self._on_status("Artifact downloaded successfully!", "success")
        return path

    # ---- Teardown ----

    async def _close_clients(self) -> None:
        if self.monitor is not None:
            await self.monitor.close()
        if self._client is not None:
            await self._client.close()
        self.monitor = None
        self.artifacts = None
        self._client = None
        self._client_token = None

    async def close(self) -> None:
        await self._close_clients()
        await self.proxy.close()
