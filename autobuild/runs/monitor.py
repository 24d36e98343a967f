"""
RunMonitor — dispatches the autobuild workflow and follows the resulting run.

States:  IDLE -> DISPATCHED -> LOCATED -> POLLING -> COMPLETED
         any state -> ERRORED

The run is located with a "most recent run of the workflow" lookup after a short
settling delay. Concurrent dispatches from other sessions can make that lookup
pick someone else's run; there is no correlation id to disambiguate.

Polling is a single asyncio task. A tick that is still in flight when the next
one is due (or when poll_once() is called directly) causes the new tick to be
skipped. A failed fetch is logged and the loop carries on; only a run whose
status is "completed" ends polling, after which artifacts are listed exactly once.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from autobuild.artifacts.service import ArtifactService
from autobuild.common.exceptions import (
    ArtifactListError,
    DispatchError,
    RemoteHostError,
    RunLookupError,
)
from autobuild.github.client import GitHubClient
from autobuild.github.schemas import Artifact, WorkflowRun

logger = logging.getLogger(__name__)


class MonitorState(str, Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    LOCATED = "located"
    POLLING = "polling"
    COMPLETED = "completed"
    ERRORED = "errored"


TERMINAL_STATES = (MonitorState.COMPLETED, MonitorState.ERRORED)


@dataclass
class RunOutcome:
    """Final result of a run. ``artifacts == []`` means none were produced;
    ``error`` set means they could not be determined."""

    run: WorkflowRun
    artifacts: Optional[List[Artifact]] = None
    error: Optional[ArtifactListError] = None

    @property
    def succeeded(self) -> bool:
        return self.run.conclusion == "success"

    @property
    def has_artifacts(self) -> bool:
        return bool(self.artifacts)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class RunMonitor:
    def __init__(
        self,
        client: GitHubClient,
        artifacts: Optional[ArtifactService] = None,
        workflow_file: str = "autobuild-v2.yml",
        ref: str = "main",
        poll_interval: float = 5.0,
        settle_delay: float = 3.0,
        on_update: Optional[Callable[[WorkflowRun], None]] = None,
        on_complete: Optional[Callable[[RunOutcome], None]] = None,
    ):
        self._client = client
        self._artifacts = artifacts or ArtifactService(client)
        self.workflow_file = workflow_file
        self.ref = ref
        self.poll_interval = poll_interval
        self.settle_delay = settle_delay
        self._on_update = on_update
        self._on_complete = on_complete

        self._state = MonitorState.IDLE
        self._current_run: Optional[WorkflowRun] = None
        self._outcome: Optional[RunOutcome] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._tick_in_flight = False
        self._artifacts_requested = False

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def current_run(self) -> Optional[WorkflowRun]:
        return self._current_run

    @property
    def outcome(self) -> Optional[RunOutcome]:
        return self._outcome

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    # ---- Dispatch ----

    async def dispatch(self, mode: str, release_tag: str, keep_artifacts: bool) -> WorkflowRun:
        """Trigger the workflow for a release tag and locate the run it created."""
        await self._cancel_poll_task()
        self._reset()

        inputs = {
            "mode": mode,
            "release_tag": release_tag,
            "keep_artifacts": "true" if keep_artifacts else "false",
        }
        try:
            await self._client.dispatch_workflow(self.workflow_file, self.ref, inputs)
        except DispatchError:
            self._state = MonitorState.ERRORED
            raise
        self._state = MonitorState.DISPATCHED
        logger.info(f"Dispatched {self.workflow_file} for {release_tag} (mode={mode})")

        await asyncio.sleep(self.settle_delay)

        try:
            run = await self._client.get_latest_run(self.workflow_file)
        except RunLookupError:
            self._state = MonitorState.ERRORED
            raise
        self._current_run = run
        self._state = MonitorState.LOCATED
        logger.info(f"Located workflow run {run.id} (status={run.status})")
        return run

    def _reset(self) -> None:
        self._state = MonitorState.IDLE
        self._current_run = None
        self._outcome = None
        self._artifacts_requested = False

    # ---- Polling ----

    def start_polling(self) -> None:
        if self._current_run is None:
            raise RuntimeError("No workflow run located. Call dispatch() first.")
        self.stop_polling()
        self._state = MonitorState.POLLING
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        try:
            while self._state not in TERMINAL_STATES:
                await self.poll_once()
                if self._state in TERMINAL_STATES:
                    return
                await asyncio.sleep(self.poll_interval)
        except Exception:
            self._state = MonitorState.ERRORED
            logger.exception("Poll loop stopped unexpectedly")
            raise

    async def poll_once(self) -> Optional[WorkflowRun]:
        """Run one poll tick. Returns the refreshed run, or None if the tick was
        skipped or the fetch failed."""
        if self._current_run is None or self._state in TERMINAL_STATES:
            return None
        if self._tick_in_flight:
            logger.debug("Poll tick already in flight, skipping")
            return None

        self._tick_in_flight = True
        try:
            try:
                run = await self._client.get_run(self._current_run.id)
            except (RemoteHostError, ValueError) as e:
                logger.error(f"Polling error: {e}")
                return None

            if run.status != self._current_run.status:
                logger.info(f"Workflow run {run.id}: {self._current_run.status} -> {run.status}")
            self._current_run = run
            if self._on_update:
                self._on_update(run)

            if run.is_completed:
                await self._complete(run)
            return run
        finally:
            self._tick_in_flight = False

    async def _complete(self, run: WorkflowRun) -> None:
        # The poll task handle stays set until the listing below returns.
        if self._artifacts_requested:
            return
        self._artifacts_requested = True
        self._state = MonitorState.COMPLETED
        logger.info(f"Workflow run {run.id} completed: {run.conclusion}")

        try:
            artifacts = await self._artifacts.list_artifacts(run.id)
        except ArtifactListError as e:
            if self._current_run is not run:
                logger.info(f"Dropping artifact listing failure for superseded run {run.id}")
                return
            logger.error(f"Artifact listing failed for run {run.id}: {e}")
            self._state = MonitorState.ERRORED
            self._outcome = RunOutcome(run=run, error=e)
        else:
            if self._current_run is not run:
                logger.info(f"Dropping artifacts of superseded run {run.id}")
                return
            self._outcome = RunOutcome(run=run, artifacts=artifacts)

        if self._on_complete:
            self._on_complete(self._outcome)

    def stop_polling(self) -> None:
        """Stop further poll ticks. Safe to call when nothing is polling.

        A run that already completed keeps its task until artifact listing is
        done; use dispatch() or close() to abandon it.
        """
        task = self._poll_task
        if self._state == MonitorState.POLLING:
            self._state = MonitorState.LOCATED
        if task is None or task.done():
            self._poll_task = None
            return
        if task is _current_task() or self._state in TERMINAL_STATES:
            return
        self._poll_task = None
        task.cancel()
        logger.info("Polling stopped")

    async def wait_for_completion(self) -> Optional[RunOutcome]:
        """Wait for the poll loop to end. Returns None if it was stopped early."""
        task = self._poll_task
        if task is not None:
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
        return self._outcome

    async def _cancel_poll_task(self) -> None:
        """Cancel the poll task, including an artifact listing still in flight,
        and wait for it to finish."""
        task, self._poll_task = self._poll_task, None
        if self._state == MonitorState.POLLING:
            self._state = MonitorState.LOCATED
        if task is None or task.done() or task is _current_task():
            return
        task.cancel()
        await asyncio.wait({task})
        logger.info("Polling stopped")

    async def close(self) -> None:
        await self._cancel_poll_task()
