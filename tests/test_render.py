"""Tests for dashboard text rendering."""

from datetime import datetime, timezone

import pytest

from autobuild.common.exceptions import ArtifactListError
from autobuild.dashboard.render import format_bytes, render_outcome, render_status
from autobuild.github.schemas import Artifact, WorkflowRun
from autobuild.runs.monitor import RunOutcome


def completed_run(conclusion="success"):
    return WorkflowRun(
        id=77,
        status="completed",
        conclusion=conclusion,
        created_at=datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc),
        updated_at=datetime(2026, 10, 18, 10, 12, 59, tzinfo=timezone.utc),
    )


@pytest.mark.parametrize(
    "size, expected",
    [
        (0, "0 Bytes"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (1048576, "1 MB"),
        (5 * 1024 ** 3, "5 GB"),
    ],
)
def test_format_bytes(size, expected):
    assert format_bytes(size) == expected


class TestRenderStatus:
    def test_in_progress(self):
        assert render_status(WorkflowRun(id=3, status="in_progress")) == "[running] Run #3: in progress"

    def test_completed_shows_conclusion(self):
        assert "(failure)" in render_status(completed_run("failure"))

    def test_no_run(self):
        assert render_status(None) == "No workflow run"


class TestRenderOutcome:
    def test_artifacts_listed(self):
        outcome = RunOutcome(
            run=completed_run(),
            artifacts=[Artifact(id=1, name="firmware", size_in_bytes=2048)],
        )

        text = render_outcome(outcome)

        assert text.startswith("Build succeeded")
        assert "Duration: 12 min" in text
        assert "firmware  2 KB" in text

    def test_no_artifacts(self):
        text = render_outcome(RunOutcome(run=completed_run(), artifacts=[]))
        assert "No artifacts were produced" in text

    def test_listing_error_differs_from_empty(self):
        outcome = RunOutcome(run=completed_run(), error=ArtifactListError("Failed to load artifacts: boom"))

        text = render_outcome(outcome)

        assert "Failed to load artifacts" in text
        assert "No artifacts were produced" not in text

    def test_stopped_early(self):
        assert render_outcome(None).startswith("Monitoring stopped")
