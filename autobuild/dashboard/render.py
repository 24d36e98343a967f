"""Plain-text rendering of run status and results for the dashboard."""

from typing import Optional

from autobuild.github.schemas import RunStatus, WorkflowRun
from autobuild.runs.monitor import RunOutcome

STATUS_ICONS = {
    RunStatus.QUEUED: "[queued]",
    RunStatus.PENDING: "[pending]",
    RunStatus.IN_PROGRESS: "[running]",
    RunStatus.COMPLETED: "[done]",
}

_SIZE_UNITS = ["Bytes", "KB", "MB", "GB"]


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    exponent = 0
    scaled = float(size)
    while scaled >= 1024 and exponent < len(_SIZE_UNITS) - 1:
        scaled /= 1024
        exponent += 1
    value = round(scaled, 2)
    if value == int(value):
        value = int(value)
    return f"{value} {_SIZE_UNITS[exponent]}"


def render_status(run: Optional[WorkflowRun]) -> str:
    if run is None:
        return "No workflow run"
    icon = STATUS_ICONS.get(run.status, f"[{run.status}]")
    line = f"{icon} Run #{run.id}: {run.status.replace('_', ' ')}"
    if run.conclusion:
        line += f" ({run.conclusion})"
    if run.html_url:
        line += f" - {run.html_url}"
    return line


def render_outcome(outcome: Optional[RunOutcome]) -> str:
    """One rendering for every terminal state: success, failure, listing error, no artifacts."""
    if outcome is None:
        return "Monitoring stopped before the run completed"

    run = outcome.run
    verdict = "Build succeeded" if outcome.succeeded else f"Build {run.conclusion or 'finished'}"
    lines = [verdict]
    if run.duration_minutes is not None:
        lines.append(f"Duration: {run.duration_minutes} min")

    if outcome.error is not None:
        lines.append(f"Failed to load artifacts: {outcome.error}")
    elif not outcome.artifacts:
        lines.append("No artifacts were produced")
    else:
        lines.append(f"Artifacts ({len(outcome.artifacts)}):")
        for artifact in outcome.artifacts:
            expires = artifact.expires_at.strftime("%Y-%m-%d %H:%M") if artifact.expires_at else "n/a"
            lines.append(f"  - {artifact.name}  {format_bytes(artifact.size_in_bytes)}  expires {expires}")
    return "\n".join(lines)
