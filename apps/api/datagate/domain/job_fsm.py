"""Job lifecycle transition rules."""

from datagate.errors import ApiError
from datagate.schemas.job import JobEvent, JobStatus

_TRANSITIONS: dict[tuple[JobStatus, JobEvent], JobStatus] = {
    (JobStatus.STARTING, JobEvent.ANALYSIS_DELEGATED): JobStatus.RUNNING,
    (JobStatus.RUNNING, JobEvent.WORKER_SUCCEEDED): JobStatus.COMPLETED,
    (JobStatus.RUNNING, JobEvent.WORKER_FAILED): JobStatus.FAILED,
    (JobStatus.COMPLETED, JobEvent.CLEANING_DELEGATED): JobStatus.CLEANING,
    (JobStatus.FAILED, JobEvent.CLEANING_DELEGATED): JobStatus.CLEANING,
    (JobStatus.CLEANED, JobEvent.CLEANING_DELEGATED): JobStatus.CLEANING,
    (JobStatus.CLEANING, JobEvent.WORKER_SUCCEEDED): JobStatus.CLEANED,
    # A failed cleaning never regresses an analysis that already completed.
    (JobStatus.CLEANING, JobEvent.WORKER_FAILED): JobStatus.COMPLETED,
}

STORABLE_STATUSES: frozenset[JobStatus] = frozenset(status for status in JobStatus if status is not JobStatus.UNKNOWN)


def allowed_events(status: JobStatus) -> list[JobEvent]:
    """Return deterministically ordered events accepted from a status."""
    return sorted(
        (event for (source, event) in _TRANSITIONS if source is status),
        key=lambda event: event.value,
    )


def next_status(current: JobStatus, event: JobEvent) -> JobStatus:
    """Resolve the target status for an event, rejecting edges outside the lifecycle."""
    target = _TRANSITIONS.get((current, event))
    if target is None:
        raise ApiError(
            status_code=409,
            code="FSM_TRANSITION_INVALID",
            message="Invalid status transition",
            details={
                "current_status": current,
                "attempted_event": event,
                "allowed_events": allowed_events(current),
            },
        )
    return target
