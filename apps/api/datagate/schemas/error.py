"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from datagate.schemas.job import JobEvent, JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_event: JobEvent
    allowed_events: list[JobEvent]


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID"]
    message: str
    details: TransitionErrorDetails


class InFlightErrorDetails(BaseModel):
    job_id: str
    operation: Literal["analysis", "cleaning"]


class InFlightError(BaseModel):
    code: Literal["JOB_ALREADY_RUNNING"]
    message: str
    details: InFlightErrorDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class UpstreamError(BaseModel):
    code: Literal["WORKER_UNAVAILABLE", "WORKER_ERROR"]
    message: str
    details: dict[str, Any] | None = None
