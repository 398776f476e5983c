"""Job API schemas."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CLEANING = "cleaning"
    CLEANED = "cleaned"
    # Answer for missing or inaccessible jobs; never persisted.
    UNKNOWN = "unknown"


class JobMode(str, Enum):
    NORMAL = "normal"
    LARGE = "large"


class JobEvent(str, Enum):
    ANALYSIS_DELEGATED = "analysis_delegated"
    CLEANING_DELEGATED = "cleaning_delegated"
    WORKER_SUCCEEDED = "worker_succeeded"
    WORKER_FAILED = "worker_failed"


class UploadResponse(BaseModel):
    job_id: str


class JobStatusResponse(BaseModel):
    status: JobStatus


class DelegationAccepted(BaseModel):
    job_id: str
    status: JobStatus
    message: str


class CleanJobRequest(BaseModel):
    mode: Literal["auto", "manual"] = "auto"
    rules: dict[str, Any] = Field(default_factory=dict)


class JobSummary(BaseModel):
    id: str
    file_name: str
    status: JobStatus
    mode: JobMode
    created_at: datetime
    has_analysis: bool
    has_cleaning: bool


class DeleteJobsRequest(BaseModel):
    job_ids: list[str]


class DeleteJobsResponse(BaseModel):
    deleted: int
    job_ids: list[str]
