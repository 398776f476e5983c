"""Processing worker contract: wire models, outcomes and fault classes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

FailureKind = Literal["transport", "timeout", "logical", "invalid_response", "cancelled"]


class WorkerError(Exception):
    """Base class for every way a delegated worker call can fail."""

    kind: FailureKind = "transport"


class WorkerTransportError(WorkerError):
    """Worker unreachable, transport fault, or a non-2xx answer."""

    kind: FailureKind = "transport"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class WorkerTimeoutError(WorkerTransportError):
    """Wall-clock limit expired; the in-flight request was cancelled."""

    kind: FailureKind = "timeout"


class WorkerLogicalError(WorkerError):
    """Worker answered 2xx but reported ``status: "failed"``."""

    kind: FailureKind = "logical"


class WorkerResponseError(WorkerError):
    """Worker claimed success with a structurally incomplete response."""

    kind: FailureKind = "invalid_response"


class WorkerCancelledError(WorkerError):
    """Delegation task was cancelled before the worker answered."""

    kind: FailureKind = "cancelled"


class WorkerReply(BaseModel):
    """Raw worker answer; operation-specific fields are checked separately."""

    model_config = ConfigDict(extra="allow")

    status: Literal["ok", "failed"]
    job_id: str | None = None
    result: Any = None
    mode: str | None = None
    cleaned_file_path: Any = None
    rules_applied: Any = None
    summary: Any = None
    error: Any = None


@dataclass(slots=True)
class AnalysisOutcome:
    result: dict[str, Any]


@dataclass(slots=True)
class CleaningOutcome:
    cleaned_file_path: str
    rules_applied: list[Any]
    mode: str | None = None
    summary: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "AnalysisOutcome",
    "CleaningOutcome",
    "FailureKind",
    "WorkerCancelledError",
    "WorkerError",
    "WorkerLogicalError",
    "WorkerReply",
    "WorkerResponseError",
    "WorkerTimeoutError",
    "WorkerTransportError",
]
