"""Processing worker adapters."""

from .base import (
    AnalysisOutcome,
    CleaningOutcome,
    WorkerCancelledError,
    WorkerError,
    WorkerLogicalError,
    WorkerResponseError,
    WorkerTimeoutError,
    WorkerTransportError,
)
from .http_client import DelegationClient

__all__ = [
    "AnalysisOutcome",
    "CleaningOutcome",
    "DelegationClient",
    "WorkerCancelledError",
    "WorkerError",
    "WorkerLogicalError",
    "WorkerResponseError",
    "WorkerTimeoutError",
    "WorkerTransportError",
]
