"""In-memory document store for users, jobs and worker results."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import uuid4

from datagate.domain.job_fsm import STORABLE_STATUSES, next_status
from datagate.domain.results import AnalysisSummary, CleaningSummary, ResultEnvelope
from datagate.schemas.auth import Role
from datagate.schemas.job import JobEvent, JobMode, JobStatus


@dataclass(slots=True)
class UserRecord:
    id: str
    email: str
    password_hash: str
    role: Role
    created_at: datetime


@dataclass(slots=True)
class JobRecord:
    id: str
    owner_id: str
    status: JobStatus
    mode: JobMode
    file_name: str
    source_path: str
    created_at: datetime
    updated_at: datetime
    cleaned_path: str | None = None


@dataclass(slots=True)
class AnalysisResultRecord:
    job_id: str
    envelope: ResultEnvelope
    summary: AnalysisSummary
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class CleaningResultRecord:
    job_id: str
    envelope: ResultEnvelope
    summary: CleaningSummary
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class InMemoryStore:
    """Simple, deterministic persistence layer for the gateway and tests."""

    users: dict[str, UserRecord] = field(default_factory=dict)
    jobs: dict[str, JobRecord] = field(default_factory=dict)
    analysis_results: dict[str, AnalysisResultRecord] = field(default_factory=dict)
    cleaning_results: dict[str, CleaningResultRecord] = field(default_factory=dict)
    user_write_count: int = 0
    job_write_count: int = 0
    result_write_count: int = 0

    def create_user(self, *, email: str, password_hash: str, role: Role = "user") -> UserRecord:
        user = UserRecord(
            id=str(uuid4()),
            email=email.strip().lower(),
            password_hash=password_hash,
            role=role,
            created_at=datetime.now(UTC),
        )
        self.users[user.id] = user
        self.user_write_count += 1
        return user

    def get_user(self, user_id: str) -> UserRecord | None:
        return self.users.get(user_id)

    def get_user_by_email(self, email: str) -> UserRecord | None:
        normalized = email.strip().lower()
        for user in self.users.values():
            if user.email == normalized:
                return user
        return None

    def create_job(self, *, owner_id: str, file_name: str, source_path: str, mode: JobMode) -> JobRecord:
        now = datetime.now(UTC)
        job = JobRecord(
            id=str(uuid4()),
            owner_id=owner_id,
            status=JobStatus.STARTING,
            mode=mode,
            file_name=file_name,
            source_path=source_path,
            created_at=now,
            updated_at=now,
        )
        self.jobs[job.id] = job
        self.job_write_count += 1
        return job

    def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    def list_jobs(self, *, owner_id: str | None = None) -> list[JobRecord]:
        """Return jobs newest first; ``owner_id=None`` lists every job."""
        jobs = [record for record in self.jobs.values() if owner_id is None or record.owner_id == owner_id]
        jobs.sort(key=lambda record: record.created_at, reverse=True)
        return jobs

    def transition_job_status(self, *, job: JobRecord, event: JobEvent) -> JobStatus:
        """Apply an FSM-validated status mutation and return the previous status."""
        new_status = next_status(job.status, event)
        if new_status not in STORABLE_STATUSES:
            raise ValueError(f"Status {new_status} cannot be persisted")
        previous_status = job.status
        job.status = new_status
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1
        return previous_status

    def transition_job_status_with_audit(
        self,
        *,
        job: JobRecord,
        event: JobEvent,
        write_audit: Callable[[], object],
    ) -> None:
        """Apply a transition together with its audit write; undo the transition if the write fails."""
        previous_status = job.status
        previous_updated_at = job.updated_at
        previous_job_write_count = self.job_write_count

        self.transition_job_status(job=job, event=event)
        try:
            write_audit()
        except Exception:
            job.status = previous_status
            job.updated_at = previous_updated_at
            self.job_write_count = previous_job_write_count
            raise

    def set_cleaned_path(self, *, job: JobRecord, cleaned_path: str) -> None:
        job.cleaned_path = cleaned_path
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1

    def upsert_analysis_result(
        self,
        *,
        job_id: str,
        envelope: ResultEnvelope,
        summary: AnalysisSummary,
    ) -> AnalysisResultRecord:
        now = datetime.now(UTC)
        existing = self.analysis_results.get(job_id)
        record = AnalysisResultRecord(
            job_id=job_id,
            envelope=envelope,
            summary=summary,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        self.analysis_results[job_id] = record
        self.result_write_count += 1
        return record

    def upsert_cleaning_result(
        self,
        *,
        job_id: str,
        envelope: ResultEnvelope,
        summary: CleaningSummary,
    ) -> CleaningResultRecord:
        now = datetime.now(UTC)
        existing = self.cleaning_results.get(job_id)
        record = CleaningResultRecord(
            job_id=job_id,
            envelope=envelope,
            summary=summary,
            created_at=existing.created_at if existing is not None else now,
            updated_at=now,
        )
        self.cleaning_results[job_id] = record
        self.result_write_count += 1
        return record

    def get_analysis_result(self, job_id: str) -> AnalysisResultRecord | None:
        return self.analysis_results.get(job_id)

    def get_cleaning_result(self, job_id: str) -> CleaningResultRecord | None:
        return self.cleaning_results.get(job_id)

    def result_presence(self, job_ids: Iterable[str]) -> tuple[set[str], set[str]]:
        """Return the subsets of ``job_ids`` that have analysis and cleaning results."""
        wanted = set(job_ids)
        return wanted & self.analysis_results.keys(), wanted & self.cleaning_results.keys()

    def delete_job(self, job_id: str) -> JobRecord | None:
        """Remove a job with its dependent results; returns the removed job, if any."""
        job = self.jobs.pop(job_id, None)
        if job is None:
            return None
        self.analysis_results.pop(job_id, None)
        self.cleaning_results.pop(job_id, None)
        self.job_write_count += 1
        return job
