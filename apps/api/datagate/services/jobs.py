"""Job service layer: uploads, status, listing, deletion and raw data reads."""

import logging

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from datagate.adapters.worker import DelegationClient, WorkerError, WorkerTransportError
from datagate.core.logging_safety import safe_log_identifier
from datagate.errors import NotFoundError, UpstreamFailureError, UpstreamUnavailableError, ValidationError
from datagate.repositories.audit import AuditEventType, AuditTrail, AuditWriteError
from datagate.repositories.memory import InMemoryStore, JobRecord
from datagate.schemas.auth import AuthPrincipal
from datagate.schemas.job import DeleteJobsResponse, JobMode, JobStatus, JobSummary, UploadResponse
from datagate.services.files import FileStorage
from datagate.services.ownership import OwnershipGuard

logger = logging.getLogger(__name__)


class JobService:
    def __init__(
        self,
        store: InMemoryStore,
        *,
        audit: AuditTrail,
        files: FileStorage,
        client: DelegationClient,
        large_file_threshold_bytes: int,
    ) -> None:
        self._store = store
        self._audit = audit
        self._files = files
        self._client = client
        self._threshold = large_file_threshold_bytes
        self._guard = OwnershipGuard(store)

    async def create_from_upload(self, *, principal: AuthPrincipal, upload: UploadFile | None) -> UploadResponse:
        if upload is None or not upload.filename:
            raise ValidationError("No file uploaded")

        stored = await self._files.save_upload(upload)
        mode = JobMode.LARGE if stored.size_bytes > self._threshold else JobMode.NORMAL
        record = self._store.create_job(
            owner_id=principal.user_id,
            file_name=stored.original_name,
            source_path=stored.path,
            mode=mode,
        )
        try:
            await run_in_threadpool(
                self._audit.append, record.id, AuditEventType.JOB_CREATED, {"user_id": principal.user_id}
            )
            await run_in_threadpool(
                self._audit.append,
                record.id,
                AuditEventType.FILE_UPLOADED,
                {"file_name": stored.original_name, "size_bytes": stored.size_bytes, "mode": mode.value},
            )
        except AuditWriteError:
            # An upload whose audit trail cannot be written is treated as never accepted.
            self._store.delete_job(record.id)
            self._files.remove(stored.path)
            raise

        logger.info(
            "upload.accepted job_id=%s owner_id=%s mode=%s size_bytes=%s",
            safe_log_identifier(record.id, prefix="jid"),
            safe_log_identifier(principal.user_id, prefix="pid"),
            mode,
            stored.size_bytes,
        )
        return UploadResponse(job_id=record.id)

    def get_status(self, *, principal: AuthPrincipal, job_id: str) -> JobStatus:
        record = self._guard.resolve_accessible(job_id=job_id, principal=principal)
        return record.status if record is not None else JobStatus.UNKNOWN

    def list_jobs(self, *, principal: AuthPrincipal) -> list[JobSummary]:
        records = self._guard.visible_jobs(principal=principal)
        with_analysis, with_cleaning = self._store.result_presence(record.id for record in records)
        return [
            JobSummary(
                id=record.id,
                file_name=record.file_name or "unknown",
                status=record.status,
                mode=record.mode,
                created_at=record.created_at,
                has_analysis=record.id in with_analysis,
                has_cleaning=record.id in with_cleaning,
            )
            for record in records
        ]

    def delete_jobs(self, *, principal: AuthPrincipal, job_ids: list[str]) -> DeleteJobsResponse:
        if not job_ids:
            raise ValidationError("job_ids array is required")

        accessible: list[JobRecord] = []
        seen: set[str] = set()
        for job_id in job_ids:
            if job_id in seen:
                continue
            seen.add(job_id)
            record = self._guard.resolve_accessible(job_id=job_id, principal=principal)
            if record is not None:
                accessible.append(record)

        if not accessible:
            raise NotFoundError()

        deleted: list[str] = []
        for record in accessible:
            self._audit.append(record.id, AuditEventType.JOB_DELETED, {"deleted_by": principal.user_id})
            self._files.remove(record.source_path)
            self._files.remove(record.cleaned_path)
            self._store.delete_job(record.id)
            deleted.append(record.id)
            logger.info(
                "job.deleted job_id=%s deleted_by=%s",
                safe_log_identifier(record.id, prefix="jid"),
                safe_log_identifier(principal.user_id, prefix="pid"),
            )

        return DeleteJobsResponse(deleted=len(deleted), job_ids=deleted)

    async def fetch_raw(self, *, principal: AuthPrincipal, job_id: str, with_outliers: bool) -> dict:
        record = self._guard.require_accessible(job_id=job_id, principal=principal)
        if not record.source_path:
            raise NotFoundError()

        safe_job_id = safe_log_identifier(record.id, prefix="jid")
        try:
            payload = await self._client.fetch_raw(file_path=record.source_path, with_outliers=with_outliers)
        except WorkerTransportError as exc:
            logger.warning("raw.proxy_failed job_id=%s failure_kind=%s", safe_job_id, exc.kind)
            if exc.status_code is None:
                raise UpstreamUnavailableError() from exc
            raise UpstreamFailureError(details={"status_code": exc.status_code}) from exc
        except WorkerError as exc:
            logger.warning("raw.proxy_failed job_id=%s failure_kind=%s", safe_job_id, exc.kind)
            raise UpstreamFailureError() from exc

        if payload.get("error"):
            logger.info("raw.worker_not_found job_id=%s", safe_job_id)
            raise NotFoundError()
        return payload
