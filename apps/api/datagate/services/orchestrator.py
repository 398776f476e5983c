"""Analyze/clean orchestration: ownership, transition, audit, delegation."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from datagate.adapters.worker import DelegationClient, WorkerCancelledError, WorkerError, WorkerResponseError
from datagate.adapters.worker.base import AnalysisOutcome, CleaningOutcome
from datagate.core.logging_safety import safe_log_identifier
from datagate.domain.results import (
    AnalysisBody,
    CleaningBody,
    ResultEnvelope,
    summarize_analysis,
    summarize_cleaning,
)
from datagate.errors import ApiError
from datagate.repositories.audit import AuditEventType, AuditTrail
from datagate.repositories.memory import InMemoryStore, JobRecord
from datagate.schemas.auth import AuthPrincipal
from datagate.schemas.job import CleanJobRequest, DelegationAccepted, JobEvent, JobMode
from datagate.services.ownership import OwnershipGuard
from datagate.services.supervisor import DelegationSupervisor, Operation

logger = logging.getLogger(__name__)

_FAILED_EVENT: dict[Operation, AuditEventType] = {
    "analysis": AuditEventType.ANALYSIS_FAILED,
    "cleaning": AuditEventType.CLEANING_FAILED,
}


class Orchestrator:
    """Wires a client request to its background delegation.

    The request path checks ownership, moves the job forward and records the
    ``*_ENQUEUED`` event synchronously, then hands the worker call to the
    supervisor and returns. The background task owns everything after that:
    ``*_STARTED``, the worker call, result upsert, the settling transition and
    the terminal audit events, in that order.
    """

    def __init__(
        self,
        *,
        store: InMemoryStore,
        audit: AuditTrail,
        client: DelegationClient,
        supervisor: DelegationSupervisor,
    ) -> None:
        self._store = store
        self._audit = audit
        self._client = client
        self._supervisor = supervisor
        self._guard = OwnershipGuard(store)

    def start_analysis(self, *, principal: AuthPrincipal, job_id: str) -> DelegationAccepted:
        record = self._guard.require_accessible(job_id=job_id, principal=principal)
        self._supervisor.ensure_idle(record.id, "analysis")

        self._store.transition_job_status_with_audit(
            job=record,
            event=JobEvent.ANALYSIS_DELEGATED,
            write_audit=lambda: self._audit.append(
                record.id,
                AuditEventType.ANALYSIS_ENQUEUED,
                {"mode": record.mode.value, "requested_by": principal.user_id},
            ),
        )
        self._supervisor.spawn(
            record.id,
            "analysis",
            self._run_analysis(job_id=record.id, source_path=record.source_path, mode=record.mode),
        )

        logger.info(
            "analysis.enqueued job_id=%s mode=%s status=%s",
            safe_log_identifier(record.id, prefix="jid"),
            record.mode,
            record.status,
        )
        return DelegationAccepted(job_id=record.id, status=record.status, message="analysis started")

    def start_cleaning(
        self,
        *,
        principal: AuthPrincipal,
        job_id: str,
        request: CleanJobRequest,
    ) -> DelegationAccepted:
        record = self._guard.require_accessible(job_id=job_id, principal=principal)
        self._supervisor.ensure_idle(record.id, "cleaning")

        self._store.transition_job_status_with_audit(
            job=record,
            event=JobEvent.CLEANING_DELEGATED,
            write_audit=lambda: self._audit.append(
                record.id,
                AuditEventType.CLEANING_ENQUEUED,
                {"mode": request.mode, "requested_by": principal.user_id},
            ),
        )
        self._supervisor.spawn(
            record.id,
            "cleaning",
            self._run_cleaning(
                job_id=record.id,
                source_path=record.source_path,
                dataset_mode=record.mode,
                cleaning_mode=request.mode,
                rules=request.rules,
            ),
        )

        logger.info(
            "cleaning.enqueued job_id=%s cleaning_mode=%s status=%s",
            safe_log_identifier(record.id, prefix="jid"),
            request.mode,
            record.status,
        )
        return DelegationAccepted(job_id=record.id, status=record.status, message="cleaning started")

    async def _run_analysis(self, *, job_id: str, source_path: str, mode: JobMode) -> None:
        try:
            await self._record(job_id, AuditEventType.ANALYSIS_STARTED, {"mode": mode.value})
            outcome = await self._client.analyze(job_id=job_id, file_path=source_path, mode=mode.value)
            body = self._analysis_body(outcome)
        except WorkerError as exc:
            await self._settle_failure(job_id=job_id, operation="analysis", exc=exc)
            raise
        except asyncio.CancelledError:
            await self._settle_failure(
                job_id=job_id,
                operation="analysis",
                exc=WorkerCancelledError("Analysis delegation was cancelled"),
            )
            raise

        job = self._live_job(job_id, "analysis")
        if job is None:
            return

        summary = summarize_analysis(body)
        self._store.upsert_analysis_result(
            job_id=job_id,
            envelope=ResultEnvelope.wrap("analysis", body),
            summary=summary,
        )
        self._store.transition_job_status(job=job, event=JobEvent.WORKER_SUCCEEDED)
        await self._record(
            job_id,
            AuditEventType.ANALYSIS_COMPLETED,
            {"analysis_type": summary.analysis_type, "duration_ms": summary.duration_ms},
        )

    async def _run_cleaning(
        self,
        *,
        job_id: str,
        source_path: str,
        dataset_mode: JobMode,
        cleaning_mode: str,
        rules: dict[str, Any],
    ) -> None:
        try:
            await self._record(job_id, AuditEventType.CLEANING_STARTED, {"mode": cleaning_mode})
            outcome = await self._client.clean(
                job_id=job_id,
                file_path=source_path,
                mode=cleaning_mode,
                rules=rules,
                options={"dataset_mode": dataset_mode.value},
            )
            body = self._cleaning_body(outcome, requested_mode=cleaning_mode)
        except WorkerError as exc:
            await self._settle_failure(job_id=job_id, operation="cleaning", exc=exc)
            raise
        except asyncio.CancelledError:
            await self._settle_failure(
                job_id=job_id,
                operation="cleaning",
                exc=WorkerCancelledError("Cleaning delegation was cancelled"),
            )
            raise

        job = self._live_job(job_id, "cleaning")
        if job is None:
            return

        summary = summarize_cleaning(body)
        self._store.upsert_cleaning_result(
            job_id=job_id,
            envelope=ResultEnvelope.wrap("cleaning", body),
            summary=summary,
        )
        self._store.set_cleaned_path(job=job, cleaned_path=body.cleaned_file_path)
        self._store.transition_job_status(job=job, event=JobEvent.WORKER_SUCCEEDED)

        for rule in body.rules_applied:
            payload = rule if isinstance(rule, dict) else {"rule": rule}
            await self._record(job_id, AuditEventType.RULE_APPLIED, payload)
        await self._record(
            job_id,
            AuditEventType.CLEANING_COMPLETED,
            {
                "cleaned_file_path": body.cleaned_file_path,
                "rows_removed": summary.rows_removed,
                "rules_applied": summary.rules_applied,
            },
        )

    async def _settle_failure(self, *, job_id: str, operation: Operation, exc: WorkerError) -> None:
        """Move the job to its failure/fallback state and record why."""
        safe_job_id = safe_log_identifier(job_id, prefix="jid")
        logger.warning(
            "%s.worker_failed job_id=%s failure_kind=%s reason=%s",
            operation,
            safe_job_id,
            exc.kind,
            exc,
        )

        job = self._live_job(job_id, operation)
        if job is None:
            return
        try:
            self._store.transition_job_status(job=job, event=JobEvent.WORKER_FAILED)
        except ApiError as transition_exc:
            # Last write wins: another writer already moved the job elsewhere.
            logger.warning(
                "%s.settle_rejected job_id=%s code=%s current_status=%s",
                operation,
                safe_job_id,
                transition_exc.payload.code,
                job.status,
            )

        payload: dict[str, Any] = {"phase": operation, "failure_kind": exc.kind, "error": str(exc)}
        status_code = getattr(exc, "status_code", None)
        if status_code is not None:
            payload["status_code"] = status_code
        await self._record(job_id, _FAILED_EVENT[operation], payload)

    async def _record(self, job_id: str, event_type: AuditEventType, payload: dict[str, Any]) -> bool:
        # Blocking database write; runs in a worker thread.
        return await asyncio.to_thread(self._audit.append_detached, job_id, event_type, payload)

    def _live_job(self, job_id: str, operation: Operation) -> JobRecord | None:
        job = self._store.get_job(job_id)
        if job is None:
            logger.warning(
                "%s.job_vanished job_id=%s",
                operation,
                safe_log_identifier(job_id, prefix="jid"),
            )
        return job

    @staticmethod
    def _analysis_body(outcome: AnalysisOutcome) -> AnalysisBody:
        try:
            return AnalysisBody.model_validate(outcome.result)
        except PydanticValidationError as exc:
            raise WorkerResponseError("Worker analysis result has an unexpected shape") from exc

    @staticmethod
    def _cleaning_body(outcome: CleaningOutcome, *, requested_mode: str) -> CleaningBody:
        mode = outcome.mode if outcome.mode in ("auto", "manual") else requested_mode
        try:
            return CleaningBody(
                mode=mode,
                cleaned_file_path=outcome.cleaned_file_path,
                rules_applied=outcome.rules_applied,
                summary=outcome.summary,
            )
        except PydanticValidationError as exc:
            raise WorkerResponseError("Worker cleaning result has an unexpected shape") from exc
