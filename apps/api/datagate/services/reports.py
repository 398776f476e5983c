"""Read side for stored worker results: views, export reports and artifacts."""

from __future__ import annotations

import logging
from typing import Any

from datagate.core.logging_safety import safe_log_identifier
from datagate.domain.results import AnalysisBody, CleaningBody, ResultEnvelope, ResultSchemaError
from datagate.errors import ApiError, NotFoundError
from datagate.repositories.memory import CleaningResultRecord, InMemoryStore
from datagate.schemas.auth import AuthPrincipal
from datagate.schemas.result import (
    AnalysisExportMeta,
    AnalysisExportReport,
    AnalysisResultResponse,
    CleaningExportMeta,
    CleaningExportReport,
    CleaningExportSummary,
    CleaningResultResponse,
    DatasetSummary,
    QualityOverview,
    ReportLimitations,
)
from datagate.services.files import FileStorage
from datagate.services.ownership import OwnershipGuard

logger = logging.getLogger(__name__)

REPORT_VERSION = "1.0"


def _as_int(value: Any) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def _as_rate(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


class ReportService:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store
        self._guard = OwnershipGuard(store)

    def analysis_result(self, *, principal: AuthPrincipal, job_id: str) -> AnalysisResultResponse:
        body = self._analysis_body(principal=principal, job_id=job_id)
        return AnalysisResultResponse(cleaned_data=body.cleaned_data, quality_report=body.quality_report)

    def analysis_export(self, *, principal: AuthPrincipal, job_id: str) -> AnalysisExportReport:
        body = self._analysis_body(principal=principal, job_id=job_id)
        meta = body.meta or {}
        quality = body.quality_report or {}
        cleaned = body.cleaned_data or {}

        column_analysis = quality.get("column_analysis")
        return AnalysisExportReport(
            meta=AnalysisExportMeta(
                job_id=job_id,
                file_path=meta.get("file_path") or None,
                file_size_bytes=meta.get("file_size_bytes") or None,
                mode=str(meta.get("mode") or "normal"),
                analysis_type=str(meta.get("analysis_type") or "in-memory"),
                started_at=meta.get("started_at") or None,
                completed_at=meta.get("completed_at") or None,
                duration_ms=meta.get("duration_ms") or None,
                version=REPORT_VERSION,
            ),
            dataset_summary=DatasetSummary(
                rows=_as_int(cleaned.get("rows")),
                columns=_as_int(cleaned.get("columns")),
            ),
            quality_overview=QualityOverview(
                missing_rate=_as_rate(quality.get("missing_rate")),
                duplicate_rate=_as_rate(quality.get("duplicate_rate")),
                error_rate=_as_rate(quality.get("outlier_rate")),
            ),
            column_analysis=column_analysis if isinstance(column_analysis, dict) else {},
            limitations=ReportLimitations(),
        )

    def cleaning_result(self, *, principal: AuthPrincipal, job_id: str) -> CleaningResultResponse:
        record, body = self._cleaning(principal=principal, job_id=job_id)
        return CleaningResultResponse(
            job_id=record.job_id,
            mode=body.mode,
            rules_applied=body.rules_applied,
            summary=body.summary,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def cleaning_export(self, *, principal: AuthPrincipal, job_id: str) -> CleaningExportReport:
        job = self._guard.require_accessible(job_id=job_id, principal=principal)
        record, body = self._cleaning(principal=principal, job_id=job_id)
        return CleaningExportReport(
            meta=CleaningExportMeta(
                job_id=job.id,
                file_name=job.file_name,
                dataset_mode=job.mode.value,
                cleaning_mode=body.mode,
                cleaned_file_path=body.cleaned_file_path,
                created_at=record.created_at,
                updated_at=record.updated_at,
                version=REPORT_VERSION,
            ),
            summary=CleaningExportSummary(
                rules_applied=record.summary.rules_applied,
                rows_removed=record.summary.rows_removed,
                details=body.summary,
            ),
            rules_applied=body.rules_applied,
        )

    def cleaned_artifact(self, *, principal: AuthPrincipal, job_id: str) -> str:
        """Path of the cleaned CSV, if one was recorded and still exists on disk."""
        job = self._guard.require_accessible(job_id=job_id, principal=principal)
        if not job.cleaned_path:
            raise NotFoundError()
        if not FileStorage.exists(job.cleaned_path):
            logger.warning(
                "cleaned.artifact_missing job_id=%s path=%s",
                safe_log_identifier(job.id, prefix="jid"),
                safe_log_identifier(job.cleaned_path, prefix="file"),
            )
            raise NotFoundError()
        return job.cleaned_path

    def _analysis_body(self, *, principal: AuthPrincipal, job_id: str) -> AnalysisBody:
        self._guard.require_accessible(job_id=job_id, principal=principal)
        record = self._store.get_analysis_result(job_id)
        if record is None:
            raise NotFoundError()
        return self._decode(record.envelope, "analysis", job_id)

    def _cleaning(self, *, principal: AuthPrincipal, job_id: str) -> tuple[CleaningResultRecord, CleaningBody]:
        self._guard.require_accessible(job_id=job_id, principal=principal)
        record = self._store.get_cleaning_result(job_id)
        if record is None:
            raise NotFoundError()
        return record, self._decode(record.envelope, "cleaning", job_id)

    @staticmethod
    def _decode(envelope: ResultEnvelope, kind: str, job_id: str) -> Any:
        try:
            return envelope.decode(kind)
        except ResultSchemaError as exc:
            logger.error(
                "result.decode_failed job_id=%s kind=%s reason=%s",
                safe_log_identifier(job_id, prefix="jid"),
                kind,
                exc,
            )
            raise ApiError(
                status_code=500,
                code="RESULT_UNREADABLE",
                message="Stored result could not be read",
            ) from exc
