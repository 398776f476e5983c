"""Result and report API schemas."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class AnalysisResultResponse(BaseModel):
    cleaned_data: dict[str, Any] | None = None
    quality_report: dict[str, Any] | None = None


class AnalysisExportMeta(BaseModel):
    job_id: str
    file_path: str | None = None
    file_size_bytes: int | None = None
    mode: str
    analysis_type: str
    started_at: str | None = None
    completed_at: str | None = None
    duration_ms: int | float | None = None
    version: str


class DatasetSummary(BaseModel):
    rows: int = 0
    columns: int = 0


class QualityOverview(BaseModel):
    missing_rate: float | None = None
    duplicate_rate: float | None = None
    error_rate: float | None = None


class ReportLimitations(BaseModel):
    approximate_metrics: bool = False
    skipped_checks: list[str] = Field(default_factory=list)


class AnalysisExportReport(BaseModel):
    meta: AnalysisExportMeta
    dataset_summary: DatasetSummary
    quality_overview: QualityOverview
    column_analysis: dict[str, Any]
    limitations: ReportLimitations


class CleaningResultResponse(BaseModel):
    job_id: str
    mode: Literal["auto", "manual"]
    rules_applied: list[Any]
    summary: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class CleaningExportMeta(BaseModel):
    job_id: str
    file_name: str
    dataset_mode: str
    cleaning_mode: Literal["auto", "manual"]
    cleaned_file_path: str
    created_at: datetime
    updated_at: datetime
    version: str


class CleaningExportSummary(BaseModel):
    rules_applied: int
    rows_removed: int | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class CleaningExportReport(BaseModel):
    meta: CleaningExportMeta
    summary: CleaningExportSummary
    rules_applied: list[Any]
