"""Versioned result payloads stored for each job.

Worker output is kept in a small envelope ``{schema_version, kind, body}``.
Readers call :meth:`ResultEnvelope.decode`, which picks the body model from
``kind`` and fails loudly on anything it does not recognise, instead of
handing arbitrary structure to API consumers.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

RESULT_SCHEMA_VERSION = 1

ResultKind = Literal["analysis", "cleaning"]


class ResultSchemaError(Exception):
    """Raised when a stored envelope cannot be decoded into a known body."""


class AnalysisBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    cleaned_data: dict[str, Any] | None = None
    quality_report: dict[str, Any] | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class CleaningBody(BaseModel):
    mode: Literal["auto", "manual"]
    cleaned_file_path: str = Field(min_length=1)
    rules_applied: list[Any]
    summary: dict[str, Any] = Field(default_factory=dict)


class AnalysisSummary(BaseModel):
    analysis_type: str = "in-memory"
    duration_ms: int | float | None = None


class CleaningSummary(BaseModel):
    mode: Literal["auto", "manual"]
    rules_applied: int
    rows_removed: int | None = None


_BODY_MODELS: dict[str, type[BaseModel]] = {
    "analysis": AnalysisBody,
    "cleaning": CleaningBody,
}


class ResultEnvelope(BaseModel):
    model_config = ConfigDict(frozen=True)

    schema_version: int
    kind: ResultKind
    body: dict[str, Any]

    @classmethod
    def wrap(cls, kind: ResultKind, body: BaseModel) -> ResultEnvelope:
        return cls(schema_version=RESULT_SCHEMA_VERSION, kind=kind, body=body.model_dump(mode="json"))

    def decode(self, expected_kind: ResultKind | None = None) -> AnalysisBody | CleaningBody:
        if self.schema_version != RESULT_SCHEMA_VERSION:
            raise ResultSchemaError(f"Unsupported result schema_version {self.schema_version}")
        if expected_kind is not None and self.kind != expected_kind:
            raise ResultSchemaError(f"Expected {expected_kind} result, found {self.kind}")

        model = _BODY_MODELS.get(self.kind)
        if model is None:
            raise ResultSchemaError(f"Unknown result kind {self.kind!r}")
        try:
            return model.model_validate(self.body)
        except PydanticValidationError as exc:
            raise ResultSchemaError(f"Malformed {self.kind} result body") from exc


def summarize_analysis(body: AnalysisBody) -> AnalysisSummary:
    meta = body.meta or {}
    duration_ms = meta.get("duration_ms")
    return AnalysisSummary(
        analysis_type=str(meta.get("analysis_type") or "in-memory"),
        duration_ms=duration_ms if isinstance(duration_ms, (int, float)) else None,
    )


def summarize_cleaning(body: CleaningBody) -> CleaningSummary:
    rows_removed = body.summary.get("rows_removed")
    return CleaningSummary(
        mode=body.mode,
        rules_applied=len(body.rules_applied),
        rows_removed=rows_removed if isinstance(rows_removed, int) else None,
    )
