"""Result, report and artifact routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path
from fastapi.responses import FileResponse

from datagate.routes.dependencies import get_authenticated_principal, get_report_service
from datagate.schemas.auth import AuthPrincipal
from datagate.schemas.error import NoLeakNotFoundError
from datagate.schemas.result import (
    AnalysisExportReport,
    AnalysisResultResponse,
    CleaningExportReport,
    CleaningResultResponse,
)
from datagate.services.reports import ReportService

router = APIRouter(tags=["Results"])

_NOT_FOUND = {404: {"model": NoLeakNotFoundError}}


@router.get("/results/{jobId}", response_model=AnalysisResultResponse, responses=_NOT_FOUND)
async def get_analysis_result(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ReportService, Depends(get_report_service)],
) -> AnalysisResultResponse:
    return service.analysis_result(principal=principal, job_id=job_id)


@router.get("/results/{jobId}/export", response_model=AnalysisExportReport, responses=_NOT_FOUND)
async def export_analysis_report(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ReportService, Depends(get_report_service)],
) -> AnalysisExportReport:
    return service.analysis_export(principal=principal, job_id=job_id)


@router.get(
    "/cleaned/{jobId}",
    response_class=FileResponse,
    responses={200: {"content": {"text/csv": {}}}, **_NOT_FOUND},
)
async def download_cleaned_file(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ReportService, Depends(get_report_service)],
) -> FileResponse:
    path = service.cleaned_artifact(principal=principal, job_id=job_id)
    return FileResponse(path, media_type="text/csv", filename=f"{job_id}-cleaned.csv")


@router.get("/cleaning-result/{jobId}", response_model=CleaningResultResponse, responses=_NOT_FOUND)
async def get_cleaning_result(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ReportService, Depends(get_report_service)],
) -> CleaningResultResponse:
    return service.cleaning_result(principal=principal, job_id=job_id)


@router.get("/cleaning-result/{jobId}/export", response_model=CleaningExportReport, responses=_NOT_FOUND)
async def export_cleaning_report(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[ReportService, Depends(get_report_service)],
) -> CleaningExportReport:
    return service.cleaning_export(principal=principal, job_id=job_id)
