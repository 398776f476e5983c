"""Job routes."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Path, UploadFile, status

from datagate.routes.dependencies import get_authenticated_principal, get_job_service, get_orchestrator
from datagate.schemas.auth import AuthPrincipal
from datagate.schemas.error import ErrorResponse, FsmTransitionError, InFlightError, NoLeakNotFoundError, UpstreamError
from datagate.schemas.job import (
    CleanJobRequest,
    DelegationAccepted,
    DeleteJobsRequest,
    DeleteJobsResponse,
    JobStatusResponse,
    JobSummary,
    UploadResponse,
)
from datagate.services.jobs import JobService
from datagate.services.orchestrator import Orchestrator

router = APIRouter(tags=["Jobs"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def upload_dataset(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
    file: Annotated[UploadFile | None, File()] = None,
) -> UploadResponse:
    return await service.create_from_upload(principal=principal, upload=file)


@router.post(
    "/analyze/{jobId}",
    response_model=DelegationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError | InFlightError},
    },
)
async def analyze_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
) -> DelegationAccepted:
    return orchestrator.start_analysis(principal=principal, job_id=job_id)


@router.get("/status/{jobId}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JobStatusResponse:
    return JobStatusResponse(status=service.get_status(principal=principal, job_id=job_id))


@router.post(
    "/clean/{jobId}",
    response_model=DelegationAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError | InFlightError},
    },
)
async def clean_job(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    orchestrator: Annotated[Orchestrator, Depends(get_orchestrator)],
    body: CleanJobRequest | None = None,
) -> DelegationAccepted:
    return orchestrator.start_cleaning(principal=principal, job_id=job_id, request=body or CleanJobRequest())


@router.get("/jobs", response_model=list[JobSummary])
async def list_jobs(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> list[JobSummary]:
    return service.list_jobs(principal=principal)


@router.delete(
    "/jobs",
    response_model=DeleteJobsResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def delete_jobs(
    body: DeleteJobsRequest,
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> DeleteJobsResponse:
    return service.delete_jobs(principal=principal, job_ids=body.job_ids)


@router.get(
    "/raw/{jobId}",
    responses={
        404: {"model": NoLeakNotFoundError},
        502: {"model": UpstreamError},
        503: {"model": UpstreamError},
    },
)
async def get_raw_data(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> dict[str, Any]:
    return await service.fetch_raw(principal=principal, job_id=job_id, with_outliers=False)


@router.get(
    "/raw_with_outliers/{jobId}",
    responses={
        404: {"model": NoLeakNotFoundError},
        502: {"model": UpstreamError},
        503: {"model": UpstreamError},
    },
)
async def get_raw_data_with_outliers(
    job_id: Annotated[str, Path(alias="jobId")],
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> dict[str, Any]:
    return await service.fetch_raw(principal=principal, job_id=job_id, with_outliers=True)
