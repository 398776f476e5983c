"""Liveness probe backed by the audit store."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from datagate.repositories.audit import AuditTrail
from datagate.routes.dependencies import get_audit_trail

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


@router.get("/health")
async def health(audit: Annotated[AuditTrail, Depends(get_audit_trail)]) -> JSONResponse:
    if audit.ping():
        return JSONResponse(status_code=200, content={"status": "ok"})
    logger.warning("health.degraded component=audit_store")
    return JSONResponse(status_code=503, content={"status": "error"})
