"""FastAPI application entrypoint.

Serve with ``uvicorn datagate.main:create_app --factory``; settings are read
when the app is built, not at import time.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from datagate.adapters.worker import DelegationClient
from datagate.core.config import get_settings
from datagate.core.logging_safety import configure_logging, safe_log_identifier
from datagate.errors import ApiError
from datagate.repositories.audit import AuditTrail, AuditWriteError
from datagate.repositories.memory import InMemoryStore
from datagate.routes import auth_router, health_router, jobs_router, results_router
from datagate.schemas.error import ErrorResponse
from datagate.services.files import FileStorage
from datagate.services.supervisor import DelegationSupervisor

logger = logging.getLogger(__name__)

_SHUTDOWN_GRACE_SECONDS = 5.0


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg") or "Invalid value")
    return f"{location}: {message}" if location else message


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await app.state.supervisor.shutdown(timeout=_SHUTDOWN_GRACE_SECONDS)
    await app.state.delegation_client.aclose()
    app.state.audit.dispose()


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Datagate API", version="1.0.0", lifespan=_lifespan)
    app.state.store = InMemoryStore()
    app.state.audit = AuditTrail.from_url(settings.audit_database_url)
    app.state.audit.migrate()
    app.state.files = FileStorage(settings.upload_dir)
    app.state.delegation_client = DelegationClient(
        base_url=settings.worker_base_url,
        timeout_seconds=settings.worker_timeout_seconds,
    )
    app.state.supervisor = DelegationSupervisor()

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(AuditWriteError)
    async def handle_audit_write_error(request: Request, exc: AuditWriteError) -> JSONResponse:
        logger.error("request.audit_failed method=%s path=%s reason=%s", request.method, request.url.path, exc)
        payload = ErrorResponse(code="AUDIT_WRITE_FAILED", message="Audit record could not be written")
        return JSONResponse(status_code=500, content=payload.model_dump(exclude_none=True))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_, exc: RequestValidationError) -> JSONResponse:
        payload = ErrorResponse(code="VALIDATION_ERROR", message=_validation_message(exc))
        return JSONResponse(status_code=400, content=payload.model_dump(exclude_none=True))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        correlation_id = getattr(request.state, "correlation_id", None)
        logger.exception(
            "request.unhandled correlation_id=%s method=%s path=%s error_type=%s",
            safe_log_identifier(correlation_id, prefix="cid"),
            request.method,
            request.url.path,
            type(exc).__name__,
        )
        payload = ErrorResponse(code="INTERNAL_ERROR", message="Internal server error")
        return JSONResponse(status_code=500, content=payload.model_dump(exclude_none=True))

    app.include_router(auth_router)
    app.include_router(jobs_router)
    app.include_router(results_router)
    app.include_router(health_router)

    return app
