"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from datagate.adapters.auth import (
    AuthVerificationError,
    JwtTokenVerifier,
    MockTokenVerifier,
    TokenVerifier,
)
from datagate.adapters.worker import DelegationClient
from datagate.core.config import Settings, get_settings
from datagate.core.logging_safety import safe_log_identifier
from datagate.errors import AuthError
from datagate.repositories.audit import AuditTrail
from datagate.repositories.memory import InMemoryStore
from datagate.schemas.auth import AuthPrincipal
from datagate.services.accounts import AccountService
from datagate.services.files import FileStorage
from datagate.services.jobs import JobService
from datagate.services.orchestrator import Orchestrator
from datagate.services.reports import ReportService
from datagate.services.supervisor import DelegationSupervisor

bearer_scheme = HTTPBearer(auto_error=False, scheme_name="bearerAuth")
logger = logging.getLogger(__name__)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


def get_token_verifier(settings: Annotated[Settings, Depends(get_settings)]) -> TokenVerifier:
    """Resolve provider adapter from configuration."""
    if settings.auth_provider == "mock":
        return MockTokenVerifier()
    return JwtTokenVerifier(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expiry_minutes=settings.jwt_expiry_minutes,
    )


def _extract_credential(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None,
    cookie_name: str,
) -> str | None:
    # An explicit bearer header takes precedence over the ambient session cookie.
    if credentials is not None and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    return request.cookies.get(cookie_name) or None


async def get_authenticated_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthPrincipal:
    """Validate the session credential and attach the normalized principal to the request."""
    correlation_id = _request_correlation_id(request)
    safe_correlation_id = safe_log_identifier(correlation_id, prefix="cid")
    token = _extract_credential(request, credentials, settings.cookie_name)
    if token is None:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=missing_credential",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise AuthError()

    try:
        principal = verifier.verify_token(token)
    except AuthVerificationError as exc:
        logger.warning(
            "auth.rejected correlation_id=%s method=%s path=%s reason=token_verification_failed",
            safe_correlation_id,
            request.method,
            request.url.path,
        )
        raise AuthError(str(exc) or "Invalid token") from exc

    logger.info(
        "auth.accepted correlation_id=%s method=%s path=%s principal_id=%s role=%s",
        safe_correlation_id,
        request.method,
        request.url.path,
        safe_log_identifier(principal.user_id, prefix="pid"),
        principal.role,
    )
    request.state.auth_principal = principal
    return principal


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_audit_trail(request: Request) -> AuditTrail:
    return request.app.state.audit


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.files


def get_delegation_client(request: Request) -> DelegationClient:
    return request.app.state.delegation_client


def get_supervisor(request: Request) -> DelegationSupervisor:
    return request.app.state.supervisor


def get_account_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    verifier: Annotated[TokenVerifier, Depends(get_token_verifier)],
) -> AccountService:
    return AccountService(store, tokens=verifier)


def get_job_service(
    store: Annotated[InMemoryStore, Depends(get_store)],
    audit: Annotated[AuditTrail, Depends(get_audit_trail)],
    files: Annotated[FileStorage, Depends(get_file_storage)],
    client: Annotated[DelegationClient, Depends(get_delegation_client)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> JobService:
    return JobService(
        store,
        audit=audit,
        files=files,
        client=client,
        large_file_threshold_bytes=settings.large_file_threshold_bytes,
    )


def get_orchestrator(
    store: Annotated[InMemoryStore, Depends(get_store)],
    audit: Annotated[AuditTrail, Depends(get_audit_trail)],
    client: Annotated[DelegationClient, Depends(get_delegation_client)],
    supervisor: Annotated[DelegationSupervisor, Depends(get_supervisor)],
) -> Orchestrator:
    return Orchestrator(store=store, audit=audit, client=client, supervisor=supervisor)


def get_report_service(store: Annotated[InMemoryStore, Depends(get_store)]) -> ReportService:
    return ReportService(store)
