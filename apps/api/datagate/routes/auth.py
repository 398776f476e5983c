"""Account and session routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from datagate.core.config import Settings, get_settings
from datagate.routes.dependencies import get_account_service, get_authenticated_principal
from datagate.schemas.auth import (
    AuthPrincipal,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    UserEnvelope,
)
from datagate.schemas.error import ErrorResponse, NoLeakNotFoundError
from datagate.services.accounts import AccountService

router = APIRouter(tags=["Auth"])


def _set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        key=settings.cookie_name,
        value=token,
        max_age=settings.jwt_expiry_minutes * 60,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


@router.post(
    "/register",
    response_model=UserEnvelope,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def register(
    body: RegisterRequest,
    response: Response,
    service: Annotated[AccountService, Depends(get_account_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UserEnvelope:
    user, token = await service.register(email=body.email, password=body.password)
    _set_session_cookie(response, token, settings)
    return UserEnvelope(user=user)


@router.post(
    "/login",
    response_model=UserEnvelope,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def login(
    body: LoginRequest,
    response: Response,
    service: Annotated[AccountService, Depends(get_account_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UserEnvelope:
    user, token = await service.login(email=body.email, password=body.password)
    _set_session_cookie(response, token, settings)
    return UserEnvelope(user=user)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
) -> MessageResponse:
    response.delete_cookie(key=settings.cookie_name, path="/")
    return MessageResponse(message="Logged out")


@router.get(
    "/me",
    response_model=UserEnvelope,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def me(
    principal: Annotated[AuthPrincipal, Depends(get_authenticated_principal)],
    service: Annotated[AccountService, Depends(get_account_service)],
) -> UserEnvelope:
    return UserEnvelope(user=service.current_user(principal=principal))
