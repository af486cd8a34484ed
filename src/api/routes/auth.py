from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.authn import get_client_ip, get_system_user_id, get_user_agent
from src.config import Settings, get_settings
from src.db.connection import get_db
from src.handlers.verification import (
    FlowResult,
    check_token_status,
    refresh_session,
    resend_verification,
    revoke_verification_token,
    verify_admin_email,
    verify_school_email,
)
from src.security.data_protection import DataProtectionConfig, get_data_protection_config
from src.security.tokens import TokenConfig, get_token_config

router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class VerifyAdminEmailRequest(_CamelModel):
    token: str | None = None
    admin_id: str | None = Field(default=None, alias="adminId")


class VerifySchoolEmailRequest(_CamelModel):
    token: str | None = None
    school_id: str | None = Field(default=None, alias="schoolId")


class ResendVerificationRequest(_CamelModel):
    login: str | None = None
    type: str | None = None


class RevokeTokenRequest(_CamelModel):
    token: str | None = None
    reason: str | None = None


class TokenStatusRequest(_CamelModel):
    token: str | None = None
    type: str | None = None


class RefreshRequest(_CamelModel):
    refresh_token: str | None = Field(default=None, alias="refreshToken")


def _respond(result: FlowResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body)


async def _verify_admin(
    request: Request,
    session: AsyncSession,
    payload: VerifyAdminEmailRequest,
    token_config: TokenConfig,
    protection_config: DataProtectionConfig,
    system_user_id: UUID | None,
) -> JSONResponse:
    result = await verify_admin_email(
        session,
        token=payload.token,
        admin_id=payload.admin_id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        system_user_id=system_user_id,
        token_config=token_config,
        protection_config=protection_config,
    )
    return _respond(result)


@router.post("/verify-email")
async def verify_email_post(
    payload: VerifyAdminEmailRequest,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    token_config: Annotated[TokenConfig, Depends(get_token_config)],
    protection_config: Annotated[DataProtectionConfig, Depends(get_data_protection_config)],
    system_user_id: Annotated[UUID | None, Depends(get_system_user_id)],
) -> JSONResponse:
    return await _verify_admin(request, session, payload, token_config, protection_config, system_user_id)


@router.get("/verify-email")
async def verify_email_get(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    token_config: Annotated[TokenConfig, Depends(get_token_config)],
    protection_config: Annotated[DataProtectionConfig, Depends(get_data_protection_config)],
    system_user_id: Annotated[UUID | None, Depends(get_system_user_id)],
) -> JSONResponse:
    payload = VerifyAdminEmailRequest(
        token=request.query_params.get("token"),
        admin_id=request.query_params.get("adminId"),
    )
    return await _verify_admin(request, session, payload, token_config, protection_config, system_user_id)


async def _verify_school(
    request: Request,
    session: AsyncSession,
    payload: VerifySchoolEmailRequest,
    token_config: TokenConfig,
    system_user_id: UUID | None,
) -> JSONResponse:
    result = await verify_school_email(
        session,
        token=payload.token,
        school_id=payload.school_id,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        system_user_id=system_user_id,
        token_config=token_config,
    )
    return _respond(result)


@router.post("/center/verify-email")
async def verify_school_email_post(
    payload: VerifySchoolEmailRequest,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    token_config: Annotated[TokenConfig, Depends(get_token_config)],
    system_user_id: Annotated[UUID | None, Depends(get_system_user_id)],
) -> JSONResponse:
    return await _verify_school(request, session, payload, token_config, system_user_id)


@router.get("/center/verify-email")
async def verify_school_email_get(
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    token_config: Annotated[TokenConfig, Depends(get_token_config)],
    system_user_id: Annotated[UUID | None, Depends(get_system_user_id)],
) -> JSONResponse:
    payload = VerifySchoolEmailRequest(
        token=request.query_params.get("token"),
        school_id=request.query_params.get("schoolId"),
    )
    return await _verify_school(request, session, payload, token_config, system_user_id)


@router.post("/resend-verification")
async def resend_verification_post(
    payload: ResendVerificationRequest,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
    token_config: Annotated[TokenConfig, Depends(get_token_config)],
    protection_config: Annotated[DataProtectionConfig, Depends(get_data_protection_config)],
) -> JSONResponse:
    result = await resend_verification(
        session,
        login=payload.login,
        verification_kind=payload.type,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        settings=settings,
        token_config=token_config,
        protection_config=protection_config,
    )
    return _respond(result)


@router.post("/revoke-token")
async def revoke_token_post(
    payload: RevokeTokenRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
) -> JSONResponse:
    result = await revoke_verification_token(session, token=payload.token, reason=payload.reason)
    return _respond(result)


@router.post("/check-token-status")
async def check_token_status_post(
    payload: TokenStatusRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
    token_config: Annotated[TokenConfig, Depends(get_token_config)],
) -> JSONResponse:
    result = await check_token_status(
        session, token=payload.token, verify_type=payload.type, token_config=token_config
    )
    return _respond(result)


@router.post("/refresh")
async def refresh_post(
    payload: RefreshRequest,
    session: Annotated[AsyncSession, Depends(get_db)],
    token_config: Annotated[TokenConfig, Depends(get_token_config)],
    protection_config: Annotated[DataProtectionConfig, Depends(get_data_protection_config)],
) -> JSONResponse:
    result = await refresh_session(
        session,
        refresh_token=payload.refresh_token,
        token_config=token_config,
        protection_config=protection_config,
    )
    return _respond(result)
