from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.authn import get_client_ip, get_user_agent, require_principal
from src.db.connection import get_db
from src.handlers.lookup import nin_lookup, phone_lookup
from src.security.data_protection import DataProtectionConfig, get_data_protection_config
from src.security.tokens import AuthPrincipal

router = APIRouter()


class PhoneLookupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone_number: str | None = Field(default=None, alias="phoneNumber")


class NinLookupRequest(BaseModel):
    nin: str | None = None


@router.get("/session")
async def current_session(
    principal: Annotated[AuthPrincipal, Depends(require_principal)],
) -> dict[str, object]:
    return {"success": True, "principal": principal.as_dict()}


@router.post("/phone-lookup")
async def phone_lookup_post(
    payload: PhoneLookupRequest,
    request: Request,
    principal: Annotated[AuthPrincipal, Depends(require_principal)],
    session: Annotated[AsyncSession, Depends(get_db)],
    protection_config: Annotated[DataProtectionConfig, Depends(get_data_protection_config)],
) -> JSONResponse:
    result = await phone_lookup(
        session,
        phone_number=payload.phone_number,
        principal=principal,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        protection_config=protection_config,
    )
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post("/nin-lookup")
async def nin_lookup_post(
    payload: NinLookupRequest,
    request: Request,
    principal: Annotated[AuthPrincipal, Depends(require_principal)],
    session: Annotated[AsyncSession, Depends(get_db)],
    protection_config: Annotated[DataProtectionConfig, Depends(get_data_protection_config)],
) -> JSONResponse:
    result = await nin_lookup(
        session,
        nin=payload.nin,
        principal=principal,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        protection_config=protection_config,
    )
    return JSONResponse(status_code=result.status_code, content=result.body)
