from __future__ import annotations

from uuid import UUID

from fastapi import HTTPException, Request

from src.security.errors import TokenError
from src.security.tokens import AuthPrincipal, extract_from_header, get_token_config, verify_auth_token


def resolve_principal_from_bearer(*, authorization: str | None) -> AuthPrincipal:
    token = extract_from_header(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="missing bearer token")
    try:
        return verify_auth_token(token, config=get_token_config())
    except TokenError as exc:
        raise HTTPException(status_code=401, detail="invalid bearer token") from exc


def require_principal(request: Request) -> AuthPrincipal:
    """Principal attached by the access gate, or resolved from the bearer header."""
    principal = getattr(request.state, "principal", None)
    if isinstance(principal, AuthPrincipal):
        return principal
    return resolve_principal_from_bearer(authorization=request.headers.get("authorization"))


def get_system_user_id(request: Request) -> UUID | None:
    return getattr(request.app.state, "system_user_id", None)


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or "unknown"
