"""Signed, typed, expiring tokens (HS256 JWT).

Every token carries exactly one ``type`` claim; ``verify`` refuses a token
issued for a different purpose than the one the caller asks for.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from functools import lru_cache
from typing import Any

import jwt

from src.config import Settings, get_settings
from src.security.errors import (
    ConfigurationError,
    InvalidSignature,
    MalformedToken,
    TokenExpired,
    TokenTypeMismatch,
)

ALGORITHM = "HS256"
BEARER_PREFIX = "Bearer"
RESERVED_CLAIMS = frozenset({"type", "iss", "aud", "sub", "iat", "exp"})


class TokenType(StrEnum):
    AUTH = "auth"
    REFRESH = "refresh"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


TOKEN_TTLS: dict[TokenType, timedelta] = {
    TokenType.AUTH: timedelta(hours=8),
    TokenType.REFRESH: timedelta(days=7),
    TokenType.EMAIL_VERIFICATION: timedelta(hours=24),
    TokenType.PASSWORD_RESET: timedelta(hours=1),
}

TOKEN_SUBJECTS: dict[TokenType, str] = {
    TokenType.AUTH: "authentication",
    TokenType.REFRESH: "refresh-token",
    TokenType.EMAIL_VERIFICATION: "email-verification",
    TokenType.PASSWORD_RESET: "password-reset",
}


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    issuer: str = "cecms-system"
    audience: str = "cecms-users"

    def __post_init__(self) -> None:
        if not self.secret or not self.secret.strip():
            raise ConfigurationError("JWT_SECRET environment variable is not set")

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenConfig:
        if settings.jwt_secret is None:
            raise ConfigurationError("JWT_SECRET environment variable is not set")
        return cls(secret=settings.jwt_secret, issuer=settings.jwt_issuer, audience=settings.jwt_audience)


@dataclass(frozen=True)
class AuthPrincipal:
    entity_id: str
    email: str
    school_id: str
    role: str
    center_number: str

    def as_dict(self) -> dict[str, str]:
        return {
            "entityId": self.entity_id,
            "email": self.email,
            "schoolId": self.school_id,
            "role": self.role,
            "centerNumber": self.center_number,
        }


@dataclass(frozen=True)
class EmailVerificationClaims:
    verify_type: str
    email: str
    entity_id: str
    center_number: str | None = None


@lru_cache(maxsize=1)
def get_token_config() -> TokenConfig:
    return TokenConfig.from_settings(get_settings())


def issue(
    token_type: TokenType | str,
    claims: dict[str, Any],
    ttl: timedelta | None = None,
    *,
    config: TokenConfig,
    now: datetime | None = None,
) -> str:
    token_type = TokenType(token_type)
    clashing = RESERVED_CLAIMS.intersection(claims)
    if clashing:
        raise ValueError(f"claims must not set reserved keys: {sorted(clashing)}")

    issued_at = now or datetime.now(UTC)
    expires_at = issued_at + (ttl if ttl is not None else TOKEN_TTLS[token_type])
    payload = {
        **claims,
        "type": token_type.value,
        "iss": config.issuer,
        "aud": config.audience,
        "sub": TOKEN_SUBJECTS[token_type],
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }
    return jwt.encode(payload, config.secret, algorithm=ALGORITHM)


def verify(token: str, expected_type: TokenType | str, *, config: TokenConfig) -> dict[str, Any]:
    """Validate ``token`` and return its kind-specific claims.

    Registered claims (``iss``, ``aud``, ``sub``, ``iat``, ``exp``) and
    ``type`` are checked and stripped from the result. Raises a
    :class:`~src.security.errors.TokenError` subclass on any failure.
    """
    expected_type = TokenType(expected_type)
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            config.secret,
            algorithms=[ALGORITHM],
            issuer=config.issuer,
            audience=config.audience,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired("Token has expired") from exc
    except jwt.InvalidSignatureError as exc:
        raise InvalidSignature("Invalid token signature") from exc
    except jwt.InvalidTokenError as exc:
        raise MalformedToken(f"Invalid token: {exc}") from exc

    actual_type = payload.get("type")
    if actual_type != expected_type.value:
        raise TokenTypeMismatch(expected_type.value, actual_type)

    return {key: value for key, value in payload.items() if key not in RESERVED_CLAIMS}


def extract_from_header(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_PREFIX or not parts[1]:
        return None
    return parts[1]


def issue_auth_token(
    *,
    entity_id: str,
    email: str,
    school_id: str,
    role: str,
    center_number: str,
    config: TokenConfig,
) -> str:
    claims = AuthPrincipal(
        entity_id=entity_id,
        email=email,
        school_id=school_id,
        role=role,
        center_number=center_number,
    ).as_dict()
    return issue(TokenType.AUTH, claims, config=config)


def issue_refresh_token(*, entity_id: str, config: TokenConfig) -> str:
    return issue(TokenType.REFRESH, {"entityId": entity_id}, config=config)


def issue_email_verification_token(
    *,
    verify_type: str,
    email: str,
    entity_id: str,
    center_number: str | None = None,
    config: TokenConfig,
) -> str:
    claims: dict[str, Any] = {"verifyType": verify_type, "email": email, "entityId": entity_id}
    if center_number is not None:
        claims["centerNumber"] = center_number
    return issue(TokenType.EMAIL_VERIFICATION, claims, config=config)


def issue_password_reset_token(*, entity_id: str, email: str, config: TokenConfig) -> str:
    return issue(TokenType.PASSWORD_RESET, {"entityId": entity_id, "email": email}, config=config)


def _required_str(claims: dict[str, Any], key: str) -> str:
    value = claims.get(key)
    if not isinstance(value, str):
        raise MalformedToken(f"claim {key!r} is missing or not a string")
    return value


def verify_auth_token(token: str, *, config: TokenConfig) -> AuthPrincipal:
    claims = verify(token, TokenType.AUTH, config=config)
    return AuthPrincipal(
        entity_id=_required_str(claims, "entityId"),
        email=_required_str(claims, "email"),
        school_id=str(claims.get("schoolId") or ""),
        role=_required_str(claims, "role"),
        center_number=str(claims.get("centerNumber") or ""),
    )


def verify_email_verification_token(token: str, *, config: TokenConfig) -> EmailVerificationClaims:
    claims = verify(token, TokenType.EMAIL_VERIFICATION, config=config)
    center_number = claims.get("centerNumber")
    return EmailVerificationClaims(
        verify_type=_required_str(claims, "verifyType"),
        email=_required_str(claims, "email"),
        entity_id=_required_str(claims, "entityId"),
        center_number=center_number if isinstance(center_number, str) else None,
    )


def verify_refresh_token(token: str, *, config: TokenConfig) -> str:
    return _required_str(verify(token, TokenType.REFRESH, config=config), "entityId")
