from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings
from src.db import verification_records
from src.db.audit_log import record_audit_event
from src.db.connection import as_utc
from src.db.queries import (
    get_admin_by_email_hash,
    get_admin_by_phone_hash,
    get_admin_user,
    get_school,
    get_school_by_email_hash,
    get_school_by_phone_hash,
    get_school_center_number,
)
from src.db.verification_records import (
    OwnerKind,
    VerificationStatus,
    VerificationType,
    effective_status,
)
from src.email.sender import send_email
from src.models.admin_user import AdminUser
from src.models.school import School
from src.security.data_protection import (
    DataProtectionConfig,
    FieldKind,
    detect_login_kind,
    search_hash,
    unprotect,
)
from src.security.errors import (
    DecryptionFailed,
    InvalidInput,
    InvalidSignature,
    MalformedToken,
    RedeemFailure,
    StoreUnavailable,
    TokenError,
    TokenExpired,
    TokenTypeMismatch,
)
from src.security.tokens import (
    TokenConfig,
    issue_auth_token,
    issue_email_verification_token,
    verify_email_verification_token,
    verify_refresh_token,
)

logger = logging.getLogger(__name__)

_REDEEM_MESSAGES = {
    RedeemFailure.NOT_FOUND: "Invalid or expired verification token",
    RedeemFailure.EXPIRED: "Verification link has expired",
    RedeemFailure.ALREADY_USED: "Verification link has already been used",
    RedeemFailure.ALREADY_VERIFIED: "Email is already verified",
}


@dataclass(frozen=True)
class FlowResult:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str, **extra: Any) -> FlowResult:
        return cls(200, {"success": True, "message": message, **extra})

    @classmethod
    def fail(cls, status_code: int, message: str, **extra: Any) -> FlowResult:
        return cls(status_code, {"success": False, "message": message, **extra})


def _token_error_message(exc: TokenError) -> str:
    if isinstance(exc, TokenExpired):
        return "Verification link has expired"
    if isinstance(exc, InvalidSignature | MalformedToken):
        return "Invalid verification link"
    if isinstance(exc, TokenTypeMismatch):
        return "Invalid verification token type"
    return "Invalid or expired verification link"


def parse_uuid(value: str | None) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


async def _commit(session: AsyncSession) -> None:
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        raise StoreUnavailable("commit failed") from exc


async def rollback_quietly(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except SQLAlchemyError:
        logger.exception("Rollback failed after store error")


async def verify_admin_email(
    session: AsyncSession,
    *,
    token: str | None,
    admin_id: str | None,
    ip_address: str,
    user_agent: str,
    system_user_id: UUID | None,
    token_config: TokenConfig,
    protection_config: DataProtectionConfig,
) -> FlowResult:
    if not token or not admin_id:
        return FlowResult.fail(400, "Token and admin ID are required")

    try:
        claims = verify_email_verification_token(token, config=token_config)
    except TokenError as exc:
        logger.info("Rejected admin verification token: %s", exc.code)
        return FlowResult.fail(400, _token_error_message(exc))

    owner_id = parse_uuid(admin_id)
    if claims.verify_type != OwnerKind.ADMIN.value or owner_id is None or claims.entity_id != str(owner_id):
        return FlowResult.fail(400, "Invalid or expired verification link")

    try:
        admin = await get_admin_user(session, owner_id)
        if admin is None:
            return FlowResult.fail(404, "Admin user not found")
        if admin.email_verified:
            return FlowResult.fail(400, _REDEEM_MESSAGES[RedeemFailure.ALREADY_VERIFIED])

        redeemed = await verification_records.redeem(
            session,
            owner_id=admin.id,
            verification_type=VerificationType.ADMIN_EMAIL_VERIFICATION,
            token=token,
        )
        if not redeemed.ok:
            await rollback_quietly(session)
            return FlowResult.fail(400, _REDEEM_MESSAGES[redeemed.failure or RedeemFailure.NOT_FOUND])

        now = datetime.now(UTC)
        admin.email_verified = True
        admin.email_verified_at = now

        admin_email = decrypt_email_or_none(admin.email, owner=f"admin {admin.id}", config=protection_config)
        await record_audit_event(
            session,
            admin_user_id=system_user_id,
            action="ADMIN_EMAIL_VERIFIED",
            details={"adminId": str(admin.id), "verificationDate": now.isoformat()},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await _commit(session)
    except (SQLAlchemyError, StoreUnavailable):
        logger.exception("Admin email verification failed for %s", admin_id)
        await rollback_quietly(session)
        return FlowResult.fail(500, "An error occurred during email verification")

    logger.info(
        "Admin %s verified email",
        admin.id,
        extra={"event_type": "verification.admin.verified", "ops_payload": {"admin_id": str(admin.id)}},
    )
    extra = {"adminEmail": admin_email} if admin_email is not None else {}
    return FlowResult.ok("Admin email verified successfully", **extra)


async def verify_school_email(
    session: AsyncSession,
    *,
    token: str | None,
    school_id: str | None,
    ip_address: str,
    user_agent: str,
    system_user_id: UUID | None,
    token_config: TokenConfig,
) -> FlowResult:
    if not token:
        return FlowResult.fail(400, "Invalid verification link. Missing token.")

    try:
        claims = verify_email_verification_token(token, config=token_config)
    except TokenError as exc:
        logger.info("Rejected school verification token: %s", exc.code)
        return FlowResult.fail(400, _token_error_message(exc))

    if claims.verify_type != OwnerKind.SCHOOL.value:
        return FlowResult.fail(400, "Invalid or expired verification token.")

    owner_id = parse_uuid(school_id or claims.entity_id)
    if owner_id is None or claims.entity_id != str(owner_id):
        return FlowResult.fail(400, "Invalid or expired verification link.")

    try:
        school = await get_school(session, owner_id)
        if school is None:
            return FlowResult.fail(404, "School not found.")
        if school.email_verified:
            return FlowResult.fail(400, "School email is already verified.")

        redeemed = await verification_records.redeem(
            session,
            owner_id=school.id,
            verification_type=VerificationType.SCHOOL_EMAIL_VERIFICATION,
            token=token,
        )
        if not redeemed.ok:
            await rollback_quietly(session)
            return FlowResult.fail(400, _REDEEM_MESSAGES[redeemed.failure or RedeemFailure.NOT_FOUND])

        now = datetime.now(UTC)
        school.email_verified = True
        school.email_verified_at = now
        school.verified_by = system_user_id

        await record_audit_event(
            session,
            admin_user_id=system_user_id,
            action="SCHOOL_EMAIL_VERIFIED",
            details={
                "schoolId": str(school.id),
                "schoolName": school.center_name,
                "centerNumber": school.center_number,
                "verificationDate": now.isoformat(),
            },
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await _commit(session)
    except (SQLAlchemyError, StoreUnavailable):
        logger.exception("School email verification failed for %s", owner_id)
        await rollback_quietly(session)
        return FlowResult.fail(500, "An error occurred during email verification.")

    logger.info(
        "School %s verified email",
        school.id,
        extra={"event_type": "verification.school.verified", "ops_payload": {"school_id": str(school.id)}},
    )
    return FlowResult.ok("School email verified successfully!", schoolName=school.center_name)


def decrypt_email_or_none(ciphertext: str, *, owner: str, config: DataProtectionConfig) -> str | None:
    try:
        return unprotect(ciphertext, FieldKind.EMAIL, config=config)
    except DecryptionFailed:
        logger.error("Stored email for %s could not be decrypted; data corrupt or key mismatch", owner)
        return None


def _verification_link(base_url: str, owner_kind: OwnerKind, token: str, owner_id: UUID) -> str:
    if owner_kind is OwnerKind.SCHOOL:
        return f"{base_url}/center/verify-email?{urlencode({'token': token, 'schoolId': str(owner_id)})}"
    return f"{base_url}/admin/verify-email?{urlencode({'token': token, 'adminId': str(owner_id)})}"


async def _find_owner(
    session: AsyncSession, owner_kind: OwnerKind, login_kind: FieldKind, login_hash: str
) -> School | AdminUser | None:
    if owner_kind is OwnerKind.SCHOOL:
        if login_kind is FieldKind.EMAIL:
            return await get_school_by_email_hash(session, login_hash)
        return await get_school_by_phone_hash(session, login_hash)
    if login_kind is FieldKind.EMAIL:
        return await get_admin_by_email_hash(session, login_hash)
    return await get_admin_by_phone_hash(session, login_hash)


async def resend_verification(
    session: AsyncSession,
    *,
    login: str | None,
    verification_kind: str | None,
    ip_address: str,
    user_agent: str,
    settings: Settings,
    token_config: TokenConfig,
    protection_config: DataProtectionConfig,
) -> FlowResult:
    """Issue a fresh verification link, superseding any pending one."""
    if not login or not verification_kind:
        return FlowResult.fail(400, "Login and type are required")
    if verification_kind not in (OwnerKind.SCHOOL.value, OwnerKind.ADMIN.value):
        return FlowResult.fail(400, "Invalid verification type")

    owner_kind = OwnerKind(verification_kind)
    login_kind = detect_login_kind(login)
    try:
        login_hash = search_hash(login, login_kind, config=protection_config)
    except InvalidInput:
        return FlowResult.fail(400, "Invalid login format")

    try:
        owner = await _find_owner(session, owner_kind, login_kind, login_hash)
        if owner is None:
            return FlowResult.fail(404, "User not found")

        label = "School" if owner_kind is OwnerKind.SCHOOL else "Admin"
        if owner.email_verified:
            return FlowResult.fail(400, f"{label} email is already verified")

        if isinstance(owner, School):
            stored_email, email_hash = owner.school_email, owner.school_email_hash
            center_number: str | None = owner.center_number
        else:
            stored_email, email_hash = owner.email, owner.email_hash
            center_number = None

        try:
            email = unprotect(stored_email, FieldKind.EMAIL, config=protection_config)
        except DecryptionFailed:
            logger.error("Stored email for %s %s could not be decrypted", owner_kind.value, owner.id)
            return FlowResult.fail(500, "An error occurred while resending verification")

        token = issue_email_verification_token(
            verify_type=owner_kind.value,
            email=email,
            entity_id=str(owner.id),
            center_number=center_number,
            config=token_config,
        )
        await verification_records.issue_for(
            session,
            owner_id=owner.id,
            owner_kind=owner_kind,
            token=token,
            email_hash=email_hash,
            ttl=timedelta(hours=settings.email_verification_expiry_hours),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await _commit(session)
    except (SQLAlchemyError, StoreUnavailable):
        logger.exception("Resend verification failed for %s", owner_kind.value)
        await rollback_quietly(session)
        return FlowResult.fail(500, "An error occurred while resending verification")

    link = _verification_link(settings.app_public_base_url, owner_kind, token, owner.id)
    if isinstance(owner, School):
        template = "school_verification"
        variables = {
            "center_name": owner.center_name,
            "center_number": owner.center_number,
            "recipient_name": owner.center_name,
        }
    else:
        template = "admin_verification"
        variables = {"recipient_name": owner.name}
    variables["verification_link"] = link
    variables["expiry_hours"] = settings.email_verification_expiry_hours

    sent = await send_email(
        to=email,
        template=template,
        variables=variables,
        resend_api_key=settings.resend_api_key,
        email_from=settings.email_from,
        http_timeout_seconds=settings.email_http_timeout_seconds,
    )
    if not sent:
        logger.warning("Failed to send %s email for %s %s; token still valid", template, owner_kind.value, owner.id)

    return FlowResult.ok(f"{label} verification email sent successfully")


async def revoke_verification_token(
    session: AsyncSession,
    *,
    token: str | None,
    reason: str | None,
) -> FlowResult:
    if not token:
        return FlowResult.fail(400, "Token is required.")

    try:
        count = await verification_records.revoke(session, token=token, reason=reason)
        if count == 0:
            return FlowResult.fail(404, "Token not found.")
        await _commit(session)
    except StoreUnavailable:
        logger.exception("Token revocation failed")
        await rollback_quietly(session)
        return FlowResult.fail(500, "An error occurred while revoking the token.")

    logger.info("Revoked %d pending verification record(s)", count, extra={"event_type": "verification.revoked"})
    return FlowResult.ok("Token has been revoked successfully.")


async def check_token_status(
    session: AsyncSession,
    *,
    token: str | None,
    verify_type: str | None,
    token_config: TokenConfig,
) -> FlowResult:
    if not token or not verify_type:
        return FlowResult.fail(400, "Token and type are required.")

    try:
        claims = verify_email_verification_token(token, config=token_config)
    except TokenError:
        return FlowResult.fail(400, "Invalid or expired token.")

    if claims.verify_type != verify_type:
        return FlowResult.fail(400, "Invalid token type.")

    try:
        record = await verification_records.get_by_token(session, token)
    except StoreUnavailable:
        logger.exception("Token status lookup failed")
        return FlowResult.fail(500, "An error occurred while checking token status.")

    if record is None:
        return FlowResult.fail(404, "Token not found in database.")

    status = effective_status(record)
    if status is VerificationStatus.EXPIRED:
        return FlowResult.fail(400, "Token has expired.", status=status.value)
    if record.used:
        return FlowResult.fail(400, "Token has already been used.", status="USED")
    if status is VerificationStatus.REVOKED:
        return FlowResult.fail(400, "Token has been revoked.", status=status.value)

    return FlowResult.ok("Token is valid.", status=status.value, expiresAt=as_utc(record.expires_at).isoformat())


async def refresh_session(
    session: AsyncSession,
    *,
    refresh_token: str | None,
    token_config: TokenConfig,
    protection_config: DataProtectionConfig,
) -> FlowResult:
    if not refresh_token:
        return FlowResult.fail(400, "Refresh token is required")

    try:
        entity_id = verify_refresh_token(refresh_token, config=token_config)
    except TokenError as exc:
        logger.info("Rejected refresh token: %s", exc.code)
        return FlowResult.fail(401, "Invalid or expired refresh token")

    admin_id = parse_uuid(entity_id)
    if admin_id is None:
        return FlowResult.fail(401, "Invalid or expired refresh token")

    try:
        admin = await get_admin_user(session, admin_id)
        if admin is None or not admin.is_active:
            return FlowResult.fail(401, "Session is no longer valid")
        center_number = await get_school_center_number(session, admin.school_id)
    except SQLAlchemyError:
        logger.exception("Session refresh lookup failed for %s", admin_id)
        return FlowResult.fail(500, "An error occurred while refreshing the session")

    email = decrypt_email_or_none(admin.email, owner=f"admin {admin.id}", config=protection_config)
    if email is None:
        return FlowResult.fail(500, "An error occurred while refreshing the session")

    token = issue_auth_token(
        entity_id=str(admin.id),
        email=email,
        school_id=str(admin.school_id) if admin.school_id else "",
        role=admin.role,
        center_number=center_number,
        config=token_config,
    )
    return FlowResult.ok("Session refreshed", token=token)
