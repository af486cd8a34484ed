from __future__ import annotations

import logging
import re
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db import verification_records
from src.db.audit_log import record_audit_event
from src.db.connection import as_utc
from src.db.queries import get_active_admin_by_nin_hash, list_admins_by_phone_hash, list_schools_by_phone_hash
from src.db.verification_records import EmailVerification, OwnerKind, VerificationType
from src.handlers.verification import FlowResult, decrypt_email_or_none, parse_uuid, rollback_quietly
from src.models.admin_user import AdminUser
from src.models.school import School
from src.security.data_protection import DataProtectionConfig, FieldKind, normalize, search_hash
from src.security.errors import InvalidInput, StoreUnavailable
from src.security.tokens import AuthPrincipal

logger = logging.getLogger(__name__)

NIN_RE = re.compile(r"^[A-Za-z0-9]{10,20}$")


def _school_summary(school: School) -> dict[str, Any]:
    return {
        "id": str(school.id),
        "centerNumber": school.center_number,
        "centerName": school.center_name,
        "isActive": school.is_active,
        "emailVerified": school.email_verified,
        "createdAt": as_utc(school.created_at).isoformat(),
    }


def _admin_summary(admin: AdminUser, *, config: DataProtectionConfig) -> dict[str, Any]:
    school = admin.school
    return {
        "id": str(admin.id),
        "name": admin.name,
        "email": decrypt_email_or_none(admin.email, owner=f"admin {admin.id}", config=config),
        "role": admin.role,
        "isActive": admin.is_active,
        "emailVerified": admin.email_verified,
        "createdAt": as_utc(admin.created_at).isoformat(),
        "school": (
            {"id": str(school.id), "centerNumber": school.center_number, "centerName": school.center_name}
            if school is not None
            else None
        ),
    }


async def _audit_lookup(
    session: AsyncSession,
    *,
    principal: AuthPrincipal,
    action: str,
    details: dict[str, Any],
    ip_address: str,
    user_agent: str,
) -> None:
    recorded = await record_audit_event(
        session,
        admin_user_id=parse_uuid(principal.entity_id),
        action=action,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    if not recorded:
        return
    try:
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to persist %s audit entry", action)
        await rollback_quietly(session)


async def phone_lookup(
    session: AsyncSession,
    *,
    phone_number: str | None,
    principal: AuthPrincipal,
    ip_address: str,
    user_agent: str,
    protection_config: DataProtectionConfig,
) -> FlowResult:
    """Find schools and admins registered with a phone number via its search hash."""
    if not phone_number:
        return FlowResult.fail(400, "Phone number is required")
    try:
        phone_hash = search_hash(phone_number, FieldKind.PHONE, config=protection_config)
    except InvalidInput:
        return FlowResult.fail(400, "Invalid phone number format")

    try:
        schools = await list_schools_by_phone_hash(session, phone_hash)
        admins = await list_admins_by_phone_hash(session, phone_hash)
    except SQLAlchemyError:
        logger.exception("Phone lookup failed")
        await rollback_quietly(session)
        return FlowResult.fail(500, "An error occurred during phone lookup")

    data = {
        "schools": [_school_summary(school) for school in schools],
        "adminUsers": [_admin_summary(admin, config=protection_config) for admin in admins],
    }
    await _audit_lookup(
        session,
        principal=principal,
        action="PHONE_LOOKUP",
        details={"schoolsFound": len(schools), "adminsFound": len(admins)},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    logger.info(
        "Phone lookup by %s matched %d school(s) and %d admin(s)",
        principal.entity_id,
        len(schools),
        len(admins),
        extra={"event_type": "lookup.phone", "ops_payload": {"schools": len(schools), "admins": len(admins)}},
    )
    return FlowResult.ok("Phone lookup completed", data=data)


async def nin_lookup(
    session: AsyncSession,
    *,
    nin: str | None,
    principal: AuthPrincipal,
    ip_address: str,
    user_agent: str,
    protection_config: DataProtectionConfig,
) -> FlowResult:
    """Check whether an active administrator already holds this NIN.

    Unverified administrators are reported with ``verificationRequired`` and
    whether a verification link is still outstanding for them.
    """
    if not nin:
        return FlowResult.fail(400, "NIN is required")
    try:
        normalized = normalize(nin, FieldKind.NIN)
    except InvalidInput:
        return FlowResult.fail(400, "NIN is required")
    if not NIN_RE.match(normalized):
        return FlowResult.fail(400, "NIN must be 10 to 20 alphanumeric characters")
    nin_hash = search_hash(normalized, FieldKind.NIN, config=protection_config)

    pending: list[EmailVerification] = []
    try:
        admin = await get_active_admin_by_nin_hash(session, nin_hash)
        if admin is not None and not admin.email_verified:
            pending = await verification_records.list_pending(
                session,
                owner_id=admin.id,
                verification_type=VerificationType.for_owner(OwnerKind.ADMIN),
            )
    except (SQLAlchemyError, StoreUnavailable):
        logger.exception("NIN lookup failed")
        await rollback_quietly(session)
        return FlowResult.fail(500, "An error occurred during NIN lookup")

    await _audit_lookup(
        session,
        principal=principal,
        action="NIN_LOOKUP",
        details={"adminFound": admin is not None, "adminId": str(admin.id) if admin else None},
        ip_address=ip_address,
        user_agent=user_agent,
    )

    if admin is None:
        return FlowResult.ok(
            "Administrator not found. This will be a new administrator account.",
            data={"exists": False, "readonly": False},
        )

    if not admin.email_verified:
        return FlowResult.fail(
            400,
            "Email verification required before proceeding with school management.",
            data={
                "exists": True,
                "adminId": str(admin.id),
                "name": admin.name,
                "verified": False,
                "verificationRequired": True,
                "verificationPending": bool(pending),
            },
        )

    return FlowResult.ok(
        "Administrator verified successfully. Admin information will be pre-filled and readonly.",
        data={**_admin_summary(admin, config=protection_config), "exists": True, "readonly": True},
    )
