from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.db.connection import Base

logger = logging.getLogger(__name__)

VALID_ACTIONS = {
    "ADMIN_EMAIL_VERIFIED",
    "SCHOOL_EMAIL_VERIFIED",
    "PHONE_LOOKUP",
    "NIN_LOOKUP",
}


class AdminAuditLog(Base):
    __tablename__ = "admin_audit_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    admin_user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )


async def record_audit_event(
    session: AsyncSession,
    *,
    admin_user_id: UUID | None,
    action: str,
    details: dict[str, Any],
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """Best-effort audit write inside a savepoint.

    Returns False instead of raising so the operation being audited is
    never rolled back because of its audit entry.
    """
    if action not in VALID_ACTIONS:
        raise ValueError(f"Invalid audit action: {action}")
    if admin_user_id is None:
        logger.info("Skipping audit entry %s: no system user configured", action)
        return False

    try:
        async with session.begin_nested():
            session.add(
                AdminAuditLog(
                    admin_user_id=admin_user_id,
                    action=action,
                    details=details,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
            )
    except SQLAlchemyError:
        logger.exception("Failed to create audit log entry %s", action)
        return False
    return True
