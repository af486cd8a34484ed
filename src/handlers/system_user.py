from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.queries import create_admin_user, get_admin_by_email_hash
from src.models.admin_user import AdminUser, AdminUserCreate
from src.security.data_protection import DataProtectionConfig, FieldKind, search_hash
from src.security.errors import InvalidInput

logger = logging.getLogger(__name__)


async def resolve_system_user_id(
    session: AsyncSession, *, email: str, config: DataProtectionConfig
) -> UUID | None:
    """Find the admin used to attribute automated audit entries.

    Called once at startup; a missing or unreachable system user only
    disables audit attribution.
    """
    try:
        user = await get_admin_by_email_hash(session, search_hash(email, FieldKind.EMAIL, config=config))
    except InvalidInput:
        logger.warning("SA_EMAIL is empty; audit entries will not be attributed")
        return None
    except SQLAlchemyError:
        logger.exception("Error finding system user")
        return None

    if user is None:
        logger.warning("System user %s not found; audit entries will not be attributed", email)
        return None
    return user.id


async def ensure_system_user(
    session: AsyncSession, data: AdminUserCreate, *, config: DataProtectionConfig
) -> tuple[AdminUser, bool]:
    """Return the system user, creating it if needed. The flag is True when created."""
    existing = await get_admin_by_email_hash(session, search_hash(str(data.email), FieldKind.EMAIL, config=config))
    if existing is not None:
        return existing, False

    user = await create_admin_user(
        session,
        data.model_copy(update={"role": "Super_Admin", "email_verified": True}),
        config=config,
    )
    await session.commit()
    return user, True
