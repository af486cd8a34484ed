from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.admin_user import AdminUser, AdminUserCreate
from src.models.school import School, SchoolCreate
from src.security.data_protection import DataProtectionConfig, FieldKind, protect


async def create_school(session: AsyncSession, data: SchoolCreate, *, config: DataProtectionConfig) -> School:
    email = protect(str(data.email), FieldKind.EMAIL, config=config)
    phone = protect(data.phone, FieldKind.PHONE, config=config) if data.phone else None
    school = School(
        center_name=data.center_name,
        center_number=data.center_number,
        school_email=email.ciphertext,
        school_email_hash=email.search_hash,
        school_phone=phone.ciphertext if phone else None,
        school_phone_hash=phone.search_hash if phone else None,
    )
    session.add(school)
    await session.flush()
    await session.refresh(school)
    return school


async def create_admin_user(
    session: AsyncSession, data: AdminUserCreate, *, config: DataProtectionConfig
) -> AdminUser:
    email = protect(str(data.email), FieldKind.EMAIL, config=config)
    phone = protect(data.phone, FieldKind.PHONE, config=config) if data.phone else None
    nin = protect(data.nin, FieldKind.NIN, config=config) if data.nin else None
    admin = AdminUser(
        name=data.name,
        email=email.ciphertext,
        email_hash=email.search_hash,
        phone=phone.ciphertext if phone else None,
        phone_hash=phone.search_hash if phone else None,
        nin=nin.ciphertext if nin else None,
        nin_hash=nin.search_hash if nin else None,
        role=data.role,
        school_id=data.school_id,
        email_verified=data.email_verified,
    )
    session.add(admin)
    await session.flush()
    await session.refresh(admin)
    return admin


async def get_admin_user(session: AsyncSession, admin_id: UUID) -> AdminUser | None:
    return await session.get(AdminUser, admin_id)


async def get_school(session: AsyncSession, school_id: UUID) -> School | None:
    return await session.get(School, school_id)


async def get_admin_by_email_hash(session: AsyncSession, email_hash: str) -> AdminUser | None:
    result = await session.execute(select(AdminUser).where(AdminUser.email_hash == email_hash))
    return result.scalar_one_or_none()


async def get_admin_by_phone_hash(session: AsyncSession, phone_hash: str) -> AdminUser | None:
    result = await session.execute(select(AdminUser).where(AdminUser.phone_hash == phone_hash).limit(1))
    return result.scalar_one_or_none()


async def get_school_by_email_hash(session: AsyncSession, email_hash: str) -> School | None:
    result = await session.execute(select(School).where(School.school_email_hash == email_hash))
    return result.scalar_one_or_none()


async def get_school_by_phone_hash(session: AsyncSession, phone_hash: str) -> School | None:
    result = await session.execute(select(School).where(School.school_phone_hash == phone_hash).limit(1))
    return result.scalar_one_or_none()


async def get_school_center_number(session: AsyncSession, school_id: UUID | None) -> str:
    if school_id is None:
        return ""
    result = await session.execute(select(School.center_number).where(School.id == school_id))
    return result.scalar_one_or_none() or ""


async def list_schools_by_phone_hash(session: AsyncSession, phone_hash: str) -> list[School]:
    result = await session.execute(
        select(School).where(School.school_phone_hash == phone_hash).order_by(School.created_at)
    )
    return list(result.scalars().all())


async def list_admins_by_phone_hash(session: AsyncSession, phone_hash: str) -> list[AdminUser]:
    result = await session.execute(
        select(AdminUser)
        .where(AdminUser.phone_hash == phone_hash)
        .options(selectinload(AdminUser.school))
        .order_by(AdminUser.created_at)
    )
    return list(result.scalars().all())


async def get_active_admin_by_nin_hash(session: AsyncSession, nin_hash: str) -> AdminUser | None:
    result = await session.execute(
        select(AdminUser)
        .where(AdminUser.nin_hash == nin_hash, AdminUser.is_active.is_(True))
        .options(selectinload(AdminUser.school))
        .limit(1)
    )
    return result.scalar_one_or_none()
