from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import Boolean, DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.connection import Base

if TYPE_CHECKING:
    from src.models.admin_user import AdminUser


class School(Base):
    __tablename__ = "schools"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    center_name: Mapped[str] = mapped_column(String(255), nullable=False)
    center_number: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    school_email: Mapped[str] = mapped_column(String(512), nullable=False)
    school_email_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    school_phone: Mapped[str | None] = mapped_column(String(512), nullable=True)
    school_phone_hash: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_by: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    admin_users: Mapped[list[AdminUser]] = relationship(
        back_populates="school", foreign_keys="AdminUser.school_id"
    )


class SchoolCreate(BaseModel):
    center_name: str = Field(min_length=1, max_length=255)
    center_number: str = Field(min_length=1, max_length=32)
    email: EmailStr
    phone: str | None = None
