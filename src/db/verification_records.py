"""One-time email verification records.

State machine: PENDING -> VERIFIED | REVOKED, with EXPIRED inferred at read
time from ``expires_at`` (never written, no background sweep). A row that is
past ``expires_at`` but still PENDING in storage is therefore normal.

The two invariants that matter under concurrency are enforced by the store:
a partial unique index allows one PENDING row per (owner_id, type), and
redemption is a single conditional UPDATE so that only one of several racing
requests can flip a row from PENDING to VERIFIED.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Index, String, Text, Uuid, delete, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from src.db.connection import Base, as_utc
from src.security.errors import RedeemFailure, StoreUnavailable

logger = logging.getLogger(__name__)

DEFAULT_REVOKE_REASON = "MANUALLY_REVOKED"


class OwnerKind(StrEnum):
    ADMIN = "admin"
    SCHOOL = "school"


class VerificationType(StrEnum):
    ADMIN_EMAIL_VERIFICATION = "ADMIN_EMAIL_VERIFICATION"
    SCHOOL_EMAIL_VERIFICATION = "SCHOOL_EMAIL_VERIFICATION"

    @classmethod
    def for_owner(cls, owner_kind: OwnerKind | str) -> VerificationType:
        if OwnerKind(owner_kind) is OwnerKind.ADMIN:
            return cls.ADMIN_EMAIL_VERIFICATION
        return cls.SCHOOL_EMAIL_VERIFICATION


class VerificationStatus(StrEnum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


class EmailVerification(Base):
    __tablename__ = "email_verifications"
    __table_args__ = (
        Index(
            "uq_email_verifications_pending_owner_type",
            "owner_id",
            "type",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    owner_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    owner_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    email_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    token: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=VerificationStatus.PENDING.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)


@dataclass(frozen=True)
class RedeemResult:
    ok: bool
    failure: RedeemFailure | None = None

    @classmethod
    def success(cls) -> RedeemResult:
        return cls(ok=True)

    @classmethod
    def fail(cls, reason: RedeemFailure) -> RedeemResult:
        return cls(ok=False, failure=reason)


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        raise StoreUnavailable(f"{operation}: conflicting concurrent write") from exc
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"{operation}: store unavailable") from exc


def effective_status(record: EmailVerification, now: datetime | None = None) -> VerificationStatus:
    now = now or datetime.now(UTC)
    status = VerificationStatus(record.status)
    if status is VerificationStatus.PENDING and as_utc(record.expires_at) <= now:
        return VerificationStatus.EXPIRED
    return status


async def issue_for(
    session: AsyncSession,
    *,
    owner_id: UUID,
    owner_kind: OwnerKind | str,
    token: str,
    email_hash: str,
    ttl: timedelta,
    ip_address: str | None = None,
    user_agent: str | None = None,
    now: datetime | None = None,
) -> EmailVerification:
    """Replace any PENDING record for this owner and purpose with a fresh one."""
    owner_kind = OwnerKind(owner_kind)
    verification_type = VerificationType.for_owner(owner_kind)
    now = now or datetime.now(UTC)

    with _store_errors("issue_for"):
        superseded = await session.execute(
            delete(EmailVerification).where(
                EmailVerification.owner_id == owner_id,
                EmailVerification.type == verification_type.value,
                EmailVerification.status == VerificationStatus.PENDING.value,
            )
        )
        record = EmailVerification(
            owner_id=owner_id,
            owner_kind=owner_kind.value,
            email_hash=email_hash,
            token=token,
            type=verification_type.value,
            status=VerificationStatus.PENDING.value,
            created_at=now,
            expires_at=now + ttl,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        session.add(record)
        await session.flush()

    if superseded.rowcount:
        logger.info(
            "Superseded %d pending %s record(s) for owner %s",
            superseded.rowcount,
            verification_type.value,
            owner_id,
        )
    return record


async def redeem(
    session: AsyncSession,
    *,
    owner_id: UUID,
    verification_type: VerificationType | str,
    token: str,
    now: datetime | None = None,
) -> RedeemResult:
    """Atomically move a matching PENDING record to VERIFIED.

    The transition is one conditional UPDATE; the follow-up read only
    explains a failure and never decides success.
    """
    verification_type = VerificationType(verification_type)
    now = now or datetime.now(UTC)

    with _store_errors("redeem"):
        result = await session.execute(
            update(EmailVerification)
            .where(
                EmailVerification.owner_id == owner_id,
                EmailVerification.type == verification_type.value,
                EmailVerification.token == token,
                EmailVerification.status == VerificationStatus.PENDING.value,
                EmailVerification.expires_at > now,
            )
            .values(
                status=VerificationStatus.VERIFIED.value,
                used=True,
                used_at=now,
                failure_reason=None,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return RedeemResult.success()

        existing = await session.execute(
            select(EmailVerification)
            .where(
                EmailVerification.owner_id == owner_id,
                EmailVerification.type == verification_type.value,
                EmailVerification.token == token,
            )
            .execution_options(populate_existing=True)
        )
        records = list(existing.scalars().all())

    statuses = {effective_status(record, now) for record in records}
    if VerificationStatus.VERIFIED in statuses:
        return RedeemResult.fail(RedeemFailure.ALREADY_USED)
    if VerificationStatus.EXPIRED in statuses:
        return RedeemResult.fail(RedeemFailure.EXPIRED)
    return RedeemResult.fail(RedeemFailure.NOT_FOUND)


async def revoke(session: AsyncSession, *, token: str, reason: str | None = None) -> int:
    with _store_errors("revoke"):
        result = await session.execute(
            update(EmailVerification)
            .where(
                EmailVerification.token == token,
                EmailVerification.status == VerificationStatus.PENDING.value,
            )
            .values(
                status=VerificationStatus.REVOKED.value,
                failure_reason=reason or DEFAULT_REVOKE_REASON,
            )
            .execution_options(synchronize_session=False)
        )
    return result.rowcount or 0


async def get_by_token(session: AsyncSession, token: str) -> EmailVerification | None:
    with _store_errors("get_by_token"):
        result = await session.execute(
            select(EmailVerification)
            .where(EmailVerification.token == token)
            .order_by(EmailVerification.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


async def list_pending(
    session: AsyncSession, *, owner_id: UUID, verification_type: VerificationType | str
) -> list[EmailVerification]:
    verification_type = VerificationType(verification_type)
    with _store_errors("list_pending"):
        result = await session.execute(
            select(EmailVerification)
            .where(
                EmailVerification.owner_id == owner_id,
                EmailVerification.type == verification_type.value,
                EmailVerification.status == VerificationStatus.PENDING.value,
            )
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
