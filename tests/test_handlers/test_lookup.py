from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.audit_log import AdminAuditLog
from src.db.verification_records import OwnerKind, issue_for
from src.handlers.lookup import nin_lookup, phone_lookup
from src.models.admin_user import AdminUser
from src.models.school import School
from src.security.data_protection import DataProtectionConfig
from src.security.tokens import AuthPrincipal

MakeAdmin = Callable[..., Awaitable[AdminUser]]
MakeSchool = Callable[..., Awaitable[School]]

SHARED_PHONE = "+2348000000077"
NIN = "AB12345678"


def _principal(admin: AdminUser) -> AuthPrincipal:
    return AuthPrincipal(
        entity_id=str(admin.id), email="operator@example.org", school_id="", role=admin.role, center_number=""
    )


class TestPhoneLookup:
    @pytest.mark.asyncio
    async def test_matches_schools_and_admins_by_hash(
        self,
        db_session: AsyncSession,
        make_admin: MakeAdmin,
        make_school: MakeSchool,
        protection_config: DataProtectionConfig,
    ) -> None:
        operator = await make_admin(name="Operator", email="operator@example.org", phone=None)
        school = await make_school(phone=SHARED_PHONE)
        admin = await make_admin(phone=SHARED_PHONE, school_id=school.id)
        await make_admin(name="Other", email="other@example.org", phone="+2348000000099")

        result = await phone_lookup(
            db_session,
            phone_number=f"  {SHARED_PHONE} ",
            principal=_principal(operator),
            ip_address="203.0.113.5",
            user_agent="pytest",
            protection_config=protection_config,
        )

        assert result.status_code == 200
        data = result.body["data"]
        assert [entry["id"] for entry in data["schools"]] == [str(school.id)]
        assert [entry["id"] for entry in data["adminUsers"]] == [str(admin.id)]
        assert data["adminUsers"][0]["email"] == "ada@example.org"
        assert data["adminUsers"][0]["school"]["centerNumber"] == "CN-1001"

        audit = (await db_session.execute(select(AdminAuditLog))).scalar_one()
        assert audit.action == "PHONE_LOOKUP"
        assert audit.admin_user_id == operator.id
        assert audit.details == {"schoolsFound": 1, "adminsFound": 1}

    @pytest.mark.asyncio
    async def test_no_match_is_empty(
        self, db_session: AsyncSession, make_admin: MakeAdmin, protection_config: DataProtectionConfig
    ) -> None:
        operator = await make_admin(phone=None)
        result = await phone_lookup(
            db_session,
            phone_number="+2348000000123",
            principal=_principal(operator),
            ip_address="unknown",
            user_agent="unknown",
            protection_config=protection_config,
        )
        assert result.status_code == 200
        assert result.body["data"] == {"schools": [], "adminUsers": []}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("phone_number", "message"),
        [
            (None, "Phone number is required"),
            ("", "Phone number is required"),
            ("   ", "Invalid phone number format"),
        ],
    )
    async def test_bad_input(
        self, phone_number: str | None, message: str, protection_config: DataProtectionConfig
    ) -> None:
        session = AsyncMock()
        principal = AuthPrincipal(entity_id="a1", email="e", school_id="", role="Admin", center_number="")
        result = await phone_lookup(
            session,
            phone_number=phone_number,
            principal=principal,
            ip_address="unknown",
            user_agent="unknown",
            protection_config=protection_config,
        )
        assert result.status_code == 400
        assert result.body == {"success": False, "message": message}
        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_failure_is_500(self, protection_config: DataProtectionConfig) -> None:
        session = AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, ConnectionRefusedError("down"))
        principal = AuthPrincipal(entity_id="a1", email="e", school_id="", role="Admin", center_number="")
        result = await phone_lookup(
            session,
            phone_number=SHARED_PHONE,
            principal=principal,
            ip_address="unknown",
            user_agent="unknown",
            protection_config=protection_config,
        )
        assert result.status_code == 500
        session.rollback.assert_awaited_once()


class TestNinLookup:
    @pytest.mark.asyncio
    async def test_verified_admin_is_prefilled(
        self, db_session: AsyncSession, make_admin: MakeAdmin, protection_config: DataProtectionConfig
    ) -> None:
        operator = await make_admin(name="Operator", email="operator@example.org", phone=None)
        admin = await make_admin(nin=NIN, email_verified=True)

        result = await nin_lookup(
            db_session,
            nin=f" {NIN} ",
            principal=_principal(operator),
            ip_address="unknown",
            user_agent="unknown",
            protection_config=protection_config,
        )

        assert result.status_code == 200
        data = result.body["data"]
        assert data["exists"] is True
        assert data["readonly"] is True
        assert data["id"] == str(admin.id)
        assert data["email"] == "ada@example.org"

        audit = (await db_session.execute(select(AdminAuditLog))).scalar_one()
        assert audit.action == "NIN_LOOKUP"
        assert audit.details == {"adminFound": True, "adminId": str(admin.id)}

    @pytest.mark.asyncio
    async def test_unknown_nin_is_a_new_admin(
        self, db_session: AsyncSession, make_admin: MakeAdmin, protection_config: DataProtectionConfig
    ) -> None:
        operator = await make_admin(phone=None)
        result = await nin_lookup(
            db_session,
            nin="ZZ99999999",
            principal=_principal(operator),
            ip_address="unknown",
            user_agent="unknown",
            protection_config=protection_config,
        )
        assert result.status_code == 200
        assert result.body["data"] == {"exists": False, "readonly": False}

    @pytest.mark.asyncio
    async def test_inactive_admin_is_not_matched(
        self, db_session: AsyncSession, make_admin: MakeAdmin, protection_config: DataProtectionConfig
    ) -> None:
        operator = await make_admin(name="Operator", email="operator@example.org", phone=None)
        admin = await make_admin(nin=NIN, email_verified=True)
        admin.is_active = False
        await db_session.commit()

        result = await nin_lookup(
            db_session,
            nin=NIN,
            principal=_principal(operator),
            ip_address="unknown",
            user_agent="unknown",
            protection_config=protection_config,
        )
        assert result.body["data"]["exists"] is False

    @pytest.mark.asyncio
    async def test_unverified_admin_reports_outstanding_link(
        self, db_session: AsyncSession, make_admin: MakeAdmin, protection_config: DataProtectionConfig
    ) -> None:
        operator = await make_admin(name="Operator", email="operator@example.org", phone=None)
        admin = await make_admin(nin=NIN)
        kwargs = {
            "nin": NIN,
            "principal": _principal(operator),
            "ip_address": "unknown",
            "user_agent": "unknown",
            "protection_config": protection_config,
        }

        before = await nin_lookup(db_session, **kwargs)
        assert before.status_code == 400
        assert before.body["data"]["verificationRequired"] is True
        assert before.body["data"]["verificationPending"] is False

        await issue_for(
            db_session,
            owner_id=admin.id,
            owner_kind=OwnerKind.ADMIN,
            token="outstanding-link-token",
            email_hash=admin.email_hash,
            ttl=timedelta(hours=24),
        )
        await db_session.commit()

        after = await nin_lookup(db_session, **kwargs)
        assert after.status_code == 400
        assert after.body["data"]["verificationPending"] is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("nin", "message"),
        [
            (None, "NIN is required"),
            ("  ", "NIN is required"),
            ("SHORT1", "NIN must be 10 to 20 alphanumeric characters"),
            ("AB-1234567890", "NIN must be 10 to 20 alphanumeric characters"),
        ],
    )
    async def test_bad_input(self, nin: str | None, message: str, protection_config: DataProtectionConfig) -> None:
        session = AsyncMock()
        principal = AuthPrincipal(entity_id="a1", email="e", school_id="", role="Admin", center_number="")
        result = await nin_lookup(
            session,
            nin=nin,
            principal=principal,
            ip_address="unknown",
            user_agent="unknown",
            protection_config=protection_config,
        )
        assert result.status_code == 400
        assert result.body == {"success": False, "message": message}
        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_block_result(
        self, db_session: AsyncSession, make_admin: MakeAdmin, protection_config: DataProtectionConfig
    ) -> None:
        operator = await make_admin(phone=None)
        with patch("src.handlers.lookup.record_audit_event", new_callable=AsyncMock, return_value=False):
            result = await nin_lookup(
                db_session,
                nin="ZZ99999999",
                principal=_principal(operator),
                ip_address="unknown",
                user_agent="unknown",
                protection_config=protection_config,
            )
        assert result.status_code == 200
