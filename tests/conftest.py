from __future__ import annotations

import os
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Any
from uuid import UUID

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src import models  # noqa: F401
from src.config import get_settings
from src.db import connection
from src.db.connection import Base
from src.db.queries import create_admin_user, create_school
from src.models.admin_user import AdminUser, AdminUserCreate
from src.models.school import School, SchoolCreate
from src.security.data_protection import DataProtectionConfig, get_data_protection_config
from src.security.tokens import TokenConfig, get_token_config

TEST_JWT_SECRET = "test-jwt-secret-that-is-at-least-32-characters-long"
TEST_DATA_PROTECTION_KEY = "test-data-protection-key-with-enough-entropy"
TEST_BASE_URL = "https://portal.example.org"


@pytest.fixture(autouse=True)
def _default_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://cecms:pw@localhost:5432/cecms")
    monkeypatch.setenv("APP_PUBLIC_BASE_URL", TEST_BASE_URL)
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("DATA_PROTECTION_KEY", TEST_DATA_PROTECTION_KEY)
    monkeypatch.setenv("SA_EMAIL", "system@example.org")
    monkeypatch.delenv("RESEND_API_KEY", raising=False)

    get_settings.cache_clear()
    get_token_config.cache_clear()
    get_data_protection_config.cache_clear()
    connection.get_engine.cache_clear()
    connection.get_sessionmaker.cache_clear()


@pytest.fixture
def token_config() -> TokenConfig:
    return TokenConfig(secret=TEST_JWT_SECRET)


@pytest.fixture
def protection_config() -> DataProtectionConfig:
    return DataProtectionConfig.from_secret(TEST_DATA_PROTECTION_KEY)


def requires_test_db() -> bool:
    test_database_url = os.getenv("TEST_DATABASE_URL")
    return bool(test_database_url and test_database_url.startswith("postgresql+asyncpg://"))


@pytest.fixture(scope="session")
def test_database_url() -> str:
    test_database_url = os.getenv("TEST_DATABASE_URL")
    if not requires_test_db():
        if os.getenv("CI_PARITY") == "1":
            pytest.fail("CI parity mode requires TEST_DATABASE_URL to be set to a Postgres asyncpg URL")
        pytest.skip("TEST_DATABASE_URL not set for postgres integration tests")
    assert test_database_url is not None
    return test_database_url


def _serialize_sqlite_transactions(engine: AsyncEngine) -> None:
    # pysqlite defers BEGIN and breaks SAVEPOINT; take the write lock up front
    # so concurrent sessions queue on the busy timeout instead of deadlocking.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    if requires_test_db():
        engine = create_async_engine(os.environ["TEST_DATABASE_URL"], future=True)
    else:
        if os.getenv("CI_PARITY") == "1":
            pytest.fail("CI parity mode requires TEST_DATABASE_URL to be set to a Postgres asyncpg URL")
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cecms-test.db'}")
        _serialize_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def db_sessionmaker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest.fixture
async def db_session(db_sessionmaker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with db_sessionmaker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_school(
    db_session: AsyncSession, protection_config: DataProtectionConfig
) -> Callable[..., Awaitable[School]]:
    async def _make(
        *,
        center_name: str = "Lagos Model College",
        center_number: str = "CN-1001",
        email: str = "School@Example.org",
        phone: str | None = "+2348000000001",
        email_verified: bool = False,
    ) -> School:
        school = await create_school(
            db_session,
            SchoolCreate(center_name=center_name, center_number=center_number, email=email, phone=phone),
            config=protection_config,
        )
        school.email_verified = email_verified
        await db_session.commit()
        return school

    return _make


@pytest.fixture
def make_admin(
    db_session: AsyncSession, protection_config: DataProtectionConfig
) -> Callable[..., Awaitable[AdminUser]]:
    async def _make(
        *,
        name: str = "Ada Admin",
        email: str = "ada@example.org",
        phone: str | None = "+2348000000002",
        nin: str | None = None,
        role: str = "Admin",
        school_id: UUID | None = None,
        email_verified: bool = False,
    ) -> AdminUser:
        admin = await create_admin_user(
            db_session,
            AdminUserCreate(
                name=name,
                email=email,
                phone=phone,
                nin=nin,
                role=role,
                school_id=school_id,
                email_verified=email_verified,
            ),
            config=protection_config,
        )
        await db_session.commit()
        return admin

    return _make
