"""Pytest fixtures for payroll reconciler tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.config import ImportConfig, PayrollConfig
from payroll_reconciler.database import get_engine, make_session_factory
from payroll_reconciler.models import Base, Employee, Mandate

TENANT_ID = UUID("adfb6898-026f-fa17-8583-404672c7972a")
OTHER_TENANT_ID = UUID("b2d1e6f0-1234-5678-9abc-def012345678")


@pytest.fixture
async def engine(tmp_path):
    """Create a file-backed test database.

    The reconciler opens several sessions at once, which an in-memory SQLite
    database cannot share.
    """
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'payroll_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def tenant_id() -> UUID:
    return TENANT_ID


@pytest.fixture
def other_tenant_id() -> UUID:
    return OTHER_TENANT_ID


@pytest.fixture
def payroll_config() -> PayrollConfig:
    return PayrollConfig()


@pytest.fixture
def import_config() -> ImportConfig:
    return ImportConfig(stats_batch_size=1)


@pytest.fixture
async def mandate(session: AsyncSession) -> Mandate:
    """Create a test mandate owned by TENANT_ID."""
    mandate = Mandate(
        mandate_id=uuid4(),
        tenant_id=TENANT_ID,
        name="Hotel du Lac",
        is_active=True,
    )
    session.add(mandate)
    await session.commit()
    return mandate


@pytest.fixture
async def employees(session: AsyncSession, mandate: Mandate) -> dict[str, Employee]:
    """Create the registered employees of the test mandate."""
    jean = Employee(
        employee_id=uuid4(),
        mandate_id=mandate.mandate_id,
        external_id="E001",
        first_name="Jean",
        last_name="Dupont",
        hourly_rate=Decimal("20"),
        position="Chef de rang",
        is_active=True,
    )
    marie = Employee(
        employee_id=uuid4(),
        mandate_id=mandate.mandate_id,
        external_id="E003",
        first_name="Marie-Claire",
        last_name="Martin",
        hourly_rate=None,
        position="Réception",
        is_active=True,
    )
    lucas = Employee(
        employee_id=uuid4(),
        mandate_id=mandate.mandate_id,
        external_id="E004",
        first_name="Lucas",
        last_name="Favre",
        hourly_rate=Decimal("22"),
        is_active=False,
    )
    session.add_all([jean, marie, lucas])
    await session.commit()
    return {"jean": jean, "marie": marie, "lucas": lucas}
