"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.config import Settings, get_settings
from payroll_reconciler.database import get_session_factory
from payroll_reconciler.models import Mandate
from payroll_reconciler.services.repository import PayrollRepository


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    """Session factory dependency (overridden in tests)."""
    return get_session_factory()


async def get_db_session(
    factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_sessionmaker)],
) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Extract tenant ID from header."""
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-ID header is required",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-Tenant-ID format",
        ) from None


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_sessionmaker)]
TenantId = Annotated[UUID, Depends(get_tenant_id)]
AppSettings = Annotated[Settings, Depends(get_settings)]


async def get_tenant_mandate(
    mandate_id: Annotated[UUID, Path()],
    db: DbSession,
    tenant_id: TenantId,
) -> Mandate:
    """Resolve the mandate of the path; another tenant's mandate is a 404."""
    return await PayrollRepository(db).get_mandate(mandate_id, tenant_id)


TenantMandate = Annotated[Mandate, Depends(get_tenant_mandate)]
