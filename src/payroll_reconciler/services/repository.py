"""Natural-key persistence for imported and computed payroll data."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.models import Base, Mandate, ManualPayrollEntry, PayrollEntry, TimeRecord

logger = logging.getLogger(__name__)


class UpsertOutcome(str, Enum):
    """Result of an upsert keyed by a natural key."""

    CREATED = "CREATED"
    UPDATED = "UPDATED"
    CONFLICT = "CONFLICT"


class FatalPreconditionError(Exception):
    """Raised when a request must be rejected before anything is written."""

    code = "PRECONDITION_FAILED"


class MandateNotFoundError(FatalPreconditionError):
    """Raised when a mandate is missing or not owned by the requesting tenant."""

    code = "MANDATE_NOT_FOUND"

    def __init__(self, mandate_id: UUID, tenant_id: UUID | None = None):
        self.mandate_id = mandate_id
        self.tenant_id = tenant_id
        super().__init__(f"Mandate {mandate_id} not found")


class UpsertConflictError(Exception):
    """Raised when a write that must land was reported as CONFLICT."""

    code = "UPSERT_CONFLICT"

    def __init__(self, table: str, key: dict[str, Any]):
        self.table = table
        self.key = key
        super().__init__(f"Concurrent write on {table} {key}")


class PayrollRepository:
    """Upsert-by-natural-key contract over the payroll tables.

    Key invariants:
    1. At most one row per natural key (enforced by unique constraints)
    2. Writing an existing key updates it in place (last writer wins)
    3. A unique violation raised anyway (e.g. a concurrent writer on another
       constraint) is rolled back to a savepoint and reported as CONFLICT
       instead of aborting the caller's transaction
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_mandate(self, mandate_id: UUID, tenant_id: UUID | None = None) -> Mandate:
        """Load a mandate, checking tenant ownership when a tenant is given.

        Raises:
            MandateNotFoundError: If missing or owned by another tenant
        """
        mandate = await self.session.get(Mandate, mandate_id)
        if mandate is None or (tenant_id is not None and mandate.tenant_id != tenant_id):
            raise MandateNotFoundError(mandate_id, tenant_id)
        return mandate

    async def upsert_time_record(self, values: dict[str, Any]) -> UpsertOutcome:
        return await self.upsert(TimeRecord, values)

    async def upsert_payroll_entry(self, values: dict[str, Any]) -> UpsertOutcome:
        return await self.upsert(PayrollEntry, values)

    async def upsert_manual_entry(self, values: dict[str, Any]) -> UpsertOutcome:
        return await self.upsert(ManualPayrollEntry, values)

    async def find_by_natural_key(self, model: type[Base], values: dict[str, Any]) -> Any:
        """Return the row holding the natural key of ``values``, freshly loaded."""
        result = await self.session.execute(
            select(model)
            .where(self._key_clause(model, values))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert(self, model: type[Base], values: dict[str, Any]) -> UpsertOutcome:
        """Insert ``values`` or update the row with the same natural key."""
        key = model.NATURAL_KEY
        missing = [k for k in key if k not in values]
        if missing:
            raise ValueError(f"Natural key columns missing for {model.__tablename__}: {missing}")

        pk = model.__mapper__.primary_key[0]
        exists = await self.session.scalar(
            select(pk).where(self._key_clause(model, values)).limit(1)
        )

        insert = self._insert_for_dialect()
        stmt = insert(model).values(**values)
        update_values = {c: stmt.excluded[c] for c in values if c not in key and c != pk.name}
        if "updated_at" in model.__table__.c:
            update_values["updated_at"] = func.now()
        stmt = stmt.on_conflict_do_update(index_elements=list(key), set_=update_values)

        try:
            async with self.session.begin_nested():
                await self.session.execute(stmt)
        except IntegrityError as e:
            logger.warning(
                "Upsert conflict on %s %s: %s",
                model.__tablename__,
                {k: values[k] for k in key},
                e.orig,
            )
            return UpsertOutcome.CONFLICT

        return UpsertOutcome.UPDATED if exists is not None else UpsertOutcome.CREATED

    def _insert_for_dialect(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'")

    @staticmethod
    def _key_clause(model: type[Base], values: dict[str, Any]):
        table = model.__table__
        return and_(*(table.c[k] == values[k] for k in model.NATURAL_KEY))
