"""Advisory locking of computed payroll entries."""

from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.calculators.types import PeriodType
from payroll_reconciler.models import Mandate, PayrollEntry
from payroll_reconciler.services.payroll_service import InvalidPeriodError
from payroll_reconciler.services.repository import PayrollRepository


class EntryNotFoundError(Exception):
    """Raised when a payroll entry does not exist for the requesting tenant."""

    code = "ENTRY_NOT_FOUND"

    def __init__(self, payroll_entry_id: UUID):
        self.payroll_entry_id = payroll_entry_id
        super().__init__(f"Payroll entry {payroll_entry_id} not found")


class LockingService:
    """Sets and clears the lock flag of payroll entries.

    The flag is advisory: the calculator honors it and keeps a locked entry's
    figures unless recalculation is explicitly requested. No database-level
    row lock is taken.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_entry(self, payroll_entry_id: UUID, tenant_id: UUID | None = None) -> PayrollEntry:
        """Lock one entry. Locking a locked entry keeps its original timestamp."""
        entry = await self._get_entry(payroll_entry_id, tenant_id)
        if not entry.is_locked:
            entry.is_locked = True
            entry.locked_at = datetime.now(timezone.utc)
            await self.session.flush()
        return entry

    async def unlock_entry(self, payroll_entry_id: UUID, tenant_id: UUID | None = None) -> PayrollEntry:
        """Unlock one entry so the next calculation recomputes it."""
        entry = await self._get_entry(payroll_entry_id, tenant_id)
        if entry.is_locked:
            entry.is_locked = False
            entry.locked_at = None
            await self.session.flush()
        return entry

    async def lock_period(
        self,
        mandate_id: UUID,
        period_start: date,
        period_end: date,
        period_type: PeriodType | str,
        tenant_id: UUID | None = None,
    ) -> int:
        """Lock every unlocked entry of a mandate starting within the range.

        Returns count of locked entries.

        Raises:
            MandateNotFoundError: If the mandate is missing or not the tenant's
            InvalidPeriodError: If the range is reversed
        """
        if period_start > period_end:
            raise InvalidPeriodError(period_start, period_end)
        await PayrollRepository(self.session).get_mandate(mandate_id, tenant_id)

        result = await self.session.execute(
            update(PayrollEntry)
            .where(
                PayrollEntry.mandate_id == mandate_id,
                PayrollEntry.period_type == PeriodType(period_type).value,
                PayrollEntry.period_start >= period_start,
                PayrollEntry.period_start <= period_end,
                PayrollEntry.is_locked.is_(False),
            )
            .values(is_locked=True, locked_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def _get_entry(self, payroll_entry_id: UUID, tenant_id: UUID | None) -> PayrollEntry:
        query = select(PayrollEntry).where(PayrollEntry.payroll_entry_id == payroll_entry_id)
        if tenant_id is not None:
            query = query.join(Mandate, Mandate.mandate_id == PayrollEntry.mandate_id).where(
                Mandate.tenant_id == tenant_id
            )
        entry = (await self.session.execute(query)).scalar_one_or_none()
        if entry is None:
            raise EntryNotFoundError(payroll_entry_id)
        return entry
