"""Manually entered monthly payroll figures."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_reconciler.config import PayrollConfig
from payroll_reconciler.models import ManualPayrollEntry
from payroll_reconciler.services.repository import PayrollRepository, UpsertOutcome


class ManualPayrollService:
    """Monthly payroll totals for mandates without detailed time data.

    One entry per (mandate, year, month); writing a month again replaces it.
    """

    def __init__(self, session: AsyncSession, config: PayrollConfig | None = None):
        self.session = session
        self.config = config or PayrollConfig()
        self.repository = PayrollRepository(session)

    async def upsert_entry(
        self,
        mandate_id: UUID,
        year: int,
        month: int,
        gross_amount: Decimal,
        social_charges: Decimal | None = None,
        employee_count: int | None = None,
        notes: str | None = None,
    ) -> tuple[ManualPayrollEntry | None, UpsertOutcome]:
        """Create or replace the entry of a month.

        Social charges default to gross_amount times the social charge rate.
        On CONFLICT nothing was written and no entry is returned.
        """
        if not 1 <= month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {month}")
        if gross_amount < 0:
            raise ValueError("gross_amount cannot be negative")
        if social_charges is None:
            social_charges = gross_amount * self.config.social_charge_rate

        values = {
            "mandate_id": mandate_id,
            "year": year,
            "month": month,
            "gross_amount": gross_amount,
            "social_charges": social_charges,
            "total_cost": gross_amount + social_charges,
            "employee_count": employee_count or 0,
            "notes": notes,
        }
        outcome = await self.repository.upsert_manual_entry(values)
        if outcome == UpsertOutcome.CONFLICT:
            return None, outcome
        entry = await self.repository.find_by_natural_key(ManualPayrollEntry, values)
        return entry, outcome

    async def list_entries(self, mandate_id: UUID, year: int | None = None) -> list[ManualPayrollEntry]:
        query = select(ManualPayrollEntry).where(ManualPayrollEntry.mandate_id == mandate_id)
        if year is not None:
            query = query.where(ManualPayrollEntry.year == year)
        result = await self.session.execute(
            query.order_by(ManualPayrollEntry.year.desc(), ManualPayrollEntry.month.desc())
        )
        return list(result.scalars().all())
