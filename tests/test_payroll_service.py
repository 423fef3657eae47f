"""Tests for payroll calculation, persistence and locking."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from payroll_reconciler.calculators.types import PeriodType
from payroll_reconciler.models import Mandate, PayrollEntry, TimeRecord
from payroll_reconciler.services.locking_service import EntryNotFoundError, LockingService
from payroll_reconciler.services.payroll_service import InvalidPeriodError, PayrollCalculationService
from payroll_reconciler.services.repository import MandateNotFoundError, PayrollRepository, UpsertOutcome

JAN_1 = date(2024, 1, 1)
JAN_7 = date(2024, 1, 7)


@pytest.fixture
async def week_of_records(session, employees):
    """Jean works 9h Monday to Friday of the first week of 2024."""
    jean = employees["jean"]
    session.add_all(
        [
            TimeRecord(
                employee_id=jean.employee_id,
                mandate_id=jean.mandate_id,
                work_date=JAN_1 + timedelta(days=i),
                worked_hours=Decimal("9"),
                import_source="timesheet",
            )
            for i in range(5)
        ]
    )
    await session.commit()


async def calculate(session_factory, mandate, **kwargs):
    kwargs.setdefault("period_type", PeriodType.WEEKLY)
    async with session_factory() as session:
        result = await PayrollCalculationService(session).calculate(
            kwargs.pop("start", JAN_1),
            kwargs.pop("end", JAN_7),
            mandate_id=mandate.mandate_id,
            **kwargs,
        )
        await session.commit()
    return result


class TestCalculate:
    """Calculation results and persistence."""

    async def test_weekly(self, session_factory, mandate, employees, week_of_records, tenant_id):
        result = await calculate(session_factory, mandate, tenant_id=tenant_id)

        assert len(result.mandates) == 1
        mandate_result = result.mandates[0]
        assert mandate_result.mandate_name == "Hotel du Lac"
        # Lucas is inactive
        assert mandate_result.employee_count == 2
        # Marie has no records in the range
        assert mandate_result.totals.total_employees == 1
        assert [e.employee_name for e in mandate_result.employees] == ["Jean Dupont"]

        period = mandate_result.employees[0].periods[0]
        assert period.period.start == JAN_1
        assert period.period.end == JAN_7
        assert period.recomputed is True
        assert period.payroll_entry_id is not None
        assert period.figures.total_cost == Decimal("1128.5")

        assert result.totals.total_hours == Decimal("45")
        assert result.totals.total_overtime_hours == Decimal("5")
        assert result.totals.total_cost == Decimal("1128.5")

        async with session_factory() as fresh:
            entries = (await fresh.execute(select(PayrollEntry))).scalars().all()
            refreshed = await fresh.get(Mandate, mandate.mandate_id)

        assert len(entries) == 1
        assert entries[0].payroll_entry_id == period.payroll_entry_id
        assert entries[0].period_type == "WEEKLY"
        assert entries[0].total_gross == Decimal("925")
        assert refreshed.total_payroll_cost == Decimal("1128.5")
        assert refreshed.last_payroll_calculation is not None

    async def test_monthly_single_period(self, session_factory, mandate, employees, week_of_records):
        result = await calculate(
            session_factory, mandate, start=JAN_1, end=date(2024, 1, 31), period_type=PeriodType.MONTHLY
        )

        figures = result.mandates[0].employees[0].periods[0].figures
        # 31 days -> 5 started weeks -> 200h threshold
        assert figures.regular_hours == Decimal("45")
        assert figures.overtime_hours == Decimal("0")

    async def test_weeks_without_records_are_omitted(self, session_factory, mandate, employees, week_of_records):
        result = await calculate(session_factory, mandate, start=JAN_1, end=date(2024, 1, 21))

        periods = result.mandates[0].employees[0].periods
        assert [p.period.start for p in periods] == [JAN_1]

    async def test_recalculation_is_idempotent(self, session_factory, mandate, employees, week_of_records):
        first = await calculate(session_factory, mandate)
        second = await calculate(session_factory, mandate)

        first_period = first.mandates[0].employees[0].periods[0]
        second_period = second.mandates[0].employees[0].periods[0]
        assert second_period.payroll_entry_id == first_period.payroll_entry_id
        assert second_period.figures == first_period.figures

        async with session_factory() as fresh:
            assert await fresh.scalar(select(func.count()).select_from(PayrollEntry)) == 1

    async def test_conflicting_entry_write(self, session_factory, mandate, employees, week_of_records, monkeypatch):
        async def conflict(self, values):
            return UpsertOutcome.CONFLICT

        monkeypatch.setattr(PayrollRepository, "upsert_payroll_entry", conflict)

        result = await calculate(session_factory, mandate)

        period = result.mandates[0].employees[0].periods[0]
        assert period.recomputed is True
        assert period.payroll_entry_id is None
        assert period.figures.total_cost == Decimal("1128.5")
        async with session_factory() as fresh:
            assert await fresh.scalar(select(func.count()).select_from(PayrollEntry)) == 0

    @pytest.mark.parametrize("start,end", [(JAN_7, JAN_1), (JAN_1, JAN_1)])
    async def test_invalid_period(self, session, mandate, start, end):
        with pytest.raises(InvalidPeriodError):
            await PayrollCalculationService(session).calculate(
                start, end, PeriodType.WEEKLY, mandate_id=mandate.mandate_id
            )

    async def test_unknown_mandate(self, session, mandate):
        with pytest.raises(MandateNotFoundError):
            await PayrollCalculationService(session).calculate(
                JAN_1, JAN_7, PeriodType.WEEKLY, mandate_id=uuid4()
            )

    async def test_other_tenant(self, session, mandate, other_tenant_id):
        with pytest.raises(MandateNotFoundError):
            await PayrollCalculationService(session).calculate(
                JAN_1, JAN_7, "WEEKLY", mandate_id=mandate.mandate_id, tenant_id=other_tenant_id
            )

    async def test_all_mandates_of_tenant(self, session, mandate, employees, week_of_records, tenant_id, other_tenant_id):
        session.add(Mandate(tenant_id=other_tenant_id, name="Auberge du Port", is_active=True))
        await session.commit()

        result = await PayrollCalculationService(session).calculate(
            JAN_1, JAN_7, PeriodType.WEEKLY, tenant_id=tenant_id
        )

        assert [m.mandate_name for m in result.mandates] == ["Hotel du Lac"]


class TestLockedEntries:
    """Locked entries keep their figures until an explicit recalculation."""

    async def _lock_first_entry(self, session_factory, mandate) -> PayrollEntry:
        result = await calculate(session_factory, mandate)
        entry_id = result.mandates[0].employees[0].periods[0].payroll_entry_id
        async with session_factory() as session:
            entry = await LockingService(session).lock_entry(entry_id)
            await session.commit()
        return entry

    async def _add_saturday(self, session_factory, employees):
        jean = employees["jean"]
        async with session_factory() as session:
            session.add(
                TimeRecord(
                    employee_id=jean.employee_id,
                    mandate_id=jean.mandate_id,
                    work_date=date(2024, 1, 6),
                    worked_hours=Decimal("6"),
                )
            )
            await session.commit()

    async def test_locked_entry_kept(self, session_factory, mandate, employees, week_of_records):
        entry = await self._lock_first_entry(session_factory, mandate)
        await self._add_saturday(session_factory, employees)

        first = await calculate(session_factory, mandate)
        second = await calculate(session_factory, mandate)

        for result in (first, second):
            period = result.mandates[0].employees[0].periods[0]
            assert period.recomputed is False
            assert period.is_locked is True
            assert period.payroll_entry_id == entry.payroll_entry_id
            assert period.figures.total_hours == Decimal("45")
            assert period.figures.total_cost == Decimal("1128.5")

        async with session_factory() as fresh:
            stored = await fresh.get(PayrollEntry, entry.payroll_entry_id)
        assert stored.total_hours == Decimal("45")

    async def test_recalculate_overrides_lock(self, session_factory, mandate, employees, week_of_records):
        entry = await self._lock_first_entry(session_factory, mandate)
        await self._add_saturday(session_factory, employees)

        result = await calculate(session_factory, mandate, recalculate=True)

        period = result.mandates[0].employees[0].periods[0]
        assert period.recomputed is True
        assert period.figures.total_hours == Decimal("51")
        assert period.figures.overtime_hours == Decimal("11")

        async with session_factory() as fresh:
            stored = await fresh.get(PayrollEntry, entry.payroll_entry_id)
        assert stored.total_hours == Decimal("51")
        assert stored.is_locked is True

    async def test_unlock_allows_recompute(self, session_factory, mandate, employees, week_of_records):
        entry = await self._lock_first_entry(session_factory, mandate)
        await self._add_saturday(session_factory, employees)
        async with session_factory() as session:
            unlocked = await LockingService(session).unlock_entry(entry.payroll_entry_id)
            await session.commit()
        assert unlocked.is_locked is False
        assert unlocked.locked_at is None

        result = await calculate(session_factory, mandate)

        assert result.mandates[0].employees[0].periods[0].figures.total_hours == Decimal("51")


class TestLockingService:
    async def test_lock_is_idempotent(self, session_factory, mandate, employees, week_of_records):
        result = await calculate(session_factory, mandate)
        entry_id = result.mandates[0].employees[0].periods[0].payroll_entry_id

        locked_at = []
        for _ in range(2):
            async with session_factory() as session:
                await LockingService(session).lock_entry(entry_id)
                await session.commit()
            async with session_factory() as fresh:
                locked_at.append((await fresh.get(PayrollEntry, entry_id)).locked_at)

        assert locked_at[0] is not None
        assert locked_at[0] == locked_at[1]

    async def test_lock_checks_tenant(self, session_factory, mandate, employees, week_of_records, tenant_id, other_tenant_id):
        result = await calculate(session_factory, mandate)
        entry_id = result.mandates[0].employees[0].periods[0].payroll_entry_id

        async with session_factory() as session:
            service = LockingService(session)
            with pytest.raises(EntryNotFoundError):
                await service.lock_entry(entry_id, other_tenant_id)
            entry = await service.lock_entry(entry_id, tenant_id)
            assert entry.is_locked is True

    async def test_unknown_entry(self, session):
        with pytest.raises(EntryNotFoundError) as exc_info:
            await LockingService(session).unlock_entry(uuid4())
        assert exc_info.value.code == "ENTRY_NOT_FOUND"

    async def test_lock_period(self, session_factory, mandate, employees, week_of_records):
        await calculate(session_factory, mandate, start=JAN_1, end=date(2024, 1, 14))

        async with session_factory() as session:
            service = LockingService(session)
            first = await service.lock_period(mandate.mandate_id, JAN_1, date(2024, 1, 14), PeriodType.WEEKLY)
            second = await service.lock_period(mandate.mandate_id, JAN_1, date(2024, 1, 14), "WEEKLY")
            await session.commit()

        assert first == 1
        assert second == 0

    async def test_lock_period_checks_tenant(self, session, mandate, other_tenant_id):
        with pytest.raises(MandateNotFoundError):
            await LockingService(session).lock_period(
                mandate.mandate_id, JAN_1, JAN_7, PeriodType.WEEKLY, tenant_id=other_tenant_id
            )

    async def test_lock_period_reversed_range(self, session, mandate):
        with pytest.raises(InvalidPeriodError):
            await LockingService(session).lock_period(mandate.mandate_id, JAN_7, JAN_1, PeriodType.WEEKLY)
