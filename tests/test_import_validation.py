"""Tests for the validate-then-confirm summary import."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from payroll_reconciler.calculators.types import MatchType
from payroll_reconciler.importing.normalizer import RawRow
from payroll_reconciler.models import Employee, ImportHistory, ManualPayrollEntry
from payroll_reconciler.services.import_validation import (
    ConfirmedImport,
    ImportValidationService,
    InvalidPeriodLabelError,
    ReviewedEmployee,
    parse_period_label,
)
from payroll_reconciler.services.repository import (
    MandateNotFoundError,
    PayrollRepository,
    UpsertConflictError,
    UpsertOutcome,
)


def summary_rows() -> list[RawRow]:
    return [
        RawRow(row_number=1, external_id="E001", first_name="Jean", last_name="Dupont",
               hour_columns={"0101": "8", "0102": "8"}),
        RawRow(row_number=2, first_name="Marie", last_name="Martinez", worked_hours="151,67"),
        RawRow(row_number=3, first_name="Paul", last_name="Bernard", worked_hours="0"),
        RawRow(row_number=4, external_id="E001", first_name="Jean", last_name="Dupont", worked_hours="4"),
        RawRow(row_number=5, first_name="Anne", last_name="Roux", worked_hours="abc"),
        RawRow(row_number=6, first_name="Sophie", last_name="Blanc", worked_hours="10"),
    ]


class TestValidate:
    """Validation groups, matches and flags without writing."""

    async def test_report(self, session, session_factory, mandate, employees, tenant_id):
        service = ImportValidationService(session)

        report = await service.validate(
            summary_rows(), mandate.mandate_id, tenant_id=tenant_id, filename="janvier.csv"
        )

        assert report.errors == ["Row 5: not a number: 'abc'"]
        assert [e.identity.last_name for e in report.employees] == ["Dupont", "Martinez", "Blanc"]

        jean, marie, sophie = report.employees
        assert jean.total_hours == Decimal("20")
        assert jean.row_numbers == [1, 4]
        assert jean.match_type == MatchType.EXACT
        assert jean.matched_employee.employee_id == employees["jean"].employee_id
        assert jean.proposed_hourly_rate == Decimal("20")
        assert jean.rate_source == "employee"
        assert jean.estimated_cost == Decimal("488")
        assert jean.needs_review is False

        assert marie.match_type == MatchType.PARTIAL
        assert marie.match_confidence == 30
        assert marie.rate_source == "default"
        assert marie.proposed_hourly_rate == Decimal("25")
        assert marie.needs_review is True

        assert sophie.match_type == MatchType.NONE
        assert sophie.matched_employee is None
        assert sophie.issues[0] == "No matching employee found"

        stats = report.statistics
        assert stats.total_employees == 3
        assert stats.exact_matches == 1
        assert stats.partial_matches == 1
        assert stats.no_matches == 1
        assert stats.needs_review == 2
        assert stats.total_hours == Decimal("181.67")
        assert stats.estimated_total_cost == Decimal("5418.935")
        assert report.can_proceed is False
        assert report.filename == "janvier.csv"

        async with session_factory() as fresh:
            assert await fresh.scalar(select(func.count()).select_from(Employee)) == 3
            assert await fresh.scalar(select(func.count()).select_from(ImportHistory)) == 0

    async def test_default_rate_override(self, session, mandate, employees, tenant_id):
        rows = [RawRow(row_number=1, first_name="Sophie", last_name="Blanc", worked_hours="10")]

        report = await ImportValidationService(session).validate(
            rows, mandate.mandate_id, Decimal("30"), tenant_id=tenant_id
        )

        assert report.employees[0].proposed_hourly_rate == Decimal("30")
        assert report.employees[0].estimated_cost == Decimal("366")

    async def test_timesheet_rows_accepted(self, session, mandate, employees, tenant_id):
        rows = [
            RawRow(row_number=1, external_id="E001", first_name="Jean", last_name="Dupont",
                   work_date="2024-01-02", clock_in="08:00", clock_out="12:00"),
            RawRow(row_number=2, external_id="E001", first_name="Jean", last_name="Dupont",
                   work_date="2024-01-03", worked_hours="5"),
        ]

        report = await ImportValidationService(session).validate(rows, mandate.mandate_id, tenant_id=tenant_id)

        assert len(report.employees) == 1
        assert report.employees[0].total_hours == Decimal("9")
        assert report.can_proceed is True

    async def test_other_tenant(self, session, mandate, other_tenant_id):
        with pytest.raises(MandateNotFoundError):
            await ImportValidationService(session).validate(
                summary_rows(), mandate.mandate_id, tenant_id=other_tenant_id
            )


class TestConfirm:
    """Confirmation always writes."""

    def _request(self, employees) -> ConfirmedImport:
        return ConfirmedImport(
            mandate_id=employees["jean"].mandate_id,
            period="2024-03",
            filename="mars.csv",
            employees=[
                ReviewedEmployee(
                    first_name="Jean",
                    last_name="Dupont",
                    total_hours=Decimal("20"),
                    hourly_rate=Decimal("21"),
                    external_id="E001",
                    matched_employee_id=employees["jean"].employee_id,
                    match_type=MatchType.EXACT,
                    match_confidence=100,
                ),
                ReviewedEmployee(
                    first_name="Sophie",
                    last_name="Blanc",
                    total_hours=Decimal("10"),
                    hourly_rate=Decimal("25"),
                ),
            ],
        )

    async def test_confirm_writes(self, session, session_factory, mandate, employees, tenant_id):
        result = await ImportValidationService(session).confirm(self._request(employees), tenant_id)
        await session.commit()

        assert result.outcome == UpsertOutcome.CREATED
        assert result.employees_created == 1
        assert result.employees_updated == 1
        assert result.total_employees == 2
        assert result.total_hours == Decimal("30")
        assert result.total_gross == Decimal("670")
        assert result.social_charges == Decimal("147.4")
        assert result.total_cost == Decimal("817.4")
        assert result.manual_entry.year == 2024
        assert result.manual_entry.month == 3

        async with session_factory() as fresh:
            jean = await fresh.get(Employee, employees["jean"].employee_id)
            sophie = await fresh.scalar(select(Employee).where(Employee.last_name == "Blanc"))
            history = await fresh.scalar(
                select(ImportHistory)
                .where(ImportHistory.import_history_id == result.import_history_id)
                .options(selectinload(ImportHistory.employee_entries))
            )
            entry = await fresh.scalar(select(ManualPayrollEntry))

        assert jean.hourly_rate == Decimal("21")
        assert sophie.external_id.startswith("AUTO_")
        assert sophie.hourly_rate == Decimal("25")

        assert history.import_type == "MONTHLY_SUMMARY"
        assert history.status == "COMPLETED"
        assert history.period == "2024-03"
        assert history.total_employees == 2
        assert history.total_cost == Decimal("817.4")
        assert [e.rate_source for e in history.employee_entries] == ["manual", "manual"]
        assert [e.match_type for e in history.employee_entries] == ["exact", "none"]
        assert [e.employee_found for e in history.employee_entries] == [True, False]

        assert entry.gross_amount == Decimal("670")
        assert entry.employee_count == 2
        assert entry.notes == "Imported from mars.csv"

    async def test_confirm_twice_replaces_month(self, session_factory, mandate, employees, tenant_id):
        async with session_factory() as first_session:
            first = await ImportValidationService(first_session).confirm(self._request(employees), tenant_id)
            await first_session.commit()

        async with session_factory() as second_session:
            second = await ImportValidationService(second_session).confirm(self._request(employees), tenant_id)
            await second_session.commit()

        assert first.outcome == UpsertOutcome.CREATED
        assert second.outcome == UpsertOutcome.UPDATED
        assert second.manual_entry.manual_payroll_entry_id == first.manual_entry.manual_payroll_entry_id
        # Sophie was matched by nobody, so a second employee is created
        assert second.employees_created == 1
        assert second.employees_updated == 0

        async with session_factory() as fresh:
            assert await fresh.scalar(select(func.count()).select_from(ManualPayrollEntry)) == 1
            assert await fresh.scalar(select(func.count()).select_from(ImportHistory)) == 2

    async def test_custom_social_charge_rate(self, session, mandate, employees, tenant_id):
        request = self._request(employees)
        request.social_charge_rate_percent = Decimal("15")

        result = await ImportValidationService(session).confirm(request, tenant_id)

        assert result.social_charges == Decimal("100.5")

    @pytest.mark.parametrize("period", ["2024-13", "March", "2024-3", ""])
    async def test_bad_period(self, session, mandate, employees, tenant_id, period):
        request = self._request(employees)
        request.period = period

        with pytest.raises(InvalidPeriodLabelError):
            await ImportValidationService(session).confirm(request, tenant_id)

    async def test_known_external_id_reuses_employee(self, session, session_factory, mandate, employees, tenant_id):
        request = ConfirmedImport(
            mandate_id=mandate.mandate_id,
            period="2024-03",
            employees=[
                ReviewedEmployee(
                    first_name="Jean",
                    last_name="Dupont",
                    total_hours=Decimal("10"),
                    hourly_rate=Decimal("22"),
                    external_id="E001",
                ),
            ],
        )

        result = await ImportValidationService(session).confirm(request, tenant_id)
        await session.commit()

        assert result.employees_created == 0
        assert result.employees_updated == 1
        async with session_factory() as fresh:
            matching = (
                await fresh.execute(select(Employee).where(Employee.external_id == "E001"))
            ).scalars().all()
            history = await fresh.scalar(
                select(ImportHistory)
                .where(ImportHistory.import_history_id == result.import_history_id)
                .options(selectinload(ImportHistory.employee_entries))
            )

        assert [e.employee_id for e in matching] == [employees["jean"].employee_id]
        assert matching[0].hourly_rate == Decimal("22")
        assert history.employee_entries[0].employee_id == employees["jean"].employee_id
        assert history.employee_entries[0].employee_found is True
        assert history.employee_entries[0].match_type == "exact"

    async def test_entry_conflict_rolls_back(self, session, session_factory, mandate, employees, tenant_id, monkeypatch):
        async def conflict(self, values):
            return UpsertOutcome.CONFLICT

        monkeypatch.setattr(PayrollRepository, "upsert_manual_entry", conflict)

        with pytest.raises(UpsertConflictError) as exc_info:
            await ImportValidationService(session).confirm(self._request(employees), tenant_id)
        await session.rollback()

        assert exc_info.value.code == "UPSERT_CONFLICT"
        async with session_factory() as fresh:
            assert await fresh.scalar(select(func.count()).select_from(ImportHistory)) == 0
            assert await fresh.scalar(select(Employee).where(Employee.last_name == "Blanc")) is None

    async def test_other_tenant(self, session, mandate, employees, other_tenant_id):
        with pytest.raises(MandateNotFoundError):
            await ImportValidationService(session).confirm(self._request(employees), other_tenant_id)


def test_parse_period_label():
    assert parse_period_label("2024-01") == (2024, 1)
    assert parse_period_label(" 2023-12 ") == (2023, 12)
    with pytest.raises(InvalidPeriodLabelError):
        parse_period_label("2024-00")
