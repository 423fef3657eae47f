"""Chunked transactional import of time records."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.calculators.employee_matcher import EmployeeMatcher
from payroll_reconciler.calculators.types import EmployeeIdentity, MatchResult, MatchType
from payroll_reconciler.config import ImportConfig, PayrollConfig
from payroll_reconciler.importing.normalizer import RawRow
from payroll_reconciler.importing.parsing import RowValidationError, TimeRecordInput, parse_row
from payroll_reconciler.models import Employee, ImportEmployeeResult, ImportHistory
from payroll_reconciler.services.import_state import ImportStatus, ImportStatusMachine, ImportType
from payroll_reconciler.services.mandate_stats import MandateStatsService
from payroll_reconciler.services.repository import (
    FatalPreconditionError,
    PayrollRepository,
    UpsertOutcome,
)

logger = logging.getLogger(__name__)


class ImportTooLargeError(FatalPreconditionError):
    """Raised when an import has more rows than a single run may write."""

    code = "IMPORT_TOO_LARGE"

    def __init__(self, row_count: int, max_rows: int):
        self.row_count = row_count
        self.max_rows = max_rows
        super().__init__(
            f"Import has {row_count} rows, the limit is {max_rows}. "
            "Please split your file into smaller files."
        )


@dataclass
class EmployeeImportSummary:
    """Per-employee outcome of an import, as written to the audit trail.

    When several rows of one employee were matched differently, the weakest
    match is kept so that review flags are never lost.
    """

    employee_id: UUID
    identity: EmployeeIdentity
    match_type: MatchType
    confidence: int
    matched_employee: Employee | None = None
    employee_created: bool = False
    total_hours: Decimal = Decimal("0")
    hours_by_date: dict[date, Decimal] = field(default_factory=dict)
    hourly_rate: Decimal = Decimal("0")
    rate_source: str = "default"
    missing_external_id: bool = False
    needs_review: bool = False
    issues: list[str] = field(default_factory=list)

    @property
    def gross_amount(self) -> Decimal:
        return self.total_hours * self.hourly_rate


@dataclass
class ImportResult:
    """Counters and audit data of one reconciliation run."""

    import_history_id: UUID | None = None
    status: ImportStatus = ImportStatus.PROCESSING
    total_rows: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    employees: list[EmployeeImportSummary] = field(default_factory=list)

    @property
    def needs_review(self) -> int:
        return sum(1 for e in self.employees if e.needs_review)

    @property
    def can_proceed(self) -> bool:
        return self.needs_review == 0


@dataclass
class _RowContribution:
    """What one persisted row adds to its employee's summary."""

    employee: Employee
    identity: EmployeeIdentity
    match: MatchResult
    employee_created: bool
    work_date: date | None
    worked_hours: Decimal
    hourly_rate: Decimal
    rate_source: str


@dataclass
class _ChunkOutcome:
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    contributions: list[_RowContribution] = field(default_factory=list)


class ImportReconciler:
    """Imports normalized attendance rows for one mandate.

    Pipeline:
    1) Resolve the mandate (tenant-checked) and enforce the row cap, before
       any write
    2) Validate rows; an invalid row is reported and skipped
    3) Open the import history row (PROCESSING)
    4) Persist valid rows in fixed-size chunks, one transaction per chunk,
       rows in input order; each row runs in its own savepoint
    5) Refresh mandate statistics
    6) Close the history row with totals and per-employee audit rows

    A failed chunk is rolled back alone: earlier chunks stay committed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ImportConfig | None = None,
        payroll_config: PayrollConfig | None = None,
        matcher: EmployeeMatcher | None = None,
        stats_service: MandateStatsService | None = None,
    ):
        self.session_factory = session_factory
        self.config = config or ImportConfig()
        self.payroll_config = payroll_config or PayrollConfig()
        self.matcher = matcher or EmployeeMatcher(self.config)
        self.stats_service = stats_service or MandateStatsService(session_factory, self.config)

    async def reconcile(
        self,
        rows: Sequence[RawRow],
        mandate_id: UUID,
        default_hourly_rate: Decimal | None = None,
        *,
        tenant_id: UUID | None = None,
        filename: str | None = None,
        import_source: str = "timesheet",
    ) -> ImportResult:
        """Import ``rows`` into ``mandate_id``.

        Raises:
            MandateNotFoundError: If the mandate is missing or not the tenant's
            ImportTooLargeError: If ``rows`` exceeds batch_size * max_batches
        """
        if default_hourly_rate is None:
            default_hourly_rate = self.payroll_config.default_hourly_rate

        async with self.session_factory() as session:
            await PayrollRepository(session).get_mandate(mandate_id, tenant_id)

        if len(rows) > self.config.max_rows:
            raise ImportTooLargeError(len(rows), self.config.max_rows)

        result = ImportResult(total_rows=len(rows))
        valid: list[TimeRecordInput] = []
        for row in rows:
            try:
                valid.append(parse_row(row))
            except RowValidationError as e:
                result.errors.append(str(e))

        history_id = await self._open_history(mandate_id, filename, default_hourly_rate, valid)
        result.import_history_id = history_id

        summaries: dict[UUID, EmployeeImportSummary] = {}
        committed_chunks = 0
        batch_size = self.config.batch_size

        for chunk_index, start in enumerate(range(0, len(valid), batch_size), start=1):
            chunk = valid[start : start + batch_size]
            try:
                outcome = await self._process_chunk(
                    chunk,
                    mandate_id=mandate_id,
                    default_hourly_rate=default_hourly_rate,
                    import_source=import_source,
                    import_batch_id=history_id,
                )
            except Exception as e:
                logger.exception(
                    "Import %s: chunk %d (%d rows) failed, continuing with next chunk",
                    history_id,
                    chunk_index,
                    len(chunk),
                )
                result.errors.append(f"Chunk {chunk_index}: {e}")
                continue

            committed_chunks += 1
            result.created += outcome.created
            result.updated += outcome.updated
            result.skipped += outcome.skipped
            result.errors.extend(outcome.errors)
            for contribution in outcome.contributions:
                _merge(summaries, contribution)

        for summary in summaries.values():
            assessment = self.matcher.assess_review(
                EmployeeIdentity(
                    external_id=None if summary.missing_external_id else summary.identity.external_id,
                    first_name=summary.identity.first_name,
                    last_name=summary.identity.last_name,
                ),
                MatchResult(
                    employee=summary.matched_employee,
                    match_type=summary.match_type,
                    confidence=summary.confidence,
                ),
                summary.total_hours,
            )
            summary.needs_review = assessment.needs_review
            summary.issues = assessment.issues
        result.employees = list(summaries.values())

        if committed_chunks:
            await self.stats_service.refresh_mandates([mandate_id])

        result.status = ImportStatusMachine.final_status(len(result.errors), committed_chunks)
        await self._close_history(history_id, result)

        logger.info(
            "Import %s for mandate %s: %s, created=%d updated=%d skipped=%d errors=%d",
            history_id,
            mandate_id,
            result.status.value,
            result.created,
            result.updated,
            result.skipped,
            len(result.errors),
        )
        return result

    async def _process_chunk(
        self,
        chunk: list[TimeRecordInput],
        *,
        mandate_id: UUID,
        default_hourly_rate: Decimal,
        import_source: str,
        import_batch_id: UUID,
    ) -> _ChunkOutcome:
        """Persist one chunk in a single transaction."""
        outcome = _ChunkOutcome()

        async with self.session_factory() as session:
            repository = PayrollRepository(session)
            candidates = await self._load_employees(session, mandate_id)

            for record in chunk:
                try:
                    async with session.begin_nested():
                        upserted, contribution = await self._process_row(
                            session,
                            repository,
                            record,
                            candidates=candidates,
                            mandate_id=mandate_id,
                            default_hourly_rate=default_hourly_rate,
                            import_source=import_source,
                            import_batch_id=import_batch_id,
                        )
                except Exception as e:
                    logger.warning(
                        "Import %s: row %d failed: %s", import_batch_id, record.row_number, e
                    )
                    outcome.skipped += 1
                    outcome.errors.append(f"Row {record.row_number}: {e}")
                    # The savepoint rollback expired what the row touched
                    candidates = await self._load_employees(session, mandate_id)
                    continue

                # Later rows of the chunk may match the employee created here
                if contribution.employee_created:
                    candidates.append(contribution.employee)

                if upserted == UpsertOutcome.CREATED:
                    outcome.created += 1
                elif upserted == UpsertOutcome.UPDATED:
                    outcome.updated += 1
                else:
                    outcome.skipped += 1
                    contribution.work_date = None
                outcome.contributions.append(contribution)

            await session.commit()

        return outcome

    async def _process_row(
        self,
        session: AsyncSession,
        repository: PayrollRepository,
        record: TimeRecordInput,
        *,
        candidates: list[Employee],
        mandate_id: UUID,
        default_hourly_rate: Decimal,
        import_source: str,
        import_batch_id: UUID,
    ) -> tuple[UpsertOutcome, _RowContribution]:
        """Match, create or update the employee, then upsert the time record."""
        match = self.matcher.match(record.identity, candidates)
        employee = match.employee
        created = False

        if employee is None:
            employee = Employee(
                mandate_id=mandate_id,
                external_id=record.identity.external_id or f"AUTO_{uuid.uuid4().hex[:12].upper()}",
                first_name=record.identity.first_name,
                last_name=record.identity.last_name,
                position=record.position,
                hourly_rate=record.hourly_rate,
                is_active=True,
            )
            session.add(employee)
            await session.flush()
            created = True
            logger.info(
                "Created employee %s (%s) for unmatched row %d",
                employee.employee_id,
                employee.external_id,
                record.row_number,
            )
        elif record.hourly_rate is not None and record.hourly_rate != employee.hourly_rate:
            logger.info(
                "Updating rate of employee %s from %s to %s",
                employee.employee_id,
                employee.hourly_rate,
                record.hourly_rate,
            )
            employee.hourly_rate = record.hourly_rate
            await session.flush()

        if record.hourly_rate is not None:
            hourly_rate, rate_source = record.hourly_rate, "import"
        elif employee.hourly_rate:
            hourly_rate, rate_source = employee.hourly_rate, "employee"
        else:
            hourly_rate, rate_source = default_hourly_rate, "default"

        upserted = await repository.upsert_time_record(
            {
                "employee_id": employee.employee_id,
                "mandate_id": mandate_id,
                "work_date": record.work_date,
                "clock_in": record.clock_in,
                "clock_out": record.clock_out,
                "break_minutes": record.break_minutes,
                "worked_hours": record.worked_hours,
                "is_overtime": False,
                "hourly_rate": hourly_rate,
                "import_source": import_source,
                "import_batch_id": import_batch_id,
            }
        )

        return upserted, _RowContribution(
            employee=employee,
            identity=record.identity,
            match=match,
            employee_created=created,
            work_date=record.work_date,
            worked_hours=record.worked_hours,
            hourly_rate=hourly_rate,
            rate_source=rate_source,
        )

    @staticmethod
    async def _load_employees(session: AsyncSession, mandate_id: UUID) -> list[Employee]:
        result = await session.execute(
            select(Employee)
            .where(Employee.mandate_id == mandate_id)
            .order_by(Employee.created_at, Employee.last_name, Employee.first_name)
        )
        return list(result.scalars().all())

    async def _open_history(
        self,
        mandate_id: UUID,
        filename: str | None,
        default_hourly_rate: Decimal,
        valid: list[TimeRecordInput],
    ) -> UUID:
        period_start: date | None = min((r.work_date for r in valid), default=None)
        period_end: date | None = max((r.work_date for r in valid), default=None)

        async with self.session_factory() as session:
            history = ImportHistory(
                mandate_id=mandate_id,
                filename=filename,
                import_type=ImportType.TIMESHEET.value,
                period=period_start.strftime("%Y-%m") if period_start else None,
                period_start=period_start,
                period_end=period_end,
                default_hourly_rate=default_hourly_rate,
                status=ImportStatus.PROCESSING.value,
                errors=[],
            )
            session.add(history)
            await session.commit()
            return history.import_history_id

    async def _close_history(self, history_id: UUID, result: ImportResult) -> None:
        """Write totals, the closing status and the per-employee audit rows."""
        social_rate = self.payroll_config.social_charge_rate
        total_hours = sum((e.total_hours for e in result.employees), Decimal("0"))
        total_gross = sum((e.gross_amount for e in result.employees), Decimal("0"))
        social_charges = total_gross * social_rate

        async with self.session_factory() as session:
            history = await session.get(ImportHistory, history_id)
            if history is None:
                raise RuntimeError(f"Import history {history_id} disappeared")
            ImportStatusMachine.validate_transition(history.status, result.status.value)

            history.status = result.status.value
            history.total_rows = result.total_rows
            history.total_employees = len(result.employees)
            history.total_hours = total_hours
            history.total_gross_amount = total_gross
            history.social_charges = social_charges
            history.total_cost = total_gross + social_charges
            history.error_count = len(result.errors)
            history.errors = list(result.errors)

            for position, summary in enumerate(result.employees):
                session.add(
                    ImportEmployeeResult(
                        import_history_id=history_id,
                        position=position,
                        employee_id=summary.employee_id,
                        external_id=summary.identity.external_id,
                        first_name=summary.identity.first_name,
                        last_name=summary.identity.last_name,
                        match_type=summary.match_type.value,
                        match_confidence=summary.confidence,
                        employee_found=not summary.employee_created,
                        total_hours=summary.total_hours,
                        hourly_rate=summary.hourly_rate,
                        rate_source=summary.rate_source,
                        gross_amount=summary.gross_amount,
                    )
                )

            await session.commit()


def _merge(summaries: dict[UUID, EmployeeImportSummary], contribution: _RowContribution) -> None:
    """Fold one persisted row into its employee's summary."""
    employee_id = contribution.employee.employee_id
    summary = summaries.get(employee_id)

    if summary is None:
        summary = EmployeeImportSummary(
            employee_id=employee_id,
            identity=contribution.identity,
            match_type=contribution.match.match_type,
            confidence=contribution.match.confidence,
            matched_employee=contribution.match.employee,
            employee_created=contribution.employee_created,
        )
        summaries[employee_id] = summary
    elif contribution.match.confidence < summary.confidence:
        summary.match_type = contribution.match.match_type
        summary.confidence = contribution.match.confidence
        summary.matched_employee = contribution.match.employee

    if contribution.work_date is not None:
        # One value per day; a repeated natural key keeps the last row, as the upsert does
        summary.hours_by_date[contribution.work_date] = contribution.worked_hours
        summary.total_hours = sum(summary.hours_by_date.values(), Decimal("0"))
    summary.hourly_rate = contribution.hourly_rate
    summary.rate_source = contribution.rate_source
    if not contribution.identity.external_id:
        summary.missing_external_id = True
