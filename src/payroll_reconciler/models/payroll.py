"""Time record and payroll result models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_reconciler.models.base import Base, TimestampMixin, UpdatedAtMixin

if TYPE_CHECKING:
    from payroll_reconciler.models.employee import Employee
    from payroll_reconciler.models.mandate import Mandate


# ===== Time Records =====


class TimeRecord(Base, TimestampMixin, UpdatedAtMixin):
    """One employee's worked span on one date for one mandate."""

    __tablename__ = "time_record"

    # Natural key used by upserts
    NATURAL_KEY = ("employee_id", "work_date", "mandate_id")

    time_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    mandate_id: Mapped[UUID] = mapped_column(
        ForeignKey("mandate.mandate_id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    # Wall-clock times of the establishment
    clock_in: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    clock_out: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    worked_hours: Mapped[Decimal] = mapped_column(Numeric(10, 4), nullable=False)
    is_overtime: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)

    # Import provenance
    import_source: Mapped[str | None] = mapped_column(String, nullable=True)
    import_batch_id: Mapped[UUID | None] = mapped_column(nullable=True)

    __table_args__ = (
        UniqueConstraint(*NATURAL_KEY, name="time_record_natural_key"),
        CheckConstraint("worked_hours >= 0", name="time_record_hours_check"),
        CheckConstraint("break_minutes >= 0", name="time_record_break_check"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="time_records")
    mandate: Mapped[Mandate] = relationship()


# ===== Computed Payroll =====


class PayrollEntry(Base, TimestampMixin, UpdatedAtMixin):
    """Computed payroll for one employee, mandate and period.

    Invariants maintained by the calculator:
    - total_gross = base_salary + overtime_pay
    - total_cost = total_gross + social_charges
    A locked entry is only rewritten by an explicit recalculation.
    """

    __tablename__ = "payroll_entry"

    NATURAL_KEY = ("employee_id", "mandate_id", "period_start", "period_type")

    payroll_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    mandate_id: Mapped[UUID] = mapped_column(
        ForeignKey("mandate.mandate_id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    period_type: Mapped[str] = mapped_column(String, nullable=False)

    regular_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    overtime_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    overtime_pay: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    total_gross: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    social_charges: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint(*NATURAL_KEY, name="payroll_entry_natural_key"),
        CheckConstraint(
            "period_type IN ('WEEKLY', 'MONTHLY')",
            name="payroll_entry_period_type_check",
        ),
        CheckConstraint("period_end >= period_start", name="payroll_entry_dates_check"),
    )

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="payroll_entries")
    mandate: Mapped[Mandate] = relationship()


class ManualPayrollEntry(Base, TimestampMixin, UpdatedAtMixin):
    """Manually entered (or summary-imported) monthly payroll for a mandate."""

    __tablename__ = "manual_payroll_entry"

    NATURAL_KEY = ("mandate_id", "year", "month")

    manual_payroll_entry_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    mandate_id: Mapped[UUID] = mapped_column(
        ForeignKey("mandate.mandate_id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    social_charges: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(*NATURAL_KEY, name="manual_payroll_entry_natural_key"),
        CheckConstraint("month BETWEEN 1 AND 12", name="manual_payroll_entry_month_check"),
        CheckConstraint("gross_amount >= 0", name="manual_payroll_entry_gross_check"),
    )

    # Relationships
    mandate: Mapped[Mandate] = relationship()
