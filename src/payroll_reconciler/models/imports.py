"""Import audit trail models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_reconciler.models.base import Base, TimestampMixin


class ImportHistory(Base, TimestampMixin):
    """One row per import run.

    Written when the run starts (status PROCESSING) and closed with a single
    status transition carrying the final totals. Never deleted.
    """

    __tablename__ = "payroll_import_history"

    import_history_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    mandate_id: Mapped[UUID] = mapped_column(
        ForeignKey("mandate.mandate_id", ondelete="CASCADE"),
        nullable=False,
    )
    filename: Mapped[str | None] = mapped_column(String, nullable=True)
    import_type: Mapped[str] = mapped_column(String, nullable=False)
    period: Mapped[str | None] = mapped_column(String, nullable=True)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)

    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_hours: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    total_gross_amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("0")
    )
    social_charges: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("0")
    )
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(18, 6), nullable=False, default=Decimal("0")
    )
    default_hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="PROCESSING")
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "import_type IN ('TIMESHEET', 'MONTHLY_SUMMARY')",
            name="import_history_type_check",
        ),
        CheckConstraint(
            "status IN ('PROCESSING', 'COMPLETED', 'PARTIAL', 'FAILED')",
            name="import_history_status_check",
        ),
    )

    # Relationships
    employee_entries: Mapped[list[ImportEmployeeResult]] = relationship(
        back_populates="import_history",
        order_by="ImportEmployeeResult.position",
    )


class ImportEmployeeResult(Base, TimestampMixin):
    """Per-employee audit row: which matching path was taken and the result."""

    __tablename__ = "payroll_import_employee"

    import_employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    import_history_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_import_history.import_history_id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    employee_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="SET NULL"),
        nullable=True,
    )
    external_id: Mapped[str | None] = mapped_column(String, nullable=True)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    match_type: Mapped[str] = mapped_column(String, nullable=False)
    match_confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    employee_found: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)
    rate_source: Mapped[str] = mapped_column(String, nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "match_type IN ('exact', 'partial', 'none')",
            name="import_employee_match_type_check",
        ),
    )

    # Relationships
    import_history: Mapped[ImportHistory] = relationship(back_populates="employee_entries")
