"""Mandate (cost center) and revenue fact models."""

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
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_reconciler.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payroll_reconciler.models.employee import Employee


class Mandate(Base, TimestampMixin):
    """An establishment (hotel, restaurant) that owns employees and figures.

    ``total_revenue``/``last_entry`` and ``total_payroll_cost``/
    ``last_payroll_calculation`` are cached aggregates refreshed after imports
    and payroll calculations.
    """

    __tablename__ = "mandate"

    mandate_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    last_entry: Mapped[date | None] = mapped_column(Date, nullable=True)
    total_payroll_cost: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )
    last_payroll_calculation: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="mandate")
    day_values: Mapped[list[DayValue]] = relationship(back_populates="mandate")


class DayValue(Base, TimestampMixin):
    """Daily revenue figure for a mandate."""

    __tablename__ = "day_value"

    day_value_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    mandate_id: Mapped[UUID] = mapped_column(
        ForeignKey("mandate.mandate_id", ondelete="CASCADE"),
        nullable=False,
    )
    value_date: Mapped[date] = mapped_column(Date, nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    __table_args__ = (
        UniqueConstraint("value_date", "mandate_id", name="day_value_date_mandate_unique"),
        CheckConstraint("value >= 0", name="day_value_non_negative"),
    )

    # Relationships
    mandate: Mapped[Mandate] = relationship(back_populates="day_values")
