"""Employee model."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_reconciler.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from payroll_reconciler.models.mandate import Mandate
    from payroll_reconciler.models.payroll import PayrollEntry, TimeRecord


class Employee(Base, TimestampMixin):
    """Employee registered under a mandate.

    ``external_id`` is the identifier used by the time-tracking system the
    attendance files come from. Employees auto-created during an import
    without one get an ``AUTO_`` prefixed identifier.
    """

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    mandate_id: Mapped[UUID] = mapped_column(
        ForeignKey("mandate.mandate_id", ondelete="CASCADE"),
        nullable=False,
    )
    external_id: Mapped[str] = mapped_column(String, nullable=False)
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("mandate_id", "external_id", name="employee_mandate_external_unique"),
        CheckConstraint(
            "hourly_rate IS NULL OR hourly_rate >= 0",
            name="employee_hourly_rate_check",
        ),
    )

    # Relationships
    mandate: Mapped[Mandate] = relationship(back_populates="employees")
    time_records: Mapped[list[TimeRecord]] = relationship(back_populates="employee")
    payroll_entries: Mapped[list[PayrollEntry]] = relationship(back_populates="employee")

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"
