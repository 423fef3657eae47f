"""Read access to the import audit trail."""

from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_reconciler.models import ImportHistory


class ImportHistoryService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_history(
        self,
        mandate_id: UUID,
        year: int | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[ImportHistory], int]:
        """Page through a mandate's imports, newest first.

        ``year`` keeps imports whose period starts in that year, plus imports
        without a period that were created in it. Returns (items, total).
        """
        query = select(ImportHistory).where(ImportHistory.mandate_id == mandate_id)
        if year is not None:
            first, last = date(year, 1, 1), date(year, 12, 31)
            query = query.where(
                or_(
                    ImportHistory.period_start.between(first, last),
                    ImportHistory.period_start.is_(None)
                    & (ImportHistory.created_at >= datetime(year, 1, 1, tzinfo=timezone.utc))
                    & (ImportHistory.created_at < datetime(year + 1, 1, 1, tzinfo=timezone.utc)),
                )
            )

        total = await self.session.scalar(select(func.count()).select_from(query.subquery())) or 0

        result = await self.session.execute(
            query.options(selectinload(ImportHistory.employee_entries))
            .order_by(ImportHistory.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total
