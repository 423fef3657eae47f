"""Refresh of cached mandate statistics."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_reconciler.config import ImportConfig
from payroll_reconciler.models import DayValue, Mandate

logger = logging.getLogger(__name__)


class MandateStatsService:
    """Recomputes ``total_revenue`` and ``last_entry`` of mandates.

    Mandates are refreshed in rounds of at most ``stats_batch_size``
    concurrent updates, each in its own session. A failed refresh is logged
    and never propagated: statistics are a cache and the import that
    triggered the refresh has already been committed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: ImportConfig | None = None,
    ):
        self.session_factory = session_factory
        self.config = config or ImportConfig()

    async def refresh_mandates(self, mandate_ids: Sequence[UUID]) -> int:
        """Refresh the given mandates. Returns how many were refreshed."""
        refreshed = 0
        batch_size = self.config.stats_batch_size

        for i in range(0, len(mandate_ids), batch_size):
            batch = mandate_ids[i : i + batch_size]
            results = await asyncio.gather(
                *(self.refresh_mandate(mandate_id) for mandate_id in batch),
                return_exceptions=True,
            )
            for mandate_id, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error(
                        "Statistics refresh failed for mandate %s: %s",
                        mandate_id,
                        result,
                        exc_info=result,
                    )
                else:
                    refreshed += 1

        return refreshed

    async def refresh_all(self) -> int:
        """Refresh every mandate."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Mandate.mandate_id).order_by(Mandate.created_at)
            )
            mandate_ids = list(result.scalars().all())

        logger.info("Refreshing statistics for %d mandates", len(mandate_ids))
        return await self.refresh_mandates(mandate_ids)

    async def refresh_mandate(self, mandate_id: UUID) -> None:
        """Recompute the revenue aggregates of one mandate in its own session."""
        async with self.session_factory() as session:
            row = (
                await session.execute(
                    select(
                        func.coalesce(func.sum(DayValue.value), 0),
                        func.max(DayValue.value_date),
                    ).where(DayValue.mandate_id == mandate_id)
                )
            ).one()
            total_revenue, last_entry = row

            await session.execute(
                update(Mandate)
                .where(Mandate.mandate_id == mandate_id)
                .values(total_revenue=Decimal(str(total_revenue)), last_entry=last_entry)
            )
            await session.commit()
