"""Splitting of date ranges into payroll periods."""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from payroll_reconciler.calculators.types import PayrollPeriod, PeriodType


def _month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def segment_periods(start: date, end: date, period_type: PeriodType | str) -> list[PayrollPeriod]:
    """Split ``[start, end]`` into ordered, contiguous, end-inclusive periods.

    WEEKLY: 7-day blocks beginning at ``start``, the last one clipped to ``end``.
    MONTHLY: calendar months beginning at ``start``'s month, the first and last
    clipped to the range.

    ``start == end`` yields a single one-day period. ``start > end`` yields an
    empty list; callers reject such ranges before getting here.
    """
    period_type = PeriodType(period_type)
    periods: list[PayrollPeriod] = []
    current = start

    while current <= end:
        if period_type == PeriodType.WEEKLY:
            block_end = current + timedelta(days=6)
        else:
            block_end = _month_end(current)

        block_end = min(block_end, end)
        periods.append(PayrollPeriod(start=current, end=block_end, period_type=period_type))
        current = block_end + timedelta(days=1)

    return periods
