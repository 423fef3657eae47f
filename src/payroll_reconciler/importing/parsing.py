"""Coercion of raw import fields into typed time-record input."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from payroll_reconciler.calculators.types import EmployeeIdentity
from payroll_reconciler.importing.normalizer import RawRow

EXCEL_EPOCH = date(1899, 12, 30)
MAX_EXCEL_SERIAL = 100_000

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DAY_FIRST = re.compile(r"^(\d{1,2})[./-](\d{1,2})[./-](\d{2}|\d{4})$")
_YEAR_FIRST_SLASH = re.compile(r"^(\d{4})/(\d{1,2})/(\d{1,2})$")
_COMPACT = re.compile(r"^(\d{4})(\d{2})(\d{2})$")
_SERIAL = re.compile(r"^\d{1,5}$")
_TIME = re.compile(r"^(\d{1,2})[:hH](\d{2})(?::(\d{2}))?$")


class RowValidationError(Exception):
    """Raised when one imported row cannot be turned into a time record."""

    def __init__(self, row_number: int, reason: str):
        self.row_number = row_number
        self.reason = reason
        super().__init__(f"Row {row_number}: {reason}")


@dataclass
class TimeRecordInput:
    """A validated import row, ready for matching and persistence."""

    row_number: int
    identity: EmployeeIdentity
    work_date: date
    worked_hours: Decimal
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    break_minutes: int = 0
    hourly_rate: Decimal | None = None
    position: str | None = None


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _expand_year(year: int) -> int:
    if year >= 100:
        return year
    return 2000 + year if year < 50 else 1900 + year


def parse_date(value: Any) -> date:
    """Parse the date formats found in attendance exports.

    Accepted: YYYY-MM-DD, YYYY/MM/DD, YYYYMMDD, DD/MM/YYYY, DD.MM.YYYY,
    DD-MM-YYYY (two-digit years below 50 are 20xx), Excel serial numbers.

    Raises:
        ValueError: If the value is not a recognizable calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
        return _from_excel_serial(int(value))

    text = str(value).strip()
    # Drop a trailing time component ("2024-01-15T08:00:00", "15.01.2024 08:00")
    text = re.split(r"[T ]", text, maxsplit=1)[0]

    if m := _ISO_DATE.match(text):
        return date(int(m[1]), int(m[2]), int(m[3]))
    if m := _YEAR_FIRST_SLASH.match(text):
        return date(int(m[1]), int(m[2]), int(m[3]))
    if m := _COMPACT.match(text):
        return date(int(m[1]), int(m[2]), int(m[3]))
    if m := _DAY_FIRST.match(text):
        return date(_expand_year(int(m[3])), int(m[2]), int(m[1]))
    if _SERIAL.match(text):
        return _from_excel_serial(int(text))

    raise ValueError(f"unparseable date '{value}'")


def _from_excel_serial(serial: int) -> date:
    if not 0 < serial < MAX_EXCEL_SERIAL:
        raise ValueError(f"unparseable date '{serial}'")
    return EXCEL_EPOCH + timedelta(days=serial)


def parse_time(value: Any) -> time:
    """Parse HH:MM, HH:MM:SS or HHhMM."""
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()

    m = _TIME.match(str(value).strip())
    if not m:
        raise ValueError(f"unparseable time '{value}'")
    hour, minute, second = int(m[1]), int(m[2]), int(m[3] or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"unparseable time '{value}'")
    return time(hour, minute, second)


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a number, accepting a comma decimal separator. Blank -> None."""
    if _blank(value):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"not a number: '{value}'")
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    text = str(value).strip().replace("\u00a0", "").replace(" ", "").replace(",", ".")
    try:
        number = Decimal(text)
    except InvalidOperation:
        raise ValueError(f"not a number: '{value}'") from None
    if not number.is_finite():
        raise ValueError(f"not a number: '{value}'")
    return number


def worked_hours_between(clock_in: datetime, clock_out: datetime, break_minutes: int) -> Decimal:
    """Hours between two clock times minus the break, never negative."""
    minutes = int((clock_out - clock_in).total_seconds() // 60) - break_minutes
    return max(Decimal("0"), Decimal(minutes) / 60)


def sum_hour_columns(row: RawRow) -> Decimal:
    """Total of the per-day hour columns of a summary export.

    Blank or non-numeric cells are ignored; negative cells are rejected.
    """
    total = Decimal("0")
    for column, cell in row.hour_columns.items():
        try:
            hours = parse_decimal(cell)
        except ValueError:
            continue
        if hours is None:
            continue
        if hours < 0:
            raise RowValidationError(row.row_number, f"negative hours in column {column}")
        total += hours
    return total


def _text(value: Any) -> str | None:
    if _blank(value):
        return None
    return str(value).strip()


def parse_row(row: RawRow) -> TimeRecordInput:
    """Validate one raw row and coerce its fields.

    Worked hours come from, in order: the explicit hours field, the per-day
    hour columns, or the clock-in/clock-out span minus the break. A clock-out
    earlier than the clock-in is an overnight shift ending the next day.

    Raises:
        RowValidationError: If a required field is missing or malformed
    """
    n = row.row_number
    first_name = _text(row.first_name)
    last_name = _text(row.last_name)
    if not first_name or not last_name:
        raise RowValidationError(n, "missing first or last name")

    if _blank(row.work_date):
        raise RowValidationError(n, "missing date")
    try:
        work_date = parse_date(row.work_date)
    except ValueError as e:
        raise RowValidationError(n, str(e)) from None

    try:
        clock_in_time = None if _blank(row.clock_in) else parse_time(row.clock_in)
        clock_out_time = None if _blank(row.clock_out) else parse_time(row.clock_out)
        break_value = parse_decimal(row.break_minutes)
        worked_value = parse_decimal(row.worked_hours)
        rate_value = parse_decimal(row.hourly_rate)
    except ValueError as e:
        raise RowValidationError(n, str(e)) from None

    if break_value is not None and (break_value < 0 or break_value != break_value.to_integral_value()):
        raise RowValidationError(n, f"invalid break minutes '{row.break_minutes}'")
    break_minutes = int(break_value) if break_value is not None else 0

    if rate_value is not None and rate_value < 0:
        raise RowValidationError(n, f"negative hourly rate '{row.hourly_rate}'")

    clock_in = datetime.combine(work_date, clock_in_time) if clock_in_time else None
    clock_out = datetime.combine(work_date, clock_out_time) if clock_out_time else None
    if clock_in and clock_out and clock_out < clock_in:
        clock_out += timedelta(days=1)

    if worked_value is not None:
        if worked_value < 0:
            raise RowValidationError(n, f"negative hours '{row.worked_hours}'")
        worked_hours = worked_value
    elif row.hour_columns:
        worked_hours = sum_hour_columns(row)
    elif clock_in and clock_out:
        worked_hours = worked_hours_between(clock_in, clock_out, break_minutes)
    else:
        raise RowValidationError(n, "no hours information")

    return TimeRecordInput(
        row_number=n,
        identity=EmployeeIdentity(
            external_id=_text(row.external_id),
            first_name=first_name,
            last_name=last_name,
        ),
        work_date=work_date,
        worked_hours=worked_hours,
        clock_in=clock_in,
        clock_out=clock_out,
        break_minutes=break_minutes,
        # A zero rate means "not given" in the exports
        hourly_rate=rate_value if rate_value else None,
        position=_text(row.position),
    )


@dataclass
class SummaryRowInput:
    """A validated row of a monthly summary export (hours per day, no date)."""

    row_number: int
    identity: EmployeeIdentity
    total_hours: Decimal


def parse_summary_row(row: RawRow) -> SummaryRowInput:
    """Validate a summary row: names plus hour columns or an hours total.

    Raises:
        RowValidationError: If names are missing or an hour value is invalid
    """
    n = row.row_number
    first_name = _text(row.first_name)
    last_name = _text(row.last_name)
    if not first_name or not last_name:
        raise RowValidationError(n, "missing first or last name")

    if row.hour_columns:
        total_hours = sum_hour_columns(row)
    else:
        try:
            total_hours = parse_decimal(row.worked_hours) or Decimal("0")
        except ValueError as e:
            raise RowValidationError(n, str(e)) from None
        if total_hours < 0:
            raise RowValidationError(n, f"negative hours '{row.worked_hours}'")

    return SummaryRowInput(
        row_number=n,
        identity=EmployeeIdentity(
            external_id=_text(row.external_id),
            first_name=first_name,
            last_name=last_name,
        ),
        total_hours=total_hours,
    )
