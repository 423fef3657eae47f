"""Normalization of uploaded attendance files into canonical raw rows."""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from typing import Any, Protocol

# Canonical field -> header spellings seen in time-tracking exports
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "external_id": ("Employee ID", "EmployeeId", "EmplID", "ID"),
    "first_name": ("First Name", "FirstName", "Prénom", "Prenom"),
    "last_name": ("Last Name", "LastName", "Nom"),
    "work_date": ("Date", "Date de travail", "Work Date"),
    "clock_in": ("Clock In", "Entrée", "Heure entrée"),
    "clock_out": ("Clock Out", "Sortie", "Heure sortie"),
    "break_minutes": ("Break Minutes", "Pause"),
    "worked_hours": ("Worked Hours", "Hours", "Heures"),
    "hourly_rate": ("Hourly Rate", "Taux horaire"),
    "position": ("Position", "Poste"),
}

# Per-day hour columns of summary exports ("0101", "0102", ...)
HOUR_COLUMN = re.compile(r"^\d{4}$")


@dataclass
class RawRow:
    """One source row with canonical field names; values are untyped."""

    row_number: int
    external_id: Any = None
    first_name: Any = None
    last_name: Any = None
    work_date: Any = None
    clock_in: Any = None
    clock_out: Any = None
    break_minutes: Any = None
    worked_hours: Any = None
    hourly_rate: Any = None
    position: Any = None
    hour_columns: dict[str, Any] = field(default_factory=dict)


class RecordNormalizer(Protocol):
    """Turns uploaded file content into an ordered list of raw rows."""

    def normalize(self, content: bytes | str) -> list[RawRow]: ...


def _decode(content: bytes | str, encoding: str) -> str:
    if isinstance(content, str):
        return content
    if encoding.lower() == "utf-8":
        # Strip BOM if present
        encoding = "utf-8-sig"
    return content.decode(encoding)


class CsvRecordNormalizer:
    """Delimited-text normalizer with header aliasing.

    Row numbers are 1-based over data lines (the header is not counted).
    Quotes around headers and values are stripped by the csv module.
    """

    def __init__(self, delimiter: str = ";", encoding: str = "utf-8"):
        self.delimiter = delimiter
        self.encoding = encoding

    def normalize(self, content: bytes | str) -> list[RawRow]:
        text = _decode(content, self.encoding)
        reader = csv.DictReader(io.StringIO(text, newline=""), delimiter=self.delimiter)
        if reader.fieldnames is None:
            return []

        headers = [h.strip() if h else "" for h in reader.fieldnames]
        reader.fieldnames = headers
        mapping = self._resolve_headers(headers)
        hour_columns = [h for h in headers if HOUR_COLUMN.match(h)]

        rows: list[RawRow] = []
        for index, record in enumerate(reader, start=1):
            values = {k: (v.strip() if isinstance(v, str) else v) for k, v in record.items() if k}
            if not any(values.values()):
                continue
            row = RawRow(row_number=index)
            for canonical, header in mapping.items():
                setattr(row, canonical, values.get(header) or None)
            row.hour_columns = {h: values.get(h) for h in hour_columns}
            rows.append(row)
        return rows

    @staticmethod
    def _resolve_headers(headers: list[str]) -> dict[str, str]:
        """First alias present in the file wins for each canonical field."""
        present = set(headers)
        mapping: dict[str, str] = {}
        for canonical, aliases in HEADER_ALIASES.items():
            for alias in aliases:
                if alias in present:
                    mapping[canonical] = alias
                    break
        return mapping
