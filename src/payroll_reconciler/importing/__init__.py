"""Import file normalization and row parsing."""

from payroll_reconciler.importing.normalizer import CsvRecordNormalizer, RawRow, RecordNormalizer
from payroll_reconciler.importing.parsing import (
    RowValidationError,
    SummaryRowInput,
    TimeRecordInput,
    parse_row,
    parse_summary_row,
)

__all__ = [
    "CsvRecordNormalizer",
    "RawRow",
    "RecordNormalizer",
    "RowValidationError",
    "SummaryRowInput",
    "TimeRecordInput",
    "parse_row",
    "parse_summary_row",
]
