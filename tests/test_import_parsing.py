"""Tests for import file normalization and row parsing."""

from datetime import date, datetime, time
from decimal import Decimal

import pytest

from payroll_reconciler.importing.normalizer import CsvRecordNormalizer, RawRow
from payroll_reconciler.importing.parsing import (
    RowValidationError,
    parse_date,
    parse_decimal,
    parse_row,
    parse_summary_row,
    parse_time,
)


class TestCsvRecordNormalizer:
    """Test header aliasing and row extraction."""

    def test_english_headers(self):
        content = (
            "Employee ID;First Name;Last Name;Date;Clock In;Clock Out;Break Minutes;Hourly Rate\n"
            "E001;Jean;Dupont;2024-01-02;08:00;17:00;60;20\n"
        )

        rows = CsvRecordNormalizer().normalize(content)

        assert len(rows) == 1
        row = rows[0]
        assert row.row_number == 1
        assert row.external_id == "E001"
        assert row.first_name == "Jean"
        assert row.clock_in == "08:00"
        assert row.break_minutes == "60"
        assert row.hourly_rate == "20"
        assert row.hour_columns == {}

    def test_french_headers_with_bom(self):
        content = "\ufeffPrénom;Nom;Date de travail;Heures;Poste\nMarie;Martin;15.01.2024;7,5;Réception\n"

        rows = CsvRecordNormalizer().normalize(content.encode("utf-8"))

        assert rows[0].first_name == "Marie"
        assert rows[0].last_name == "Martin"
        assert rows[0].work_date == "15.01.2024"
        assert rows[0].worked_hours == "7,5"
        assert rows[0].position == "Réception"

    def test_hour_columns_and_blank_lines(self):
        content = (
            '"EmplID";"FirstName";"LastName";"0101";"0102";"0103"\n'
            '"7";"Anne";"Roux";"8";"";"7,5"\n'
            ";;;;;\n"
            '"8";"Paul";"Blanc";"4";"4";"4"\n'
        )

        rows = CsvRecordNormalizer().normalize(content)

        assert [r.row_number for r in rows] == [1, 3]
        assert rows[0].hour_columns == {"0101": "8", "0102": "", "0103": "7,5"}
        assert rows[1].external_id == "8"

    def test_first_alias_wins(self):
        content = "ID;Employee ID;First Name;Last Name\nX;E001;Jean;Dupont\n"

        rows = CsvRecordNormalizer().normalize(content)

        assert rows[0].external_id == "E001"

    def test_empty_content(self):
        assert CsvRecordNormalizer().normalize("") == []


class TestFieldParsing:
    """Test date, time and number coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("2024-01-15", date(2024, 1, 15)),
            ("2024/01/15", date(2024, 1, 15)),
            ("20240115", date(2024, 1, 15)),
            ("15/01/2024", date(2024, 1, 15)),
            ("15.01.2024", date(2024, 1, 15)),
            ("15-01-24", date(2024, 1, 15)),
            ("2024-01-15T08:30:00", date(2024, 1, 15)),
            ("45306", date(2024, 1, 15)),
            (45306, date(2024, 1, 15)),
            (datetime(2024, 1, 15, 8, 0), date(2024, 1, 15)),
        ],
    )
    def test_parse_date(self, value, expected):
        assert parse_date(value) == expected

    @pytest.mark.parametrize("value", ["31/02/2024", "yesterday", "2024-13-01", "0"])
    def test_parse_date_rejects(self, value):
        with pytest.raises(ValueError):
            parse_date(value)

    @pytest.mark.parametrize(
        "value,expected",
        [("08:00", time(8, 0)), ("8h30", time(8, 30)), ("17:45:10", time(17, 45, 10))],
    )
    def test_parse_time(self, value, expected):
        assert parse_time(value) == expected

    @pytest.mark.parametrize("value", ["25:00", "8", "noon"])
    def test_parse_time_rejects(self, value):
        with pytest.raises(ValueError):
            parse_time(value)

    @pytest.mark.parametrize(
        "value,expected",
        [("7,5", Decimal("7.5")), ("1 250,00", Decimal("1250.00")), (8, Decimal("8")), ("", None), (None, None)],
    )
    def test_parse_decimal(self, value, expected):
        assert parse_decimal(value) == expected

    @pytest.mark.parametrize("value", ["abc", "NaN", "Infinity"])
    def test_parse_decimal_rejects(self, value):
        with pytest.raises(ValueError):
            parse_decimal(value)


class TestParseRow:
    """Test row validation and hours derivation."""

    def test_explicit_hours(self):
        row = RawRow(
            row_number=3,
            external_id="E001",
            first_name="Jean",
            last_name="Dupont",
            work_date="2024-01-02",
            worked_hours="45",
            hourly_rate="20",
        )

        record = parse_row(row)

        assert record.row_number == 3
        assert record.identity.external_id == "E001"
        assert record.work_date == date(2024, 1, 2)
        assert record.worked_hours == Decimal("45")
        assert record.hourly_rate == Decimal("20")

    def test_hours_from_clock_times(self):
        row = RawRow(
            row_number=1,
            first_name="Jean",
            last_name="Dupont",
            work_date="02.01.2024",
            clock_in="08:00",
            clock_out="17:30",
            break_minutes="30",
        )

        record = parse_row(row)

        assert record.worked_hours == Decimal("9")
        assert record.clock_in == datetime(2024, 1, 2, 8, 0)
        assert record.clock_out == datetime(2024, 1, 2, 17, 30)
        assert record.break_minutes == 30
        assert record.identity.external_id is None

    def test_overnight_shift(self):
        row = RawRow(
            row_number=1,
            first_name="Jean",
            last_name="Dupont",
            work_date="2024-01-02",
            clock_in="22:00",
            clock_out="06:00",
        )

        record = parse_row(row)

        assert record.clock_out == datetime(2024, 1, 3, 6, 0)
        assert record.worked_hours == Decimal("8")

    def test_hours_from_hour_columns(self):
        row = RawRow(
            row_number=1,
            first_name="Anne",
            last_name="Roux",
            work_date="2024-01-31",
            hour_columns={"0101": "8", "0102": "", "0103": "7,5", "0104": "x"},
        )

        assert parse_row(row).worked_hours == Decimal("15.5")

    def test_zero_rate_means_not_given(self):
        row = RawRow(
            row_number=1, first_name="Jean", last_name="Dupont", work_date="2024-01-02",
            worked_hours="8", hourly_rate="0",
        )

        assert parse_row(row).hourly_rate is None

    @pytest.mark.parametrize(
        "fields,reason",
        [
            ({"last_name": "Dupont", "work_date": "2024-01-02", "worked_hours": "8"}, "missing first or last name"),
            ({"first_name": "Jean", "last_name": "Dupont", "worked_hours": "8"}, "missing date"),
            ({"first_name": "Jean", "last_name": "Dupont", "work_date": "someday", "worked_hours": "8"},
             "unparseable date 'someday'"),
            ({"first_name": "Jean", "last_name": "Dupont", "work_date": "2024-01-02", "worked_hours": "-3"},
             "negative hours '-3'"),
            ({"first_name": "Jean", "last_name": "Dupont", "work_date": "2024-01-02", "worked_hours": "eight"},
             "not a number: 'eight'"),
            ({"first_name": "Jean", "last_name": "Dupont", "work_date": "2024-01-02"}, "no hours information"),
            ({"first_name": "Jean", "last_name": "Dupont", "work_date": "2024-01-02", "clock_in": "8:00",
              "clock_out": "16:00", "break_minutes": "-5"}, "invalid break minutes '-5'"),
            ({"first_name": "Jean", "last_name": "Dupont", "work_date": "2024-01-02", "worked_hours": "8",
              "hourly_rate": "-1"}, "negative hourly rate '-1'"),
        ],
    )
    def test_invalid_rows(self, fields, reason):
        with pytest.raises(RowValidationError) as exc_info:
            parse_row(RawRow(row_number=7, **fields))

        assert exc_info.value.row_number == 7
        assert exc_info.value.reason == reason
        assert str(exc_info.value) == f"Row 7: {reason}"

    def test_negative_hour_column(self):
        row = RawRow(
            row_number=2, first_name="Anne", last_name="Roux", work_date="2024-01-31",
            hour_columns={"0101": "-2"},
        )

        with pytest.raises(RowValidationError, match="negative hours in column 0101"):
            parse_row(row)


class TestParseSummaryRow:
    def test_hour_columns_total(self):
        row = RawRow(row_number=1, external_id="7", first_name="Anne", last_name="Roux",
                     hour_columns={"0101": "8", "0102": "8,25"})

        summary = parse_summary_row(row)

        assert summary.total_hours == Decimal("16.25")
        assert summary.identity.external_id == "7"

    def test_hours_field_and_blank(self):
        assert parse_summary_row(
            RawRow(row_number=1, first_name="A", last_name="B", worked_hours="151,67")
        ).total_hours == Decimal("151.67")
        assert parse_summary_row(RawRow(row_number=1, first_name="A", last_name="B")).total_hours == 0
