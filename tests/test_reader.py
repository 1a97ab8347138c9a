"""Tests for reading CSV and Excel exports."""

import io
from datetime import datetime

import pytest
from openpyxl import Workbook

from bepaid_reconciler.parsing import (
    EmptyFileError,
    ParseError,
    UnsupportedFileError,
    read_csv,
    read_export,
    read_xlsx,
)


CSV_HEADER = "UID;Статус;Сумма;Валюта;E-mail;Карта;Владелец карты"


def _xlsx_bytes(*sheets: list[list]) -> bytes:
    workbook = Workbook()
    workbook.remove(workbook.active)
    for index, rows in enumerate(sheets):
        sheet = workbook.create_sheet(f"Sheet{index}")
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


class TestReadCsv:
    """Tests for CSV exports."""

    def test_semicolon_export_with_bom(self):
        """Test a standard UTF-8 BOM export."""
        data = (
            CSV_HEADER + "\n"
            '"abc-1";"Успешный";"12,50";"BYN";"anna@example.com";"4111 11** **** 1234";"ANNA IVANOVA"\n'
        ).encode("utf-8-sig")
        rows = read_csv(data)
        assert len(rows) == 1
        assert rows[0]["UID"] == "abc-1"
        assert rows[0]["Сумма"] == "12,50"
        assert rows[0]["Владелец карты"] == "ANNA IVANOVA"

    def test_cp1251_fallback(self):
        """Test that legacy Windows-1251 exports are decoded."""
        data = (CSV_HEADER + "\nabc-1;Успешный;10;BYN;;;\n").encode("cp1251")
        rows = read_csv(data)
        assert rows[0]["Статус"] == "Успешный"

    def test_comma_delimiter_detected(self):
        """Test re-saved comma separated exports."""
        data = b"UID,Status,Amount\nabc-1,Successful,10.00\n"
        rows = read_csv(data)
        assert rows[0] == {"UID": "abc-1", "Status": "Successful", "Amount": "10.00"}

    def test_short_rows_padded(self):
        """Test that missing trailing cells become empty strings."""
        rows = read_csv(b"UID;Status;Amount\nabc-1;Successful\n")
        assert rows[0]["Amount"] == ""

    def test_blank_lines_ignored(self):
        """Test that blank lines are not rows."""
        rows = read_csv(b"UID;Status\n\nabc-1;Successful\n\n")
        assert len(rows) == 1

    def test_header_only_is_empty(self):
        """Test that a header without data is rejected."""
        with pytest.raises(EmptyFileError):
            read_csv(b"UID;Status\n\n")


class TestReadXlsx:
    """Tests for Excel exports built with openpyxl."""

    def test_single_sheet(self):
        """Test that a one-sheet workbook is read from that sheet."""
        data = _xlsx_bytes([
            ["UID", "Статус", "Сумма", "Дата оплаты"],
            ["abc-1", "Успешный", 12.5, datetime(2026, 1, 15, 10, 30, 0)],
            [None, None, None, None],
        ])
        rows = read_xlsx(data)
        assert len(rows) == 1
        assert rows[0]["Сумма"] == "12.5"
        assert rows[0]["Дата оплаты"] == "15.01.2026 10:30:00"

    def test_card_and_erip_sheets(self):
        """Test that card rows come from sheet 2 and ERIP rows from sheet 3."""
        data = _xlsx_bytes(
            [["Summary"], ["Total", 2]],
            [["UID", "Сумма"], ["card-1", 10]],
            [["UID", "Сумма"], ["erip-1", 20]],
        )
        rows = read_xlsx(data)
        assert [r["UID"] for r in rows] == ["card-1", "erip-1"]
        assert rows[1]["Способ оплаты"] == "erip"
        assert rows[1]["_source"] == "erip"
        assert "_source" not in rows[0]

    def test_sheet_without_uid_is_skipped(self):
        """Test that a sheet whose header has no UID column is ignored."""
        data = _xlsx_bytes(
            [["Summary"]],
            [["Something", "Else"], ["x", "y"]],
        )
        assert read_xlsx(data) == []

    def test_not_a_workbook(self):
        """Test that garbage bytes raise ParseError."""
        with pytest.raises(ParseError):
            read_xlsx(b"definitely not a zip file")


class TestReadExport:
    """Tests for format dispatch."""

    def test_unsupported_extension(self):
        """Test that only CSV and Excel are accepted."""
        with pytest.raises(UnsupportedFileError):
            read_export(b"data", filename="export.pdf")

    def test_bytes_need_filename(self):
        """Test that the format cannot be guessed from bytes alone."""
        with pytest.raises(UnsupportedFileError):
            read_export(b"UID\nabc\n")

    def test_reads_path(self, tmp_path):
        """Test reading a file from disk."""
        path = tmp_path / "export.CSV"
        path.write_bytes(b"UID;Status\nabc-1;Successful\n")
        rows = read_export(path)
        assert rows[0]["UID"] == "abc-1"

    def test_dispatches_xlsx(self):
        """Test that .xlsx goes through the workbook reader."""
        data = _xlsx_bytes([["UID"], ["abc-1"]])
        assert read_export(data, filename="export.xlsx") == [{"UID": "abc-1"}]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
