import datetime

import pytest

from docpipe.processor.exceptions import ContainerOpenError, DecodeError, UnsupportedFormatError
from docpipe.steps.spreadsheet_readers import (
    CsvSheetReader,
    OdsSheetReader,
    SheetReaderFactory,
    XlsxSheetReader,
    cell_text,
    trim_row,
)


class TestXlsxSheetReader:
    def test_sheet_names(self, xlsx_bytes: bytes) -> None:
        assert XlsxSheetReader().sheet_names(xlsx_bytes) == ["Summary", "Data"]

    def test_rows_trimmed_and_empty_dropped(self, xlsx_bytes: bytes) -> None:
        rows = XlsxSheetReader().read_rows(xlsx_bytes, "Data", 100, 100)
        assert rows == [["id", "value"], ["1", "2.5"]]

    def test_invalid_workbook_raises(self) -> None:
        with pytest.raises(ContainerOpenError):
            XlsxSheetReader().sheet_names(b"not a workbook")

    def test_unknown_sheet_raises(self, xlsx_bytes: bytes) -> None:
        with pytest.raises(DecodeError):
            XlsxSheetReader().read_rows(xlsx_bytes, "Missing", 100, 100)


class TestOdsSheetReader:
    def test_sheet_names(self, ods_bytes: bytes) -> None:
        assert OdsSheetReader().sheet_names(ods_bytes) == ["First", "Second"]

    def test_expands_repeats_within_caps(self, ods_bytes: bytes) -> None:
        assert OdsSheetReader().read_rows(ods_bytes, "First", 100, 100) == [["a", "b", "b"]]
        assert OdsSheetReader().read_rows(ods_bytes, "Second", 100, 100) == [["x"], ["x"]]

    def test_row_cap_applies_to_repeated_rows(self, ods_bytes: bytes) -> None:
        assert OdsSheetReader().read_rows(ods_bytes, "Second", 1, 100) == [["x"]]

    def test_column_cap(self, ods_bytes: bytes) -> None:
        assert OdsSheetReader().read_rows(ods_bytes, "First", 100, 2) == [["a", "b"]]

    def test_not_a_zip_raises(self) -> None:
        with pytest.raises(ContainerOpenError):
            OdsSheetReader().sheet_names(b"plain bytes")


class TestCsvSheetReader:
    def test_invalid_utf8_raises(self) -> None:
        with pytest.raises(DecodeError):
            CsvSheetReader().read_rows(b"\xff\xfe\xfa", "Sheet1", 10, 10)


class TestSheetReaderFactory:
    @pytest.mark.parametrize(
        ("file_type", "reader_cls"),
        [
            ("csv", CsvSheetReader),
            ("tsv", CsvSheetReader),
            ("xlsx", XlsxSheetReader),
            ("XLSM", XlsxSheetReader),
            ("ods", OdsSheetReader),
        ],
    )
    def test_known_types(self, file_type: str, reader_cls: type) -> None:
        assert isinstance(SheetReaderFactory.create(file_type), reader_cls)

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            SheetReaderFactory.create("xls")


class TestCellText:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            (3.0, "3"),
            (2.5, "2.5"),
            (True, "TRUE"),
            (datetime.date(2024, 5, 1), "2024-05-01"),
            ("text", "text"),
        ],
    )
    def test_formats(self, value: object, expected: str) -> None:
        assert cell_text(value) == expected


class TestTrimRow:
    def test_strips_trailing_empty_cells(self) -> None:
        assert trim_row(["a", "", "b", "", " "]) == ["a", "", "b"]

    def test_all_empty(self) -> None:
        assert trim_row(["", ""]) == []
