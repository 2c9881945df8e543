"""Sheet readers for the spreadsheet step.

Every reader opens the workbook from bytes on each call, so sheets of one
workbook can be read on different threads without sharing a handle.
"""

import csv
import datetime
import io
import xml.etree.ElementTree as ET
import zipfile
from abc import ABC, abstractmethod

import openpyxl

from docpipe.processor.exceptions import ContainerOpenError, DecodeError, UnsupportedFormatError

Row = list[str]

_ODS_TABLE = "urn:oasis:names:tc:opendocument:xmlns:table:1.0"
_ODS_TEXT = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"


class BaseSheetReader(ABC):
    """Contract for spreadsheet container readers."""

    @abstractmethod
    def sheet_names(self, data: bytes) -> list[str]:
        """Sheet names in workbook order.

        Raises:
            ContainerOpenError: if the workbook cannot be opened.
        """

    @abstractmethod
    def read_rows(self, data: bytes, sheet: str, max_rows: int, max_cols: int) -> list[Row]:
        """Non-empty rows of one sheet as text cells, trailing empty cells trimmed.

        Raises:
            DecodeError: if the sheet cannot be read.
        """


class CsvSheetReader(BaseSheetReader):
    """Delimited text, exposed as a workbook with a single sheet."""

    SHEET_NAME = "Sheet1"

    def __init__(self, delimiter: str = ",") -> None:
        self._delimiter = delimiter

    def sheet_names(self, data: bytes) -> list[str]:
        return [self.SHEET_NAME]

    def read_rows(self, data: bytes, sheet: str, max_rows: int, max_cols: int) -> list[Row]:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"delimited file is not valid UTF-8 (byte {exc.start})") from exc
        rows: list[Row] = []
        try:
            for record in csv.reader(io.StringIO(text, newline=""), delimiter=self._delimiter):
                row = trim_row(record[:max_cols])
                if row:
                    rows.append(row)
                if len(rows) >= max_rows:
                    break
        except csv.Error as exc:
            raise DecodeError(f"malformed delimited data: {exc}") from exc
        return rows


class XlsxSheetReader(BaseSheetReader):
    """XLSX/XLSM workbooks through openpyxl, read-only and values only."""

    def sheet_names(self, data: bytes) -> list[str]:
        workbook = self._open(data)
        try:
            return list(workbook.sheetnames)
        finally:
            workbook.close()

    def read_rows(self, data: bytes, sheet: str, max_rows: int, max_cols: int) -> list[Row]:
        workbook = self._open(data)
        try:
            worksheet = workbook[sheet]
            rows: list[Row] = []
            for values in worksheet.iter_rows(max_col=max_cols, values_only=True):
                row = trim_row([cell_text(value) for value in values])
                if row:
                    rows.append(row)
                if len(rows) >= max_rows:
                    break
            return rows
        except Exception as exc:
            raise DecodeError(f"sheet '{sheet}' unreadable: {exc}") from exc
        finally:
            workbook.close()

    def _open(self, data: bytes) -> openpyxl.Workbook:
        try:
            return openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        except Exception as exc:
            raise ContainerOpenError(f"workbook unreadable: {exc}") from exc


class OdsSheetReader(BaseSheetReader):
    """OpenDocument spreadsheets, parsed from content.xml."""

    def sheet_names(self, data: bytes) -> list[str]:
        root = self._content(data)
        return [table.get(f"{{{_ODS_TABLE}}}name", "") for table in self._tables(root)]

    def read_rows(self, data: bytes, sheet: str, max_rows: int, max_cols: int) -> list[Row]:
        root = self._content(data)
        table = next(
            (t for t in self._tables(root) if t.get(f"{{{_ODS_TABLE}}}name", "") == sheet),
            None,
        )
        if table is None:
            raise DecodeError(f"sheet '{sheet}' not found")

        rows: list[Row] = []
        for row_element in table.iter(f"{{{_ODS_TABLE}}}table-row"):
            row = trim_row(self._cells(row_element, max_cols))
            if not row:
                continue
            repeat = int(row_element.get(f"{{{_ODS_TABLE}}}number-rows-repeated", "1"))
            for _ in range(min(repeat, max_rows - len(rows))):
                rows.append(list(row))
            if len(rows) >= max_rows:
                break
        return rows

    def _content(self, data: bytes) -> ET.Element:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                with archive.open("content.xml") as content_xml:
                    return ET.fromstring(content_xml.read())
        except (zipfile.BadZipFile, KeyError, ET.ParseError) as exc:
            raise ContainerOpenError(f"spreadsheet unreadable: {exc}") from exc

    def _tables(self, root: ET.Element) -> list[ET.Element]:
        return list(root.iter(f"{{{_ODS_TABLE}}}table"))

    def _cells(self, row_element: ET.Element, max_cols: int) -> Row:
        cells: Row = []
        for cell in row_element:
            if cell.tag not in (
                f"{{{_ODS_TABLE}}}table-cell",
                f"{{{_ODS_TABLE}}}covered-table-cell",
            ):
                continue
            text = "\n".join(
                "".join(paragraph.itertext()) for paragraph in cell.iter(f"{{{_ODS_TEXT}}}p")
            )
            repeat = int(cell.get(f"{{{_ODS_TABLE}}}number-columns-repeated", "1"))
            cells.extend([text] * min(repeat, max_cols - len(cells)))
            if len(cells) >= max_cols:
                break
        return cells


class SheetReaderFactory:
    """Picks the sheet reader for a spreadsheet file type."""

    READERS: dict[str, BaseSheetReader] = {
        "csv": CsvSheetReader(","),
        "tsv": CsvSheetReader("\t"),
        "xlsx": XlsxSheetReader(),
        "xlsm": XlsxSheetReader(),
        "ods": OdsSheetReader(),
    }

    @classmethod
    def create(cls, file_type: str) -> BaseSheetReader:
        reader = cls.READERS.get(file_type.lower())
        if reader is None:
            raise UnsupportedFormatError(f"No sheet reader for '{file_type}'")
        return reader


def cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


def trim_row(cells: list[str]) -> Row:
    row = list(cells)
    while row and not row[-1].strip():
        row.pop()
    return row
