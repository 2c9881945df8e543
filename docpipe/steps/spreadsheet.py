import csv
import io

from docpipe.logging.logger import Log
from docpipe.processor.exceptions import ContainerOpenError, DecodeError
from docpipe.processor.file_loader import FileLoader
from docpipe.processor.governor import Budget
from docpipe.processor.models import Query, StepOutcome
from docpipe.processor.pipeline import PipelineStep, format_extracted_data
from docpipe.steps.spreadsheet_readers import BaseSheetReader, Row, SheetReaderFactory


class SpreadsheetStep(PipelineStep):
    """Serializes every sheet to CSV lines, one prompt part per sheet.

    Sheets are read in parallel; a failing sheet is reported and skipped.
    """

    name = "spreadsheet"
    fatal = False

    def __init__(
        self,
        max_rows: int = 1000,
        max_cols: int = 100,
        reader_factory: type[SheetReaderFactory] = SheetReaderFactory,
        file_loader: FileLoader | None = None,
    ) -> None:
        self._max_rows = max_rows
        self._max_cols = max_cols
        self._reader_factory = reader_factory
        self._file_loader = file_loader if file_loader is not None else FileLoader()

    def run(self, query: Query, budget: Budget) -> StepOutcome:
        data = self._file_loader.load(query)
        reader = self._reader_factory.create(query.file_type)
        sheets = reader.sheet_names(data)
        if not sheets:
            raise ContainerOpenError("workbook contains no sheets")
        Log.info(f"Reading {len(sheets)} sheets from {query.file_path}")

        results = budget.map_ordered(lambda sheet: self._read_sheet(reader, data, sheet), sheets)

        parts: list[str] = []
        errors: list[str] = []
        for sheet, rows, error in results:
            if error is not None:
                errors.append(f"sheet '{sheet}': {error}")
            elif rows:
                parts.append(format_extracted_data(serialize_rows(rows), sheet=sheet))
            else:
                Log.debug(f"Sheet '{sheet}' is empty")

        if len(errors) == len(sheets):
            return StepOutcome.failed(DecodeError(f"all {len(sheets)} sheets failed"), errors)
        return StepOutcome.completed(prompt_parts=parts, errors=errors)

    def _read_sheet(
        self, reader: BaseSheetReader, data: bytes, sheet: str
    ) -> tuple[str, list[Row], DecodeError | None]:
        try:
            rows = reader.read_rows(data, sheet, self._max_rows, self._max_cols)
        except DecodeError as exc:
            Log.warning(f"Sheet '{sheet}' failed: {exc}")
            return sheet, [], exc
        Log.debug(f"Sheet '{sheet}': {len(rows)} rows")
        return sheet, rows, None


def serialize_rows(rows: list[Row]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")
