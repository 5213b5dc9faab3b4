import io
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import chardet
import openpyxl

from ..errors import ParseError
from ..schema import VALID_EXTENSIONS
from ..validation.codes import ValidationErrorCode

logger = logging.getLogger(__name__)

# Bytes inspected when guessing what a non-workbook upload actually is
SNIFF_BYTES = 4096


@dataclass
class SheetData:
    """Raw contents of one worksheet: header cells and data rows with their row numbers."""
    name: str
    headers: List[Any]
    rows: List[Tuple[int, Tuple[Any, ...]]] = field(default_factory=list)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ExcelAdapter:
    def can_handle(self, file_name):
        return Path(file_name).suffix.lower() in VALID_EXTENSIONS

    def read(self, data: bytes) -> Dict[str, SheetData]:
        """Read every worksheet of an in-memory .xlsx workbook.

        Args:
            data: Workbook bytes

        Returns:
            Mapping of sheet title to SheetData. Fully blank rows are dropped.

        Raises:
            ParseError: E14 when the payload is text rather than a workbook,
                        E16 when it is not a readable workbook
        """
        if not data:
            raise ParseError(ValidationErrorCode.E16_MALFORMED_EXCEL_FILE, "File is empty")

        if not zipfile.is_zipfile(io.BytesIO(data)):
            raise self._non_workbook_error(data)

        try:
            wb = openpyxl.load_workbook(io.BytesIO(data), data_only=True)
        except Exception as e:
            raise ParseError(
                ValidationErrorCode.E16_MALFORMED_EXCEL_FILE,
                f"Workbook could not be read: {e}"
            ) from e

        sheets = {}
        for ws in wb.worksheets:
            rows_iter = ws.iter_rows(values_only=True)
            header_row = next(rows_iter, None)
            headers = list(header_row) if header_row else []

            rows = []
            for row_number, values in enumerate(rows_iter, start=2):
                if values is None or all(_is_blank(v) for v in values):
                    continue
                rows.append((row_number, tuple(values)))

            sheets[ws.title] = SheetData(name=ws.title, headers=headers, rows=rows)
            logger.debug(f"Read sheet '{ws.title}': {len(headers)} columns, {len(rows)} rows")

        return sheets

    def write(self, sheets: Sequence[Tuple[str, List[str], List[List[Any]]]]) -> bytes:
        """Write (title, headers, rows) triples to a new workbook and return its bytes."""
        wb = openpyxl.Workbook()
        wb.remove(wb.active)

        for title, headers, rows in sheets:
            ws = wb.create_sheet(title=title)
            ws.append(list(headers))
            for row in rows:
                ws.append(list(row))

        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    def _non_workbook_error(self, data: bytes) -> ParseError:
        """Explain an upload that is not a ZIP container.

        Text payloads (typically a CSV renamed to .xlsx) get E14 with the
        detected encoding; anything else is a malformed workbook.
        """
        guess = chardet.detect(data[:SNIFF_BYTES])
        encoding = guess.get("encoding")
        confidence = guess.get("confidence") or 0.0

        if encoding and confidence >= 0.5:
            return ParseError(
                ValidationErrorCode.E14_FILE_FORMAT_INVALID,
                f"File is not an .xlsx workbook; content looks like {encoding} text "
                f"(confidence {confidence:.2f}). Export the catalog again instead of "
                f"saving it as CSV."
            )

        return ParseError(
            ValidationErrorCode.E16_MALFORMED_EXCEL_FILE,
            "File is not a valid .xlsx workbook (not a ZIP container)"
        )
