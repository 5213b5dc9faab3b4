from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path
import logging

from .adapters.excel_adapter import ExcelAdapter, SheetData
from .errors import ParseError
from .models import (
    CatalogState,
    ParseResult,
    PartRow,
    VehicleAliasRow,
    VehicleApplicationRow,
)
from .normalizer import HeaderNormalizer, clean_text, parse_brand_cell
from .schema import (
    BRAND_COLUMN_MAP,
    CHILD_STATUS_MAP,
    DEFAULT_MAX_FILE_SIZE_MB,
    EXPORT_HEADERS,
    ID_COLUMN,
    PART_ID_COLUMN,
    PART_STATUS_MAP,
    PASSTHROUGH_PROPERTIES,
    REQUIRED_HEADERS,
    REQUIRED_SHEETS,
    SHEET_PARTS,
    SHEET_VEHICLE_ALIASES,
    SHEET_VEHICLE_APPLICATIONS,
    SKU_DELIMITER,
    STATUS_ACTIVE,
    STATUS_DISPLAY,
    VALID_EXTENSIONS,
)
from .validation.codes import ValidationErrorCode

logger = logging.getLogger(__name__)

REPLACEMENT_CHARACTER = "\ufffd"


def _map_status(raw: Optional[str], status_map: Dict[str, str]) -> Optional[str]:
    """Canonical status for a cell; blank means active, unknown text gives None."""
    if raw is None:
        return STATUS_ACTIVE
    return status_map.get(raw.strip().lower())


def _raw_number(value: Any) -> Any:
    """Keep numeric cells as-is for later coercion; trim text, blank to None."""
    if isinstance(value, str):
        return value.strip() or None
    return value


def _brand_cell_text(skus: List[str]) -> Optional[str]:
    """Join SKUs for one brand cell.

    A lone SKU containing whitespace keeps a trailing delimiter so it is not
    read back as legacy whitespace-separated SKUs.
    """
    if not skus:
        return None
    text = SKU_DELIMITER.join(sorted(skus))
    if len(skus) == 1 and any(c.isspace() for c in text):
        text += SKU_DELIMITER
    return text


class CatalogParser:
    """Parser for catalog workbooks (Parts, Vehicle Applications, Vehicle Aliases)."""

    def __init__(self, max_file_size_mb: int = DEFAULT_MAX_FILE_SIZE_MB):
        """Initialize the parser.

        Args:
            max_file_size_mb: Uploads larger than this are rejected before parsing
        """
        self.adapter = ExcelAdapter()
        self.normalizer = HeaderNormalizer()
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024

    def parse(self, data: bytes, file_name: Optional[str] = None) -> ParseResult:
        """Parse an uploaded workbook into typed row collections.

        Args:
            data: Workbook bytes
            file_name: Original file name, used for the extension check and
                       carried into the import history

        Returns:
            ParseResult with one typed row per non-blank data row

        Raises:
            ParseError: For any fatal file-level problem (wrong type, oversized,
                        corrupt, missing or misnamed sheet, duplicate header)
        """
        self.check_file(data, file_name)

        sheets = self.adapter.read(data)
        self._check_required_sheets(sheets)

        result = ParseResult(file_name=file_name, file_size=len(data))

        parts_sheet = sheets[SHEET_PARTS]
        records = self._read_records(parts_sheet, SHEET_PARTS, result)
        result.parts = [self._part_row(n, rec) for n, rec in records]

        apps_sheet = sheets[SHEET_VEHICLE_APPLICATIONS]
        records = self._read_records(apps_sheet, SHEET_VEHICLE_APPLICATIONS, result)
        result.vehicle_applications = [self._vehicle_application_row(n, rec) for n, rec in records]

        aliases_sheet = sheets.get(SHEET_VEHICLE_ALIASES)
        if aliases_sheet is not None:
            records = self._read_records(aliases_sheet, SHEET_VEHICLE_ALIASES, result)
            result.vehicle_aliases = [self._vehicle_alias_row(n, rec) for n, rec in records]

        logger.info(
            f"Parsed {file_name or 'upload'}: {len(result.parts)} parts, "
            f"{len(result.vehicle_applications)} vehicle applications, "
            f"{len(result.vehicle_aliases or [])} aliases"
        )
        return result

    def check_file(self, data: bytes, file_name: Optional[str] = None) -> None:
        """Reject uploads by type and size before any parsing work.

        Raises:
            ParseError: E14 for a non-.xlsx name, E15 for an oversized buffer
        """
        if file_name is not None and not self.adapter.can_handle(file_name):
            raise ParseError(
                ValidationErrorCode.E14_FILE_FORMAT_INVALID,
                f"Invalid file format. Expected {', '.join(VALID_EXTENSIONS)}, "
                f"got: {Path(file_name).suffix or 'no extension'}"
            )

        if len(data) > self.max_file_size_bytes:
            raise ParseError(
                ValidationErrorCode.E15_FILE_SIZE_EXCEEDS_LIMIT,
                f"File size exceeds limit. Maximum "
                f"{self.max_file_size_bytes // (1024 * 1024)} MB, got: "
                f"{len(data) / 1024 / 1024:.1f} MB"
            )

    def _check_required_sheets(self, sheets: Dict[str, SheetData]) -> None:
        names = list(sheets)
        for required in REQUIRED_SHEETS:
            if required in sheets:
                continue
            near = [n for n in names if n.strip().lower() == required.lower()]
            if near:
                raise ParseError(
                    ValidationErrorCode.E13_INVALID_SHEET_NAME,
                    f"Sheet '{near[0]}' must be named exactly '{required}'",
                    sheet=near[0],
                )
            raise ParseError(
                ValidationErrorCode.E10_REQUIRED_SHEET_MISSING,
                f"Missing required sheet: {required}",
                sheet=required,
            )

    def _read_records(
        self,
        sheet: SheetData,
        sheet_name: str,
        result: ParseResult
    ) -> List[Tuple[int, Dict[str, Any]]]:
        """Turn raw rows into {property: value} dicts and record header facts on result."""
        properties, unmapped = self.normalizer.map_headers(sheet.headers, sheet_name)

        present = [p for p in properties if p]
        result.sheet_headers[sheet_name] = present
        result.unmapped_headers[sheet_name] = unmapped
        missing = [h for h in REQUIRED_HEADERS[sheet_name] if h not in present]
        if missing:
            result.missing_headers[sheet_name] = missing

        records = []
        for row_number, values in sheet.rows:
            record: Dict[str, Any] = {}
            for prop, value in zip(properties, values):
                if prop is None:
                    continue
                record[prop] = value
                if isinstance(value, str) and REPLACEMENT_CHARACTER in value:
                    result.encoding_issues.append({
                        "sheet": sheet_name,
                        "row": row_number,
                        "column": prop,
                        "value": value,
                    })
            # the Errors column is a spreadsheet formula; it never makes a row non-blank
            if any(clean_text(v) is not None for k, v in record.items() if k != "errors"):
                records.append((row_number, record))

        return records

    def _part_row(self, row_number: int, record: Dict[str, Any]) -> PartRow:
        status = clean_text(record.get("status"))
        return PartRow(
            row_number=row_number,
            acr_sku=clean_text(record.get("acr_sku")),
            status=status,
            workflow_status=_map_status(status, PART_STATUS_MAP),
            part_type=clean_text(record.get("part_type")),
            position_type=clean_text(record.get("position_type")),
            abs_type=clean_text(record.get("abs_type")),
            bolt_pattern=clean_text(record.get("bolt_pattern")),
            drive_type=clean_text(record.get("drive_type")),
            specifications=clean_text(record.get("specifications")),
            cross_references={
                prop: parse_brand_cell(record[prop])
                for prop in BRAND_COLUMN_MAP
                if prop in record
            },
            passthrough={
                prop: record[prop]
                for prop in PASSTHROUGH_PROPERTIES
                if record.get(prop) is not None
            },
            internal_id=clean_text(record.get(ID_COLUMN)),
        )

    def _vehicle_application_row(self, row_number: int, record: Dict[str, Any]) -> VehicleApplicationRow:
        status = clean_text(record.get("status"))
        return VehicleApplicationRow(
            row_number=row_number,
            acr_sku=clean_text(record.get("acr_sku")),
            make=clean_text(record.get("make")),
            model=clean_text(record.get("model")),
            start_year=_raw_number(record.get("start_year")),
            end_year=_raw_number(record.get("end_year")),
            status=status,
            workflow_status=_map_status(status, CHILD_STATUS_MAP),
            internal_id=clean_text(record.get(ID_COLUMN)),
            part_internal_id=clean_text(record.get(PART_ID_COLUMN)),
        )

    def _vehicle_alias_row(self, row_number: int, record: Dict[str, Any]) -> VehicleAliasRow:
        status = clean_text(record.get("status"))
        return VehicleAliasRow(
            row_number=row_number,
            alias=clean_text(record.get("alias")),
            canonical_name=clean_text(record.get("canonical_name")),
            alias_type=clean_text(record.get("alias_type")),
            status=status,
            workflow_status=_map_status(status, CHILD_STATUS_MAP),
            internal_id=clean_text(record.get(ID_COLUMN)),
        )

    # =========================================================================
    # EXPORT
    # =========================================================================

    def export_workbook(self, state: CatalogState) -> bytes:
        """Write the catalog as an unstyled workbook in the current import format.

        Re-importing the result unchanged produces an empty diff.

        Args:
            state: Persisted catalog

        Returns:
            .xlsx bytes
        """
        skus_by_part: Dict[str, Dict[str, List[str]]] = {}
        for ref in state.cross_references:
            brands = skus_by_part.setdefault(ref.acr_sku, {})
            brands.setdefault(ref.competitor_brand, []).append(ref.competitor_sku)

        parts_rows = []
        for part in sorted(state.parts, key=lambda p: p.acr_sku):
            brands = skus_by_part.get(part.acr_sku, {})
            row = [
                part.acr_sku,
                STATUS_DISPLAY.get(part.workflow_status, STATUS_DISPLAY[STATUS_ACTIVE]),
                part.part_type,
                part.position_type,
                part.abs_type,
                part.bolt_pattern,
                part.drive_type,
                part.specifications,
            ]
            for brand in BRAND_COLUMN_MAP.values():
                row.append(_brand_cell_text(brands.get(brand, [])))
            parts_rows.append(row)

        apps_rows = [
            [app.acr_sku, STATUS_DISPLAY[STATUS_ACTIVE], app.make, app.model,
             app.start_year, app.end_year]
            for app in sorted(
                state.vehicle_applications,
                key=lambda a: (a.acr_sku, a.make, a.model)
            )
        ]

        alias_rows = [
            [alias.alias, alias.canonical_name, alias.alias_type, STATUS_DISPLAY[STATUS_ACTIVE]]
            for alias in sorted(
                state.vehicle_aliases,
                key=lambda a: (a.alias, a.canonical_name)
            )
        ]

        return self.adapter.write([
            (SHEET_PARTS, EXPORT_HEADERS[SHEET_PARTS], parts_rows),
            (SHEET_VEHICLE_APPLICATIONS, EXPORT_HEADERS[SHEET_VEHICLE_APPLICATIONS], apps_rows),
            (SHEET_VEHICLE_ALIASES, EXPORT_HEADERS[SHEET_VEHICLE_ALIASES], alias_rows),
        ])
