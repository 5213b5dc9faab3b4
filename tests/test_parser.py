"""
Unit tests for the catalog workbook parser.

These tests verify that:
1. Current and legacy export formats parse to the same typed rows
2. Every fatal file-level problem raises ParseError with its code
3. Non-fatal header problems are recorded for the validator
4. export_workbook produces a workbook that parses back to the catalog
"""

import io
import zipfile

import pytest

from catalog_sync.errors import ParseError
from catalog_sync.parser import CatalogParser
from catalog_sync.schema import STATUS_ACTIVE, STATUS_DELETE, STATUS_INACTIVE
from catalog_sync.validation.codes import ValidationErrorCode

from conftest import (
    APP_HEADERS,
    alias_row,
    app_row,
    make_catalog_workbook,
    make_seed_state,
    make_workbook,
    part_row,
)


@pytest.fixture
def parser():
    return CatalogParser()


def parse_error_code(parser, data, file_name="catalog.xlsx"):
    with pytest.raises(ParseError) as exc_info:
        parser.parse(data, file_name)
    return exc_info.value.code


# =============================================================================
# ROWS
# =============================================================================

class TestParseRows:

    def test_typed_rows(self, parser):
        data = make_catalog_workbook(
            parts=[part_row("ACR-1", National="NAT-1;NAT-2", Position="Front")],
            apps=[app_row("ACR-1", "Nissan", "Tsuru", 1992, 2017)],
            aliases=[alias_row("VW", "Volkswagen")],
        )
        result = parser.parse(data, "catalog.xlsx")

        assert len(result.parts) == 1
        part = result.parts[0]
        assert part.row_number == 2
        assert part.acr_sku == "ACR-1"
        assert part.workflow_status == STATUS_ACTIVE
        assert part.position_type == "Front"
        assert part.cross_references["national_skus"].keep == ["NAT-1", "NAT-2"]

        app = result.vehicle_applications[0]
        assert (app.acr_sku, app.make, app.model) == ("ACR-1", "Nissan", "Tsuru")
        assert (app.start_year, app.end_year) == (1992, 2017)

        assert result.vehicle_aliases[0].alias == "VW"
        assert result.file_name == "catalog.xlsx"
        assert result.file_size == len(data)
        assert result.total_rows == 3

    def test_status_mapping(self, parser):
        data = make_catalog_workbook(
            parts=[
                part_row("A", status="Activo"),
                part_row("B", status="inactivo"),
                part_row("C", status="ELIMINAR"),
                part_row("D", status=None),
                part_row("E", status="Borrar"),
            ],
            apps=[],
        )
        statuses = [p.workflow_status for p in parser.parse(data).parts]
        assert statuses == [STATUS_ACTIVE, STATUS_INACTIVE, STATUS_DELETE, STATUS_ACTIVE, None]

    def test_child_sheets_reject_inactivo(self, parser):
        data = make_catalog_workbook(
            parts=[part_row("A")],
            apps=[app_row("A", "Ford", "Ka", 2000, 2005, status="Inactivo")],
        )
        assert parser.parse(data).vehicle_applications[0].workflow_status is None

    def test_blank_rows_skipped_row_numbers_kept(self, parser):
        data = make_workbook([
            ("Parts", ["ACR SKU", "Part Type"], [["A", "Rotor"], [None, None], ["B", "Hub"]]),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        parts = parser.parse(data).parts
        assert [(p.acr_sku, p.row_number) for p in parts] == [("A", 2), ("B", 4)]

    def test_errors_column_alone_does_not_make_a_row(self, parser):
        data = make_workbook([
            ("Parts", ["ACR SKU", "Part Type", "Errors"], [["A", "Rotor", None], [None, None, "OK"]]),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        assert len(parser.parse(data).parts) == 1

    def test_numeric_cells_become_text(self, parser):
        data = make_workbook([
            ("Parts", ["ACR SKU", "Part Type", "National"], [[12345, "Rotor", 987.0]]),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        part = parser.parse(data).parts[0]
        assert part.acr_sku == "12345"
        assert part.cross_references["national_skus"].keep == ["987"]

    def test_legacy_headers(self, parser):
        data = make_workbook([
            ("Parts", ["_id", "ACR_SKU", "Part_Type", "National_SKUs"],
             [["00000000-0000-4000-8000-000000000001", "ACR-1", "Rotor", "NAT-1 NAT-2"]]),
            ("Vehicle Applications", ["_id", "_part_id", "ACR_SKU", "Make", "Model", "Start_Year", "End_Year"],
             [[None, "00000000-0000-4000-8000-000000000001", "ACR-1", "Ford", "Ka", 2000, 2005]]),
        ])
        result = parser.parse(data)
        part = result.parts[0]
        assert part.internal_id == "00000000-0000-4000-8000-000000000001"
        assert part.cross_references["national_skus"].legacy_delimiter
        assert result.vehicle_applications[0].part_internal_id == part.internal_id

    def test_passthrough_columns(self, parser):
        data = make_workbook([
            ("Parts", ["ACR SKU", "Part Type", "Image URL Front", "360 Viewer"],
             [["A", "Rotor", "https://img.example/a.jpg", "ready"]]),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        assert parser.parse(data).parts[0].passthrough == {
            "image_url_front": "https://img.example/a.jpg",
            "viewer_360_status": "ready",
        }

    def test_alias_sheet_optional(self, parser):
        data = make_catalog_workbook(parts=[part_row("A")], apps=[])
        assert parser.parse(data).vehicle_aliases is None


# =============================================================================
# HEADER FACTS
# =============================================================================

class TestHeaderFacts:

    def test_missing_required_header_is_recorded(self, parser):
        data = make_workbook([
            ("Parts", ["ACR SKU", "Status"], [["A", "Activo"]]),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        result = parser.parse(data)
        assert result.missing_headers == {"Parts": ["part_type"]}

    def test_unmapped_headers_are_recorded(self, parser):
        data = make_workbook([
            ("Parts", ["ACR SKU", "Part Type", "Notes"], [["A", "Rotor", "x"]]),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        assert parser.parse(data).unmapped_headers["Parts"] == ["Notes"]

    def test_replacement_character_is_recorded(self, parser):
        data = make_catalog_workbook(parts=[part_row("A", Specifications="Di\ufffdmetro")], apps=[])
        issues = parser.parse(data).encoding_issues
        assert issues == [{
            "sheet": "Parts", "row": 2, "column": "specifications", "value": "Di\ufffdmetro",
        }]


# =============================================================================
# FATAL ERRORS
# =============================================================================

class TestFatalErrors:

    def test_wrong_extension(self, parser):
        data = make_catalog_workbook(parts=[], apps=[])
        assert parse_error_code(parser, data, "catalog.csv") == ValidationErrorCode.E14_FILE_FORMAT_INVALID

    def test_oversized(self):
        parser = CatalogParser(max_file_size_mb=1)
        data = b"x" * (1024 * 1024 + 1)
        assert parse_error_code(parser, data) == ValidationErrorCode.E15_FILE_SIZE_EXCEEDS_LIMIT

    def test_empty_file(self, parser):
        assert parse_error_code(parser, b"") == ValidationErrorCode.E16_MALFORMED_EXCEL_FILE

    def test_zip_that_is_not_a_workbook(self, parser):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as zf:
            zf.writestr("readme.txt", "not a workbook")
        assert parse_error_code(parser, buffer.getvalue()) == ValidationErrorCode.E16_MALFORMED_EXCEL_FILE

    def test_csv_renamed_to_xlsx(self, parser):
        data = b"ACR SKU,Part Type\nACR-1,Rotor\nACR-2,Hub Assembly\n"
        with pytest.raises(ParseError) as exc_info:
            parser.parse(data, "catalog.xlsx")
        assert exc_info.value.code == ValidationErrorCode.E14_FILE_FORMAT_INVALID
        assert "ascii" in exc_info.value.message.lower()

    def test_missing_sheet(self, parser):
        data = make_workbook([("Parts", ["ACR SKU", "Part Type"], [])])
        with pytest.raises(ParseError) as exc_info:
            parser.parse(data)
        assert exc_info.value.code == ValidationErrorCode.E10_REQUIRED_SHEET_MISSING
        assert exc_info.value.sheet == "Vehicle Applications"

    def test_misnamed_sheet(self, parser):
        data = make_workbook([
            ("parts ", ["ACR SKU", "Part Type"], []),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        assert parse_error_code(parser, data) == ValidationErrorCode.E13_INVALID_SHEET_NAME

    def test_duplicate_header(self, parser):
        data = make_workbook([
            ("Parts", ["ACR SKU", "Part Type", "Part_Type"], []),
            ("Vehicle Applications", APP_HEADERS, []),
        ])
        assert parse_error_code(parser, data) == ValidationErrorCode.E11_DUPLICATE_HEADER_COLUMNS


# =============================================================================
# EXPORT
# =============================================================================

class TestExport:

    def test_export_parses_back(self, parser):
        state = make_seed_state()
        result = parser.parse(parser.export_workbook(state), "export.xlsx")

        assert [p.acr_sku for p in result.parts] == ["ACR-100", "ACR-200", "ACR-300"]
        rotor = result.parts[0]
        assert rotor.cross_references["national_skus"].keep == ["NAT-100", "NAT-200", "NAT-300"]
        assert rotor.specifications == "Vented rotor, 280 mm diameter, 5 studs"
        assert len(result.vehicle_applications) == 3
        assert [(a.alias, a.alias_type) for a in result.vehicle_aliases] == [("VW", "make")]
        assert result.missing_headers == {}
        assert result.unmapped_headers == {
            "Parts": [], "Vehicle Applications": [], "Vehicle Aliases": [],
        }
