"""
Shared fixtures and builders for catalog_sync tests.

Workbooks are built in memory with openpyxl; the persistence double is
InMemoryCatalogClient seeded with a small catalog.
"""

import io
from typing import Any, Dict, List, Optional

import openpyxl
import pytest

from catalog_sync.ingest.memory_client import InMemoryCatalogClient
from catalog_sync.models import (
    CatalogState,
    CrossReferenceRecord,
    PartRecord,
    VehicleAliasRecord,
    VehicleApplicationRecord,
)
from catalog_sync.parser import CatalogParser
from catalog_sync.schema import EXPORT_HEADERS, SHEET_PARTS, STATUS_DISPLAY

PART_HEADERS = EXPORT_HEADERS[SHEET_PARTS]
APP_HEADERS = ["ACR SKU", "Status", "Make", "Model", "Start Year", "End Year"]
ALIAS_HEADERS = ["Alias", "Canonical Name", "Alias Type", "Status"]


def uuid_for(n: int) -> str:
    """Deterministic, well-formed UUID for fixtures."""
    return f"00000000-0000-4000-8000-{n:012d}"


# =============================================================================
# RECORD BUILDERS
# =============================================================================

def make_part(acr_sku: str, n: int, **fields) -> PartRecord:
    fields.setdefault("part_type", "Rotor")
    return PartRecord(id=uuid_for(n), acr_sku=acr_sku, **fields)


def make_application(part: PartRecord, make: str, model: str, start: int, end: int, n: int) -> VehicleApplicationRecord:
    return VehicleApplicationRecord(
        id=uuid_for(n), part_id=part.id, acr_sku=part.acr_sku,
        make=make, model=model, start_year=start, end_year=end,
    )


def make_cross_reference(part: PartRecord, brand: str, sku: str, n: int) -> CrossReferenceRecord:
    return CrossReferenceRecord(
        id=uuid_for(n), part_id=part.id, acr_sku=part.acr_sku,
        competitor_brand=brand, competitor_sku=sku,
    )


def make_seed_state() -> CatalogState:
    """
    Three parts:
      ACR-100 rotor, two vehicle applications, NATIONAL NAT-100/200/300
      ACR-200 hub, one vehicle application, ATV ATV-1
      ACR-300 caliper, no children
    and one alias (VW → Volkswagen).
    """
    p100 = make_part(
        "ACR-100", 1, position_type="Front", abs_type="C/ABS",
        specifications="Vented rotor, 280 mm diameter, 5 studs",
    )
    p200 = make_part("ACR-200", 2, part_type="Hub Assembly", position_type="Rear")
    p300 = make_part("ACR-300", 3, part_type="Caliper")

    return CatalogState(
        parts=[p100, p200, p300],
        vehicle_applications=[
            make_application(p100, "Nissan", "Tsuru", 1992, 2017, 11),
            make_application(p100, "Nissan", "Sentra", 2000, 2006, 12),
            make_application(p200, "Ford", "F-150", 2004, 2008, 13),
        ],
        cross_references=[
            make_cross_reference(p100, "NATIONAL", "NAT-100", 21),
            make_cross_reference(p100, "NATIONAL", "NAT-200", 22),
            make_cross_reference(p100, "NATIONAL", "NAT-300", 23),
            make_cross_reference(p200, "ATV", "ATV-1", 24),
        ],
        vehicle_aliases=[
            VehicleAliasRecord(id=uuid_for(31), alias="VW", canonical_name="Volkswagen", alias_type="make"),
        ],
    )


# =============================================================================
# WORKBOOK BUILDERS
# =============================================================================

def make_workbook(sheets: List[tuple]) -> bytes:
    """Build .xlsx bytes from (title, headers, rows) triples; rows are lists."""
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


def _as_lists(headers: List[str], rows: List[Dict[str, Any]]) -> List[List[Any]]:
    return [[row.get(h) for h in headers] for row in rows]


def make_catalog_workbook(
    parts: List[Dict[str, Any]],
    apps: List[Dict[str, Any]],
    aliases: Optional[List[Dict[str, Any]]] = None,
    part_headers: Optional[List[str]] = None,
    app_headers: Optional[List[str]] = None,
    alias_headers: Optional[List[str]] = None
) -> bytes:
    """Catalog workbook from header-keyed row dicts. aliases=None omits that sheet."""
    part_headers = part_headers or PART_HEADERS
    app_headers = app_headers or APP_HEADERS
    alias_headers = alias_headers or ALIAS_HEADERS

    sheets = [
        ("Parts", part_headers, _as_lists(part_headers, parts)),
        ("Vehicle Applications", app_headers, _as_lists(app_headers, apps)),
    ]
    if aliases is not None:
        sheets.append(("Vehicle Aliases", alias_headers, _as_lists(alias_headers, aliases)))
    return make_workbook(sheets)


def parse_rows(
    parts: List[Dict[str, Any]],
    apps: List[Dict[str, Any]],
    aliases: Optional[List[Dict[str, Any]]] = None
):
    """Build a catalog workbook from row dicts and parse it."""
    return CatalogParser().parse(make_catalog_workbook(parts, apps, aliases), "catalog.xlsx")


def part_row(acr_sku: str, part_type: str = "Rotor", status: str = "Activo", **cells) -> Dict[str, Any]:
    row = {"ACR SKU": acr_sku, "Status": status, "Part Type": part_type}
    row.update(cells)
    return row


def app_row(acr_sku: str, make: str, model: str, start: Any, end: Any, status: str = "Activo") -> Dict[str, Any]:
    return {
        "ACR SKU": acr_sku, "Status": status, "Make": make, "Model": model,
        "Start Year": start, "End Year": end,
    }


def alias_row(alias: str, canonical: str, alias_type: str = "make", status: str = "Activo") -> Dict[str, Any]:
    return {"Alias": alias, "Canonical Name": canonical, "Alias Type": alias_type, "Status": status}


def rows_from_state(state: CatalogState) -> Dict[str, List[Dict[str, Any]]]:
    """Header-keyed rows reproducing a catalog exactly (an unmodified re-upload)."""
    brand_header = {
        "NATIONAL": "National", "ATV": "ATV", "SYD": "SYD", "TMK": "TMK", "GROB": "GROB",
        "RACE": "RACE", "OEM": "OEM", "OEM_2": "OEM_2", "GMB": "GMB", "GSP": "GSP", "FAG": "FAG",
    }
    skus: Dict[str, Dict[str, List[str]]] = {}
    for ref in state.cross_references:
        skus.setdefault(ref.acr_sku, {}).setdefault(ref.competitor_brand, []).append(ref.competitor_sku)

    parts = []
    for p in state.parts:
        row = {
            "ACR SKU": p.acr_sku,
            "Status": STATUS_DISPLAY[p.workflow_status],
            "Part Type": p.part_type,
            "Position": p.position_type,
            "ABS Type": p.abs_type,
            "Bolt Pattern": p.bolt_pattern,
            "Drive Type": p.drive_type,
            "Specifications": p.specifications,
        }
        for brand, values in skus.get(p.acr_sku, {}).items():
            row[brand_header[brand]] = ";".join(values)
        parts.append(row)

    apps = [
        app_row(a.acr_sku, a.make, a.model, a.start_year, a.end_year)
        for a in state.vehicle_applications
    ]
    aliases = [alias_row(a.alias, a.canonical_name, a.alias_type) for a in state.vehicle_aliases]
    return {"parts": parts, "apps": apps, "aliases": aliases}


def find_row(rows: List[Dict[str, Any]], acr_sku: str, model: Optional[str] = None) -> Dict[str, Any]:
    for row in rows:
        if row["ACR SKU"] == acr_sku and (model is None or row.get("Model") == model):
            return row
    raise KeyError(f"No row for {acr_sku} {model or ''}")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def seed_state():
    return make_seed_state()


@pytest.fixture
def seed_rows():
    return rows_from_state(make_seed_state())


@pytest.fixture
def db():
    return InMemoryCatalogClient(make_seed_state())
