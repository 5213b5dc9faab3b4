"""Catalog workbook schema: sheet names, header tables, status maps and limits."""

from typing import Dict, List

# Sheet names (must match exactly between export and import)
SHEET_PARTS = "Parts"
SHEET_VEHICLE_APPLICATIONS = "Vehicle Applications"
SHEET_VEHICLE_ALIASES = "Vehicle Aliases"

REQUIRED_SHEETS = [SHEET_PARTS, SHEET_VEHICLE_APPLICATIONS]

# Issues without a sheet are bucketed under this name in summaries
GENERAL_SHEET = "General"

# Legacy hidden internal-id columns (old exports only, never used for matching)
ID_COLUMN = "_id"
PART_ID_COLUMN = "_part_id"

# Competitor brand columns on the Parts sheet: property name -> stored brand
BRAND_COLUMN_MAP = {
    "national_skus": "NATIONAL",
    "atv_skus": "ATV",
    "syd_skus": "SYD",
    "tmk_skus": "TMK",
    "grob_skus": "GROB",
    "race_skus": "RACE",
    "oem_skus": "OEM",
    "oem_2_skus": "OEM_2",
    "gmb_skus": "GMB",
    "gsp_skus": "GSP",
    "fag_skus": "FAG",
}

# Column header shown for each brand in exports
BRAND_HEADERS = {
    "national_skus": "National",
    "atv_skus": "ATV",
    "syd_skus": "SYD",
    "tmk_skus": "TMK",
    "grob_skus": "GROB",
    "race_skus": "RACE",
    "oem_skus": "OEM",
    "oem_2_skus": "OEM_2",
    "gmb_skus": "GMB",
    "gsp_skus": "GSP",
    "fag_skus": "FAG",
}

# Read-only passthrough columns: carried on the row, never reconciled
PASSTHROUGH_PROPERTIES = [
    "image_url_front",
    "image_url_back",
    "image_url_top",
    "image_url_other",
    "viewer_360_status",
    "errors",
]

PART_FIELDS = [
    "acr_sku",
    "status",
    "part_type",
    "position_type",
    "abs_type",
    "bolt_pattern",
    "drive_type",
    "specifications",
]

VEHICLE_APPLICATION_FIELDS = [
    "acr_sku",
    "status",
    "make",
    "model",
    "start_year",
    "end_year",
]

VEHICLE_ALIAS_FIELDS = [
    "alias",
    "canonical_name",
    "alias_type",
    "status",
]

# Every property a sheet may carry
SHEET_PROPERTIES: Dict[str, List[str]] = {
    SHEET_PARTS: [ID_COLUMN] + PART_FIELDS + list(BRAND_COLUMN_MAP) + PASSTHROUGH_PROPERTIES,
    SHEET_VEHICLE_APPLICATIONS: [ID_COLUMN, PART_ID_COLUMN] + VEHICLE_APPLICATION_FIELDS + ["errors"],
    SHEET_VEHICLE_ALIASES: [ID_COLUMN] + VEHICLE_ALIAS_FIELDS + ["errors"],
}

# Headers a sheet must carry for row-level validation to run
REQUIRED_HEADERS: Dict[str, List[str]] = {
    SHEET_PARTS: ["acr_sku", "part_type"],
    SHEET_VEHICLE_APPLICATIONS: ["acr_sku", "make", "model", "start_year", "end_year"],
    SHEET_VEHICLE_ALIASES: ["alias", "canonical_name", "alias_type"],
}

# Fields that must be non-empty on every row (only key fields on Eliminar rows)
REQUIRED_FIELDS: Dict[str, List[str]] = {
    SHEET_PARTS: ["acr_sku", "part_type"],
    SHEET_VEHICLE_APPLICATIONS: ["acr_sku", "make", "model", "start_year", "end_year"],
    SHEET_VEHICLE_ALIASES: ["alias", "canonical_name", "alias_type"],
}

# Tier 1: friendly spaced headers (current export format)
FRIENDLY_HEADERS: Dict[str, Dict[str, str]] = {
    SHEET_PARTS: {
        "ACR SKU": "acr_sku",
        "Status": "status",
        "Part Type": "part_type",
        "Position": "position_type",
        "Position Type": "position_type",
        "ABS Type": "abs_type",
        "Bolt Pattern": "bolt_pattern",
        "Drive Type": "drive_type",
        "Specifications": "specifications",
        "Image URL Front": "image_url_front",
        "Image URL Back": "image_url_back",
        "Image URL Top": "image_url_top",
        "Image URL Other": "image_url_other",
        "360 Viewer": "viewer_360_status",
        "Errors": "errors",
    },
    SHEET_VEHICLE_APPLICATIONS: {
        "ACR SKU": "acr_sku",
        "Status": "status",
        "Make": "make",
        "Model": "model",
        "Start Year": "start_year",
        "End Year": "end_year",
        "Errors": "errors",
    },
    SHEET_VEHICLE_ALIASES: {
        "Alias": "alias",
        "Canonical Name": "canonical_name",
        "Alias Type": "alias_type",
        "Status": "status",
        "Errors": "errors",
    },
}

# Tier 2: simplified per-brand headers (Parts sheet only)
BRAND_HEADER_VARIANTS = {
    "National": "national_skus",
    "ATV": "atv_skus",
    "SYD": "syd_skus",
    "TMK": "tmk_skus",
    "GROB": "grob_skus",
    "RACE": "race_skus",
    "OEM": "oem_skus",
    "OEM 2": "oem_2_skus",
    "OEM_2": "oem_2_skus",
    "GMB": "gmb_skus",
    "GSP": "gsp_skus",
    "FAG": "fag_skus",
}

# Export header order per sheet
EXPORT_HEADERS: Dict[str, List[str]] = {
    SHEET_PARTS: [
        "ACR SKU", "Status", "Part Type", "Position", "ABS Type",
        "Bolt Pattern", "Drive Type", "Specifications",
    ] + [BRAND_HEADERS[prop] for prop in BRAND_COLUMN_MAP],
    SHEET_VEHICLE_APPLICATIONS: [
        "ACR SKU", "Status", "Make", "Model", "Start Year", "End Year",
    ],
    SHEET_VEHICLE_ALIASES: ["Alias", "Canonical Name", "Alias Type", "Status"],
}

# Workflow status
STATUS_ACTIVE = "ACTIVE"
STATUS_INACTIVE = "INACTIVE"
STATUS_DELETE = "DELETE"

PART_STATUS_MAP = {
    "activo": STATUS_ACTIVE,
    "inactivo": STATUS_INACTIVE,
    "eliminar": STATUS_DELETE,
    "active": STATUS_ACTIVE,
    "inactive": STATUS_INACTIVE,
    "delete": STATUS_DELETE,
}

CHILD_STATUS_MAP = {
    "activo": STATUS_ACTIVE,
    "eliminar": STATUS_DELETE,
    "active": STATUS_ACTIVE,
    "delete": STATUS_DELETE,
}

STATUS_DISPLAY = {
    STATUS_ACTIVE: "Activo",
    STATUS_INACTIVE: "Inactivo",
    STATUS_DELETE: "Eliminar",
}

ALIAS_TYPES = ["make", "model"]

# Cross-reference cell syntax
SKU_DELIMITER = ";"
DELETE_MARKER = "[DELETE]"

# String length ceilings (mirror the database column sizes)
MAX_LENGTHS = {
    "acr_sku": 50,
    "part_type": 100,
    "position_type": 50,
    "abs_type": 20,
    "bolt_pattern": 50,
    "drive_type": 50,
    "make": 50,
    "model": 100,
    "competitor_sku": 50,
    "alias": 50,
    "canonical_name": 100,
}

# Year plausibility bounds; the upper bound is relative to the current year
MIN_YEAR = 1900
MAX_YEAR_OFFSET = 2

# Specifications shortened below this ratio raise a warning
SPECIFICATIONS_SHORTENED_RATIO = 0.5

UUID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"

# File limits
VALID_EXTENSIONS = [".xlsx"]
DEFAULT_MAX_FILE_SIZE_MB = 50
DEFAULT_HISTORY_RETENTION = 3

__all__ = [
    "SHEET_PARTS",
    "SHEET_VEHICLE_APPLICATIONS",
    "SHEET_VEHICLE_ALIASES",
    "REQUIRED_SHEETS",
    "GENERAL_SHEET",
    "ID_COLUMN",
    "PART_ID_COLUMN",
    "BRAND_COLUMN_MAP",
    "BRAND_HEADERS",
    "PASSTHROUGH_PROPERTIES",
    "PART_FIELDS",
    "VEHICLE_APPLICATION_FIELDS",
    "VEHICLE_ALIAS_FIELDS",
    "SHEET_PROPERTIES",
    "REQUIRED_HEADERS",
    "REQUIRED_FIELDS",
    "FRIENDLY_HEADERS",
    "BRAND_HEADER_VARIANTS",
    "EXPORT_HEADERS",
    "STATUS_ACTIVE",
    "STATUS_INACTIVE",
    "STATUS_DELETE",
    "PART_STATUS_MAP",
    "CHILD_STATUS_MAP",
    "STATUS_DISPLAY",
    "ALIAS_TYPES",
    "SKU_DELIMITER",
    "DELETE_MARKER",
    "MAX_LENGTHS",
    "MIN_YEAR",
    "MAX_YEAR_OFFSET",
    "SPECIFICATIONS_SHORTENED_RATIO",
    "UUID_PATTERN",
    "VALID_EXTENSIONS",
    "DEFAULT_MAX_FILE_SIZE_MB",
    "DEFAULT_HISTORY_RETENTION",
]
