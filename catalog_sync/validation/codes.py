"""
Validation code taxonomy.

The code set is closed and stable: callers localize messages and branch on
these values, so members are never renamed or renumbered. New codes are
appended.
"""

from enum import Enum


class Severity(Enum):
    """Errors block apply; warnings need acknowledgment but never block."""
    ERROR = "error"
    WARNING = "warning"


class ValidationErrorCode(Enum):
    # File-level
    E1_MISSING_HIDDEN_COLUMNS = "E1_MISSING_HIDDEN_COLUMNS"  # retained; not raised with business-key matching
    E2_DUPLICATE_ACR_SKU = "E2_DUPLICATE_ACR_SKU"
    E3_EMPTY_REQUIRED_FIELD = "E3_EMPTY_REQUIRED_FIELD"
    E4_INVALID_UUID_FORMAT = "E4_INVALID_UUID_FORMAT"
    E5_ORPHANED_FOREIGN_KEY = "E5_ORPHANED_FOREIGN_KEY"
    E6_INVALID_YEAR_RANGE = "E6_INVALID_YEAR_RANGE"
    E7_STRING_EXCEEDS_MAX_LENGTH = "E7_STRING_EXCEEDS_MAX_LENGTH"

    # Sheet-level
    E8_YEAR_OUT_OF_RANGE = "E8_YEAR_OUT_OF_RANGE"
    E9_INVALID_NUMBER_FORMAT = "E9_INVALID_NUMBER_FORMAT"
    E10_REQUIRED_SHEET_MISSING = "E10_REQUIRED_SHEET_MISSING"
    E11_DUPLICATE_HEADER_COLUMNS = "E11_DUPLICATE_HEADER_COLUMNS"
    E12_MISSING_REQUIRED_HEADERS = "E12_MISSING_REQUIRED_HEADERS"
    E13_INVALID_SHEET_NAME = "E13_INVALID_SHEET_NAME"

    # File format
    E14_FILE_FORMAT_INVALID = "E14_FILE_FORMAT_INVALID"
    E15_FILE_SIZE_EXCEEDS_LIMIT = "E15_FILE_SIZE_EXCEEDS_LIMIT"
    E16_MALFORMED_EXCEL_FILE = "E16_MALFORMED_EXCEL_FILE"
    E17_ENCODING_ERROR = "E17_ENCODING_ERROR"

    # Data integrity
    E18_REFERENTIAL_INTEGRITY_VIOLATION = "E18_REFERENTIAL_INTEGRITY_VIOLATION"  # retained; deleted parts cascade
    E19_UUID_NOT_IN_DATABASE = "E19_UUID_NOT_IN_DATABASE"
    E20_INVALID_ACR_SKU_FORMAT = "E20_INVALID_ACR_SKU_FORMAT"

    # Row values
    E21_INVALID_STATUS_VALUE = "E21_INVALID_STATUS_VALUE"
    E22_INVALID_ALIAS_TYPE = "E22_INVALID_ALIAS_TYPE"
    E23_DUPLICATE_BUSINESS_KEY = "E23_DUPLICATE_BUSINESS_KEY"


class ValidationWarningCode(Enum):
    W1_ACR_SKU_CHANGED = "W1_ACR_SKU_CHANGED"
    W2_YEAR_RANGE_NARROWED = "W2_YEAR_RANGE_NARROWED"
    W3_PART_TYPE_CHANGED = "W3_PART_TYPE_CHANGED"
    W4_POSITION_TYPE_CHANGED = "W4_POSITION_TYPE_CHANGED"
    W5_CROSS_REFERENCE_DELETED = "W5_CROSS_REFERENCE_DELETED"
    W6_VEHICLE_APPLICATION_DELETED = "W6_VEHICLE_APPLICATION_DELETED"
    W7_SPECIFICATIONS_SHORTENED = "W7_SPECIFICATIONS_SHORTENED"
    W8_VEHICLE_MAKE_CHANGED = "W8_VEHICLE_MAKE_CHANGED"
    W9_VEHICLE_MODEL_CHANGED = "W9_VEHICLE_MODEL_CHANGED"
    W10_COMPETITOR_BRAND_CHANGED = "W10_COMPETITOR_BRAND_CHANGED"  # retained; brand is fixed by column
    W11_LEGACY_SKU_DELIMITER = "W11_LEGACY_SKU_DELIMITER"
    W12_VEHICLE_ALIAS_DELETED = "W12_VEHICLE_ALIAS_DELETED"
    W13_PART_DELETED = "W13_PART_DELETED"


# Codes raised before any row is read; a sheet carrying one skips row rules
FILE_LEVEL_ERROR_CODES = {
    ValidationErrorCode.E10_REQUIRED_SHEET_MISSING,
    ValidationErrorCode.E11_DUPLICATE_HEADER_COLUMNS,
    ValidationErrorCode.E12_MISSING_REQUIRED_HEADERS,
    ValidationErrorCode.E13_INVALID_SHEET_NAME,
    ValidationErrorCode.E14_FILE_FORMAT_INVALID,
    ValidationErrorCode.E15_FILE_SIZE_EXCEEDS_LIMIT,
    ValidationErrorCode.E16_MALFORMED_EXCEL_FILE,
    ValidationErrorCode.E17_ENCODING_ERROR,
}
