# codes first: the parser and normalizer import it while this package is loading
from .codes import (
    FILE_LEVEL_ERROR_CODES,
    Severity,
    ValidationErrorCode,
    ValidationWarningCode,
)
from .engine import (
    ValidationEngine,
    ValidationIssue,
    ValidationResult,
    validation_result_from_parse_error,
)

__all__ = [
    "FILE_LEVEL_ERROR_CODES",
    "Severity",
    "ValidationErrorCode",
    "ValidationWarningCode",
    "ValidationEngine",
    "ValidationIssue",
    "ValidationResult",
    "validation_result_from_parse_error",
]
