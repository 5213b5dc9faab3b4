# validation first: the normalizer and parser import validation.codes, and the
# validation engine imports the diff, which imports the normalizer
from .validation import (
    Severity,
    ValidationEngine,
    ValidationErrorCode,
    ValidationIssue,
    ValidationResult,
    ValidationWarningCode,
)
from .parser import CatalogParser
from .errors import (
    CatalogSyncError,
    ConfigurationError,
    ImportBlockedError,
    ImportExecutionError,
    ImportNotFoundError,
    ParseError,
    RollbackConflictError,
    RollbackError,
    RollbackExecutionError,
    SequentialRollbackError,
    StaleDiffError,
)
from .normalizer import HeaderNormalizer
from .diff import DeletePolicy, DiffResult, diff_catalog
from .models import CatalogState, ParseResult
from .config import Settings, load_settings
from .ingest import (
    ApplyResult,
    ImportExecutor,
    InMemoryCatalogClient,
    PostgresCatalogClient,
    RollbackResult,
    SnapshotManager,
)
from .pipeline import (
    ImportPreview,
    apply_import,
    export_catalog,
    list_imports,
    preview_import,
    rollback_import,
)

__all__ = [
    "Severity",
    "ValidationEngine",
    "ValidationErrorCode",
    "ValidationIssue",
    "ValidationResult",
    "ValidationWarningCode",
    "CatalogParser",
    "CatalogSyncError",
    "ConfigurationError",
    "ImportBlockedError",
    "ImportExecutionError",
    "ImportNotFoundError",
    "ParseError",
    "RollbackConflictError",
    "RollbackError",
    "RollbackExecutionError",
    "SequentialRollbackError",
    "StaleDiffError",
    "HeaderNormalizer",
    "DeletePolicy",
    "DiffResult",
    "diff_catalog",
    "CatalogState",
    "ParseResult",
    "Settings",
    "load_settings",
    "ApplyResult",
    "ImportExecutor",
    "InMemoryCatalogClient",
    "PostgresCatalogClient",
    "RollbackResult",
    "SnapshotManager",
    "ImportPreview",
    "apply_import",
    "export_catalog",
    "list_imports",
    "preview_import",
    "rollback_import",
]
