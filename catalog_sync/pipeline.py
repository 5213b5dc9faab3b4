"""
Import pipeline: parse → validate → diff → apply, plus rollback and export.

Each stage is a function of its input and one read of the catalog. The
preview is immutable; applying it re-checks that the catalog has not moved
underneath it.

    preview = preview_import(db, data, "catalog.xlsx")
    if preview.validation.valid:
        result = apply_import(db, preview, acknowledge_warnings=True)
    rollback_import(db, result.import_id)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .config import Settings
from .diff.catalog_diff import DiffResult, diff_catalog
from .errors import ImportBlockedError, ImportExecutionError, ParseError
from .ingest.catalog_client import CatalogClient
from .ingest.executor import ApplyResult, ImportExecutor, import_summary
from .ingest.snapshot import RollbackResult, SnapshotManager
from .models import ParseResult
from .parser import CatalogParser
from .validation.engine import (
    ValidationEngine,
    ValidationResult,
    validation_result_from_parse_error,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportPreview:
    """
    Everything the caller shows before the user confirms.

    parse_result and diff are None when the file itself could not be
    parsed; validation then holds the single file-level error.
    """
    parse_result: Optional[ParseResult]
    validation: ValidationResult
    diff: Optional[DiffResult]
    file_name: Optional[str] = None

    @property
    def can_apply(self) -> bool:
        return self.diff is not None and self.validation.valid

    @property
    def requires_acknowledgment(self) -> bool:
        return self.validation.has_warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "validation": self.validation.to_dict(),
            "diff": self.diff.to_dict() if self.diff else None,
        }


def preview_import(
    db: CatalogClient,
    data: bytes,
    file_name: Optional[str] = None,
    settings: Optional[Settings] = None,
    debug: bool = False
) -> ImportPreview:
    """
    Parse, diff and validate an upload without writing anything.

    Args:
        db: Catalog client (read only here)
        data: Workbook bytes
        file_name: Original file name
        settings: Engine settings (defaults when omitted)
        debug: Log diff and rule detail

    Returns:
        ImportPreview
    """
    settings = settings or Settings()
    parser = CatalogParser(max_file_size_mb=settings.max_file_size_mb)

    try:
        parsed = parser.parse(data, file_name)
    except ParseError as e:
        logger.warning(f"Upload {file_name or ''} rejected: {e.code.value} {e.message}")
        return ImportPreview(
            parse_result=None,
            validation=validation_result_from_parse_error(e),
            diff=None,
            file_name=file_name,
        )

    state = db.fetch_catalog_state()
    diff = diff_catalog(parsed, state, settings.part_delete_policy, debug=debug)
    validation = ValidationEngine(debug=debug).validate(parsed, state, diff=diff)

    return ImportPreview(parse_result=parsed, validation=validation, diff=diff, file_name=file_name)


def apply_import(
    db: CatalogClient,
    preview: ImportPreview,
    acknowledge_warnings: bool = False,
    settings: Optional[Settings] = None,
    debug: bool = False
) -> ApplyResult:
    """
    Apply a previewed upload.

    Args:
        db: Catalog client
        preview: Result of preview_import
        acknowledge_warnings: Must be True when the preview has warnings
        settings: Engine settings (defaults when omitted)
        debug: Log every write

    Returns:
        ApplyResult; success is False when the write failed and was rolled back

    Raises:
        ImportBlockedError: The preview has errors, or warnings that were not
                            acknowledged
        StaleDiffError: The catalog changed after the preview
    """
    settings = settings or Settings()

    if not preview.can_apply:
        raise ImportBlockedError(
            f"Upload has {len(preview.validation.errors)} validation error(s); "
            f"fix them and upload again"
        )
    if preview.requires_acknowledgment and not acknowledge_warnings:
        raise ImportBlockedError(
            f"Upload has {len(preview.validation.warnings)} warning(s) that must be "
            f"acknowledged before applying"
        )

    executor = ImportExecutor(
        db,
        history_retention=settings.history_retention,
        imported_by=settings.imported_by,
        debug=debug,
    )
    parsed = preview.parse_result

    try:
        return executor.apply(
            preview.diff,
            file_name=preview.file_name or "upload.xlsx",
            file_size=parsed.file_size,
            rows_imported=parsed.total_rows,
        )
    except ImportExecutionError as e:
        return ApplyResult(success=False, summary=import_summary(preview.diff), error=str(e))


def rollback_import(db: CatalogClient, import_id: str) -> RollbackResult:
    """Reverse the most recent import. See SnapshotManager.restore for errors."""
    return SnapshotManager(db).restore(import_id)


def list_imports(db: CatalogClient, limit: int = 3) -> List[Dict[str, Any]]:
    return SnapshotManager(db).list_snapshots(limit)


def export_catalog(db: CatalogClient) -> bytes:
    """Current catalog as a workbook that re-imports with an empty diff."""
    return CatalogParser().export_workbook(db.fetch_catalog_state())
