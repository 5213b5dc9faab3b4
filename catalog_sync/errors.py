"""Exception hierarchy for catalog import, apply and rollback."""

from typing import Any, Dict, List, Optional


class CatalogSyncError(Exception):
    """Base class for all catalog_sync errors."""


class ConfigurationError(CatalogSyncError, ValueError):
    """Invalid engine configuration (bad policy name, non-numeric limit, ...)."""


class ParseError(CatalogSyncError, ValueError):
    """
    Fatal file-level failure while turning an upload into rows.

    Nothing from a file that raised ParseError is trusted; the caller gets
    this single error instead of a partial parse.

    Attributes:
        code: ValidationErrorCode describing the failure (E10, E11, E13-E16)
        message: Human-readable description
        sheet: Sheet the failure belongs to, if any
        column: Offending column header, if any
    """

    def __init__(
        self,
        code,
        message: str,
        sheet: Optional[str] = None,
        column: Optional[str] = None
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.sheet = sheet
        self.column = column


class ImportBlockedError(CatalogSyncError):
    """Apply was requested for an upload with errors or unacknowledged warnings."""


class StaleDiffError(CatalogSyncError):
    """Persisted state changed after the diff was computed."""


class ImportExecutionError(CatalogSyncError):
    """Applying a diff failed; the transaction was rolled back."""


class RollbackError(CatalogSyncError):
    """Base class for rollback failures."""


class ImportNotFoundError(RollbackError):
    """No import-history record exists for the requested id."""


class SequentialRollbackError(RollbackError):
    """Only the most recent import may be rolled back."""

    def __init__(self, import_id: str, newest_import_id: Optional[str]):
        super().__init__(
            f"Import {import_id} is not the most recent import "
            f"(newest is {newest_import_id}). Roll back newer imports first."
        )
        self.import_id = import_id
        self.newest_import_id = newest_import_id


class RollbackConflictError(RollbackError):
    """The catalog diverged from the state the import left behind."""

    def __init__(self, import_id: str, conflicts: List[Dict[str, Any]]):
        super().__init__(
            f"Cannot roll back import {import_id}: {len(conflicts)} record(s) "
            f"changed since the import was applied"
        )
        self.import_id = import_id
        self.conflicts = conflicts


class RollbackExecutionError(RollbackError):
    """Database failure while restoring; the transaction was rolled back."""
