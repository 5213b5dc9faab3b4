from .catalog_diff import (
    DeletePolicy,
    DiffEntry,
    DiffOperation,
    DiffResult,
    SheetDiff,
    changed_fields,
    diff_catalog,
    normalize_empty,
)

__all__ = [
    "DeletePolicy",
    "DiffEntry",
    "DiffOperation",
    "DiffResult",
    "SheetDiff",
    "changed_fields",
    "diff_catalog",
    "normalize_empty",
]
