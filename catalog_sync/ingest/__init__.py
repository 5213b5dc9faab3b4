"""Catalog persistence: database clients, import executor and rollback."""

from .catalog_client import (
    CatalogClient,
    ENTITY_CROSS_REFERENCE,
    ENTITY_PART,
    ENTITY_VEHICLE_ALIAS,
    ENTITY_VEHICLE_APPLICATION,
)
from .executor import ApplyResult, ImportExecutor, import_summary
from .memory_client import InMemoryCatalogClient
from .postgres_client import PostgresCatalogClient
from .snapshot import RollbackResult, SnapshotManager

__all__ = [
    "CatalogClient",
    "ENTITY_CROSS_REFERENCE",
    "ENTITY_PART",
    "ENTITY_VEHICLE_ALIAS",
    "ENTITY_VEHICLE_APPLICATION",
    "ApplyResult",
    "ImportExecutor",
    "import_summary",
    "InMemoryCatalogClient",
    "PostgresCatalogClient",
    "RollbackResult",
    "SnapshotManager",
]
