"""
Persistence seam for the catalog.

CatalogClient is the only thing the executor and snapshot manager know
about storage. Implement it with your actual database client; the package
ships PostgresCatalogClient (psycopg2) and InMemoryCatalogClient (dry runs
and tests).

Write methods are only valid inside begin_transaction() /
commit_transaction(). Inserts honour record.id when it is set (rollback
reinserts deleted rows with their original ids) and otherwise let the
database assign one.
"""

from typing import Any, Dict, List, Optional

from ..models import (
    CatalogState,
    CrossReferenceRecord,
    ImportHistoryRecord,
    PartRecord,
    VehicleAliasRecord,
    VehicleApplicationRecord,
)

# Entity names used in snapshot journals (match models.record_from_dict)
ENTITY_PART = "part"
ENTITY_VEHICLE_APPLICATION = "vehicle_application"
ENTITY_CROSS_REFERENCE = "cross_reference"
ENTITY_VEHICLE_ALIAS = "vehicle_alias"


class CatalogClient:
    """Abstract catalog database client."""

    # =========================================================================
    # TRANSACTIONS AND LOCKING
    # =========================================================================

    def begin_transaction(self) -> None:
        """Begin a database transaction."""
        raise NotImplementedError

    def commit_transaction(self) -> None:
        """Commit the current transaction."""
        raise NotImplementedError

    def rollback_transaction(self) -> None:
        """Rollback the current transaction."""
        raise NotImplementedError

    def acquire_import_lock(self) -> None:
        """
        Take the catalog-wide import lock for the current transaction.

        Blocks until no other apply or rollback holds it. Released on
        commit or rollback.
        """
        raise NotImplementedError

    # =========================================================================
    # READS
    # =========================================================================

    def fetch_catalog_state(self) -> CatalogState:
        """
        Read every part, vehicle application, cross reference and alias.

        Inside a transaction the read sees the transaction's own writes.
        """
        raise NotImplementedError

    # =========================================================================
    # PARTS
    # =========================================================================

    def insert_part(self, record: PartRecord) -> str:
        """
        Insert a part.

        Returns:
            The part id (record.id when set, otherwise a new one)
        """
        raise NotImplementedError

    def update_part(self, part_id: str, values: Dict[str, Any]) -> None:
        """Overwrite the given columns of one part."""
        raise NotImplementedError

    def delete_part(self, part_id: str) -> None:
        raise NotImplementedError

    # =========================================================================
    # VEHICLE APPLICATIONS
    # =========================================================================

    def insert_vehicle_application(self, record: VehicleApplicationRecord) -> str:
        raise NotImplementedError

    def update_vehicle_application(self, application_id: str, values: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete_vehicle_application(self, application_id: str) -> None:
        raise NotImplementedError

    # =========================================================================
    # CROSS REFERENCES (insert/delete only)
    # =========================================================================

    def insert_cross_reference(self, record: CrossReferenceRecord) -> str:
        raise NotImplementedError

    def delete_cross_reference(self, cross_reference_id: str) -> None:
        raise NotImplementedError

    # =========================================================================
    # VEHICLE ALIASES
    # =========================================================================

    def insert_vehicle_alias(self, record: VehicleAliasRecord) -> str:
        raise NotImplementedError

    def update_vehicle_alias(self, alias_id: str, values: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete_vehicle_alias(self, alias_id: str) -> None:
        raise NotImplementedError

    # =========================================================================
    # IMPORT HISTORY
    # =========================================================================

    def save_import_history(self, record: ImportHistoryRecord) -> str:
        """
        Persist one import-history record.

        Returns:
            The new record id
        """
        raise NotImplementedError

    def get_import_history(self, import_id: str) -> Optional[ImportHistoryRecord]:
        """Load one record with its snapshot, or None."""
        raise NotImplementedError

    def list_import_history(self, limit: Optional[int] = None) -> List[ImportHistoryRecord]:
        """Records newest first, optionally capped at limit."""
        raise NotImplementedError

    def delete_import_history(self, import_id: str) -> None:
        raise NotImplementedError

    def prune_import_history(self, keep: int) -> int:
        """
        Delete all but the newest keep records.

        Returns:
            Number of records deleted
        """
        raise NotImplementedError

    def close(self) -> None:
        """Release connections. Default: nothing to release."""

    # =========================================================================
    # ENTITY DISPATCH
    # =========================================================================
    # Snapshot journals name entities as strings; these route a journaled
    # operation to the matching table method.

    def insert_record(self, entity: str, record: Any) -> str:
        inserters = {
            ENTITY_PART: self.insert_part,
            ENTITY_VEHICLE_APPLICATION: self.insert_vehicle_application,
            ENTITY_CROSS_REFERENCE: self.insert_cross_reference,
            ENTITY_VEHICLE_ALIAS: self.insert_vehicle_alias,
        }
        return inserters[entity](record)

    def update_record(self, entity: str, record_id: str, values: Dict[str, Any]) -> None:
        updaters = {
            ENTITY_PART: self.update_part,
            ENTITY_VEHICLE_APPLICATION: self.update_vehicle_application,
            ENTITY_VEHICLE_ALIAS: self.update_vehicle_alias,
        }
        if entity not in updaters:
            raise ValueError(f"{entity} records cannot be updated")
        updaters[entity](record_id, values)

    def delete_record(self, entity: str, record_id: str) -> None:
        deleters = {
            ENTITY_PART: self.delete_part,
            ENTITY_VEHICLE_APPLICATION: self.delete_vehicle_application,
            ENTITY_CROSS_REFERENCE: self.delete_cross_reference,
            ENTITY_VEHICLE_ALIAS: self.delete_vehicle_alias,
        }
        deleters[entity](record_id)
