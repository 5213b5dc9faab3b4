"""
Import executor.

Applies a DiffResult to the catalog in one transaction:

1. Take the import lock and re-read the catalog
2. Refuse the diff if the catalog changed since it was computed
3. Capture the snapshot
4. Write in foreign-key-safe order:
   a. child deletes (vehicle applications, cross references; cascades included)
   b. part deletes
   c. alias deletes
   d. part inserts (new ids feed the child inserts)
   e. vehicle application and cross reference inserts
   f. alias inserts
   g. updates (they never change referential shape)
5. Store the ImportHistoryRecord and prune history past the retention count
6. Commit

Any failure rolls the whole transaction back: either the entire diff
lands or none of it does. There is no automatic retry.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..diff.catalog_diff import DiffEntry, DiffResult
from ..errors import ImportExecutionError, StaleDiffError
from ..models import ImportHistoryRecord, record_from_dict
from ..schema import DEFAULT_HISTORY_RETENTION
from .catalog_client import (
    ENTITY_CROSS_REFERENCE,
    ENTITY_PART,
    ENTITY_VEHICLE_ALIAS,
    ENTITY_VEHICLE_APPLICATION,
    CatalogClient,
)
from .snapshot import SnapshotManager, journal_entry

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    success: bool
    import_id: Optional[str] = None
    summary: Dict[str, int] = field(default_factory=dict)
    execution_time: int = 0  # milliseconds
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": self.success,
            "importId": self.import_id,
            "summary": dict(self.summary),
            "executionTime": self.execution_time,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


def import_summary(diff: DiffResult) -> Dict[str, int]:
    summary = diff.summary
    return {
        "totalAdds": summary["totalAdds"],
        "totalUpdates": summary["totalUpdates"],
        "totalDeletes": summary["totalDeletes"],
        "totalChanges": summary["totalChanges"],
    }


class ImportExecutor:
    """
    Writes diffs to the catalog.

    Args:
        db: Catalog client
        history_retention: Import-history records kept after each apply
        imported_by: Actor recorded on history records
        debug: Log every write
    """

    def __init__(
        self,
        db: CatalogClient,
        history_retention: int = DEFAULT_HISTORY_RETENTION,
        imported_by: Optional[str] = None,
        debug: bool = False
    ):
        self.db = db
        self.snapshots = SnapshotManager(db)
        self.history_retention = history_retention
        self.imported_by = imported_by
        self.debug = debug

    def apply(
        self,
        diff: DiffResult,
        file_name: str,
        file_size: int = 0,
        rows_imported: int = 0
    ) -> ApplyResult:
        """
        Apply a diff atomically.

        Args:
            diff: Diff computed against the current catalog
            file_name: Upload name, stored on the history record
            file_size: Upload size in bytes
            rows_imported: Data rows in the upload

        Returns:
            ApplyResult with the new import id

        Raises:
            StaleDiffError: The catalog changed after the diff was computed
            ImportExecutionError: Any write failed; nothing was applied
        """
        start = time.monotonic()
        summary = import_summary(diff)

        self.db.begin_transaction()

        try:
            # =================================================================
            # STEP 1: Lock and verify the diff still applies
            # =================================================================
            self.db.acquire_import_lock()
            state = self.db.fetch_catalog_state()
            if state.fingerprint() != diff.base_fingerprint:
                raise StaleDiffError(
                    "The catalog changed after this upload was previewed. "
                    "Preview the upload again before applying."
                )

            # =================================================================
            # STEP 2: Snapshot, then write
            # =================================================================
            snapshot = self.snapshots.capture(state, diff)
            operations = snapshot["operations"]
            part_ids = {p.acr_sku: p.id for p in state.parts}

            self._apply_deletes(diff, operations)
            self._apply_inserts(diff, operations, part_ids)
            self._apply_updates(diff, operations)

            # =================================================================
            # STEP 3: History
            # =================================================================
            import_id = self.db.save_import_history(ImportHistoryRecord(
                id=None,
                file_name=file_name,
                file_size=file_size,
                rows_imported=rows_imported,
                import_summary=summary,
                snapshot_data=snapshot,
                imported_by=self.imported_by,
            ))
            self.db.prune_import_history(self.history_retention)

            self.db.commit_transaction()

        except StaleDiffError:
            self.db.rollback_transaction()
            logger.warning("Refusing stale diff: catalog changed since preview")
            raise
        except Exception as e:
            self.db.rollback_transaction()
            logger.error(f"Import of {file_name} failed: {e}", exc_info=True)
            raise ImportExecutionError(f"Import failed and was rolled back: {e}") from e

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(
            f"Applied {file_name} as import {import_id}: {summary['totalAdds']} adds, "
            f"{summary['totalUpdates']} updates, {summary['totalDeletes']} deletes "
            f"in {elapsed} ms"
        )
        return ApplyResult(
            success=True, import_id=import_id, summary=summary, execution_time=elapsed
        )

    # =========================================================================
    # WRITE PHASES
    # =========================================================================

    def _delete(self, entity: str, entries: List[DiffEntry], operations: List[Dict[str, Any]]) -> None:
        for entry in entries:
            self.db.delete_record(entity, entry.before["id"])
            operations.append(journal_entry(entity, "delete", entry.before, None))
            if self.debug:
                logger.info(f"Deleted {entity} {entry.key}{' (cascade)' if entry.cascade else ''}")

    def _insert(self, entity: str, values: Dict[str, Any], operations: List[Dict[str, Any]]) -> str:
        record = record_from_dict(entity, dict(values, id=None))
        new_id = self.db.insert_record(entity, record)
        record.id = new_id
        operations.append(journal_entry(entity, "add", None, record.to_dict()))
        if self.debug:
            logger.info(f"Inserted {entity} {new_id}")
        return new_id

    def _apply_deletes(self, diff: DiffResult, operations: List[Dict[str, Any]]) -> None:
        self._delete(ENTITY_VEHICLE_APPLICATION, diff.vehicle_applications.deletes, operations)
        self._delete(ENTITY_CROSS_REFERENCE, diff.cross_references.deletes, operations)
        self._delete(ENTITY_PART, diff.parts.deletes, operations)
        self._delete(ENTITY_VEHICLE_ALIAS, diff.vehicle_aliases.deletes, operations)

    def _apply_inserts(
        self,
        diff: DiffResult,
        operations: List[Dict[str, Any]],
        part_ids: Dict[str, str]
    ) -> None:
        for entry in diff.parts.adds:
            part_ids[entry.after["acr_sku"]] = self._insert(ENTITY_PART, entry.after, operations)

        for entity, entries in (
            (ENTITY_VEHICLE_APPLICATION, diff.vehicle_applications.adds),
            (ENTITY_CROSS_REFERENCE, diff.cross_references.adds),
        ):
            for entry in entries:
                values = dict(entry.after)
                values["part_id"] = values.get("part_id") or part_ids.get(values["acr_sku"])
                if values["part_id"] is None:
                    raise ValueError(f"No part {values['acr_sku']} for {entity} {entry.key}")
                self._insert(entity, values, operations)

        for entry in diff.vehicle_aliases.adds:
            self._insert(ENTITY_VEHICLE_ALIAS, entry.after, operations)

    def _apply_updates(self, diff: DiffResult, operations: List[Dict[str, Any]]) -> None:
        for entity, entries in (
            (ENTITY_PART, diff.parts.updates),
            (ENTITY_VEHICLE_APPLICATION, diff.vehicle_applications.updates),
            (ENTITY_VEHICLE_ALIAS, diff.vehicle_aliases.updates),
        ):
            for entry in entries:
                values = {name: entry.after.get(name) for name in entry.changed_fields}
                self.db.update_record(entity, entry.before["id"], values)
                operations.append(journal_entry(entity, "update", entry.before, entry.after))
                if self.debug:
                    logger.info(f"Updated {entity} {entry.key}: {entry.changed_fields}")
