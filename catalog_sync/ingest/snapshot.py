"""
Import snapshots and rollback.

Every apply stores a snapshot on its ImportHistoryRecord:

    {
        "timestamp": ISO-8601 time of capture,
        "base_fingerprint": fingerprint of the pre-apply catalog,
        "pre_state": full pre-apply catalog (CatalogState.to_dict()),
        "operations": [{"entity", "operation", "before", "after"}, ...]
    }

operations is the journal of what the apply actually did, in execution
order, with database-assigned ids in "after" for inserts. Rollback
reverses exactly those operations; it never replaces whole tables, so
records the import did not touch are never rewritten.

Rollback is refused unless:
1. The import is the most recent one (SequentialRollbackError)
2. Every record the import touched still looks the way the import left
   it (RollbackConflictError lists the ones that do not)
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..diff.catalog_diff import (
    DiffResult,
    PART_COMPARE_FIELDS,
    VEHICLE_ALIAS_COMPARE_FIELDS,
    VEHICLE_APPLICATION_COMPARE_FIELDS,
    normalize_empty,
)
from ..errors import (
    ImportNotFoundError,
    RollbackConflictError,
    RollbackError,
    RollbackExecutionError,
    SequentialRollbackError,
)
from ..keys import key_of
from ..models import CatalogState, record_from_dict
from .catalog_client import (
    ENTITY_CROSS_REFERENCE,
    ENTITY_PART,
    ENTITY_VEHICLE_ALIAS,
    ENTITY_VEHICLE_APPLICATION,
    CatalogClient,
)

logger = logging.getLogger(__name__)

# Fields an update restores on rollback
RESTORABLE_FIELDS = {
    ENTITY_PART: PART_COMPARE_FIELDS,
    ENTITY_VEHICLE_APPLICATION: VEHICLE_APPLICATION_COMPARE_FIELDS,
    ENTITY_VEHICLE_ALIAS: VEHICLE_ALIAS_COMPARE_FIELDS,
}

# restoredCounts key per entity
COUNT_KEYS = {
    ENTITY_PART: "parts",
    ENTITY_VEHICLE_APPLICATION: "vehicleApplications",
    ENTITY_CROSS_REFERENCE: "crossReferences",
    ENTITY_VEHICLE_ALIAS: "vehicleAliases",
}

CHILD_ENTITIES = [ENTITY_VEHICLE_APPLICATION, ENTITY_CROSS_REFERENCE]


@dataclass
class RollbackResult:
    success: bool
    import_id: str
    restored_counts: Dict[str, int] = field(default_factory=dict)
    execution_time: int = 0  # milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "importId": self.import_id,
            "restoredCounts": dict(self.restored_counts),
            "executionTime": self.execution_time,
        }


def journal_entry(
    entity: str,
    operation: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]]
) -> Dict[str, Any]:
    return {"entity": entity, "operation": operation, "before": before, "after": after}


def _same_record(current: Dict[str, Any], expected: Dict[str, Any]) -> bool:
    names = set(current) | set(expected)
    return all(normalize_empty(current.get(n)) == normalize_empty(expected.get(n)) for n in names)


class SnapshotManager:
    """Captures pre-apply snapshots and reverses imports on demand."""

    def __init__(self, db: CatalogClient):
        self.db = db

    def capture(self, state: CatalogState, diff: DiffResult) -> Dict[str, Any]:
        """
        Snapshot skeleton for an apply about to run against state.

        The executor appends to "operations" as it writes. The returned
        dict is stored once with the history record and never modified
        afterwards.
        """
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "base_fingerprint": diff.base_fingerprint,
            "pre_state": state.to_dict(),
            "operations": [],
        }

    def list_snapshots(self, limit: int = 3) -> List[Dict[str, Any]]:
        """Recent imports, newest first, without their snapshot payloads."""
        return [r.to_dict(include_snapshot=False) for r in self.db.list_import_history(limit)]

    def restore(self, import_id: str) -> RollbackResult:
        """
        Reverse one import.

        Args:
            import_id: ImportHistoryRecord id

        Returns:
            RollbackResult with per-entity restored counts

        Raises:
            ImportNotFoundError: No such import
            SequentialRollbackError: A newer import exists
            RollbackConflictError: Touched records changed since the import
            RollbackExecutionError: Database failure; nothing was restored
        """
        start = time.monotonic()
        self.db.begin_transaction()

        try:
            self.db.acquire_import_lock()

            record = self.db.get_import_history(import_id)
            if record is None:
                raise ImportNotFoundError(f"Import {import_id} not found")

            newest = self.db.list_import_history(limit=1)
            newest_id = newest[0].id if newest else None
            if newest_id != import_id:
                raise SequentialRollbackError(import_id, newest_id)

            operations = record.snapshot_data.get("operations", [])
            state = self.db.fetch_catalog_state()
            conflicts = self.find_conflicts(state, operations)
            if conflicts:
                raise RollbackConflictError(import_id, conflicts)

            counts = self._reverse(operations)
            self.db.delete_import_history(import_id)
            self.db.commit_transaction()

        except RollbackError as e:
            self.db.rollback_transaction()
            logger.warning(f"Rollback of import {import_id} refused: {e}")
            raise
        except Exception as e:
            self.db.rollback_transaction()
            logger.error(f"Rollback of import {import_id} failed: {e}", exc_info=True)
            raise RollbackExecutionError(
                f"Rollback of import {import_id} failed and was undone: {e}"
            ) from e

        elapsed = int((time.monotonic() - start) * 1000)
        logger.info(f"Rolled back import {import_id}: {counts}")
        return RollbackResult(
            success=True, import_id=import_id, restored_counts=counts, execution_time=elapsed
        )

    # =========================================================================
    # DIVERGENCE CHECK
    # =========================================================================

    def find_conflicts(self, state: CatalogState, operations: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Journaled records whose current state differs from the import's result.

        - add: the inserted row must still exist unchanged
        - update: the row must still equal the post-update values
        - delete: the business key must still be absent
        """
        by_id = {
            ENTITY_PART: {p.id: p.to_dict() for p in state.parts},
            ENTITY_VEHICLE_APPLICATION: {v.id: v.to_dict() for v in state.vehicle_applications},
            ENTITY_CROSS_REFERENCE: {c.id: c.to_dict() for c in state.cross_references},
            ENTITY_VEHICLE_ALIAS: {a.id: a.to_dict() for a in state.vehicle_aliases},
        }
        keys = {
            ENTITY_PART: {key_of(p) for p in state.parts},
            ENTITY_VEHICLE_APPLICATION: {key_of(v) for v in state.vehicle_applications},
            ENTITY_CROSS_REFERENCE: {key_of(c) for c in state.cross_references},
            ENTITY_VEHICLE_ALIAS: {key_of(a) for a in state.vehicle_aliases},
        }

        conflicts = []
        for op in operations:
            entity, operation = op["entity"], op["operation"]

            if operation == "delete":
                key = key_of(record_from_dict(entity, op["before"]))
                if key in keys[entity]:
                    conflicts.append({
                        "entity": entity,
                        "operation": operation,
                        "key": list(key),
                        "reason": "deleted record was re-created",
                    })
                continue

            expected = op["after"]
            current = by_id[entity].get(expected["id"])
            if current is None:
                reason = "record no longer exists"
            elif not _same_record(current, expected):
                reason = "record was modified"
            else:
                continue
            conflicts.append({
                "entity": entity,
                "operation": operation,
                "key": list(key_of(record_from_dict(entity, expected))),
                "reason": reason,
            })

        return conflicts

    # =========================================================================
    # REVERSAL
    # =========================================================================

    def _reverse(self, operations: List[Dict[str, Any]]) -> Dict[str, int]:
        """Undo journaled operations in foreign-key-safe order."""
        counts = {key: 0 for key in COUNT_KEYS.values()}

        def ops(entity: str, operation: str) -> List[Dict[str, Any]]:
            return [o for o in operations if o["entity"] == entity and o["operation"] == operation]

        def undone(entity: str, n: int) -> None:
            counts[COUNT_KEYS[entity]] += n

        # Step 1: remove inserted rows, children before parts
        for entity in CHILD_ENTITIES + [ENTITY_VEHICLE_ALIAS, ENTITY_PART]:
            added = ops(entity, "add")
            for op in added:
                self.db.delete_record(entity, op["after"]["id"])
            undone(entity, len(added))

        # Step 2: reinsert deleted rows with their original ids, parts first
        for entity in [ENTITY_PART] + CHILD_ENTITIES + [ENTITY_VEHICLE_ALIAS]:
            deleted = ops(entity, "delete")
            for op in deleted:
                self.db.insert_record(entity, record_from_dict(entity, op["before"]))
            undone(entity, len(deleted))

        # Step 3: restore pre-update values
        for entity, names in RESTORABLE_FIELDS.items():
            updated = ops(entity, "update")
            for op in updated:
                before = op["before"]
                self.db.update_record(entity, before["id"], {n: before.get(n) for n in names})
            undone(entity, len(updated))

        return counts
