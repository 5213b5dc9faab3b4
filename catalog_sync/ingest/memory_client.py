"""
In-memory catalog client.

Holds the catalog in plain dicts keyed by id. begin_transaction() takes a
deep copy that rollback_transaction() restores, so failures behave like a
database rollback. Used for dry runs and as the test double.
"""

import copy
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..models import (
    CatalogState,
    CrossReferenceRecord,
    ImportHistoryRecord,
    PartRecord,
    VehicleAliasRecord,
    VehicleApplicationRecord,
)
from .catalog_client import CatalogClient

logger = logging.getLogger(__name__)


class InMemoryCatalogClient(CatalogClient):
    """
    CatalogClient backed by dictionaries.

    Enforces the same constraints as the Postgres schema that matter to
    the engine: unique business keys and child rows requiring their part.

    Args:
        state: Optional initial catalog (records without ids get one)
    """

    def __init__(self, state: Optional[CatalogState] = None):
        self._tables: Dict[str, Dict[str, Any]] = {
            "parts": {},
            "vehicle_applications": {},
            "cross_references": {},
            "vehicle_aliases": {},
            "import_history": {},
        }
        self._history_order: List[str] = []
        self._saved = None
        self._clock = datetime(2024, 1, 1)

        if state is not None:
            self.load_state(state)

    def load_state(self, state: CatalogState) -> None:
        """Replace the catalog tables (history is kept)."""
        for name in ("parts", "vehicle_applications", "cross_references", "vehicle_aliases"):
            self._tables[name] = {}
        for part in state.parts:
            self._put("parts", copy.copy(part))
        for app in state.vehicle_applications:
            self._put("vehicle_applications", copy.copy(app))
        for ref in state.cross_references:
            self._put("cross_references", copy.copy(ref))
        for alias in state.vehicle_aliases:
            self._put("vehicle_aliases", copy.copy(alias))

    def _put(self, table: str, record) -> str:
        if record.id is None:
            record.id = str(uuid4())
        if record.id in self._tables[table]:
            raise ValueError(f"Duplicate id {record.id} in {table}")
        self._tables[table][record.id] = record
        return record.id

    # =========================================================================
    # TRANSACTIONS AND LOCKING
    # =========================================================================

    def begin_transaction(self) -> None:
        if self._saved is not None:
            raise RuntimeError("Transaction already in progress")
        self._saved = (copy.deepcopy(self._tables), list(self._history_order), self._clock)

    def commit_transaction(self) -> None:
        if self._saved is None:
            raise RuntimeError("No transaction in progress")
        self._saved = None

    def rollback_transaction(self) -> None:
        if self._saved is None:
            raise RuntimeError("No transaction in progress")
        self._tables, self._history_order, self._clock = self._saved
        self._saved = None

    def _require_transaction(self) -> None:
        if self._saved is None:
            raise RuntimeError("No transaction in progress. Call begin_transaction() first.")

    def acquire_import_lock(self) -> None:
        # Single process, single transaction: holding the transaction is the lock
        self._require_transaction()

    # =========================================================================
    # READS
    # =========================================================================

    def fetch_catalog_state(self) -> CatalogState:
        parts = {p.id: p for p in self._tables["parts"].values()}

        def owner_sku(part_id: str) -> str:
            return parts[part_id].acr_sku

        applications = []
        for app in self._tables["vehicle_applications"].values():
            record = copy.copy(app)
            record.acr_sku = owner_sku(app.part_id)
            applications.append(record)

        references = []
        for ref in self._tables["cross_references"].values():
            record = copy.copy(ref)
            record.acr_sku = owner_sku(ref.part_id)
            references.append(record)

        return CatalogState(
            parts=sorted((copy.copy(p) for p in parts.values()), key=lambda p: p.acr_sku),
            vehicle_applications=sorted(applications, key=lambda a: (a.acr_sku, a.make, a.model)),
            cross_references=sorted(
                references, key=lambda r: (r.acr_sku, r.competitor_brand, r.competitor_sku)
            ),
            vehicle_aliases=sorted(
                (copy.copy(a) for a in self._tables["vehicle_aliases"].values()),
                key=lambda a: (a.alias, a.canonical_name),
            ),
        )

    # =========================================================================
    # WRITES
    # =========================================================================

    def _get(self, table: str, record_id: str):
        record = self._tables[table].get(record_id)
        if record is None:
            raise KeyError(f"No {table} row with id {record_id}")
        return record

    def _update(self, table: str, record_id: str, values: Dict[str, Any]) -> None:
        self._require_transaction()
        record = self._get(table, record_id)
        for name, value in values.items():
            if not hasattr(record, name) or name in ("id", "part_id", "acr_sku"):
                raise ValueError(f"Column '{name}' of {table} cannot be updated")
            setattr(record, name, value)

    def _delete(self, table: str, record_id: str) -> None:
        self._require_transaction()
        self._get(table, record_id)
        del self._tables[table][record_id]

    def _require_part(self, part_id: Optional[str]) -> None:
        if part_id not in self._tables["parts"]:
            raise ValueError(f"Foreign key violation: part {part_id} does not exist")

    def insert_part(self, record: PartRecord) -> str:
        self._require_transaction()
        if any(p.acr_sku == record.acr_sku for p in self._tables["parts"].values()):
            raise ValueError(f"Unique violation: part {record.acr_sku} already exists")
        return self._put("parts", copy.copy(record))

    def update_part(self, part_id: str, values: Dict[str, Any]) -> None:
        self._update("parts", part_id, values)

    def delete_part(self, part_id: str) -> None:
        owned = [
            r for table in ("vehicle_applications", "cross_references")
            for r in self._tables[table].values() if r.part_id == part_id
        ]
        if owned:
            raise ValueError(f"Foreign key violation: part {part_id} still has {len(owned)} children")
        self._delete("parts", part_id)

    def insert_vehicle_application(self, record: VehicleApplicationRecord) -> str:
        self._require_transaction()
        self._require_part(record.part_id)
        for app in self._tables["vehicle_applications"].values():
            if (app.part_id, app.make, app.model) == (record.part_id, record.make, record.model):
                raise ValueError(
                    f"Unique violation: vehicle application {record.make} {record.model} exists"
                )
        return self._put("vehicle_applications", copy.copy(record))

    def update_vehicle_application(self, application_id: str, values: Dict[str, Any]) -> None:
        self._update("vehicle_applications", application_id, values)

    def delete_vehicle_application(self, application_id: str) -> None:
        self._delete("vehicle_applications", application_id)

    def insert_cross_reference(self, record: CrossReferenceRecord) -> str:
        self._require_transaction()
        self._require_part(record.part_id)
        key = (record.part_id, record.competitor_brand, record.competitor_sku)
        for ref in self._tables["cross_references"].values():
            if (ref.part_id, ref.competitor_brand, ref.competitor_sku) == key:
                raise ValueError(f"Unique violation: cross reference {record.competitor_sku} exists")
        return self._put("cross_references", copy.copy(record))

    def delete_cross_reference(self, cross_reference_id: str) -> None:
        self._delete("cross_references", cross_reference_id)

    def insert_vehicle_alias(self, record: VehicleAliasRecord) -> str:
        self._require_transaction()
        for alias in self._tables["vehicle_aliases"].values():
            if (alias.alias, alias.canonical_name) == (record.alias, record.canonical_name):
                raise ValueError(f"Unique violation: alias {record.alias} exists")
        return self._put("vehicle_aliases", copy.copy(record))

    def update_vehicle_alias(self, alias_id: str, values: Dict[str, Any]) -> None:
        self._update("vehicle_aliases", alias_id, values)

    def delete_vehicle_alias(self, alias_id: str) -> None:
        self._delete("vehicle_aliases", alias_id)

    # =========================================================================
    # IMPORT HISTORY
    # =========================================================================

    def save_import_history(self, record: ImportHistoryRecord) -> str:
        self._require_transaction()
        stored = copy.deepcopy(record)
        stored.id = str(uuid4())
        # Strictly increasing timestamps keep "newest" unambiguous
        self._clock += timedelta(seconds=1)
        stored.created_at = self._clock
        self._tables["import_history"][stored.id] = stored
        self._history_order.append(stored.id)
        return stored.id

    def get_import_history(self, import_id: str) -> Optional[ImportHistoryRecord]:
        record = self._tables["import_history"].get(import_id)
        return copy.deepcopy(record) if record else None

    def list_import_history(self, limit: Optional[int] = None) -> List[ImportHistoryRecord]:
        newest_first = list(reversed(self._history_order))
        if limit is not None:
            newest_first = newest_first[:limit]
        return [copy.deepcopy(self._tables["import_history"][i]) for i in newest_first]

    def delete_import_history(self, import_id: str) -> None:
        self._require_transaction()
        self._tables["import_history"].pop(import_id, None)
        if import_id in self._history_order:
            self._history_order.remove(import_id)

    def prune_import_history(self, keep: int) -> int:
        self._require_transaction()
        newest_first = list(reversed(self._history_order))
        stale = newest_first[keep:]
        for import_id in stale:
            self.delete_import_history(import_id)
        if stale:
            logger.info(f"Pruned {len(stale)} import history record(s)")
        return len(stale)
