"""
Unit tests for the import executor.

These tests verify that:
1. Applying a diff makes the catalog match the upload
2. Writes run in foreign-key-safe order
3. A diff computed against an older catalog is refused
4. A failing write rolls back everything, history included
5. Import history is stored with its snapshot and pruned to the retention count
"""

import pytest

from catalog_sync.diff import DeletePolicy, diff_catalog
from catalog_sync.errors import ImportExecutionError, StaleDiffError
from catalog_sync.ingest import ImportExecutor, InMemoryCatalogClient

from conftest import app_row, find_row, make_seed_state, parse_rows, part_row


class RecordingClient(InMemoryCatalogClient):
    """Logs every entity write as (operation, entity)."""

    def __init__(self, state=None):
        super().__init__(state)
        self.writes = []

    def insert_record(self, entity, record):
        self.writes.append(("insert", entity))
        return super().insert_record(entity, record)

    def update_record(self, entity, record_id, values):
        self.writes.append(("update", entity))
        return super().update_record(entity, record_id, values)

    def delete_record(self, entity, record_id):
        self.writes.append(("delete", entity))
        return super().delete_record(entity, record_id)


class FailingClient(InMemoryCatalogClient):
    """Fails on the first cross-reference insert."""

    def insert_cross_reference(self, record):
        raise RuntimeError("connection reset")


def diff_upload(db, rows, policy=DeletePolicy.ABSENCE_IMPLIES_DELETE):
    parsed = parse_rows(rows["parts"], rows["apps"], rows.get("aliases"))
    return diff_catalog(parsed, db.fetch_catalog_state(), policy)


def add_and_delete_rows(rows):
    """ACR-900 added with children, ACR-200 deleted, ACR-100 retyped."""
    find_row(rows["parts"], "ACR-200")["Status"] = "Eliminar"
    rows["apps"] = [r for r in rows["apps"] if r["ACR SKU"] != "ACR-200"]
    find_row(rows["parts"], "ACR-100")["Part Type"] = "Drum"
    rows["parts"].append(part_row("ACR-900", National="NAT-900"))
    rows["apps"].append(app_row("ACR-900", "Toyota", "Hilux", 2010, 2015))
    return rows


# =============================================================================
# APPLY
# =============================================================================

class TestApply:

    def test_catalog_matches_upload(self, db, seed_rows):
        diff = diff_upload(db, add_and_delete_rows(seed_rows))

        result = ImportExecutor(db).apply(diff, "catalog.xlsx", file_size=1024, rows_imported=8)
        state = db.fetch_catalog_state()

        assert result.success
        assert result.import_id is not None
        assert result.summary == {"totalAdds": 3, "totalUpdates": 1, "totalDeletes": 3, "totalChanges": 7}
        assert [p.acr_sku for p in state.parts] == ["ACR-100", "ACR-300", "ACR-900"]
        assert {p.acr_sku: p.part_type for p in state.parts}["ACR-100"] == "Drum"

        new_part = next(p for p in state.parts if p.acr_sku == "ACR-900")
        hilux = next(a for a in state.vehicle_applications if a.model == "Hilux")
        assert hilux.part_id == new_part.id
        assert ("NATIONAL", "NAT-900") in {
            (r.competitor_brand, r.competitor_sku) for r in state.cross_references if r.part_id == new_part.id
        }
        assert not any(r.acr_sku == "ACR-200" for r in state.cross_references)

    def test_reapplying_same_upload_is_a_no_op(self, db, seed_rows):
        rows = add_and_delete_rows(seed_rows)
        ImportExecutor(db).apply(diff_upload(db, rows), "catalog.xlsx")

        assert not diff_upload(db, rows).has_changes()

    def test_updates_preserve_ids(self, db, seed_rows):
        find_row(seed_rows["apps"], "ACR-100", "Tsuru")["End Year"] = 2020
        before = {a.model: a.id for a in db.fetch_catalog_state().vehicle_applications}

        ImportExecutor(db).apply(diff_upload(db, seed_rows), "catalog.xlsx")

        after = {a.model: (a.id, a.end_year) for a in db.fetch_catalog_state().vehicle_applications}
        assert after["Tsuru"] == (before["Tsuru"], 2020)

    def test_write_order_is_foreign_key_safe(self, seed_rows):
        db = RecordingClient(make_seed_state())
        diff = diff_upload(db, add_and_delete_rows(seed_rows))

        ImportExecutor(db).apply(diff, "catalog.xlsx")

        assert db.writes == [
            ("delete", "vehicle_application"),
            ("delete", "cross_reference"),
            ("delete", "part"),
            ("insert", "part"),
            ("insert", "vehicle_application"),
            ("insert", "cross_reference"),
            ("update", "part"),
        ]

    def test_result_to_dict(self, db, seed_rows):
        find_row(seed_rows["parts"], "ACR-300")["Part Type"] = "Caliper Bracket"

        data = ImportExecutor(db).apply(diff_upload(db, seed_rows), "catalog.xlsx").to_dict()

        assert data["success"] is True
        assert data["summary"]["totalUpdates"] == 1
        assert "error" not in data


# =============================================================================
# FAILURES
# =============================================================================

class TestApplyFailures:

    def test_stale_diff_is_refused(self, db, seed_rows):
        find_row(seed_rows["parts"], "ACR-300")["Part Type"] = "Caliper Bracket"
        diff = diff_upload(db, seed_rows)

        # Someone else edits the catalog after the preview
        db.begin_transaction()
        db.update_part(db.fetch_catalog_state().parts[0].id, {"part_type": "Drum"})
        db.commit_transaction()
        changed = db.fetch_catalog_state().fingerprint()

        with pytest.raises(StaleDiffError):
            ImportExecutor(db).apply(diff, "catalog.xlsx")

        assert db.fetch_catalog_state().fingerprint() == changed
        assert db.list_import_history() == []

    def test_failed_write_rolls_back_everything(self, seed_rows):
        db = FailingClient(make_seed_state())
        before = db.fetch_catalog_state().fingerprint()
        diff = diff_upload(db, add_and_delete_rows(seed_rows))

        with pytest.raises(ImportExecutionError) as exc_info:
            ImportExecutor(db).apply(diff, "catalog.xlsx")

        assert "connection reset" in str(exc_info.value)
        assert db.fetch_catalog_state().fingerprint() == before
        assert db.list_import_history() == []

    def test_client_is_usable_after_failure(self, seed_rows):
        db = FailingClient(make_seed_state())
        with pytest.raises(ImportExecutionError):
            ImportExecutor(db).apply(diff_upload(db, add_and_delete_rows(seed_rows)), "catalog.xlsx")

        # No transaction left open
        db.begin_transaction()
        db.rollback_transaction()


# =============================================================================
# HISTORY
# =============================================================================

class TestImportHistory:

    def test_history_record_holds_snapshot(self, db, seed_rows):
        pre_state = db.fetch_catalog_state()
        diff = diff_upload(db, add_and_delete_rows(seed_rows))

        result = ImportExecutor(db, imported_by="catalog-team").apply(
            diff, "catalog.xlsx", file_size=2048, rows_imported=9
        )
        record = db.get_import_history(result.import_id)

        assert record.file_name == "catalog.xlsx"
        assert (record.file_size, record.rows_imported) == (2048, 9)
        assert record.imported_by == "catalog-team"
        assert record.import_summary == result.summary
        assert record.snapshot_data["base_fingerprint"] == pre_state.fingerprint()
        assert record.snapshot_data["pre_state"] == pre_state.to_dict()
        assert len(record.snapshot_data["operations"]) == 7

    def test_journal_records_database_ids(self, db, seed_rows):
        diff = diff_upload(db, add_and_delete_rows(seed_rows))
        result = ImportExecutor(db).apply(diff, "catalog.xlsx")

        operations = db.get_import_history(result.import_id).snapshot_data["operations"]
        added_part = next(o for o in operations if o["entity"] == "part" and o["operation"] == "add")
        new_id = next(p.id for p in db.fetch_catalog_state().parts if p.acr_sku == "ACR-900")

        assert added_part["after"]["id"] == new_id
        assert added_part["before"] is None

    def test_history_is_pruned_to_retention(self, db, seed_rows):
        executor = ImportExecutor(db, history_retention=3)
        ids = []
        for n in range(4):
            find_row(seed_rows["parts"], "ACR-300")["Part Type"] = f"Caliper {n}"
            ids.append(executor.apply(diff_upload(db, seed_rows), f"catalog-{n}.xlsx").import_id)

        kept = [r.id for r in db.list_import_history()]

        assert kept == list(reversed(ids[1:]))
        assert db.get_import_history(ids[0]) is None
