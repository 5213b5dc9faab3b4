"""
End-to-end tests for the import pipeline.

These tests verify that:
1. An exported catalog re-imports with an empty diff
2. preview → apply → rollback round-trips through the public functions
3. Apply is blocked on errors and on unacknowledged warnings
4. Reverting a single field in a second upload produces exactly one update
5. Unreadable files come back as a single validation error
"""

import pytest

from catalog_sync import (
    ImportBlockedError,
    Settings,
    StaleDiffError,
    apply_import,
    export_catalog,
    list_imports,
    preview_import,
    rollback_import,
)
from catalog_sync.diff import DeletePolicy
from catalog_sync.ingest import InMemoryCatalogClient
from catalog_sync.parser import CatalogParser
from catalog_sync.validation import ValidationErrorCode, ValidationWarningCode

from conftest import find_row, make_catalog_workbook, make_cross_reference, make_seed_state, part_row


def upload(rows):
    return make_catalog_workbook(rows["parts"], rows["apps"], rows.get("aliases"))


class BrokenClient(InMemoryCatalogClient):

    def insert_part(self, record):
        raise RuntimeError("constraint check failed")


# =============================================================================
# ROUND TRIPS
# =============================================================================

class TestRoundTrip:

    def test_export_reimports_unchanged(self, db):
        preview = preview_import(db, export_catalog(db), "export.xlsx")

        assert preview.validation.valid
        assert not preview.requires_acknowledgment
        assert not preview.diff.has_changes()
        assert len(preview.diff.parts.unchanged) == 3

    def test_export_after_apply_reimports_unchanged(self, db, seed_rows):
        seed_rows["parts"].append(part_row("ACR-900", National="NAT-900;NAT-901"))
        apply_import(db, preview_import(db, upload(seed_rows), "catalog.xlsx"))

        preview = preview_import(db, export_catalog(db), "export.xlsx")

        assert not preview.diff.has_changes()

    def test_stored_sku_with_space_reimports_unchanged(self):
        state = make_seed_state()
        caliper = next(p for p in state.parts if p.acr_sku == "ACR-300")
        state.cross_references.append(make_cross_reference(caliper, "NATIONAL", "NAT 77", 41))
        db = InMemoryCatalogClient(state)

        exported = export_catalog(db)
        preview = preview_import(db, exported, "export.xlsx")

        caliper_row = next(r for r in CatalogParser().parse(exported).parts if r.acr_sku == "ACR-300")
        assert caliper_row.cross_references["national_skus"].raw == "NAT 77;"
        assert preview.validation.valid
        assert preview.validation.warnings == ()
        assert not preview.diff.has_changes()

    def test_single_field_revert(self, db, seed_rows):
        original = db.fetch_catalog_state().fingerprint()
        edited = find_row(seed_rows["parts"], "ACR-300")
        edited["Part Type"] = "Caliper Bracket"
        apply_import(db, preview_import(db, upload(seed_rows), "edit.xlsx"), acknowledge_warnings=True)

        edited["Part Type"] = "Caliper"
        preview = preview_import(db, upload(seed_rows), "revert.xlsx")

        assert preview.diff.summary["totalChanges"] == 1
        assert preview.diff.parts.updates[0].changed_fields == ["part_type"]
        assert preview.diff.parts.updates[0].key == ("ACR-300",)

        apply_import(db, preview, acknowledge_warnings=True)
        assert db.fetch_catalog_state().fingerprint() == original

    def test_apply_then_rollback(self, db, seed_rows):
        original = db.fetch_catalog_state().fingerprint()
        find_row(seed_rows["parts"], "ACR-200")["Status"] = "Eliminar"
        seed_rows["apps"] = [r for r in seed_rows["apps"] if r["ACR SKU"] != "ACR-200"]

        preview = preview_import(db, upload(seed_rows), "catalog.xlsx")
        result = apply_import(db, preview, acknowledge_warnings=True)

        assert result.success
        assert [h["id"] for h in list_imports(db)] == [result.import_id]

        rollback = rollback_import(db, result.import_id)

        assert rollback.success
        assert db.fetch_catalog_state().fingerprint() == original
        assert list_imports(db) == []

    def test_eliminar_with_active_children_and_new_part(self, db, seed_rows):
        original = db.fetch_catalog_state().fingerprint()
        # Vehicle application rows for ACR-100 stay Activo in the upload
        find_row(seed_rows["parts"], "ACR-100")["Status"] = "Eliminar"
        seed_rows["parts"].append(part_row("ACR-900"))

        preview = preview_import(db, upload(seed_rows), "catalog.xlsx")

        assert preview.validation.valid
        assert preview.diff.summary["totalAdds"] == 1
        assert len(preview.diff.parts.deletes) == 1
        assert sorted(
            w.value for w in preview.validation.warnings
            if w.code == ValidationWarningCode.W6_VEHICLE_APPLICATION_DELETED
        ) == ["ACR-100 / Nissan / Sentra", "ACR-100 / Nissan / Tsuru"]

        result = apply_import(db, preview, acknowledge_warnings=True)

        state = db.fetch_catalog_state()
        assert result.success
        assert sorted(p.acr_sku for p in state.parts) == ["ACR-200", "ACR-300", "ACR-900"]
        assert [v.acr_sku for v in state.vehicle_applications] == ["ACR-200"]
        assert [r.acr_sku for r in state.cross_references] == ["ACR-200"]

        assert rollback_import(db, result.import_id).success
        assert db.fetch_catalog_state().fingerprint() == original


# =============================================================================
# APPLY GATES
# =============================================================================

class TestApplyGates:

    def test_errors_block_apply(self, db, seed_rows):
        seed_rows["parts"].append(part_row("ACR 1"))
        preview = preview_import(db, upload(seed_rows), "catalog.xlsx")

        assert not preview.can_apply
        with pytest.raises(ImportBlockedError):
            apply_import(db, preview, acknowledge_warnings=True)

    def test_warnings_need_acknowledgment(self, db, seed_rows):
        find_row(seed_rows["parts"], "ACR-300")["Status"] = "Eliminar"
        preview = preview_import(db, upload(seed_rows), "catalog.xlsx")

        assert preview.can_apply
        assert preview.requires_acknowledgment
        assert [w.code for w in preview.validation.warnings] == [ValidationWarningCode.W13_PART_DELETED]

        with pytest.raises(ImportBlockedError):
            apply_import(db, preview)
        assert apply_import(db, preview, acknowledge_warnings=True).success

    def test_stale_preview(self, db, seed_rows):
        find_row(seed_rows["parts"], "ACR-300")["Part Type"] = "Caliper Bracket"
        stale = preview_import(db, upload(seed_rows), "first.xlsx")
        apply_import(db, preview_import(db, upload(seed_rows), "second.xlsx"), acknowledge_warnings=True)

        with pytest.raises(StaleDiffError):
            apply_import(db, stale, acknowledge_warnings=True)

    def test_write_failure_is_reported(self, seed_rows):
        db = BrokenClient(make_seed_state())
        seed_rows["parts"].append(part_row("ACR-900"))
        preview = preview_import(db, upload(seed_rows), "catalog.xlsx")

        result = apply_import(db, preview)

        assert not result.success
        assert result.import_id is None
        assert "rolled back" in result.error
        assert result.summary["totalAdds"] == 1
        assert db.fetch_catalog_state().fingerprint() == make_seed_state().fingerprint()


# =============================================================================
# SETTINGS AND FILE ERRORS
# =============================================================================

class TestPreview:

    def test_unreadable_file(self, db):
        preview = preview_import(db, b"", "catalog.xlsx")

        assert preview.diff is None
        assert preview.parse_result is None
        assert not preview.can_apply
        assert [e.code for e in preview.validation.errors] == [ValidationErrorCode.E16_MALFORMED_EXCEL_FILE]
        assert preview.to_dict()["diff"] is None

    def test_file_size_limit_from_settings(self, db, seed_rows):
        data = upload(seed_rows) + b"\0" * (1024 * 1024)
        preview = preview_import(db, data, "catalog.xlsx", settings=Settings(max_file_size_mb=1))

        assert [e.code for e in preview.validation.errors] == [
            ValidationErrorCode.E15_FILE_SIZE_EXCEEDS_LIMIT
        ]

    def test_explicit_delete_policy(self, db, seed_rows):
        seed_rows["parts"] = [r for r in seed_rows["parts"] if r["ACR SKU"] != "ACR-300"]
        settings = Settings(part_delete_policy=DeletePolicy.EXPLICIT_ONLY)

        preview = preview_import(db, upload(seed_rows), "catalog.xlsx", settings=settings)

        assert not preview.diff.has_changes()
        assert preview.to_dict()["diff"]["deletePolicy"] == "explicit"

    def test_preview_writes_nothing(self, db, seed_rows):
        seed_rows["parts"].append(part_row("ACR-900"))
        preview_import(db, upload(seed_rows), "catalog.xlsx")

        assert db.fetch_catalog_state().fingerprint() == make_seed_state().fingerprint()
