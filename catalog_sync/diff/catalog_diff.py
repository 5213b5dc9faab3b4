"""
Catalog diff engine.

Compares an uploaded workbook with the persisted catalog and classifies
every touched record as added, updated, deleted or unchanged.

CORE PRINCIPLES:
1. Identity is the business key, never a surrogate id or a row position
2. Years, types and other attributes are mutable: editing them is an
   update, never a delete + add
3. null, missing and empty string are the same value
4. Deleting a part deletes everything it owns, and says so (cascade entries)
5. Nothing is silently dropped: rows the diff cannot key are left to the
   validator, which reports them

DELETE SEMANTICS:
- Parts: an explicit Eliminar status always deletes. Under
  DeletePolicy.ABSENCE_IMPLIES_DELETE a persisted part missing from the
  upload is deleted too (the Parts sheet is the full catalog).
- Vehicle applications and aliases: explicit Eliminar only. These sheets
  are edited per part, so a missing row means "not mentioned".
- Cross references: only SKUs behind a [DELETE] marker are removed;
  persisted SKUs a cell does not mention are left alone.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..keys import (
    BusinessKeyResolver,
    cross_reference_key,
    part_key,
    vehicle_alias_key,
    vehicle_application_key,
)
from ..models import CatalogState, ParseResult, PartRecord, PartRow
from ..normalizer import coerce_int
from ..schema import (
    ALIAS_TYPES,
    BRAND_COLUMN_MAP,
    SHEET_PARTS,
    SHEET_VEHICLE_ALIASES,
    SHEET_VEHICLE_APPLICATIONS,
    STATUS_DELETE,
)

logger = logging.getLogger(__name__)

SHEET_CROSS_REFERENCES = "Cross References"

# Fields compared per entity; key fields are never compared
PART_COMPARE_FIELDS = [
    "workflow_status",
    "part_type",
    "position_type",
    "abs_type",
    "bolt_pattern",
    "drive_type",
    "specifications",
]
VEHICLE_APPLICATION_COMPARE_FIELDS = ["start_year", "end_year"]
VEHICLE_ALIAS_COMPARE_FIELDS = ["alias_type"]


class DeletePolicy(Enum):
    """How the Parts sheet expresses deletion."""
    ABSENCE_IMPLIES_DELETE = "absence"  # parts missing from the upload are deleted
    EXPLICIT_ONLY = "explicit"          # only rows with status Eliminar are deleted


class DiffOperation(Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    UNCHANGED = "unchanged"


@dataclass
class DiffEntry:
    """
    One classified record.

    before is the persisted record (None for adds); after is the intended
    state (None for deletes). For adds, after carries no id: the database
    assigns one at apply time.
    """
    operation: DiffOperation
    key: tuple
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    changed_fields: List[str] = field(default_factory=list)
    cascade: bool = False  # deleted because its part is deleted
    row_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation.value,
            "key": list(self.key),
            "before": self.before,
            "after": self.after,
            "changedFields": list(self.changed_fields),
            "cascade": self.cascade,
            "rowNumber": self.row_number,
        }


@dataclass
class SheetDiff:
    """Four partitions of one entity type."""
    sheet_name: str
    adds: List[DiffEntry] = field(default_factory=list)
    updates: List[DiffEntry] = field(default_factory=list)
    deletes: List[DiffEntry] = field(default_factory=list)
    unchanged: List[DiffEntry] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return len(self.adds) + len(self.updates) + len(self.deletes)

    def summary(self) -> Dict[str, int]:
        return {
            "adds": len(self.adds),
            "updates": len(self.updates),
            "deletes": len(self.deletes),
            "unchanged": len(self.unchanged),
            "totalChanges": self.total_changes,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sheetName": self.sheet_name,
            "adds": [e.to_dict() for e in self.adds],
            "updates": [e.to_dict() for e in self.updates],
            "deletes": [e.to_dict() for e in self.deletes],
            "unchanged": [e.to_dict() for e in self.unchanged],
            "summary": self.summary(),
        }


@dataclass
class DiffResult:
    """
    Complete diff of an upload against persisted state.

    base_fingerprint identifies the persisted state the diff was computed
    against; applying it to any other state is refused.
    """
    parts: SheetDiff
    vehicle_applications: SheetDiff
    cross_references: SheetDiff
    vehicle_aliases: SheetDiff
    base_fingerprint: str
    delete_policy: DeletePolicy = DeletePolicy.ABSENCE_IMPLIES_DELETE

    def sheets(self) -> List[SheetDiff]:
        return [self.parts, self.vehicle_applications, self.cross_references, self.vehicle_aliases]

    @property
    def summary(self) -> Dict[str, Any]:
        sheets = self.sheets()
        total_adds = sum(len(s.adds) for s in sheets)
        total_updates = sum(len(s.updates) for s in sheets)
        total_deletes = sum(len(s.deletes) for s in sheets)
        return {
            "totalAdds": total_adds,
            "totalUpdates": total_updates,
            "totalDeletes": total_deletes,
            "totalChanges": total_adds + total_updates + total_deletes,
            "changesBySheet": {s.sheet_name: s.summary() for s in sheets},
        }

    def has_changes(self) -> bool:
        return any(s.total_changes for s in self.sheets())

    def cascade_entries(self) -> List[DiffEntry]:
        """Deletes implied by part deletion, children first in sheet order."""
        return [
            e for e in self.vehicle_applications.deletes + self.cross_references.deletes
            if e.cascade
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parts": self.parts.to_dict(),
            "vehicleApplications": self.vehicle_applications.to_dict(),
            "crossReferences": self.cross_references.to_dict(),
            "vehicleAliases": self.vehicle_aliases.to_dict(),
            "summary": self.summary,
            "baseFingerprint": self.base_fingerprint,
            "deletePolicy": self.delete_policy.value,
        }


# =============================================================================
# FIELD COMPARISON
# =============================================================================

def normalize_empty(value: Any) -> Any:
    """Collapse None, "" and whitespace-only strings to None; trim other strings."""
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    return value


def changed_fields(before: Dict[str, Any], after: Dict[str, Any], compare: List[str]) -> List[str]:
    """Names of compared fields whose normalized values differ."""
    return [
        name for name in compare
        if normalize_empty(before.get(name)) != normalize_empty(after.get(name))
    ]


def _part_values(row: PartRow) -> Dict[str, Any]:
    return {
        "acr_sku": row.acr_sku.strip(),
        "workflow_status": row.workflow_status,
        "part_type": row.part_type,
        "position_type": row.position_type,
        "abs_type": row.abs_type,
        "bolt_pattern": row.bolt_pattern,
        "drive_type": row.drive_type,
        "specifications": row.specifications,
    }


def _classify(
    sheet: SheetDiff,
    key: tuple,
    record_dict: Optional[Dict[str, Any]],
    values: Dict[str, Any],
    compare: List[str],
    row_number: Optional[int]
) -> DiffEntry:
    """Add, update or unchanged for a non-deleting row."""
    if record_dict is None:
        entry = DiffEntry(DiffOperation.ADD, key, after=values, row_number=row_number)
        sheet.adds.append(entry)
        return entry

    changes = changed_fields(record_dict, values, compare)
    after = dict(record_dict)
    after.update({name: values.get(name) for name in compare})
    if changes:
        entry = DiffEntry(
            DiffOperation.UPDATE, key, before=record_dict, after=after,
            changed_fields=changes, row_number=row_number
        )
        sheet.updates.append(entry)
    else:
        entry = DiffEntry(
            DiffOperation.UNCHANGED, key, before=record_dict, after=dict(record_dict),
            row_number=row_number
        )
        sheet.unchanged.append(entry)
    return entry


# =============================================================================
# DIFF
# =============================================================================

def diff_catalog(
    parsed: ParseResult,
    state: CatalogState,
    delete_policy: DeletePolicy = DeletePolicy.ABSENCE_IMPLIES_DELETE,
    debug: bool = False
) -> DiffResult:
    """
    Diff an upload against the persisted catalog.

    Each entity type is diffed independently by business key:

    1. Index persisted records and parsed rows by key
    2. Key only in the upload → add
    3. Key persisted and marked Eliminar (or, for parts under the absence
       policy, missing from the upload) → delete
    4. Key in both → update with changed field names, or unchanged
    5. Every deleted part pulls its vehicle applications and cross
       references into the result as cascade deletes

    Args:
        parsed: Parsed upload
        state: Persisted catalog
        delete_policy: Parts-sheet delete semantics
        debug: Log every classification decision

    Returns:
        DiffResult
    """
    resolver = BusinessKeyResolver(state)
    result = DiffResult(
        parts=SheetDiff(SHEET_PARTS),
        vehicle_applications=SheetDiff(SHEET_VEHICLE_APPLICATIONS),
        cross_references=SheetDiff(SHEET_CROSS_REFERENCES),
        vehicle_aliases=SheetDiff(SHEET_VEHICLE_ALIASES),
        base_fingerprint=state.fingerprint(),
        delete_policy=delete_policy,
    )

    deleted_parts = _diff_parts(parsed, resolver, result.parts, delete_policy, debug)
    cascaded_ids = _cascade_part_deletes(deleted_parts, resolver, result, debug)
    deleted_skus = {p.acr_sku for p in deleted_parts}
    added_skus = {e.after["acr_sku"] for e in result.parts.adds}

    _diff_vehicle_applications(
        parsed, resolver, result.vehicle_applications, deleted_skus, added_skus, cascaded_ids, debug
    )
    _diff_cross_references(parsed, resolver, result.cross_references, deleted_skus, cascaded_ids, debug)

    if parsed.vehicle_aliases is not None:
        _diff_vehicle_aliases(parsed, resolver, result.vehicle_aliases, debug)

    summary = result.summary
    logger.info(
        f"Diff computed ({delete_policy.value} policy): {summary['totalAdds']} adds, "
        f"{summary['totalUpdates']} updates, {summary['totalDeletes']} deletes"
    )
    return result


def _diff_parts(
    parsed: ParseResult,
    resolver: BusinessKeyResolver,
    sheet: SheetDiff,
    delete_policy: DeletePolicy,
    debug: bool
) -> List[PartRecord]:
    """Classify Parts rows; returns the persisted parts being deleted."""
    deleted: List[PartRecord] = []
    seen: Set[tuple] = set()
    uploaded_keys = {part_key(r.acr_sku) for r in parsed.parts} - {None}

    for row in parsed.parts:
        key = part_key(row.acr_sku)
        # Unkeyed rows, bad statuses and repeats are validation errors
        if key is None or row.workflow_status is None or key in seen:
            continue
        seen.add(key)

        record = resolver.match(row)

        if row.workflow_status == STATUS_DELETE:
            if record is None:
                if debug:
                    logger.info(f"Part {key[0]} marked Eliminar but not persisted; ignoring")
                continue
            sheet.deletes.append(DiffEntry(
                DiffOperation.DELETE, key, before=record.to_dict(), row_number=row.row_number
            ))
            deleted.append(record)
            continue

        entry = _classify(
            sheet, key, record.to_dict() if record else None,
            _part_values(row), PART_COMPARE_FIELDS, row.row_number
        )
        if debug:
            logger.info(f"Part {key[0]}: {entry.operation.value} {entry.changed_fields or ''}")

    if delete_policy == DeletePolicy.ABSENCE_IMPLIES_DELETE:
        for key, record in resolver.parts.items():
            if key in uploaded_keys:
                continue
            sheet.deletes.append(DiffEntry(DiffOperation.DELETE, key, before=record.to_dict()))
            deleted.append(record)
            if debug:
                logger.info(f"Part {key[0]} absent from upload; deleting")

    return deleted


def _cascade_part_deletes(
    deleted_parts: List[PartRecord],
    resolver: BusinessKeyResolver,
    result: DiffResult,
    debug: bool
) -> Set[str]:
    """Attach every child of a deleted part as a cascade delete; returns their ids."""
    cascaded: Set[str] = set()
    for part in deleted_parts:
        apps, refs = resolver.children_of(part)
        for app in apps:
            result.vehicle_applications.deletes.append(DiffEntry(
                DiffOperation.DELETE,
                (app.acr_sku, app.make, app.model),
                before=app.to_dict(),
                cascade=True,
            ))
            cascaded.add(app.id)
        for ref in refs:
            result.cross_references.deletes.append(DiffEntry(
                DiffOperation.DELETE,
                (ref.acr_sku, ref.competitor_brand, ref.competitor_sku),
                before=ref.to_dict(),
                cascade=True,
            ))
            cascaded.add(ref.id)
        if debug and (apps or refs):
            logger.info(
                f"Part {part.acr_sku} delete cascades to {len(apps)} vehicle "
                f"applications and {len(refs)} cross references"
            )
    return cascaded


def _diff_vehicle_applications(
    parsed: ParseResult,
    resolver: BusinessKeyResolver,
    sheet: SheetDiff,
    deleted_skus: Set[str],
    added_skus: Set[str],
    cascaded_ids: Set[str],
    debug: bool
) -> None:
    seen: Set[tuple] = set()

    for row in parsed.vehicle_applications:
        key = vehicle_application_key(row.acr_sku, row.make, row.model)
        if key is None or row.workflow_status is None or key in seen:
            continue
        try:
            start_year = coerce_int(row.start_year)
            end_year = coerce_int(row.end_year)
        except ValueError:
            continue
        seen.add(key)

        acr_sku = key[0]
        if acr_sku in deleted_skus:
            # Covered by the part's cascade
            continue

        record = resolver.match(row)

        if row.workflow_status == STATUS_DELETE:
            if record is not None and record.id not in cascaded_ids:
                sheet.deletes.append(DiffEntry(
                    DiffOperation.DELETE, key, before=record.to_dict(), row_number=row.row_number
                ))
            continue

        parent = resolver.part(acr_sku)
        if record is None and parent is None and acr_sku not in added_skus:
            # Orphan: reported as E5 by the validator
            continue

        values = {
            "part_id": record.part_id if record else (parent.id if parent else None),
            "acr_sku": acr_sku,
            "make": key[1],
            "model": key[2],
            "start_year": start_year,
            "end_year": end_year,
        }
        entry = _classify(
            sheet, key, record.to_dict() if record else None,
            values, VEHICLE_APPLICATION_COMPARE_FIELDS, row.row_number
        )
        if debug:
            logger.info(f"Vehicle application {key}: {entry.operation.value}")


def _diff_cross_references(
    parsed: ParseResult,
    resolver: BusinessKeyResolver,
    sheet: SheetDiff,
    deleted_skus: Set[str],
    cascaded_ids: Set[str],
    debug: bool
) -> None:
    """Cross references come from the brand columns of each Parts row."""
    seen_parts: Set[tuple] = set()

    for row in parsed.parts:
        key = part_key(row.acr_sku)
        if key is None or row.workflow_status is None or key in seen_parts:
            continue
        seen_parts.add(key)
        acr_sku = key[0]
        if acr_sku in deleted_skus or row.workflow_status == STATUS_DELETE:
            continue

        parent = resolver.match(row)

        for prop, cell in row.cross_references.items():
            brand = BRAND_COLUMN_MAP[prop]

            for sku in cell.keep:
                ref_key = cross_reference_key(acr_sku, brand, sku)
                existing = resolver.cross_references.get(ref_key)
                if existing is not None:
                    sheet.unchanged.append(DiffEntry(
                        DiffOperation.UNCHANGED, ref_key, before=existing.to_dict(),
                        after=existing.to_dict(), row_number=row.row_number
                    ))
                    continue
                sheet.adds.append(DiffEntry(
                    DiffOperation.ADD,
                    ref_key,
                    after={
                        "part_id": parent.id if parent else None,
                        "acr_sku": acr_sku,
                        "competitor_brand": brand,
                        "competitor_sku": sku,
                    },
                    row_number=row.row_number,
                ))

            for sku in cell.delete:
                ref_key = cross_reference_key(acr_sku, brand, sku)
                existing = resolver.cross_references.get(ref_key)
                if existing is None or existing.id in cascaded_ids:
                    if debug:
                        logger.info(f"[DELETE]{sku} ({brand}) on {acr_sku} not persisted; ignoring")
                    continue
                sheet.deletes.append(DiffEntry(
                    DiffOperation.DELETE, ref_key, before=existing.to_dict(),
                    row_number=row.row_number
                ))


def _diff_vehicle_aliases(
    parsed: ParseResult,
    resolver: BusinessKeyResolver,
    sheet: SheetDiff,
    debug: bool
) -> None:
    seen: Set[tuple] = set()

    for row in parsed.vehicle_aliases or []:
        key = vehicle_alias_key(row.alias, row.canonical_name)
        if key is None or row.workflow_status is None or key in seen:
            continue
        seen.add(key)

        record = resolver.match(row)

        if row.workflow_status == STATUS_DELETE:
            if record is not None:
                sheet.deletes.append(DiffEntry(
                    DiffOperation.DELETE, key, before=record.to_dict(), row_number=row.row_number
                ))
            continue

        alias_type = (row.alias_type or "").strip().lower()
        if alias_type not in ALIAS_TYPES:
            continue

        values = {"alias": key[0], "canonical_name": key[1], "alias_type": alias_type}
        entry = _classify(
            sheet, key, record.to_dict() if record else None,
            values, VEHICLE_ALIAS_COMPARE_FIELDS, row.row_number
        )
        if debug:
            logger.info(f"Vehicle alias {key}: {entry.operation.value}")
