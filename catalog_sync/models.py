"""
Catalog records, parsed upload rows and import history.

These are plain dataclasses shared by the diff engine, the executor, the
snapshot manager and the database clients. Surrogate ids are strings
assigned by the persistence layer; business keys live in keys.py.
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, List, Optional

from .schema import STATUS_ACTIVE


@dataclass
class PartRecord:
    """A persisted part, identified by acr_sku."""
    id: Optional[str]
    acr_sku: str
    workflow_status: str = STATUS_ACTIVE
    part_type: Optional[str] = None
    position_type: Optional[str] = None
    abs_type: Optional[str] = None
    bolt_pattern: Optional[str] = None
    drive_type: Optional[str] = None
    specifications: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VehicleApplicationRecord:
    """
    A persisted fitment row.

    acr_sku is denormalized from the owning part so the business key
    (acr_sku, make, model) can be built without a join.
    """
    id: Optional[str]
    part_id: Optional[str]
    acr_sku: str
    make: str
    model: str
    start_year: Optional[int] = None
    end_year: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrossReferenceRecord:
    """A competitor SKU equivalent to one part."""
    id: Optional[str]
    part_id: Optional[str]
    acr_sku: str
    competitor_brand: str
    competitor_sku: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class VehicleAliasRecord:
    """A make/model nickname used for search expansion."""
    id: Optional[str]
    alias: str
    canonical_name: str
    alias_type: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _record_from_dict(cls, data: Dict[str, Any]):
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


@dataclass
class CatalogState:
    """Complete persisted catalog at one point in time."""
    parts: List[PartRecord] = field(default_factory=list)
    vehicle_applications: List[VehicleApplicationRecord] = field(default_factory=list)
    cross_references: List[CrossReferenceRecord] = field(default_factory=list)
    vehicle_aliases: List[VehicleAliasRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parts": [p.to_dict() for p in self.parts],
            "vehicle_applications": [v.to_dict() for v in self.vehicle_applications],
            "cross_references": [c.to_dict() for c in self.cross_references],
            "vehicle_aliases": [a.to_dict() for a in self.vehicle_aliases],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogState":
        return cls(
            parts=[_record_from_dict(PartRecord, p) for p in data.get("parts", [])],
            vehicle_applications=[
                _record_from_dict(VehicleApplicationRecord, v)
                for v in data.get("vehicle_applications", [])
            ],
            cross_references=[
                _record_from_dict(CrossReferenceRecord, c)
                for c in data.get("cross_references", [])
            ],
            vehicle_aliases=[
                _record_from_dict(VehicleAliasRecord, a)
                for a in data.get("vehicle_aliases", [])
            ],
        )

    def counts(self) -> Dict[str, int]:
        return {
            "parts": len(self.parts),
            "vehicle_applications": len(self.vehicle_applications),
            "cross_references": len(self.cross_references),
            "vehicle_aliases": len(self.vehicle_aliases),
        }

    def fingerprint(self) -> str:
        """
        Deterministic checksum of the state.

        Record order does not matter: each table is sorted by id before
        hashing, so two reads of an unchanged catalog always agree.
        """
        canonical = {}
        for table, records in self.to_dict().items():
            canonical[table] = sorted(records, key=lambda r: str(r.get("id")))
        payload = json.dumps(canonical, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def record_from_dict(entity: str, data: Dict[str, Any]):
    """Build the record dataclass for an entity name used in snapshots."""
    record_types = {
        "part": PartRecord,
        "vehicle_application": VehicleApplicationRecord,
        "cross_reference": CrossReferenceRecord,
        "vehicle_alias": VehicleAliasRecord,
    }
    if entity not in record_types:
        raise ValueError(f"Unknown entity type: {entity}")
    return _record_from_dict(record_types[entity], data)


@dataclass
class ImportHistoryRecord:
    """
    One successful apply, with everything needed to reverse it.

    Created at apply time and never modified; consumed (deleted) by a
    successful rollback.
    """
    id: Optional[str]
    file_name: str
    file_size: int
    rows_imported: int
    import_summary: Dict[str, int]
    snapshot_data: Dict[str, Any]
    created_at: Optional[datetime] = None
    imported_by: Optional[str] = None

    def to_dict(self, include_snapshot: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "fileName": self.file_name,
            "fileSize": self.file_size,
            "rowsImported": self.rows_imported,
            "importSummary": dict(self.import_summary),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "importedBy": self.imported_by,
        }
        if include_snapshot:
            result["snapshotData"] = self.snapshot_data
        return result


# =============================================================================
# PARSED UPLOAD ROWS
# =============================================================================
# Typed rows produced by the parser. Values are cleaned (trimmed, blanks
# turned into None) but not validated; validation.engine judges them.

@dataclass
class BrandCell:
    """
    One competitor-brand cell split into SKU instructions.

    keep: SKUs that must exist for the part (added when missing)
    delete: SKUs explicitly marked for removal
    legacy_delimiter: True when the cell used whitespace instead of ';'
    """
    keep: List[str] = field(default_factory=list)
    delete: List[str] = field(default_factory=list)
    legacy_delimiter: bool = False
    raw: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.keep and not self.delete


@dataclass
class PartRow:
    row_number: int
    acr_sku: Optional[str]
    status: Optional[str] = None
    workflow_status: Optional[str] = STATUS_ACTIVE
    part_type: Optional[str] = None
    position_type: Optional[str] = None
    abs_type: Optional[str] = None
    bolt_pattern: Optional[str] = None
    drive_type: Optional[str] = None
    specifications: Optional[str] = None
    cross_references: Dict[str, BrandCell] = field(default_factory=dict)
    passthrough: Dict[str, Any] = field(default_factory=dict)
    internal_id: Optional[str] = None


@dataclass
class VehicleApplicationRow:
    row_number: int
    acr_sku: Optional[str]
    make: Optional[str]
    model: Optional[str]
    start_year: Any = None  # raw cell value; coerced by consumers
    end_year: Any = None
    status: Optional[str] = None
    workflow_status: Optional[str] = STATUS_ACTIVE
    internal_id: Optional[str] = None
    part_internal_id: Optional[str] = None


@dataclass
class VehicleAliasRow:
    row_number: int
    alias: Optional[str]
    canonical_name: Optional[str]
    alias_type: Optional[str] = None
    status: Optional[str] = None
    workflow_status: Optional[str] = STATUS_ACTIVE
    internal_id: Optional[str] = None


@dataclass
class ParseResult:
    """
    Typed row collections for one upload.

    vehicle_aliases is None when the workbook has no Vehicle Aliases sheet;
    aliases are then left untouched by the diff.
    """
    parts: List[PartRow] = field(default_factory=list)
    vehicle_applications: List[VehicleApplicationRow] = field(default_factory=list)
    vehicle_aliases: Optional[List[VehicleAliasRow]] = None
    file_name: Optional[str] = None
    file_size: int = 0
    sheet_headers: Dict[str, List[str]] = field(default_factory=dict)
    missing_headers: Dict[str, List[str]] = field(default_factory=dict)
    unmapped_headers: Dict[str, List[str]] = field(default_factory=dict)
    encoding_issues: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return (
            len(self.parts)
            + len(self.vehicle_applications)
            + len(self.vehicle_aliases or [])
        )
