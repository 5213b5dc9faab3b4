"""
Business-key resolution.

Rows and persisted records are matched on natural keys only:

- Part:                acr_sku
- Vehicle application: (acr_sku, make, model)  (years are NOT part of the key)
- Vehicle alias:       (alias, canonical_name)
- Cross reference:     (acr_sku, competitor_brand, competitor_sku)

Key parts are trimmed and compared as exact, case-sensitive strings. A key
with any empty part is no key at all: such rows never reach the diff and
are reported by the validator instead.

The resolver never invents surrogate ids. A matched key returns the
persisted id; anything else is new and gets its id from the database at
apply time.
"""

import logging
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Tuple, TypeVar

from .models import (
    CatalogState,
    CrossReferenceRecord,
    PartRecord,
    VehicleAliasRecord,
    VehicleApplicationRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PartKey = Tuple[str]
VehicleApplicationKey = Tuple[str, str, str]
VehicleAliasKey = Tuple[str, str]
CrossReferenceKey = Tuple[str, str, str]


def clean_key_part(value: Any) -> Optional[str]:
    """Trimmed text for one key component, None when blank."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _build_key(*values: Any) -> Optional[tuple]:
    parts = tuple(clean_key_part(v) for v in values)
    if any(p is None for p in parts):
        return None
    return parts


def part_key(acr_sku: Any) -> Optional[PartKey]:
    return _build_key(acr_sku)


def vehicle_application_key(acr_sku: Any, make: Any, model: Any) -> Optional[VehicleApplicationKey]:
    return _build_key(acr_sku, make, model)


def vehicle_alias_key(alias: Any, canonical_name: Any) -> Optional[VehicleAliasKey]:
    return _build_key(alias, canonical_name)


def cross_reference_key(acr_sku: Any, brand: Any, sku: Any) -> Optional[CrossReferenceKey]:
    return _build_key(acr_sku, brand, sku)


def key_of(record: Any) -> Optional[tuple]:
    """Business key for a persisted record or a parsed row of any entity."""
    if isinstance(record, VehicleApplicationRecord) or (
        hasattr(record, "make") and hasattr(record, "model")
    ):
        return vehicle_application_key(record.acr_sku, record.make, record.model)
    if isinstance(record, CrossReferenceRecord):
        return cross_reference_key(record.acr_sku, record.competitor_brand, record.competitor_sku)
    if isinstance(record, VehicleAliasRecord) or hasattr(record, "canonical_name"):
        return vehicle_alias_key(record.alias, record.canonical_name)
    if isinstance(record, PartRecord) or hasattr(record, "acr_sku"):
        return part_key(record.acr_sku)
    raise TypeError(f"No business key defined for {type(record).__name__}")


def build_index(
    items: Iterable[T],
    key_fn: Callable[[T], Optional[Hashable]] = key_of,
    label: str = "record"
) -> Dict[Hashable, T]:
    """
    Index items by business key.

    Items without a key are skipped. When a key repeats, the first item
    wins; later ones are logged (the validator reports duplicates in
    uploads, and the database enforces uniqueness for persisted parts).
    """
    index: Dict[Hashable, T] = {}
    for item in items:
        key = key_fn(item)
        if key is None:
            continue
        if key in index:
            logger.debug(f"Duplicate {label} key {key}; keeping first occurrence")
            continue
        index[key] = item
    return index


class BusinessKeyResolver:
    """
    Resolves parsed rows against a persisted catalog.

    Built once per diff from a CatalogState; lookups are dictionary hits.
    """

    def __init__(self, state: CatalogState):
        self.parts: Dict[Hashable, PartRecord] = build_index(state.parts, label="part")
        self.vehicle_applications: Dict[Hashable, VehicleApplicationRecord] = build_index(
            state.vehicle_applications, label="vehicle application"
        )
        self.vehicle_aliases: Dict[Hashable, VehicleAliasRecord] = build_index(
            state.vehicle_aliases, label="vehicle alias"
        )
        self.cross_references: Dict[Hashable, CrossReferenceRecord] = build_index(
            state.cross_references, label="cross reference"
        )
        self._apps_by_part: Dict[str, List[VehicleApplicationRecord]] = {}
        for app in state.vehicle_applications:
            self._apps_by_part.setdefault(app.part_id, []).append(app)
        self._refs_by_part: Dict[str, List[CrossReferenceRecord]] = {}
        for ref in state.cross_references:
            self._refs_by_part.setdefault(ref.part_id, []).append(ref)

    def match(self, row: Any) -> Optional[Any]:
        """Persisted record sharing the row's business key, or None when the row is new."""
        key = key_of(row)
        if key is None:
            return None
        return self._index_for(row).get(key)

    def resolve(self, row: Any) -> Optional[str]:
        """
        Persisted id matching the row's business key.

        Returns:
            The persisted surrogate id, or None when the row is new (or has
            no usable key)
        """
        record = self.match(row)
        return record.id if record is not None else None

    def part(self, acr_sku: Any) -> Optional[PartRecord]:
        key = part_key(acr_sku)
        return self.parts.get(key) if key else None

    def children_of(self, part: PartRecord) -> Tuple[List[VehicleApplicationRecord], List[CrossReferenceRecord]]:
        """Persisted vehicle applications and cross references owned by a part."""
        return (
            list(self._apps_by_part.get(part.id, [])),
            list(self._refs_by_part.get(part.id, [])),
        )

    def _index_for(self, row: Any) -> Dict[Hashable, Any]:
        if hasattr(row, "make") and hasattr(row, "model"):
            return self.vehicle_applications
        if hasattr(row, "competitor_sku"):
            return self.cross_references
        if hasattr(row, "canonical_name"):
            return self.vehicle_aliases
        return self.parts
