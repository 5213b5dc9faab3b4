"""
Upload validation.

Rules run in a fixed order:

1. File rules: required headers per sheet (E12) and encoding corruption
   (E17). A sheet with a file-level error skips its row rules.
2. Row rules: one ordered list per sheet (required fields, lengths,
   formats, status, duplicates, internal ids, years, referential checks,
   then change warnings). Every rule sees every row; issues are collected,
   never abort-on-first.
3. Delete notices: one warning per part, vehicle application, cross
   reference and alias the upload removes, cascades included, so the
   caller can show an accurate "N related records will also be removed"
   summary before the user confirms.

Errors block apply. Warnings never block but must be acknowledged.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from ..diff.catalog_diff import DeletePolicy, DiffResult, diff_catalog, normalize_empty
from ..errors import ParseError
from ..keys import (
    BusinessKeyResolver,
    cross_reference_key,
    part_key,
    vehicle_alias_key,
    vehicle_application_key,
)
from ..models import CatalogState, ParseResult, PartRow, VehicleAliasRow, VehicleApplicationRow
from ..normalizer import coerce_int
from ..schema import (
    ALIAS_TYPES,
    BRAND_COLUMN_MAP,
    GENERAL_SHEET,
    MAX_LENGTHS,
    MAX_YEAR_OFFSET,
    MIN_YEAR,
    REQUIRED_FIELDS,
    SHEET_PARTS,
    SHEET_VEHICLE_ALIASES,
    SHEET_VEHICLE_APPLICATIONS,
    SKU_DELIMITER,
    SPECIFICATIONS_SHORTENED_RATIO,
    STATUS_DELETE,
    UUID_PATTERN,
)
from .codes import FILE_LEVEL_ERROR_CODES, Severity, ValidationErrorCode, ValidationWarningCode

logger = logging.getLogger(__name__)

_UUID_RE = re.compile(UUID_PATTERN, re.IGNORECASE)

# Fields that identify a row; the only required fields on an Eliminar row
KEY_FIELDS = {
    SHEET_PARTS: ["acr_sku"],
    SHEET_VEHICLE_APPLICATIONS: ["acr_sku", "make", "model"],
    SHEET_VEHICLE_ALIASES: ["alias", "canonical_name"],
}


@dataclass(frozen=True)
class ValidationIssue:
    """One error or warning, located as precisely as the rule allows."""
    code: Enum
    severity: Severity
    message: str
    sheet: Optional[str] = None
    row: Optional[int] = None
    column: Optional[str] = None
    value: Any = None
    expected: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "sheet": self.sheet,
            "row": self.row,
            "column": self.column,
            "value": self.value,
            "expected": self.expected,
        }


def _error(code: ValidationErrorCode, message: str, **location) -> ValidationIssue:
    return ValidationIssue(code, Severity.ERROR, message, **location)


def _warning(code: ValidationWarningCode, message: str, **location) -> ValidationIssue:
    return ValidationIssue(code, Severity.WARNING, message, **location)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one upload. valid is False when any error exists."""
    errors: Tuple[ValidationIssue, ...] = ()
    warnings: Tuple[ValidationIssue, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "totalErrors": len(self.errors),
            "totalWarnings": len(self.warnings),
            "errorsBySheet": _count_by_sheet(self.errors),
            "warningsBySheet": _count_by_sheet(self.warnings),
        }

    def codes(self) -> List[str]:
        return [i.code.value for i in self.errors + self.warnings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [i.to_dict() for i in self.errors],
            "warnings": [i.to_dict() for i in self.warnings],
            "summary": self.summary,
        }


def _count_by_sheet(issues: Tuple[ValidationIssue, ...]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for issue in issues:
        sheet = issue.sheet or GENERAL_SHEET
        counts[sheet] = counts.get(sheet, 0) + 1
    return counts


def validation_result_from_parse_error(err: ParseError) -> ValidationResult:
    """Wrap a fatal parse failure as a one-error result."""
    return ValidationResult(errors=(
        _error(err.code, err.message, sheet=err.sheet, column=err.column),
    ))


# =============================================================================
# RULE CONTEXT
# =============================================================================

@dataclass
class RuleContext:
    """Everything row rules may consult; built once per validation."""
    parsed: ParseResult
    state: CatalogState
    resolver: BusinessKeyResolver
    diff: DiffResult
    min_year: int
    max_year: int
    upload_part_skus: Set[str] = field(default_factory=set)
    part_ids: Dict[str, Any] = field(default_factory=dict)
    vehicle_application_ids: Dict[str, Any] = field(default_factory=dict)
    vehicle_alias_ids: Dict[str, Any] = field(default_factory=dict)


Rule = Callable[[RuleContext, list], List[ValidationIssue]]


def _value(row: Any, name: str) -> Any:
    return getattr(row, name, None)


def _is_delete(row: Any) -> bool:
    return row.workflow_status == STATUS_DELETE


# =============================================================================
# SHARED ROW RULES
# =============================================================================

def _required_fields_rule(sheet: str) -> Rule:
    def rule(ctx: RuleContext, rows: list) -> List[ValidationIssue]:
        issues = []
        for row in rows:
            required = KEY_FIELDS[sheet] if _is_delete(row) else REQUIRED_FIELDS[sheet]
            for name in required:
                if normalize_empty(_value(row, name)) is None:
                    issues.append(_error(
                        ValidationErrorCode.E3_EMPTY_REQUIRED_FIELD,
                        f"Required field '{name}' is empty",
                        sheet=sheet, row=row.row_number, column=name,
                    ))
        return issues
    return rule


def _length_rule(sheet: str) -> Rule:
    def rule(ctx: RuleContext, rows: list) -> List[ValidationIssue]:
        issues = []
        for row in rows:
            for name, limit in MAX_LENGTHS.items():
                value = _value(row, name)
                if isinstance(value, str) and len(value) > limit:
                    issues.append(_error(
                        ValidationErrorCode.E7_STRING_EXCEEDS_MAX_LENGTH,
                        f"'{name}' is {len(value)} characters; maximum is {limit}",
                        sheet=sheet, row=row.row_number, column=name, value=value,
                        expected=f"<= {limit} characters",
                    ))
        return issues
    return rule


def _status_rule(sheet: str, allowed: List[str]) -> Rule:
    def rule(ctx: RuleContext, rows: list) -> List[ValidationIssue]:
        return [
            _error(
                ValidationErrorCode.E21_INVALID_STATUS_VALUE,
                f"Invalid status '{row.status}'",
                sheet=sheet, row=row.row_number, column="status", value=row.status,
                expected="|".join(allowed),
            )
            for row in rows
            if row.workflow_status is None
        ]
    return rule


def _acr_sku_format_rule(sheet: str) -> Rule:
    def rule(ctx: RuleContext, rows: list) -> List[ValidationIssue]:
        issues = []
        for row in rows:
            sku = row.acr_sku
            if sku and (SKU_DELIMITER in sku or any(c.isspace() for c in sku)):
                issues.append(_error(
                    ValidationErrorCode.E20_INVALID_ACR_SKU_FORMAT,
                    f"ACR SKU '{sku}' must not contain spaces or '{SKU_DELIMITER}'",
                    sheet=sheet, row=row.row_number, column="acr_sku", value=sku,
                ))
        return issues
    return rule


def _duplicate_rule(sheet: str, key_fn: Callable[[Any], Optional[tuple]], code: ValidationErrorCode) -> Rule:
    def rule(ctx: RuleContext, rows: list) -> List[ValidationIssue]:
        issues = []
        first_seen: Dict[tuple, int] = {}
        for row in rows:
            key = key_fn(row)
            if key is None:
                continue
            if key in first_seen:
                issues.append(_error(
                    code,
                    f"Duplicate key {' / '.join(key)} (first seen on row {first_seen[key]})",
                    sheet=sheet, row=row.row_number, value=" / ".join(key),
                ))
            else:
                first_seen[key] = row.row_number
        return issues
    return rule


def _internal_id_rule(sheet: str, id_attr: str, column: str, known_ids: Callable[[RuleContext], Dict[str, Any]]) -> Rule:
    """Legacy _id/_part_id columns: UUID shape (E4), then existence (E19)."""
    def rule(ctx: RuleContext, rows: list) -> List[ValidationIssue]:
        issues = []
        ids = known_ids(ctx)
        for row in rows:
            value = _value(row, id_attr)
            if value is None:
                continue
            if not _UUID_RE.match(value):
                issues.append(_error(
                    ValidationErrorCode.E4_INVALID_UUID_FORMAT,
                    f"'{value}' is not a valid UUID",
                    sheet=sheet, row=row.row_number, column=column, value=value,
                    expected="xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx",
                ))
            elif value.lower() not in ids:
                issues.append(_error(
                    ValidationErrorCode.E19_UUID_NOT_IN_DATABASE,
                    f"Internal id '{value}' does not exist in the catalog",
                    sheet=sheet, row=row.row_number, column=column, value=value,
                ))
        return issues
    return rule


# =============================================================================
# PARTS RULES
# =============================================================================

def _cross_reference_sku_rule(ctx: RuleContext, rows: List[PartRow]) -> List[ValidationIssue]:
    """E7 for long competitor SKUs; E20 for new SKUs with inner whitespace."""
    issues = []
    limit = MAX_LENGTHS["competitor_sku"]
    for row in rows:
        for prop, cell in row.cross_references.items():
            for sku in cell.keep + cell.delete:
                if len(sku) > limit:
                    issues.append(_error(
                        ValidationErrorCode.E7_STRING_EXCEEDS_MAX_LENGTH,
                        f"{BRAND_COLUMN_MAP[prop]} SKU '{sku}' is {len(sku)} characters; "
                        f"maximum is {limit}",
                        sheet=SHEET_PARTS, row=row.row_number, column=prop, value=sku,
                        expected=f"<= {limit} characters",
                    ))
            # SKUs already stored with a space stay valid so exports re-import
            for sku in cell.keep:
                if not any(c.isspace() for c in sku):
                    continue
                ref_key = cross_reference_key(row.acr_sku, BRAND_COLUMN_MAP[prop], sku)
                if ref_key is None or ref_key not in ctx.resolver.cross_references:
                    issues.append(_error(
                        ValidationErrorCode.E20_INVALID_ACR_SKU_FORMAT,
                        f"{BRAND_COLUMN_MAP[prop]} SKU '{sku}' must not contain spaces",
                        sheet=SHEET_PARTS, row=row.row_number, column=prop, value=sku,
                    ))
    return issues


def _part_change_warnings(ctx: RuleContext, rows: List[PartRow]) -> List[ValidationIssue]:
    """W3/W4/W7 for persisted parts the upload edits."""
    issues = []
    for row in rows:
        if row.workflow_status is None or _is_delete(row):
            continue
        record = ctx.resolver.match(row)
        if record is None:
            continue

        old_type, new_type = normalize_empty(record.part_type), normalize_empty(row.part_type)
        if old_type != new_type:
            issues.append(_warning(
                ValidationWarningCode.W3_PART_TYPE_CHANGED,
                f"Part type of {record.acr_sku} changes from '{old_type}' to '{new_type}'",
                sheet=SHEET_PARTS, row=row.row_number, column="part_type", value=new_type,
            ))

        old_position, new_position = normalize_empty(record.position_type), normalize_empty(row.position_type)
        if old_position != new_position:
            issues.append(_warning(
                ValidationWarningCode.W4_POSITION_TYPE_CHANGED,
                f"Position of {record.acr_sku} changes from '{old_position}' to '{new_position}'",
                sheet=SHEET_PARTS, row=row.row_number, column="position_type", value=new_position,
            ))

        old_specs = normalize_empty(record.specifications) or ""
        new_specs = normalize_empty(row.specifications) or ""
        if old_specs and len(new_specs) < len(old_specs) * SPECIFICATIONS_SHORTENED_RATIO:
            issues.append(_warning(
                ValidationWarningCode.W7_SPECIFICATIONS_SHORTENED,
                f"Specifications of {record.acr_sku} shrink from {len(old_specs)} to "
                f"{len(new_specs)} characters",
                sheet=SHEET_PARTS, row=row.row_number, column="specifications",
            ))
    return issues


def _part_legacy_id_warnings(ctx: RuleContext, rows: List[PartRow]) -> List[ValidationIssue]:
    """W1: an old export row whose _id points at a part with a different SKU."""
    issues = []
    for row in rows:
        if row.internal_id is None or row.acr_sku is None:
            continue
        record = ctx.part_ids.get(row.internal_id.lower())
        if record is not None and record.acr_sku != row.acr_sku.strip():
            issues.append(_warning(
                ValidationWarningCode.W1_ACR_SKU_CHANGED,
                f"Row _id belongs to {record.acr_sku}; this row will be matched as "
                f"{row.acr_sku} instead",
                sheet=SHEET_PARTS, row=row.row_number, column="acr_sku", value=row.acr_sku,
            ))
    return issues


def _legacy_delimiter_warnings(ctx: RuleContext, rows: List[PartRow]) -> List[ValidationIssue]:
    return [
        _warning(
            ValidationWarningCode.W11_LEGACY_SKU_DELIMITER,
            f"{BRAND_COLUMN_MAP[prop]} cell uses spaces between SKUs; use "
            f"'{SKU_DELIMITER}' instead",
            sheet=SHEET_PARTS, row=row.row_number, column=prop, value=cell.raw,
        )
        for row in rows
        for prop, cell in row.cross_references.items()
        if cell.legacy_delimiter
    ]


# =============================================================================
# VEHICLE APPLICATION RULES
# =============================================================================

def _year_rule(ctx: RuleContext, rows: List[VehicleApplicationRow]) -> List[ValidationIssue]:
    """E9 unparseable, E8 implausible, E6 start after end."""
    issues = []
    for row in rows:
        years = {}
        for name in ("start_year", "end_year"):
            raw = _value(row, name)
            try:
                years[name] = coerce_int(raw)
            except ValueError:
                issues.append(_error(
                    ValidationErrorCode.E9_INVALID_NUMBER_FORMAT,
                    f"'{name}' must be a whole number, got '{raw}'",
                    sheet=SHEET_VEHICLE_APPLICATIONS, row=row.row_number, column=name,
                    value=raw, expected="integer",
                ))
                years[name] = None
                continue
            year = years[name]
            if year is not None and not ctx.min_year <= year <= ctx.max_year:
                issues.append(_error(
                    ValidationErrorCode.E8_YEAR_OUT_OF_RANGE,
                    f"'{name}' {year} is outside {ctx.min_year}-{ctx.max_year}",
                    sheet=SHEET_VEHICLE_APPLICATIONS, row=row.row_number, column=name,
                    value=year, expected=f"{ctx.min_year}-{ctx.max_year}",
                ))

        start, end = years["start_year"], years["end_year"]
        if start is not None and end is not None and start > end:
            issues.append(_error(
                ValidationErrorCode.E6_INVALID_YEAR_RANGE,
                f"Start year {start} is after end year {end}",
                sheet=SHEET_VEHICLE_APPLICATIONS, row=row.row_number, column="start_year",
                value=start, expected=f"<= {end}",
            ))
    return issues


def _orphan_rule(ctx: RuleContext, rows: List[VehicleApplicationRow]) -> List[ValidationIssue]:
    """E5 for a row whose part is neither uploaded nor persisted.

    Rows under a part this upload deletes are left to the cascade (W6).
    """
    issues = []
    for row in rows:
        key = part_key(row.acr_sku)
        if key is None or row.workflow_status is None:
            continue
        sku = key[0]
        if sku not in ctx.upload_part_skus and ctx.resolver.part(sku) is None:
            issues.append(_error(
                ValidationErrorCode.E5_ORPHANED_FOREIGN_KEY,
                f"ACR SKU '{sku}' does not exist in the Parts sheet or the catalog",
                sheet=SHEET_VEHICLE_APPLICATIONS, row=row.row_number, column="acr_sku", value=sku,
            ))
    return issues


def _vehicle_application_change_warnings(ctx: RuleContext, rows: List[VehicleApplicationRow]) -> List[ValidationIssue]:
    """W2 narrowed year range; W8/W9 for legacy _id rows pointing elsewhere."""
    issues = []
    for row in rows:
        if row.workflow_status is None or _is_delete(row):
            continue

        record = ctx.resolver.match(row)
        if record is not None:
            try:
                start, end = coerce_int(row.start_year), coerce_int(row.end_year)
            except ValueError:
                start = end = None
            narrowed = (
                (start is not None and record.start_year is not None and start > record.start_year)
                or (end is not None and record.end_year is not None and end < record.end_year)
            )
            if narrowed:
                issues.append(_warning(
                    ValidationWarningCode.W2_YEAR_RANGE_NARROWED,
                    f"{record.make} {record.model} on {record.acr_sku} narrows from "
                    f"{record.start_year}-{record.end_year} to {start}-{end}",
                    sheet=SHEET_VEHICLE_APPLICATIONS, row=row.row_number, column="start_year",
                ))

        if row.internal_id is None:
            continue
        legacy = ctx.vehicle_application_ids.get(row.internal_id.lower())
        if legacy is None:
            continue
        if row.make and legacy.make != row.make.strip():
            issues.append(_warning(
                ValidationWarningCode.W8_VEHICLE_MAKE_CHANGED,
                f"Row _id belongs to make '{legacy.make}'; this row says '{row.make}'",
                sheet=SHEET_VEHICLE_APPLICATIONS, row=row.row_number, column="make", value=row.make,
            ))
        if row.model and legacy.model != row.model.strip():
            issues.append(_warning(
                ValidationWarningCode.W9_VEHICLE_MODEL_CHANGED,
                f"Row _id belongs to model '{legacy.model}'; this row says '{row.model}'",
                sheet=SHEET_VEHICLE_APPLICATIONS, row=row.row_number, column="model", value=row.model,
            ))
    return issues


# =============================================================================
# VEHICLE ALIAS RULES
# =============================================================================

def _alias_type_rule(ctx: RuleContext, rows: List[VehicleAliasRow]) -> List[ValidationIssue]:
    return [
        _error(
            ValidationErrorCode.E22_INVALID_ALIAS_TYPE,
            f"Invalid alias type '{row.alias_type}'",
            sheet=SHEET_VEHICLE_ALIASES, row=row.row_number, column="alias_type",
            value=row.alias_type, expected="|".join(ALIAS_TYPES),
        )
        for row in rows
        if row.alias_type is not None and row.alias_type.strip().lower() not in ALIAS_TYPES
    ]


# =============================================================================
# RULE TABLES (order is significant)
# =============================================================================

PART_RULES: List[Rule] = [
    _required_fields_rule(SHEET_PARTS),
    _length_rule(SHEET_PARTS),
    _cross_reference_sku_rule,
    _status_rule(SHEET_PARTS, ["Activo", "Inactivo", "Eliminar"]),
    _acr_sku_format_rule(SHEET_PARTS),
    _duplicate_rule(SHEET_PARTS, lambda r: part_key(r.acr_sku), ValidationErrorCode.E2_DUPLICATE_ACR_SKU),
    _internal_id_rule(SHEET_PARTS, "internal_id", "_id", lambda ctx: ctx.part_ids),
    _part_change_warnings,
    _part_legacy_id_warnings,
    _legacy_delimiter_warnings,
]

VEHICLE_APPLICATION_RULES: List[Rule] = [
    _required_fields_rule(SHEET_VEHICLE_APPLICATIONS),
    _length_rule(SHEET_VEHICLE_APPLICATIONS),
    _status_rule(SHEET_VEHICLE_APPLICATIONS, ["Activo", "Eliminar"]),
    _acr_sku_format_rule(SHEET_VEHICLE_APPLICATIONS),
    _duplicate_rule(
        SHEET_VEHICLE_APPLICATIONS,
        lambda r: vehicle_application_key(r.acr_sku, r.make, r.model),
        ValidationErrorCode.E23_DUPLICATE_BUSINESS_KEY,
    ),
    _internal_id_rule(SHEET_VEHICLE_APPLICATIONS, "internal_id", "_id", lambda ctx: ctx.vehicle_application_ids),
    _internal_id_rule(SHEET_VEHICLE_APPLICATIONS, "part_internal_id", "_part_id", lambda ctx: ctx.part_ids),
    _year_rule,
    _orphan_rule,
    _vehicle_application_change_warnings,
]

VEHICLE_ALIAS_RULES: List[Rule] = [
    _required_fields_rule(SHEET_VEHICLE_ALIASES),
    _length_rule(SHEET_VEHICLE_ALIASES),
    _status_rule(SHEET_VEHICLE_ALIASES, ["Activo", "Eliminar"]),
    _alias_type_rule,
    _duplicate_rule(
        SHEET_VEHICLE_ALIASES,
        lambda r: vehicle_alias_key(r.alias, r.canonical_name),
        ValidationErrorCode.E23_DUPLICATE_BUSINESS_KEY,
    ),
    _internal_id_rule(SHEET_VEHICLE_ALIASES, "internal_id", "_id", lambda ctx: ctx.vehicle_alias_ids),
]


# =============================================================================
# ENGINE
# =============================================================================

class ValidationEngine:
    """
    Runs file rules, row rules and delete notices over a parsed upload.

    Args:
        current_year: Override for the year plausibility window (tests)
        debug: Log per-rule issue counts
    """

    def __init__(self, current_year: Optional[int] = None, debug: bool = False):
        self.current_year = current_year or datetime.now().year
        self.debug = debug

    def validate(
        self,
        parsed: ParseResult,
        state: CatalogState,
        diff: Optional[DiffResult] = None,
        delete_policy: DeletePolicy = DeletePolicy.ABSENCE_IMPLIES_DELETE
    ) -> ValidationResult:
        """
        Validate an upload against the persisted catalog.

        Args:
            parsed: Parsed upload
            state: Persisted catalog
            diff: Diff of the same upload, computed here when omitted; its
                  deletes drive the cascade notices
            delete_policy: Used only when the diff is computed here

        Returns:
            ValidationResult
        """
        if diff is None:
            diff = diff_catalog(parsed, state, delete_policy)

        issues: List[ValidationIssue] = []

        # Step 1: file rules
        blocked = self._file_rules(parsed, issues)

        # Step 2: row rules
        ctx = self._build_context(parsed, state, diff)
        sheets = [
            (SHEET_PARTS, parsed.parts, PART_RULES),
            (SHEET_VEHICLE_APPLICATIONS, parsed.vehicle_applications, VEHICLE_APPLICATION_RULES),
        ]
        if parsed.vehicle_aliases is not None:
            sheets.append((SHEET_VEHICLE_ALIASES, parsed.vehicle_aliases, VEHICLE_ALIAS_RULES))

        for sheet, rows, rules in sheets:
            if sheet in blocked:
                logger.info(f"Skipping row rules for '{sheet}' after file-level errors")
                continue
            for rule in rules:
                found = rule(ctx, rows)
                if self.debug and found:
                    logger.info(f"{sheet}: {getattr(rule, '__name__', 'rule')} raised {len(found)} issue(s)")
                issues.extend(found)

        # Step 3: delete notices (meaningless when a sheet could not be read)
        if not blocked:
            issues.extend(self._delete_notices(diff))

        result = ValidationResult(
            errors=tuple(i for i in issues if i.severity == Severity.ERROR),
            warnings=tuple(i for i in issues if i.severity == Severity.WARNING),
        )
        logger.info(
            f"Validation {'passed' if result.valid else 'failed'}: "
            f"{len(result.errors)} errors, {len(result.warnings)} warnings"
        )
        return result

    def _file_rules(self, parsed: ParseResult, issues: List[ValidationIssue]) -> Set[str]:
        """E12 and E17; returns the sheets whose row rules must be skipped."""
        found_issues: List[ValidationIssue] = []

        for sheet, missing in parsed.missing_headers.items():
            for name in missing:
                found_issues.append(_error(
                    ValidationErrorCode.E12_MISSING_REQUIRED_HEADERS,
                    f"Sheet '{sheet}' is missing required column '{name}'",
                    sheet=sheet, column=name,
                ))

        for found in parsed.encoding_issues:
            found_issues.append(_error(
                ValidationErrorCode.E17_ENCODING_ERROR,
                f"Unreadable characters in '{found['column']}'; re-save the file as UTF-8",
                sheet=found["sheet"], row=found["row"], column=found["column"],
                value=found["value"],
            ))

        issues.extend(found_issues)
        return {
            i.sheet for i in found_issues
            if i.code in FILE_LEVEL_ERROR_CODES and i.sheet is not None
        }

    def _build_context(self, parsed: ParseResult, state: CatalogState, diff: DiffResult) -> RuleContext:
        ctx = RuleContext(
            parsed=parsed,
            state=state,
            resolver=BusinessKeyResolver(state),
            diff=diff,
            min_year=MIN_YEAR,
            max_year=self.current_year + MAX_YEAR_OFFSET,
        )
        ctx.upload_part_skus = {
            key[0] for key in (part_key(r.acr_sku) for r in parsed.parts) if key
        }
        ctx.part_ids = {str(p.id).lower(): p for p in state.parts if p.id}
        ctx.vehicle_application_ids = {
            str(v.id).lower(): v for v in state.vehicle_applications if v.id
        }
        ctx.vehicle_alias_ids = {str(a.id).lower(): a for a in state.vehicle_aliases if a.id}
        return ctx

    def _delete_notices(self, diff: DiffResult) -> List[ValidationIssue]:
        """One warning per record the diff removes (W13, W6, W5, W12)."""
        notices = []

        for entry in diff.parts.deletes:
            apps = [e for e in diff.vehicle_applications.deletes if e.cascade and e.key[0] == entry.key[0]]
            refs = [e for e in diff.cross_references.deletes if e.cascade and e.key[0] == entry.key[0]]
            reason = "marked Eliminar" if entry.row_number else "missing from the upload"
            notices.append(_warning(
                ValidationWarningCode.W13_PART_DELETED,
                f"Part {entry.key[0]} will be deleted ({reason}) with {len(apps)} vehicle "
                f"application(s) and {len(refs)} cross reference(s)",
                sheet=SHEET_PARTS, row=entry.row_number, column="acr_sku", value=entry.key[0],
            ))

        for entry in diff.vehicle_applications.deletes:
            acr_sku, make, model = entry.key
            cause = f"part {acr_sku} is deleted" if entry.cascade else "marked Eliminar"
            notices.append(_warning(
                ValidationWarningCode.W6_VEHICLE_APPLICATION_DELETED,
                f"Vehicle application {make} {model} on {acr_sku} will be deleted ({cause})",
                sheet=SHEET_VEHICLE_APPLICATIONS, row=entry.row_number,
                value=" / ".join(entry.key),
            ))

        for entry in diff.cross_references.deletes:
            acr_sku, brand, sku = entry.key
            cause = f"part {acr_sku} is deleted" if entry.cascade else "marked [DELETE]"
            notices.append(_warning(
                ValidationWarningCode.W5_CROSS_REFERENCE_DELETED,
                f"Cross reference {brand} {sku} on {acr_sku} will be deleted ({cause})",
                sheet=SHEET_PARTS, row=entry.row_number, value=sku,
            ))

        for entry in diff.vehicle_aliases.deletes:
            alias, canonical = entry.key
            notices.append(_warning(
                ValidationWarningCode.W12_VEHICLE_ALIAS_DELETED,
                f"Alias '{alias}' for '{canonical}' will be deleted",
                sheet=SHEET_VEHICLE_ALIASES, row=entry.row_number, value=alias,
            ))

        return notices
