from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
import logging
import re

from .errors import ParseError
from .models import BrandCell
from .schema import (
    BRAND_HEADER_VARIANTS,
    DELETE_MARKER,
    FRIENDLY_HEADERS,
    SHEET_PARTS,
    SHEET_PROPERTIES,
    SKU_DELIMITER,
)
from .validation.codes import ValidationErrorCode

logger = logging.getLogger(__name__)

_DELETE_MARKER_RE = re.compile(re.escape(DELETE_MARKER) + r"\s*", re.IGNORECASE)


def _variant_key(header: str) -> str:
    """Lookup key for tier 1/2 headers: collapsed whitespace, lowercase."""
    return " ".join(str(header).split()).lower()


def header_to_property_name(header: str) -> str:
    """Tier 3 fallback: "Part_Type" -> "part_type", "National__SKUs" -> "national_skus"."""
    return re.sub(r"_+", "_", str(header).strip().lower())


class HeaderNormalizer:
    """Maps workbook column headers to canonical property names.

    Three lookup tiers are tried in order so legacy and current exports
    both parse:

    1. Friendly spaced names ("ACR SKU", "Start Year")
    2. Simplified per-brand names ("National", "OEM 2") on the Parts sheet
    3. Underscore-normalized fallback ("ACR_SKU", "National_SKUs")

    The tier tables are checked when the normalizer is built: a variant
    claimed by two properties is a programming error and raises ValueError.
    """

    def __init__(self):
        self._variation_to_property: Dict[str, Dict[str, str]] = {}
        for sheet, properties in SHEET_PROPERTIES.items():
            lookup: Dict[str, str] = {}
            tiers = [FRIENDLY_HEADERS.get(sheet, {})]
            if sheet == SHEET_PARTS:
                tiers.append(BRAND_HEADER_VARIANTS)

            for table in tiers:
                for variant, prop in table.items():
                    if prop not in properties:
                        raise ValueError(
                            f"Header '{variant}' maps to '{prop}', which is not a "
                            f"{sheet} property"
                        )
                    key = _variant_key(variant)
                    if key in lookup and lookup[key] != prop:
                        raise ValueError(
                            f"Header '{variant}' on {sheet} maps to both "
                            f"'{lookup[key]}' and '{prop}'"
                        )
                    lookup[key] = prop

            self._variation_to_property[sheet] = lookup

    def normalize_header(self, header: Any, sheet: str) -> Optional[str]:
        """Resolve one header to a property of the given sheet.

        Args:
            header: Raw header cell value
            sheet: Sheet name (selects the lookup tables)

        Returns:
            Canonical property name, or None if the header is blank or unknown
        """
        if header is None or not str(header).strip():
            return None

        lookup = self._variation_to_property.get(sheet, {})
        prop = lookup.get(_variant_key(header))
        if prop:
            return prop

        fallback = header_to_property_name(header)
        if fallback in SHEET_PROPERTIES.get(sheet, []):
            return fallback

        return None

    def map_headers(self, headers: List[Any], sheet: str) -> Tuple[List[Optional[str]], List[str]]:
        """Map a sheet's header row to properties, one per column.

        Args:
            headers: Header cells in column order
            sheet: Sheet name

        Returns:
            (column_properties, unmapped_headers): column_properties[i] is the
            property for column i or None; unmapped_headers lists non-blank
            headers that matched nothing

        Raises:
            ParseError: E11 when two columns resolve to the same property
        """
        column_properties: List[Optional[str]] = []
        unmapped: List[str] = []
        seen: Dict[str, str] = {}

        for header in headers:
            prop = self.normalize_header(header, sheet)
            if prop is None:
                if header is not None and str(header).strip():
                    unmapped.append(str(header).strip())
                column_properties.append(None)
                continue

            if prop in seen:
                raise ParseError(
                    ValidationErrorCode.E11_DUPLICATE_HEADER_COLUMNS,
                    f"Columns '{seen[prop]}' and '{str(header).strip()}' on sheet "
                    f"'{sheet}' both map to '{prop}'",
                    sheet=sheet,
                    column=str(header).strip(),
                )
            seen[prop] = str(header).strip()
            column_properties.append(prop)

        if unmapped:
            logger.debug(f"Ignoring unknown columns on '{sheet}': {unmapped}")

        return column_properties, unmapped


# =============================================================================
# CELL VALUES
# =============================================================================

def clean_text(value: Any) -> Optional[str]:
    """Cell value as trimmed text; None for blanks.

    Integral floats lose their ".0" so numeric SKUs read back the way they
    were typed ("12345", not "12345.0").
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def coerce_int(value: Any) -> Optional[int]:
    """Interpret a cell as an integer.

    Returns None for blanks.

    Raises:
        ValueError: If the value is not a whole number
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Not a whole number: {value!r}")
        return int(value)

    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        raise ValueError(f"Not a number: {value!r}")
    if not number.is_integer():
        raise ValueError(f"Not a whole number: {value!r}")
    return int(number)


def split_cross_ref_skus(value: Any) -> Tuple[List[str], bool]:
    """Split a brand cell into SKU tokens.

    A cell containing ';' always splits on ';'. Otherwise whitespace is the
    legacy delimiter: more than one whitespace-separated token flags the
    cell as legacy.

    Returns:
        (tokens, legacy_delimiter)
    """
    text = clean_text(value)
    if text is None:
        return [], False

    # "[DELETE] NAT-1" is one token, not a legacy two-token cell
    text = _DELETE_MARKER_RE.sub(DELETE_MARKER, text)

    if SKU_DELIMITER in text:
        tokens = [t.strip() for t in text.split(SKU_DELIMITER)]
        return [t for t in tokens if t], False

    tokens = text.split()
    return tokens, len(tokens) > 1


def parse_brand_cell(value: Any) -> BrandCell:
    """Turn a brand cell into keep/delete SKU lists.

    A delete marker on the first token applies to the whole cell. Anywhere
    else it applies to the token it prefixes only:

        "[DELETE]NAT-1;NAT-2"      -> keep [], delete [NAT-1, NAT-2]
        "NAT-1;[DELETE]NAT-2;NAT-3" -> keep [NAT-1, NAT-3], delete [NAT-2]

    Duplicate tokens are collapsed, first occurrence wins.
    """
    tokens, legacy = split_cross_ref_skus(value)
    cell = BrandCell(legacy_delimiter=legacy, raw=clean_text(value))

    delete_all = False
    for index, token in enumerate(tokens):
        marked = token.upper().startswith(DELETE_MARKER)
        if marked:
            token = token[len(DELETE_MARKER):].strip()
            delete_all = delete_all or index == 0
            if not token:
                continue

        target = cell.delete if marked or delete_all else cell.keep
        if token not in cell.keep and token not in cell.delete:
            target.append(token)

    return cell
