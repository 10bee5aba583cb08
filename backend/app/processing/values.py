"""
Typed extracted values.

The LLM returns loosely-typed JSON (strings for everything, sometimes
numbers or booleans). coerce() tags each raw value with the template
field's declared FieldType and converts it once; validators then ask the
TypedValue for a number / date / bool instead of inspecting runtime types.

    raw "$1,000,000"  + NUMBER  → TypedValue(NUMBER, 1000000.0)
    raw "12/31/2030"  + DATE    → TypedValue(DATE, date(2030, 12, 31))
    raw "Yes"         + BOOLEAN → TypedValue(BOOLEAN, True)
    raw "N/A"         + any     → TypedValue(<type>, None, missing=True)

to_stored() is the inverse direction: the JSON value written to
ExtractionField.extracted_value.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

from app.schemas.templates import FieldType

MISSING_MARKERS = frozenset({"", "N/A", "NULL", "NONE"})

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
)

_TRUE_WORDS  = frozenset({"true", "yes", "y", "x", "1"})
_FALSE_WORDS = frozenset({"false", "no", "n", "0"})

_NUMBER_NOISE_RE = re.compile(r"[\s,$]")


# ---------------------------------------------------------------------------
# Scalar parsers
# ---------------------------------------------------------------------------

def is_missing(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return raw.strip().upper() in MISSING_MARKERS
    return False


def parse_number(raw: Any) -> Optional[float]:
    """
    Numbers pass through; strings tolerate "$", "," and whitespace.
    NaN and infinities are not numbers here ("NaN", "inf", float("inf")).
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
    elif isinstance(raw, str):
        try:
            value = float(_NUMBER_NOISE_RE.sub("", raw))
        except ValueError:
            return None
    else:
        return None
    return value if math.isfinite(value) else None


def parse_date(raw: Any) -> Optional[date]:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None

    text = raw.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_bool(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        word = raw.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


# ---------------------------------------------------------------------------
# Tagged value
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TypedValue:
    """
    type    : declared template field type (the tag)
    value   : converted value, None when missing or unparsable
    raw     : what the model returned
    missing : raw was None / "" / "N/A" / "NULL" / "NONE"
    """
    type:    FieldType
    value:   Any
    raw:     Any
    missing: bool = False

    @property
    def parsed(self) -> bool:
        """False when the raw value was present but did not convert."""
        return self.missing or self.value is not None

    def as_number(self) -> Optional[float]:
        if self.type is FieldType.NUMBER:
            return self.value
        return parse_number(self.raw)

    def as_date(self) -> Optional[date]:
        if self.type is FieldType.DATE:
            return self.value
        return parse_date(self.raw)

    def is_true(self) -> bool:
        if self.type is FieldType.BOOLEAN:
            return self.value is True
        return self.raw is True


def coerce(raw: Any, field_type: FieldType | str) -> TypedValue:
    field_type = FieldType(field_type)
    if is_missing(raw):
        return TypedValue(field_type, None, raw, missing=True)

    if field_type is FieldType.NUMBER:
        value: Any = parse_number(raw)
    elif field_type is FieldType.DATE:
        value = parse_date(raw)
    elif field_type is FieldType.BOOLEAN:
        value = parse_bool(raw)
    elif field_type is FieldType.ARRAY:
        value = list(raw) if isinstance(raw, (list, tuple)) else [raw]
    else:
        value = raw if isinstance(raw, str) else str(raw)
    return TypedValue(field_type, value, raw)


def to_stored(typed: TypedValue) -> Any:
    """
    JSON value persisted for a field. Values that did not convert are kept
    in their raw form so a reviewer sees what the model actually returned.
    """
    if typed.missing:
        return None
    if typed.value is None:
        return typed.raw
    if typed.type is FieldType.DATE:
        return typed.value.isoformat()
    if typed.type is FieldType.NUMBER and float(typed.value).is_integer():
        return int(typed.value)
    return typed.value
