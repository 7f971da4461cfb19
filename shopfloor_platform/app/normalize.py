"""Coercion of untyped pour report rows into typed records.

Every stringly-typed rule for the import path lives here. Spreadsheet exports
use ``0`` and blank cells interchangeably for "not recorded", so on this path a
literal ``"0"`` is read as missing rather than as zero.
"""
import math
import re
from datetime import date, datetime
from typing import Any, Mapping

from pydantic import ValidationError

from app.contracts import PourReportRecord, RowError

_MERIDIEM = re.compile(r"AM|PM", re.IGNORECASE)
_TIME_12H = re.compile(r"(?<!\d)(\d{1,2}):(\d{2})(?!\d)\s*(AM|PM)", re.IGNORECASE)
_TIME_24H = re.compile(r"(?<!\d)(\d{1,2}):(\d{2})(?!\d)")
_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")
_LEADING_INT = re.compile(r"^[+-]?\d+")

_TRUE_FLAGS = {"Y", "YES", "TRUE", "1"}

# pour_report integer columns are 32-bit on every supported database
INT_MIN = -(2**31)
INT_MAX = 2**31 - 1

INTEGER_FIELDS = (
    "job_number",
    "cmop",
    "die_number",
    "shift",
    "melter_id",
    "furnace_number",
    "ladle_number",
    "tap_temp",
    "pour_temperature",
    "wash_pass",
    "pour_time_seconds",
    "die_temp_before_pour",
    "die_rpm",
    "spin_time_minutes",
)

FLOAT_FIELDS = (
    "cast_weight",
    "power_percent",
    "liquid_canon",
    "canon_psi",
    "bath_weight_carried_in",
    "rice_hulls_amount",
    "liquid_amount",
    "wash_thickness",
    "baume",
    "cost_per_pound",
)

TEXT_FIELDS = (
    "heat_number",
    "grade_name",
    "stock_code",
    "dash_number",
    "liquid_type",
    "wash_type",
    "full_heat_number",
    "comments",
)

TIME_FIELDS = ("start_time", "tap_time")

# Alternate spellings found in historical exports, first match wins.
FIELD_ALIASES = {
    "pour_date": ("date", "pour_date"),
    "melter_id": ("melter", "melter_id"),
    "pour_temperature": ("pour_tempurature", "pour_temperature"),
    "baume": ("Baume", "baume"),
    "comments": ("Comments", "comments"),
}

MISSING_KEY_MARKERS = {"-"}


def normalize_time(raw: Any) -> str | None:
    """Return ``HH:MM:00`` for ``H:MM`` or ``H:MM AM/PM`` input, else None.

    12-hour input must have an hour of 1-12; 24-hour input an hour of 0-23.
    """
    if raw is None:
        return None
    text = str(raw).strip()
    if text in ("", "0"):
        return None

    if _MERIDIEM.search(text):
        match = _TIME_12H.search(text)
        if not match:
            return None
        hours, minutes = int(match.group(1)), int(match.group(2))
        if not 1 <= hours <= 12 or minutes > 59:
            return None
        period = match.group(3).upper()
        if period == "PM" and hours != 12:
            hours += 12
        elif period == "AM" and hours == 12:
            hours = 0
    else:
        match = _TIME_24H.search(text)
        if not match:
            return None
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            return None

    return f"{hours:02d}:{minutes:02d}:00"


def parse_date(raw: Any) -> date | None:
    """Parse ``MM/DD/YY`` or ``MM/DD/YYYY`` (ISO dates pass through).

    Two-digit years above 50 land in the 1900s, the rest in the 2000s.
    """
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    if not text:
        return None

    parts = [p.strip() for p in text.split("/")]
    if len(parts) == 3:
        month, day, year = parts
        if not (month.isdigit() and day.isdigit() and year.isdigit()):
            return None
        if len(year) == 2:
            year = ("19" if int(year) > 50 else "20") + year
        elif len(year) != 4:
            return None
        try:
            return date(int(year), int(month), int(day))
        except ValueError:
            return None

    try:
        return date.fromisoformat(text)
    except ValueError:
        return None


def _in_range(value: int) -> int | None:
    return value if INT_MIN <= value <= INT_MAX else None


def _numeric_text(raw: Any) -> str | None:
    if raw is None or isinstance(raw, bool):
        return None
    text = str(raw).strip()
    if text in ("", "0"):
        return None
    return text


def parse_number(raw: Any) -> float | None:
    """Leading-float parse where blank, ``"0"`` and garbage all become None."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        value = float(raw)
        return value if math.isfinite(value) and value != 0 else None
    text = _numeric_text(raw)
    if text is None:
        return None
    match = _LEADING_FLOAT.match(text)
    if not match:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def parse_integer(raw: Any) -> int | None:
    """Integer counterpart of :func:`parse_number`; fractions are truncated.

    Values outside the 32-bit column range are treated as unparseable.
    """
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if not math.isfinite(raw) or raw == 0:
            return None
        return _in_range(int(raw))
    text = _numeric_text(raw)
    if text is None:
        return None
    match = _LEADING_INT.match(text)
    if not match:
        return None
    return _in_range(int(match.group(0)))


def parse_flag(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().upper() in _TRUE_FLAGS


def clean_text(raw: Any) -> str | None:
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _pick(raw: Mapping[str, Any], field: str) -> Any:
    for key in FIELD_ALIASES.get(field, (field,)):
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def transform_row(raw: Mapping[str, Any], index: int) -> PourReportRecord | RowError:
    """Turn one raw row into a record, or a RowError when the heat number is absent.

    ``index`` is the zero-based position of the row in the submitted batch.
    """
    row_number = index + 1
    heat_number = clean_text(raw.get("heat_number"))
    if not heat_number:
        return RowError(row=row_number, message=f"Row {row_number}: Missing heat_number")

    values: dict[str, Any] = {}
    for field in TEXT_FIELDS:
        values[field] = clean_text(_pick(raw, field))
    for field in INTEGER_FIELDS:
        values[field] = parse_integer(_pick(raw, field))
    for field in FLOAT_FIELDS:
        values[field] = parse_number(_pick(raw, field))
    for field in TIME_FIELDS:
        values[field] = normalize_time(_pick(raw, field))
    values["pour_date"] = parse_date(_pick(raw, "pour_date"))
    values["new_lining"] = parse_flag(_pick(raw, "new_lining"))

    if values["full_heat_number"] in MISSING_KEY_MARKERS:
        values["full_heat_number"] = None

    try:
        return PourReportRecord(**values)
    except ValidationError as exc:
        return RowError(row=row_number, message=f"Row {row_number}: {exc.errors()[0]['msg']}")


# --- form / API payloads ---

def _lenient_float(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return float(raw) if math.isfinite(raw) else None
    text = str(raw).strip()
    match = _LEADING_FLOAT.match(text)
    if not match:
        return None
    value = float(match.group(0))
    return value if math.isfinite(value) else None


def _lenient_int(raw: Any) -> int | None:
    value = _lenient_float(raw)
    return _in_range(int(value)) if value is not None else None


def build_pour_report_payload(data: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce a form submission, keeping only the keys that were sent.

    Unlike the import path a ``0`` typed into the form is a real zero.
    """
    payload: dict[str, Any] = {}
    for field in TEXT_FIELDS:
        if field in data:
            payload[field] = clean_text(data[field])
    for field in INTEGER_FIELDS:
        if field in data:
            payload[field] = _lenient_int(data[field])
    for field in FLOAT_FIELDS:
        if field in data:
            payload[field] = _lenient_float(data[field])
    for field in TIME_FIELDS:
        if field in data:
            payload[field] = normalize_time(data[field])
    if "pour_date" in data:
        payload["pour_date"] = parse_date(data["pour_date"])
    if "new_lining" in data:
        payload["new_lining"] = parse_flag(data["new_lining"])
    return payload
