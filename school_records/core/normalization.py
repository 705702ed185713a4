"""
Row-level parsing helpers shared by bulk imports, rollover and the CRUD endpoints.

Spreadsheet-derived payloads arrive loosely typed (numbers as strings, ids as floats,
blank cells as ""), so these helpers never raise: they return None for "absent or
invalid" and let the caller decide whether that rejects a row or the whole request.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Mapping, Optional

ISO_MONTH_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
ISO_DATE_PREFIX_RE = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])-\d{2}")
FIRST_NUMBER_RE = re.compile(r"[0-9]+")

TRUTHY_STRINGS = ("true", "1", "yes", "on")

# Integer primary keys are 32-bit signed columns
MAX_ID = 2**31 - 1


def as_mapping(entry: Any) -> Mapping[str, Any]:
    return entry if isinstance(entry, Mapping) else {}


def coerce_str(value: Any) -> str:
    """Trimmed string form of a cell value; "" when absent."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    # Spreadsheet ids often come through as 1001.0
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def coerce_number(value: Any) -> Optional[float]:
    """Finite number from an int/float/numeric string. None for absent, blank, NaN or Infinity."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def coerce_id(value: Any) -> Optional[int]:
    """Integer primary key from a loosely typed value. Fractional or out-of-range numbers are not ids."""
    number = coerce_number(value)
    if number is None or not number.is_integer() or abs(number) > MAX_ID:
        return None
    return int(number)


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def parse_date(value: Any) -> Optional[date]:
    """Date from "YYYY-MM-DD" or an ISO datetime string ("2025-09-01T00:00:00Z")."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def normalize_month(value: Any) -> Optional[str]:
    """
    Canonical monitoring month.

    "YYYY-MM" is returned as is, "YYYY-MM-DD..." is truncated to "YYYY-MM". Anything
    else non-blank is a legacy label ("Yanvar", "1-oy", "2024-13") and is returned
    trimmed but otherwise untouched.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    if ISO_MONTH_RE.match(trimmed):
        return trimmed
    if ISO_DATE_PREFIX_RE.match(trimmed):
        return trimmed[:7]
    return trimmed


def month_to_date(month: str) -> Optional[date]:
    match = ISO_MONTH_RE.match(month)
    if not match:
        return None
    return date(int(match.group(1)), int(match.group(2)), 1)


def _first_of_month(value: date) -> date:
    return date(value.year, value.month, 1)


def is_month_within_study_year(month: str, study_year: Any) -> bool:
    """
    True when an ISO month falls inside the study year, compared at month granularity
    with both ends inclusive. Legacy labels are not range checked.
    """
    month_date = month_to_date(month)
    if month_date is None:
        return True
    start = _first_of_month(study_year.start_date)
    end = _first_of_month(study_year.end_date)
    return start <= month_date <= end


def parse_first_number(text: str) -> Optional[int]:
    match = FIRST_NUMBER_RE.search(text)
    if not match:
        return None
    return int(match.group(0))


def increment_first_number_in_text(text: str) -> Optional[str]:
    """ "Grade 7" -> "Grade 8", "10-B" -> "11-B". None when the text has no digits."""
    match = FIRST_NUMBER_RE.search(text)
    if not match:
        return None
    start, end = match.span()
    return f"{text[:start]}{int(match.group(0)) + 1}{text[end:]}"


def shift_date_by_years(value: date, years: int) -> date:
    """Same month/day `years` later. Feb 29 lands on Feb 28 when the target year is not leap."""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)
