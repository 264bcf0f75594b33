"""
field_normalizer.py — raw cell → typed output field
====================================================
Pure, total functions. None of them raise: unparsable input yields ``None``
(or the ``INVALID_DATE_RANGE`` sentinel for date ranges) so a malformed cell
costs one field, never the row.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, NamedTuple, Optional, Tuple, Union

import pandas as pd

from sheet_grid import clean, is_blank

_DATE_FMTS = [
    "%d/%m/%Y", "%m/%d/%Y", "%Y-%m-%d", "%d-%m-%Y",
    "%Y/%m/%d", "%d.%m.%Y", "%m.%d.%Y",
    "%d/%m/%y", "%m/%d/%y",
]

_MONTHS = {
    "JAN": 1, "FEB": 2, "MAR": 3, "APR": 4, "MAY": 5, "JUN": 6,
    "JUL": 7, "AUG": 8, "SEP": 9, "OCT": 10, "NOV": 11, "DEC": 12,
}

_DATE_RANGE_RE = re.compile(r"(\d{1,2})\s*-\s*(\d{1,2})\s*([A-Za-z]{3})\.?\s*(\d{4})")
_TIME_WINDOW_RE = re.compile(r"(\d{1,2}:\d{2})\s*<\s*ETD\s*<\s*(\d{1,2}:\d{2})", re.IGNORECASE)
_MENU_ID_RE = re.compile(r"MENU\s*([A-Z0-9]+)", re.IGNORECASE)
_STANDALONE_ID_RE = re.compile(r"\b([A-Z]{1,2}\d{0,2})\b")
_CYCLE_RE = re.compile(r"CYCLE\s*[:#]?\s*([A-Z0-9]+)", re.IGNORECASE)


class TimeWindow(NamedTuple):
    start: str
    end: str


class _InvalidDateRange:
    """Falsy sentinel returned by ``parse_date_range`` on bad input."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "INVALID_DATE_RANGE"


INVALID_DATE_RANGE = _InvalidDateRange()

DateRange = Union[Tuple[str, str], _InvalidDateRange]


# ══════════════════════════════════════════════════════════════════════════════
# Scalars
# ══════════════════════════════════════════════════════════════════════════════

def is_numeric(v: Any) -> bool:
    if is_blank(v) or isinstance(v, bool):
        return False
    if isinstance(v, (int, float)):
        return True
    try:
        float(clean(v).replace(",", ""))
        return True
    except ValueError:
        return False


def to_text(v: Any) -> Optional[str]:
    """Stripped text; integral floats lose their '.0' suffix; blank → None."""
    if is_blank(v):
        return None
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    if isinstance(v, (datetime, date)):
        return v.strftime("%Y-%m-%d")
    return clean(v)


def to_code(v: Any, width: int = 4) -> Optional[str]:
    """Employee-style codes: '294.0' / 294 → '0294'."""
    text = to_text(v)
    if text is None:
        return None
    return text.split(".")[0].zfill(width)


def to_iso_date(v: Any) -> Optional[str]:
    """Convert any date-like value → ISO 'YYYY-MM-DD' string, or None."""
    if is_blank(v):
        return None
    if isinstance(v, (datetime, date)):
        return v.strftime("%Y-%m-%d")
    s = clean(v)
    if s.lower() in ("nat", "none", "nan"):
        return None
    for fmt in _DATE_FMTS:
        try:
            return datetime.strptime(s, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    try:
        return pd.to_datetime(s, dayfirst=True).strftime("%Y-%m-%d")
    except (ValueError, TypeError, OverflowError):
        return None


def ratio_to_percent(v: Any) -> Optional[str]:
    """0.15 → '15%', 0.125 → '12.5%'; strings pass through; blank → None."""
    if is_blank(v):
        return None
    if isinstance(v, bool):
        return str(v)
    if isinstance(v, (int, float)):
        if not math.isfinite(v):
            return None
        pct = round(v * 100, 6)
        if pct == int(pct):
            return f"{int(pct)}%"
        return f"{pct:g}%"
    return v


# ══════════════════════════════════════════════════════════════════════════════
# Embedded patterns
# ══════════════════════════════════════════════════════════════════════════════

def extract_identifier(v: Any) -> Optional[str]:
    """
    Menu identifier from free text.

    'MENU X1' / 'menu a2' → 'X1' / 'A2'. Without the prefix, a short code
    ('B', 'C12') is accepted only when it is the whole cell.
    """
    s = clean(v)
    if not s:
        return None
    m = _MENU_ID_RE.search(s)
    if m:
        return m.group(1).strip().upper()
    m = _STANDALONE_ID_RE.search(s)
    if m and m.group(0) == s:
        return m.group(1).upper()
    return None


def extract_time_window(v: Any) -> Optional[TimeWindow]:
    """'08:00 < ETD < 12:00' → TimeWindow('08:00', '12:00')."""
    m = _TIME_WINDOW_RE.search(clean(v))
    if not m:
        return None
    bounds = []
    for raw in m.groups():
        try:
            bounds.append(datetime.strptime(raw, "%H:%M").strftime("%H:%M"))
        except ValueError:
            return None
    return TimeWindow(*bounds)


def parse_date_range(v: Any) -> DateRange:
    """
    '1-7 APR.2025' → ('2025-04-01', '2025-04-07').

    Spacing, case and the dot after the month are optional. Dates that do
    not exist on the calendar (31 APR) give INVALID_DATE_RANGE.
    """
    m = _DATE_RANGE_RE.search(clean(v))
    if not m:
        return INVALID_DATE_RANGE
    start_day, end_day, month_abbr, year = m.groups()
    month = _MONTHS.get(month_abbr.upper())
    if month is None:
        return INVALID_DATE_RANGE
    try:
        start = date(int(year), month, int(start_day))
        end = date(int(year), month, int(end_day))
    except ValueError:
        return INVALID_DATE_RANGE
    return start.isoformat(), end.isoformat()


def detect_aircraft_type(v: Any) -> str:
    return "NEO" if "NEO" in clean(v).upper() else "normal"


def extract_cycle(v: Any) -> Optional[str]:
    """'Menu cycle 3' → 'CYCLE 3'."""
    m = _CYCLE_RE.search(clean(v))
    if not m:
        return None
    return f"CYCLE {m.group(1).upper()}"


NORMALIZERS = {
    "raw":        lambda v: None if is_blank(v) else v,
    "text":       to_text,
    "ratio":      ratio_to_percent,
    "code":       to_code,
    "date":       to_iso_date,
    "identifier": extract_identifier,
    "cycle":      extract_cycle,
}
