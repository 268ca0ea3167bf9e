# crm_dashboard/cross_sell_performance/fiscal_calendar.py
"""
Fiscal Calendar - April-to-March financial year helpers

All functions are pure. "Today" / "now" is always passed in by the caller.

Conventions:
- Label "FY25" = 1 Apr 2025 00:00 .. 31 Mar 2026 23:59:59.999 (inclusive)
- Q1 = Apr-Jun, Q2 = Jul-Sep, Q3 = Oct-Dec, Q4 = Jan-Mar
- Targets store the financial year as "2025-26"
- Weeks run Monday..Sunday (ISO)
"""

import logging
import numbers
import re
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .constants import FISCAL_MONTH_ORDER, FY_START_MONTH, MONTH_MAPPING, QUARTER_MONTHS

logger = logging.getLogger(__name__)

_FY_LABEL_RE = re.compile(r"^FY(\d{2})$", re.IGNORECASE)
_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{1,2})$")

# 23:59:59.999 - matches how the dashboards bound a day
_END_OF_DAY = dict(hour=23, minute=59, second=59, microsecond=999000)

DateRange = Tuple[datetime, datetime]
YearMonth = Tuple[int, int]


# =============================================================================
# FISCAL YEAR
# =============================================================================

def fiscal_start_year(label: str) -> int:
    """Calendar year in which the fiscal year starts ("FY25" -> 2025)."""
    match = _FY_LABEL_RE.match(str(label or "").strip())
    if not match:
        raise ValueError(f"Invalid fiscal year label: {label!r} (expected 'FYnn')")
    return 2000 + int(match.group(1))


def fiscal_year_range(label: str) -> DateRange:
    """
    Concrete date range of a fiscal year.

    Args:
        label: Fiscal year label, e.g. "FY25"

    Returns:
        Tuple of (start, end) datetimes, both inclusive
    """
    start_year = fiscal_start_year(label)
    start = datetime(start_year, FY_START_MONTH, 1)
    end = datetime(start_year + 1, FY_START_MONTH - 1, 31, **_END_OF_DAY)
    return start, end


def current_fiscal_year(today: date) -> str:
    """Fiscal year label containing `today` (April or later -> same year)."""
    start_year = today.year if today.month >= FY_START_MONTH else today.year - 1
    return f"FY{start_year % 100:02d}"


def financial_year_string(label: str) -> str:
    """Stored target format: "FY25" -> "2025-26"."""
    start_year = fiscal_start_year(label)
    return f"{start_year}-{(start_year + 1) % 100:02d}"


def fiscal_months(label: str) -> List[YearMonth]:
    """The 12 (year, month) pairs of a fiscal year in fiscal order."""
    start_year = fiscal_start_year(label)
    return [
        (start_year if m >= FY_START_MONTH else start_year + 1, m)
        for m in FISCAL_MONTH_ORDER
    ]


def year_for_month_in_fy(month: int, label: str) -> int:
    """Jan-Mar fall in the second calendar year of the fiscal year."""
    _validate_month(month)
    start_year = fiscal_start_year(label)
    return start_year + 1 if month < FY_START_MONTH else start_year


def contains(label: str, year: int, month: int) -> bool:
    """True if (year, month) lies inside the fiscal year."""
    start, end = fiscal_year_range(label)
    first_of_month = datetime(year, month, 1)
    return start <= first_of_month <= end


# =============================================================================
# QUARTERS
# =============================================================================

def quarter_of(month: int) -> str:
    """Fiscal quarter ("Q1".."Q4") of a calendar month."""
    _validate_month(month)
    for quarter, months in QUARTER_MONTHS.items():
        if month in months:
            return quarter
    raise ValueError(f"Month {month} not mapped to a quarter")  # pragma: no cover


def quarter_months(quarter: str, label: str) -> List[YearMonth]:
    """The three (year, month) pairs of a quarter within a fiscal year."""
    if quarter not in QUARTER_MONTHS:
        raise ValueError(f"Invalid quarter: {quarter!r}")
    return [(year_for_month_in_fy(m, label), m) for m in QUARTER_MONTHS[quarter]]


def next_quarter(month: int, year: int) -> List[YearMonth]:
    """
    The three months of the fiscal quarter following the one containing
    (year, month).

    The calendar year increments only when the walk crosses December into
    January (Q3 -> Q4). Q4 -> Q1 stays in the same calendar year even though
    it opens a new fiscal year.
    """
    last_month = QUARTER_MONTHS[quarter_of(month)][-1]
    result = []
    y, m = year, last_month
    for _ in range(3):
        m += 1
        if m > 12:
            m = 1
            y += 1
        result.append((y, m))
    return result


# =============================================================================
# MONTHS
# =============================================================================

def month_key(year: int, month: int) -> str:
    """Performance-record key: (2025, 4) -> "2025-04"."""
    _validate_month(month)
    return f"{int(year):04d}-{int(month):02d}"


def parse_month_key(key) -> Optional[YearMonth]:
    """Inverse of month_key. Returns None for malformed keys."""
    match = _MONTH_KEY_RE.match(str(key or "").strip())
    if not match:
        return None
    year, month = int(match.group(1)), int(match.group(2))
    if not 1 <= month <= 12:
        return None
    return year, month


def month_label(year: int, month: int) -> str:
    """Column label: (2025, 4) -> "Apr-25"."""
    return f"{MONTH_MAPPING[month]}-{year % 100:02d}"


def month_range(year: int, month: int) -> DateRange:
    """First instant .. last instant of a calendar month."""
    _validate_month(month)
    start = datetime(year, month, 1)
    next_first = datetime(year + (month == 12), month % 12 + 1, 1)
    end = (next_first - timedelta(days=1)).replace(**_END_OF_DAY)
    return start, end


# =============================================================================
# WEEKS
# =============================================================================

def week_bounds(now: datetime) -> DateRange:
    """Monday 00:00 .. Sunday 23:59:59.999 of the ISO week containing `now`."""
    day = now.date() if isinstance(now, datetime) else now
    monday = day - timedelta(days=day.weekday())
    start = datetime(monday.year, monday.month, monday.day)
    sunday = monday + timedelta(days=6)
    end = datetime(sunday.year, sunday.month, sunday.day, **_END_OF_DAY)
    return start, end


def clip_range(window: DateRange, bounds: DateRange) -> Optional[DateRange]:
    """Intersection of two ranges, or None when empty."""
    start = max(window[0], bounds[0])
    end = min(window[1], bounds[1])
    if start > end:
        return None
    return start, end


def week_windows(now: datetime, label: str) -> Dict[str, Optional[DateRange]]:
    """
    "This week" and "last week", each clipped to the fiscal year.

    A week straddling the fiscal-year boundary is truncated, not excluded.
    A week entirely outside the fiscal year becomes None.
    """
    fy_range = fiscal_year_range(label)
    this_start, this_end = week_bounds(now)
    last_start = this_start - timedelta(days=7)
    last_end = this_end - timedelta(days=7)

    return {
        'this_week': clip_range((this_start, this_end), fy_range),
        'last_week': clip_range((last_start, last_end), fy_range),
    }


# =============================================================================
# TIMESTAMP NORMALIZATION
# =============================================================================

def to_local_naive(values, tz: Optional[str] = None) -> pd.Series:
    """
    Parse timestamps into naive local datetimes.

    Timezone-aware values are converted to `tz` first (when given) and the
    offset dropped, so comparisons against fiscal ranges are wall-clock.
    Unparseable values become NaT.
    """
    raw = pd.Series(values)
    try:
        series = pd.to_datetime(raw, errors='coerce')
    except (ValueError, TypeError):
        # mixed offsets cannot share one dtype without going through UTC
        series = pd.to_datetime(raw, errors='coerce', utc=True)
    if getattr(series.dt, 'tz', None) is not None:
        if tz:
            series = series.dt.tz_convert(tz)
        series = series.dt.tz_localize(None)
    return series


def _validate_month(month: int) -> None:
    if not isinstance(month, numbers.Integral) or isinstance(month, bool) or not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month!r} (expected 1-12)")
