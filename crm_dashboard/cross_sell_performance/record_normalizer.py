# crm_dashboard/cross_sell_performance/record_normalizer.py
"""
Record Normalizer - one semantic shape for per-month performance entries

Mandates store `monthly_data` as {"YYYY-MM": entry}. Two encodings exist:
- Legacy pair:  [planned, achieved]
- Current:      achieved (bare number)

Both are resolved here, once, into PerformanceValue. Nothing downstream
branches on the encoding again.

Malformed entries (anything that is neither a pair nor a number) count as
zero, are logged, and are tallied on `RecordNormalizer.skipped` so one bad
row never aborts a roll-up.
"""

import json
import logging
import math
import numbers
from typing import Any, Dict, List, Optional

import pandas as pd

from .fiscal_calendar import month_key, parse_month_key
from .models import (
    PerformanceValue,
    SHAPE_EMPTY,
    SHAPE_MALFORMED,
    SHAPE_PAIR,
    SHAPE_SCALAR,
)

logger = logging.getLogger(__name__)

PERFORMANCE_COLUMNS = [
    'mandate_id', 'account_id', 'kam_id', 'mandate_type', 'lob',
    'year', 'month', 'month_key', 'planned', 'achieved', 'shape',
]

_MISSING = object()


def _coerce_number(value: Any) -> Any:
    """
    float for numeric input, None for null, _MISSING for anything unusable.
    Numeric strings are accepted; upstream JSON sometimes stores text.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return _MISSING
    if isinstance(value, numbers.Real):
        return None if math.isnan(float(value)) else float(value)
    if isinstance(value, str):
        text = value.strip().replace(',', '')
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return _MISSING
    return _MISSING


def _is_null(record: Any) -> bool:
    if record is None:
        return True
    return isinstance(record, float) and math.isnan(record)


class RecordNormalizer:
    """
    Normalize performance entries and count what had to be skipped.

    Usage:
        normalizer = RecordNormalizer()
        achieved = normalizer.normalize([3000, 5000])    # 5000.0
        performance_df = normalizer.explode_monthly_data(mandates_df)
        normalizer.skipped                                # malformed rows seen
    """

    def __init__(self):
        self.skipped = 0

    # =========================================================================
    # SINGLE RECORD
    # =========================================================================

    def to_performance_value(self, record: Any) -> PerformanceValue:
        """Resolve one raw entry into PerformanceValue."""
        if _is_null(record):
            return PerformanceValue(achieved=0.0, planned=None, shape=SHAPE_EMPTY)

        if isinstance(record, (list, tuple)):
            if len(record) == 2:
                planned = _coerce_number(record[0])
                achieved = _coerce_number(record[1])
                if planned is not _MISSING and achieved is not _MISSING:
                    return PerformanceValue(
                        achieved=achieved or 0.0,
                        planned=planned,
                        shape=SHAPE_PAIR,
                    )
            return self._malformed(record)

        value = _coerce_number(record)
        if value is _MISSING:
            return self._malformed(record)
        if value is None:
            return PerformanceValue(achieved=0.0, planned=None, shape=SHAPE_EMPTY)
        return PerformanceValue(achieved=value, planned=None, shape=SHAPE_SCALAR)

    def normalize(self, record: Any) -> float:
        """Achieved value of a raw entry (pair -> second element, scalar -> itself)."""
        return self.to_performance_value(record).achieved

    def _malformed(self, record: Any) -> PerformanceValue:
        self.skipped += 1
        logger.warning(f"Skipping malformed performance record: {record!r}")
        return PerformanceValue(achieved=0.0, planned=None, shape=SHAPE_MALFORMED)

    # =========================================================================
    # MANDATE MONTHLY DATA
    # =========================================================================

    def parse_monthly_data(self, monthly_data: Any) -> Dict[str, Any]:
        """monthly_data column value -> dict (JSON text accepted)."""
        if _is_null(monthly_data):
            return {}
        if isinstance(monthly_data, str):
            try:
                monthly_data = json.loads(monthly_data)
            except ValueError:
                self.skipped += 1
                logger.warning("Skipping unparseable monthly_data payload")
                return {}
        if not isinstance(monthly_data, dict):
            self.skipped += 1
            logger.warning(f"Skipping monthly_data of type {type(monthly_data).__name__}")
            return {}
        return monthly_data

    def explode_monthly_data(self, mandates_df: pd.DataFrame) -> pd.DataFrame:
        """
        One row per (mandate, month) with normalized planned/achieved.

        Args:
            mandates_df: Mandates with id, account_id, kam_id, type, lob, monthly_data

        Returns:
            DataFrame with PERFORMANCE_COLUMNS
        """
        if mandates_df is None or mandates_df.empty or 'monthly_data' not in mandates_df.columns:
            return pd.DataFrame(columns=PERFORMANCE_COLUMNS)

        rows: List[Dict[str, Any]] = []
        for mandate in mandates_df.to_dict('records'):
            entries = self.parse_monthly_data(mandate.get('monthly_data'))
            for key, raw in entries.items():
                parsed = parse_month_key(key)
                if parsed is None:
                    self.skipped += 1
                    logger.warning(
                        f"Skipping performance record with bad month key {key!r} "
                        f"(mandate {mandate.get('id')})"
                    )
                    continue

                value = self.to_performance_value(raw)
                if value.is_malformed:
                    continue

                year, month = parsed
                rows.append({
                    'mandate_id': mandate.get('id'),
                    'account_id': mandate.get('account_id'),
                    'kam_id': mandate.get('kam_id'),
                    'mandate_type': mandate.get('type'),
                    'lob': mandate.get('lob'),
                    'year': year,
                    'month': month,
                    'month_key': month_key(year, month),
                    'planned': value.planned if value.planned is not None else 0.0,
                    'achieved': value.achieved,
                    'shape': value.shape,
                })

        df = pd.DataFrame(rows, columns=PERFORMANCE_COLUMNS)
        logger.info(
            f"Normalized {len(df):,} performance records from {len(mandates_df):,} mandates "
            f"(skipped={self.skipped})"
        )
        return df


# =============================================================================
# MODULE-LEVEL HELPERS
# =============================================================================

def normalize(record: Any) -> float:
    """Achieved value of one raw entry. See RecordNormalizer.normalize."""
    return RecordNormalizer().normalize(record)


def to_performance_value(record: Any) -> PerformanceValue:
    """See RecordNormalizer.to_performance_value."""
    return RecordNormalizer().to_performance_value(record)
