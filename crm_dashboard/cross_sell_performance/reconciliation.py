# crm_dashboard/cross_sell_performance/reconciliation.py
"""
Cumulative Reconciliation - forward-only running totals, target vs actual

Rules per month column (relative to the injected as_of date):
- Past month:            running actual += delta, shown = running
                         (carries forward even when the delta is 0)
- Current / future:      delta == 0 -> shown 0 ("not yet reported")
                         delta != 0 -> running += delta, shown = running
- Target:                always the running sum
- Achievement%:          100 * shown actual / cumulative target (0 if no target)
- Balance:               cumulative target - shown actual (may go negative)

Nothing in a later month ever changes an earlier column.

USAGE:
    reconciler = CumulativeReconciler(as_of=date(2025, 6, 15))
    table = reconciler.reconcile(months, achieved_deltas, target_deltas)
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Mapping, Sequence, Tuple, Union

import pandas as pd

from .constants import RECONCILIATION_ROWS, TIERS
from .fiscal_calendar import fiscal_months, month_label

logger = logging.getLogger(__name__)

YearMonth = Tuple[int, int]
Deltas = Union[Mapping[YearMonth, float], Sequence[float]]


def _clean(value) -> float:
    return float(value) if value is not None and pd.notna(value) else 0.0


def _as_lookup(months: List[YearMonth], deltas: Deltas) -> Dict[YearMonth, float]:
    """Accept either {(year, month): value} or a list parallel to months."""
    if deltas is None:
        return {}
    if isinstance(deltas, Mapping):
        return {(int(y), int(m)): _clean(v) for (y, m), v in deltas.items()}
    values = list(deltas)
    if len(values) != len(months):
        raise ValueError(
            f"Expected {len(months)} deltas, got {len(values)}"
        )
    return {ym: _clean(v) for ym, v in zip(months, values)}


class CumulativeReconciler:
    """Build Target / Actual / Achievement% / Balance rows over ordered months."""

    def __init__(self, as_of: Union[date, datetime]):
        if as_of is None:
            raise ValueError("as_of is required")
        self.as_of = as_of
        self._as_of_month = (as_of.year, as_of.month)

    def is_past(self, year: int, month: int) -> bool:
        return (year, month) < self._as_of_month

    def cumulative_actuals(self, months: List[YearMonth], achieved_deltas: Deltas) -> List[float]:
        """Displayed actual per month under the carry-forward rules."""
        deltas = _as_lookup(months, achieved_deltas)
        running = 0.0
        shown = []
        for year, month in months:
            delta = deltas.get((year, month), 0.0)
            if self.is_past(year, month):
                running += delta
                shown.append(running)
            elif delta == 0:
                shown.append(0.0)
            else:
                running += delta
                shown.append(running)
        return shown

    @staticmethod
    def cumulative_targets(months: List[YearMonth], target_deltas: Deltas) -> List[float]:
        deltas = _as_lookup(months, target_deltas)
        running = 0.0
        result = []
        for ym in months:
            running += deltas.get(ym, 0.0)
            result.append(running)
        return result

    def reconcile(
        self,
        months: List[YearMonth],
        achieved_deltas: Deltas,
        target_deltas: Deltas
    ) -> pd.DataFrame:
        """
        Reconcile per-month deltas into cumulative rows.

        Args:
            months: Ordered (year, month) columns
            achieved_deltas: Per-month achieved values
            target_deltas: Per-month target values

        Returns:
            DataFrame indexed by RECONCILIATION_ROWS, one column per month label
        """
        months = [(int(y), int(m)) for y, m in months]
        actuals = self.cumulative_actuals(months, achieved_deltas)
        targets = self.cumulative_targets(months, target_deltas)

        achievement = [
            (actual / target * 100) if target else 0.0
            for actual, target in zip(actuals, targets)
        ]
        balance = [target - actual for actual, target in zip(actuals, targets)]

        return pd.DataFrame(
            [targets, actuals, achievement, balance],
            index=RECONCILIATION_ROWS,
            columns=[month_label(y, m) for y, m in months],
        )

    def build_tier_table(self, fiscal_year: str, monthly_df: pd.DataFrame) -> Dict[str, pd.DataFrame]:
        """
        Per-tier reconciliation over the 12 fiscal months.

        Args:
            fiscal_year: "FYnn"
            monthly_df: Long frame with tier, year, month, achieved, target

        Returns:
            Dict tier -> 4 x 12 reconciliation DataFrame (every tier present)
        """
        months = fiscal_months(fiscal_year)
        tables = {}

        for tier in TIERS:
            if monthly_df is None or monthly_df.empty:
                tier_df = pd.DataFrame(columns=['year', 'month', 'achieved', 'target'])
            else:
                tier_df = monthly_df[monthly_df['tier'] == tier]

            achieved: Dict[YearMonth, float] = {}
            target: Dict[YearMonth, float] = {}
            if not tier_df.empty:
                grouped = tier_df.groupby(['year', 'month'])[['achieved', 'target']].sum()
                for (y, m), row in grouped.iterrows():
                    achieved[(int(y), int(m))] = float(row['achieved'])
                    target[(int(y), int(m))] = float(row['target'])

            tables[tier] = self.reconcile(months, achieved, target)

        logger.debug(f"Tier reconciliation built for {fiscal_year} as of {self.as_of}")
        return tables
