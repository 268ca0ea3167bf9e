# crm_dashboard/cross_sell_performance/conversion_table.py
"""
Conversion Table Builder

One row per pipeline stage (Dropped is a column, never a row):
- cumulative:       unique deals that ever occupied the stage
- mcv_sum:          MCV of those deals, each deal once
- conversion_rate:  cumulative[i+1] / cumulative[i] as "xx.x%"
                    "N/A" when the base is 0 and the next stage is not,
                    "-" when both are 0 and on the final stage
- remaining:        deals currently sitting at the stage
- dropped:          events moving a deal from the stage into Dropped
"""

import logging
from typing import List, Optional

import pandas as pd

from .constants import CONVERSION_STAGES, CVR_EMPTY, CVR_NOT_APPLICABLE, STAGE_DROPPED
from .funnel_calculator import FunnelCalculator

logger = logging.getLogger(__name__)

CONVERSION_COLUMNS = [
    'stage_index', 'stage_name', 'cumulative', 'mcv_sum',
    'conversion_rate', 'remaining', 'dropped', 'max_records',
]


def format_conversion_rate(base: int, following: Optional[int]) -> str:
    """
    Stage-to-stage conversion rate string.

    Args:
        base: Cumulative count at the stage
        following: Cumulative count at the next stage (None for the last stage)
    """
    if following is None:
        return CVR_EMPTY
    if base == 0:
        return CVR_NOT_APPLICABLE if following > 0 else CVR_EMPTY
    return f"{following / base * 100:.1f}%"


class ConversionTableBuilder:
    """Build the stage conversion table from a deal snapshot and its history."""

    def __init__(self, deals_df: pd.DataFrame, events_df: pd.DataFrame,
                 funnel: Optional[FunnelCalculator] = None):
        deals = deals_df.copy() if deals_df is not None else pd.DataFrame()
        if not deals.empty and 'mcv' not in deals.columns:
            deals['mcv'] = deals.get('expected_value', 0.0)
        elif not deals.empty:
            fallback = deals['expected_value'] if 'expected_value' in deals.columns else 0.0
            deals['mcv'] = pd.to_numeric(deals['mcv'], errors='coerce').fillna(fallback)

        self._funnel = funnel or FunnelCalculator(deals, events_df)
        self._deals = deals

    def build(self, stage_order: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Build the conversion table.

        Args:
            stage_order: Row stages in order (defaults to CONVERSION_STAGES)

        Returns:
            DataFrame with CONVERSION_COLUMNS, one row per stage
        """
        stages = [s for s in (stage_order or CONVERSION_STAGES) if s != STAGE_DROPPED]

        stage_sets = self._funnel.stage_sets()
        mcv = self._funnel.stage_values('mcv')
        remaining = self._funnel.current_counts()
        dropped = self._funnel.dropped_from(STAGE_DROPPED)

        cumulative = [len(stage_sets.get(stage, ())) for stage in stages]
        max_records = max(cumulative + [1])

        rows = []
        for i, stage in enumerate(stages):
            following = cumulative[i + 1] if i + 1 < len(stages) else None
            rows.append({
                'stage_index': i,
                'stage_name': f"{i}. {stage}",
                'cumulative': cumulative[i],
                'mcv_sum': float(mcv.get(stage, 0.0)),
                'conversion_rate': format_conversion_rate(cumulative[i], following),
                'remaining': int(remaining.get(stage, 0)),
                'dropped': int(dropped.get(stage, 0)),
                'max_records': max_records,
            })

        logger.debug(f"Conversion table built for {len(stages)} stages")
        return pd.DataFrame(rows, columns=CONVERSION_COLUMNS)
